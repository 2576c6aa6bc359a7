"""Canonical response payload models shared by the Responses API and webhooks"""
from enum import Enum
from pydantic import BaseModel, model_serializer
from typing import Any, Dict, List, Literal, Optional


class FieldType(str, Enum):
    """Closed set of form field types"""
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    NUMBER = "number"
    DATE = "date"
    TIME = "time"
    TEXTAREA = "textarea"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SELECT = "select"
    MULTISELECT = "multiselect"
    FILE = "file"
    SIGNATURE = "signature"
    RATING = "rating"
    SLIDER = "slider"
    MATRIX = "matrix"
    DIVIDER = "divider"
    HTML = "html"
    PAGEBREAK = "pagebreak"
    SECTION = "section"
    CALCULATED = "calculated"


class FormField(BaseModel):
    """Field descriptor snapshot taken when the payload is built"""
    id: str
    label: str
    type: FieldType
    ref: Optional[str] = None


class Answer(BaseModel):
    """A single answer; value is whatever decode_answer_value produced"""
    field: FormField
    type: FieldType
    value: Any = None
    file_urls: Optional[List[str]] = None

    @model_serializer(mode="wrap")
    def _omit_missing_file_urls(self, handler):
        data = handler(self)
        if data.get("file_urls") is None:
            data.pop("file_urls", None)
        return data


class ResponseMetadata(BaseModel):
    """Response metadata; keys that were never computed are omitted"""
    completion_time_seconds: Optional[int] = None
    completion_time_label: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referer: Optional[str] = None

    @model_serializer(mode="wrap")
    def _omit_unset(self, handler):
        return {key: value for key, value in handler(self).items() if value is not None}


class ResponsePayload(BaseModel):
    """The canonical external representation of a form response"""
    id: str
    form_id: str
    form_title: str
    status: Literal["complete", "partial"]
    respondent_id: Optional[str] = None
    respondent_email: Optional[str] = None
    created_at: Optional[str] = None
    submitted_at: Optional[str] = None
    url_params: Dict[str, str] = {}
    metadata: ResponseMetadata = ResponseMetadata()
    answers: List[Answer] = []


class SingleResponseResult(BaseModel):
    """GET /responses/{id} body"""
    item: ResponsePayload


class ListResponsesResult(BaseModel):
    """GET /responses body"""
    items: List[ResponsePayload]
    total_count: int
    page_size: int
    next_cursor: Optional[str] = None
    has_more: bool
