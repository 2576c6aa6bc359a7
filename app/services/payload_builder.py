"""
Canonical response payload builder.

Turns a form_responses row, its answers and their field descriptors into the
ResponsePayload served by the Responses API and sent in every webhook. The
payload is a view: it is rebuilt from current rows on every call and never
stored, so field labels and types reflect the form as it is now.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from supabase import Client

from app.models.responses import (
    Answer,
    FieldType,
    FormField,
    ResponseMetadata,
    ResponsePayload,
)
from app.utils.retry import retry_supabase_query

logger = logging.getLogger(__name__)

RESPONSE_COLUMNS = (
    "id, form_id, respondent_id, respondent_email, is_partial, "
    "submitted_at, created_at, url_params, forms ( id, title )"
)
ANSWER_COLUMNS = "id, field_id, value, file_urls, form_fields ( id, label, type )"


class AnswerValueKind(str, Enum):
    """Shape of a decoded answer value"""
    TEXT = "text"
    LIST = "list"
    OBJECT = "object"
    SCALAR = "scalar"
    # Looked like JSON but did not parse; kept verbatim
    RAW = "raw"


@dataclass(frozen=True)
class AnswerValue:
    kind: AnswerValueKind
    value: Any


def _classify(value: Any) -> AnswerValue:
    if isinstance(value, list):
        return AnswerValue(AnswerValueKind.LIST, value)
    if isinstance(value, dict):
        return AnswerValue(AnswerValueKind.OBJECT, value)
    if isinstance(value, str):
        return AnswerValue(AnswerValueKind.TEXT, value)
    return AnswerValue(AnswerValueKind.SCALAR, value)


def decode_answer_value(raw: Any) -> AnswerValue:
    """
    Best-effort decoding of a stored answer value.

    A string starting with "[" or "{" is parsed as JSON; when that fails the
    string is kept as a RAW value. Other strings stay text. Values the store
    already decoded (jsonb) are classified as they are.
    """
    if isinstance(raw, str):
        if raw.startswith("[") or raw.startswith("{"):
            try:
                return _classify(json.loads(raw))
            except json.JSONDecodeError:
                return AnswerValue(AnswerValueKind.RAW, raw)
        return AnswerValue(AnswerValueKind.TEXT, raw)
    return _classify(raw)


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def completion_seconds(created_at: str, submitted_at: str) -> int:
    """Whole seconds between creation and submission, rounded down"""
    elapsed = parse_timestamp(submitted_at) - parse_timestamp(created_at)
    return (elapsed // timedelta(milliseconds=1)) // 1000


def completion_time_label(seconds: int) -> str:
    """
    Coarse human label for a completion time.

    Minutes and hours are floored and never singularized ("1 minutes").
    """
    if seconds < 60:
        return "Less than 1 minute"
    if seconds < 300:
        return f"{seconds // 60} minutes"
    if seconds < 3600:
        return f"{seconds // 60} minutes"
    return f"{seconds // 3600} hours"


def _url_params(response_id: str, raw: Any) -> Dict[str, str]:
    """Stringify captured query parameters; non-string values become their JSON text"""
    if not raw:
        return {}
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring url_params of {response_id}: expected an object, got {type(raw).__name__}")
        return {}
    return {
        str(key): value if isinstance(value, str) else json.dumps(value)
        for key, value in raw.items()
        if value is not None
    }


def _embedded(row: Dict[str, Any], relation: str) -> Optional[Dict[str, Any]]:
    """PostgREST embeds a to-one relation as an object or a one-item list"""
    value = row.get(relation)
    if isinstance(value, list):
        return value[0] if value else None
    return value


class PayloadBuilder:
    """Builds canonical payloads with whatever access the given client has"""

    def __init__(self, client: Client):
        self.client = client

    def build(self, response_id: str) -> Optional[ResponsePayload]:
        """
        Build the canonical payload for a response

        Args:
            response_id: form_responses id

        Returns:
            The payload, or None when the response (or its form) cannot be
            loaded for any reason
        """
        try:
            response = retry_supabase_query(
                lambda: self.client.table("form_responses").select(RESPONSE_COLUMNS).eq(
                    "id", response_id
                ).single().execute()
            )
            form = _embedded(response.data or {}, "forms")
            if not response.data or not form:
                logger.warning(f"Response not found: {response_id}")
                return None

            answers_result = retry_supabase_query(
                lambda: self.client.table("form_response_answers").select(ANSWER_COLUMNS).eq(
                    "response_id", response_id
                ).order("created_at").order("id").execute()
            )

            return self._assemble(response.data, form, answers_result.data or [])

        except Exception as e:
            logger.error(f"Error building response payload for {response_id}: {e}")
            return None

    def _assemble(
        self,
        response: Dict[str, Any],
        form: Dict[str, Any],
        answer_rows: List[Dict[str, Any]]
    ) -> ResponsePayload:
        metadata = ResponseMetadata()
        created_at = response.get("created_at")
        submitted_at = response.get("submitted_at")
        if created_at and submitted_at:
            seconds = completion_seconds(created_at, submitted_at)
            metadata.completion_time_seconds = seconds
            metadata.completion_time_label = completion_time_label(seconds)

        url_params = _url_params(response["id"], response.get("url_params"))

        return ResponsePayload(
            id=response["id"],
            form_id=response["form_id"],
            form_title=form.get("title") or "",
            status="partial" if response.get("is_partial") else "complete",
            respondent_id=response.get("respondent_id"),
            respondent_email=response.get("respondent_email"),
            created_at=created_at,
            submitted_at=submitted_at,
            url_params=url_params,
            metadata=metadata,
            answers=self._answers(response["id"], answer_rows)
        )

    def _answers(self, response_id: str, answer_rows: List[Dict[str, Any]]) -> List[Answer]:
        answers = []
        for row in answer_rows:
            field = _embedded(row, "form_fields")
            if not field:
                # Field was deleted after the response came in
                logger.debug(f"Dropping answer {row.get('id')} of {response_id}: field no longer exists")
                continue

            try:
                field_type = FieldType(field.get("type"))
            except ValueError:
                logger.warning(
                    f"Dropping answer {row.get('id')} of {response_id}: unknown field type {field.get('type')!r}"
                )
                continue

            decoded = decode_answer_value(row.get("value"))
            if decoded.kind is AnswerValueKind.RAW:
                logger.debug(f"Answer {row.get('id')} looks like JSON but does not parse, keeping raw string")

            file_urls = row.get("file_urls")
            answers.append(Answer(
                field=FormField(id=field["id"], label=field.get("label") or "", type=field_type),
                type=field_type,
                value=decoded.value,
                file_urls=file_urls if isinstance(file_urls, list) else None
            ))
        return answers
