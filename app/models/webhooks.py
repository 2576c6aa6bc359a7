"""Webhook dispatch and delivery-log Pydantic models"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional

from app.models.responses import ResponsePayload


class WebhookEvent(BaseModel):
    """Envelope POSTed to every webhook receiver"""
    event_id: str
    event_type: Literal["form_response"] = "form_response"
    created_at: str
    form_response: ResponsePayload


class DispatchRequest(BaseModel):
    """Response-submitted trigger"""
    model_config = ConfigDict(populate_by_name=True)

    form_id: str = Field(..., min_length=1, alias="formId")
    response_id: str = Field(..., min_length=1, alias="responseId")


class DispatchSummary(BaseModel):
    """Aggregated outcome of one dispatch call"""
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0


class DispatchResponse(DispatchSummary):
    """POST /webhooks/dispatch body"""
    success: bool = True


class IntegrationTarget(BaseModel):
    """Where and how to deliver, resolved from an integration's configuration"""
    url: Optional[str] = None
    secret: Optional[str] = None

    @classmethod
    def from_configuration(cls, configuration: Optional[Dict[str, Any]]) -> "IntegrationTarget":
        configuration = configuration or {}
        return cls(
            url=configuration.get("webhook_url") or configuration.get("url") or None,
            secret=configuration.get("secret") or None
        )


class DeliveryLog(BaseModel):
    """A webhook_delivery_logs row"""
    id: str
    form_id: str
    integration_id: str
    response_id: Optional[str] = None
    event_id: str
    event_type: str = "form_response"
    status: Literal["pending", "success", "failed"]
    attempt: int = 1
    url: str
    request_body: Optional[Dict[str, Any]] = None
    response_body: Optional[str] = None
    http_status: Optional[int] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DeliveryLogList(BaseModel):
    """GET /webhooks/integrations/{id}/logs body"""
    logs: List[DeliveryLog]


class UrlValidationRequest(BaseModel):
    """Webhook URL to check against the outbound policy"""
    url: str


class UrlValidationResult(BaseModel):
    """Outcome of a webhook URL policy check"""
    is_valid: bool
    error: Optional[str] = None
