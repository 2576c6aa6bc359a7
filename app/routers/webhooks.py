"""Webhook dispatch, delivery logs and URL checks"""
from fastapi import APIRouter, Depends
from typing import Dict, Optional
import logging

from app.config import Settings, get_settings
from app.database import get_supabase_admin, get_supabase_client
from app.middleware.auth import get_current_user, require_dispatch_key, user_can_access_form
from app.middleware.error_handler import (
    ApiError,
    bad_request,
    forbidden,
    internal_error,
    not_found,
)
from app.models.webhooks import (
    DeliveryLogList,
    DispatchRequest,
    DispatchResponse,
    UrlValidationRequest,
    UrlValidationResult,
)
from app.services.payload_builder import PayloadBuilder
from app.services.url_policy import validate_webhook_url
from app.services.webhook_dispatcher import PayloadNotFoundError, WebhookDispatcher

logger = logging.getLogger(__name__)
router = APIRouter()

LOG_STATUSES = ("pending", "success", "failed", "all")


def get_webhook_dispatcher(settings: Settings = Depends(get_settings)) -> WebhookDispatcher:
    """Dispatcher running with the service role (delivery is not user-scoped)"""
    client = get_supabase_admin(settings)
    return WebhookDispatcher(client, PayloadBuilder(client), settings)


def get_user_client(
    auth_data: Dict = Depends(get_current_user),
    settings: Settings = Depends(get_settings)
):
    """Supabase client under the caller's RLS context"""
    return get_supabase_client(settings, auth_data["raw_token"])


async def _run_dispatch(dispatch) -> DispatchResponse:
    """Await a dispatch coroutine and map a missing payload to 404"""
    try:
        summary = await dispatch
    except PayloadNotFoundError as e:
        raise not_found(str(e))
    return DispatchResponse(**summary.model_dump())


@router.post("/dispatch", response_model=DispatchResponse, dependencies=[Depends(require_dispatch_key)])
async def dispatch_response(
    request: DispatchRequest,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher)
):
    """Fan a submitted response out to the form's webhook integrations (server-to-server)"""
    try:
        return await _run_dispatch(dispatcher.dispatch(request.form_id, request.response_id))
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Webhook dispatch error: {e}")
        raise internal_error("Failed to dispatch webhooks")


@router.get("/integrations/{integration_id}/logs", response_model=DeliveryLogList)
async def get_delivery_logs(
    integration_id: str,
    status: str = "all",
    limit: Optional[int] = None,
    auth_data: Dict = Depends(get_current_user),
    client=Depends(get_user_client),
    settings: Settings = Depends(get_settings)
):
    """Delivery trail of one integration, newest first"""
    try:
        if status not in LOG_STATUSES:
            raise bad_request(f"Invalid status: {status}", {"allowed": list(LOG_STATUSES)})
        if limit is None:
            limit = settings.delivery_logs_max_limit
        if limit < 1:
            raise bad_request("limit must be a positive integer")
        limit = min(limit, settings.delivery_logs_max_limit)

        integration = client.table("form_integrations").select("id, form_id").eq(
            "id", integration_id
        ).limit(1).execute()

        if not integration.data:
            raise not_found("Integration not found")

        if not user_can_access_form(client, integration.data[0]["form_id"], auth_data["user_id"]):
            raise forbidden("Access denied to this form")

        query = client.table("webhook_delivery_logs").select("*").eq("integration_id", integration_id)
        if status != "all":
            query = query.eq("status", status)
        result = query.order("created_at", desc=True).limit(limit).execute()

        return {"logs": result.data or []}

    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Get delivery logs error: {e}")
        raise internal_error("Failed to fetch delivery logs")


@router.post("/logs/{log_id}/redeliver", response_model=DispatchResponse)
async def redeliver(
    log_id: str,
    auth_data: Dict = Depends(get_current_user),
    client=Depends(get_user_client),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher)
):
    """Send a logged delivery again to the same integration as a new attempt"""
    try:
        log_result = client.table("webhook_delivery_logs").select(
            "id, form_id, integration_id, response_id, attempt"
        ).eq("id", log_id).limit(1).execute()

        if not log_result.data:
            raise not_found("Delivery log not found")
        log = log_result.data[0]

        if not user_can_access_form(client, log["form_id"], auth_data["user_id"]):
            raise forbidden("Access denied to this form")

        if not log.get("response_id"):
            raise bad_request("This delivery has no associated response")

        logger.info(f"Redelivering log {log_id} for integration {log['integration_id']}")
        return await _run_dispatch(dispatcher.redeliver(log))

    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Redelivery error: {e}")
        raise internal_error("Failed to redeliver webhook")


@router.post("/validate-url", response_model=UrlValidationResult)
async def validate_url(request: UrlValidationRequest, auth_data: Dict = Depends(get_current_user)):
    """Check a webhook URL against the outbound URL policy"""
    return validate_webhook_url(request.url)
