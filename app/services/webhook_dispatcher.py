"""
Webhook dispatcher: fans a form response out to every active webhook
integration of its form.

One dispatch builds the canonical payload once and sends the same snapshot
to every integration concurrently. Each delivery is independent: it gets its
own event id, its own delivery-log row (written as pending before the POST,
then success or failed) and updates only its own integration's health.
A failing endpoint never cancels or delays the others.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from supabase import Client

from app.config import Settings
from app.models.responses import ResponsePayload
from app.models.webhooks import DispatchSummary, IntegrationTarget, WebhookEvent
from app.services.payload_builder import PayloadBuilder
from app.services.signing import sign_payload
from app.services.url_policy import validate_webhook_url
from app.utils.retry import retry_supabase_query

logger = logging.getLogger(__name__)

EVENT_TYPE = "form_response"


class PayloadNotFoundError(Exception):
    """The response could not be canonicalized, so nothing can be sent"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WebhookDispatcher:
    """Delivers signed form_response events to a form's webhook integrations"""

    def __init__(self, client: Client, payload_builder: PayloadBuilder, settings: Settings):
        self.client = client
        self.payload_builder = payload_builder
        self.settings = settings

    def load_integrations(self, form_id: str, integration_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Active webhook-capable integrations of a form"""
        def query():
            q = self.client.table("form_integrations").select("*").eq(
                "form_id", form_id
            ).in_("integration_type", self.settings.webhook_integration_types).eq("is_active", True)
            if integration_id:
                q = q.eq("id", integration_id)
            return q.execute()

        return retry_supabase_query(query).data or []

    async def dispatch(
        self,
        form_id: str,
        response_id: str,
        integration_id: Optional[str] = None,
        attempt: int = 1
    ) -> DispatchSummary:
        """
        Deliver a response to the form's active webhook integrations

        Args:
            form_id: Form the response belongs to
            response_id: Response to deliver
            integration_id: Restrict delivery to this integration
            attempt: Attempt number recorded on the delivery-log rows

        Returns:
            DispatchSummary, even when every delivery failed

        Raises:
            PayloadNotFoundError: If the response cannot be canonicalized
        """
        logger.info(f"Processing form {form_id}, response {response_id}")

        integrations = self.load_integrations(form_id, integration_id)
        if not integrations:
            logger.info(f"No active webhook integrations found for form {form_id}")
            return DispatchSummary()

        payload = self.payload_builder.build(response_id)
        if payload is None:
            logger.error(f"Failed to build response payload for {response_id}")
            raise PayloadNotFoundError(f"Response {response_id} could not be loaded")

        async with httpx.AsyncClient(timeout=self.settings.webhook_timeout_seconds) as http:
            results = await asyncio.gather(
                *(
                    self._deliver(http, integration, form_id, response_id, payload, attempt)
                    for integration in integrations
                ),
                return_exceptions=True
            )

        succeeded = 0
        for integration, result in zip(integrations, results):
            if isinstance(result, BaseException):
                logger.error(f"Delivery to integration {integration.get('id')} errored: {result!r}")
            elif result:
                succeeded += 1

        summary = DispatchSummary(
            dispatched=len(integrations),
            succeeded=succeeded,
            failed=len(integrations) - succeeded
        )
        logger.info(f"Completed: {summary.succeeded} success, {summary.failed} failed")
        return summary

    async def redeliver(self, log: Dict[str, Any]) -> DispatchSummary:
        """Send a logged delivery again to the same integration as a new attempt"""
        return await self.dispatch(
            log["form_id"],
            log["response_id"],
            integration_id=log["integration_id"],
            attempt=(log.get("attempt") or 1) + 1
        )

    async def _deliver(
        self,
        http: httpx.AsyncClient,
        integration: Dict[str, Any],
        form_id: str,
        response_id: str,
        payload: ResponsePayload,
        attempt: int
    ) -> bool:
        integration_id = integration["id"]
        target = IntegrationTarget.from_configuration(integration.get("configuration"))

        if not target.url:
            logger.error(f"No URL configured for integration {integration_id}")
            self._update_integration(integration_id, "No webhook URL configured")
            return False

        event = WebhookEvent(event_id=str(uuid.uuid4()), created_at=_now(), form_response=payload)
        body = event.model_dump_json().encode("utf-8")

        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.settings.webhook_user_agent
        }
        if target.secret:
            headers[self.settings.webhook_signature_header] = sign_payload(target.secret, body)

        try:
            log_id = self._insert_pending_log(
                form_id, integration_id, response_id, event.event_id, attempt, target.url, body
            )
        except Exception as e:
            error = f"Failed to record delivery: {e}"
            logger.error(f"{error} (integration {integration_id})")
            self._update_integration(integration_id, error)
            return False

        if self.settings.webhook_enforce_url_policy:
            check = validate_webhook_url(target.url)
            if not check.is_valid:
                logger.warning(f"Refusing to send webhook to {target.url}: {check.error}")
                self._finish(log_id, integration_id, error=f"Blocked URL: {check.error}")
                return False

        try:
            logger.info(f"Sending webhook to {target.url}")
            response = await http.post(target.url, content=body, headers=headers)
        except httpx.TimeoutException:
            error = f"Request timed out after {self.settings.webhook_timeout_seconds:g}s"
            logger.error(f"Error sending webhook to {target.url}: {error}")
            self._finish(log_id, integration_id, error=error)
            return False
        except httpx.HTTPError as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"Error sending webhook to {target.url}: {error}")
            self._finish(log_id, integration_id, error=error)
            return False
        except Exception as e:
            # InvalidURL and friends sit outside the HTTPError hierarchy
            error = str(e) or e.__class__.__name__
            logger.error(f"Unexpected error sending webhook to {target.url}: {error}")
            self._finish(log_id, integration_id, error=error)
            return False

        ok = 200 <= response.status_code < 300
        response_body = (response.text or "")[:self.settings.webhook_response_body_limit]

        if ok:
            logger.info(f"Webhook delivered successfully to {target.url}")
            self._finish(log_id, integration_id, http_status=response.status_code, response_body=response_body)
        else:
            logger.error(f"Webhook failed: HTTP {response.status_code} from {target.url}")
            self._finish(
                log_id,
                integration_id,
                http_status=response.status_code,
                response_body=response_body,
                error=f"HTTP {response.status_code}"
            )
        return ok

    def _insert_pending_log(
        self,
        form_id: str,
        integration_id: str,
        response_id: str,
        event_id: str,
        attempt: int,
        url: str,
        body: bytes
    ) -> str:
        result = self.client.table("webhook_delivery_logs").insert({
            "form_id": form_id,
            "integration_id": integration_id,
            "response_id": response_id,
            "event_id": event_id,
            "event_type": EVENT_TYPE,
            "status": "pending",
            "attempt": attempt,
            "url": url,
            "request_body": json.loads(body)
        }).execute()
        return result.data[0]["id"]

    def _finish(
        self,
        log_id: str,
        integration_id: str,
        http_status: Optional[int] = None,
        response_body: Optional[str] = None,
        error: Optional[str] = None
    ):
        """Move the log row to its terminal state and record integration health"""
        update = {
            "status": "failed" if error else "success",
            "error_message": error,
            "updated_at": _now()
        }
        if http_status is not None:
            update["http_status"] = http_status
        if response_body is not None:
            update["response_body"] = response_body

        try:
            self.client.table("webhook_delivery_logs").update(update).eq("id", log_id).execute()
        except Exception as e:
            logger.error(f"Failed to update delivery log {log_id}: {e}")

        self._update_integration(integration_id, error)

    def _update_integration(self, integration_id: str, error: Optional[str]):
        try:
            self.client.table("form_integrations").update({
                "last_triggered_at": _now(),
                "status": "error" if error else "connected",
                "last_error": error
            }).eq("id", integration_id).execute()
        except Exception as e:
            logger.error(f"Failed to update integration {integration_id} status: {e}")
