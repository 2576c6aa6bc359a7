"""
Responses API: single fetch and cursor-paginated listing of canonical payloads.

Listing order is (submitted_at asc, id asc) with NULL submitted_at last.
Cursors encode the sort key of the last row returned, so a cursor always
resumes strictly after that row no matter what was written in between.
"""
import logging
from typing import Optional

from supabase import Client

from app.config import Settings
from app.middleware.auth import user_can_access_form
from app.middleware.error_handler import bad_request, forbidden, internal_error, not_found
from app.models.responses import ListResponsesResult, SingleResponseResult
from app.services.cursor import Cursor, InvalidCursorError, decode_cursor, encode_cursor
from app.services.payload_builder import PayloadBuilder, parse_timestamp

logger = logging.getLogger(__name__)

RESPONSE_STATUSES = ("complete", "partial", "all")
LIST_COLUMNS = "id, submitted_at, is_partial"


def _quote(value: str) -> str:
    # PostgREST logic trees reserve "," "." ":" "(" and ")"
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _timestamp_param(name: str, value: Optional[str]) -> Optional[str]:
    """Repair a query-string mangled offset ("+" read as space) and reject non-timestamps"""
    if not value:
        return None
    value = value.strip().replace(" ", "+")
    try:
        parse_timestamp(value)
    except ValueError:
        raise bad_request(f"Invalid {name}: expected an ISO 8601 timestamp")
    return value


def continuation_filter(cursor: Cursor) -> str:
    """PostgREST or() filter selecting rows strictly after the cursor"""
    row_id = _quote(cursor.id)
    if cursor.submitted_at is None:
        return f"and(submitted_at.is.null,id.gt.{row_id})"

    submitted_at = _quote(cursor.submitted_at)
    return (
        f"submitted_at.gt.{submitted_at},"
        f"and(submitted_at.eq.{submitted_at},id.gt.{row_id}),"
        f"submitted_at.is.null"
    )


class ResponsesService:
    """Read-only access to canonical payloads under the caller's RLS context"""

    def __init__(self, client: Client, settings: Settings, payload_builder: Optional[PayloadBuilder] = None):
        self.client = client
        self.settings = settings
        self.payload_builder = payload_builder or PayloadBuilder(client)

    def get_response(self, response_id: str) -> SingleResponseResult:
        logger.info(f"Fetching single response: {response_id}")

        payload = self.payload_builder.build(response_id)
        if not payload:
            raise not_found("Response not found or access denied")

        return SingleResponseResult(item=payload)

    def list_responses(
        self,
        user_id: str,
        form_id: Optional[str],
        status: Optional[str] = None,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None
    ) -> ListResponsesResult:
        """
        List a form's responses, one page at a time

        Args:
            user_id: Caller's user id (for the access check)
            form_id: Form to list (required)
            status: complete (default), partial or all
            page_size: Rows per page, capped at responses_max_page_size
            cursor: next_cursor from the previous page
            since: Only responses submitted at or after this timestamp
            until: Only responses submitted at or before this timestamp

        Returns:
            ListResponsesResult page

        Raises:
            ApiError: 400 on bad parameters, 403 without form access,
                500 when the query fails
        """
        if not form_id:
            raise bad_request("Missing required parameter: form_id")

        status = status or "complete"
        if status not in RESPONSE_STATUSES:
            raise bad_request(f"Invalid status: {status}", {"allowed": list(RESPONSE_STATUSES)})

        if page_size is None:
            page_size = self.settings.responses_default_page_size
        if page_size < 1:
            raise bad_request("page_size must be a positive integer")
        page_size = min(page_size, self.settings.responses_max_page_size)

        decoded_cursor = None
        if cursor:
            try:
                decoded_cursor = decode_cursor(cursor)
            except InvalidCursorError:
                raise bad_request("Invalid cursor")

        since = _timestamp_param("since", since)
        until = _timestamp_param("until", until)

        logger.info(f"Listing responses for form: {form_id}")

        if not user_can_access_form(self.client, form_id, user_id):
            raise forbidden("Access denied to this form")

        try:
            query = self._filtered(form_id, status, since, until)
            if decoded_cursor:
                query = query.or_(continuation_filter(decoded_cursor))
            result = query.order("submitted_at").order("id").limit(page_size + 1).execute()

            total_count = result.count
            if decoded_cursor:
                # The page query's count only covers rows after the cursor
                total_count = self._filtered(form_id, status, since, until).limit(1).execute().count
        except Exception as e:
            logger.error(f"Query error listing responses for form {form_id}: {e}")
            raise internal_error("Failed to fetch responses")

        rows = result.data or []
        has_more = len(rows) > page_size
        rows = rows[:page_size]

        items = []
        for row in rows:
            payload = self.payload_builder.build(row["id"])
            if payload is None:
                logger.warning(f"Skipping response {row['id']}: payload could not be built")
                continue
            items.append(payload)

        next_cursor = None
        if has_more and rows:
            last = rows[-1]
            next_cursor = encode_cursor(last.get("submitted_at"), last["id"])

        return ListResponsesResult(
            items=items,
            total_count=total_count or 0,
            page_size=page_size,
            next_cursor=next_cursor,
            has_more=has_more
        )

    def _filtered(self, form_id: str, status: str, since: Optional[str], until: Optional[str]):
        query = self.client.table("form_responses").select(LIST_COLUMNS, count="exact").eq(
            "form_id", form_id
        )

        if status == "complete":
            query = query.eq("is_partial", False)
        elif status == "partial":
            query = query.eq("is_partial", True)

        if since:
            query = query.gte("submitted_at", since)
        if until:
            query = query.lte("submitted_at", until)

        return query
