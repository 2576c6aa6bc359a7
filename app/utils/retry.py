"""
Retry helper for transient Supabase read errors.

Only connection resets are retried. Anything else (missing rows, RLS
denials, bad filters) is raised to the caller on the first attempt.
"""
import time
import logging
from typing import Callable, Any

logger = logging.getLogger(__name__)

MAX_DELAY_SECONDS = 4.0


def is_connection_reset(exc: BaseException) -> bool:
    """Whether an exception looks like a dropped PostgREST connection"""
    if isinstance(exc, ConnectionResetError):
        return True
    message = str(exc).lower()
    return "connection reset" in message or "errno 104" in message


def retry_supabase_query(
    query_func: Callable[[], Any],
    max_retries: int = 3,
    base_delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep
) -> Any:
    """
    Execute a Supabase query, retrying on connection resets.

    Usage:
        result = retry_supabase_query(
            lambda: client.table("form_integrations").select("*").execute()
        )

    Args:
        query_func: A callable that executes the Supabase query
        max_retries: Maximum number of retry attempts
        base_delay: First backoff delay, doubled on every retry
        sleep: Sleep function (overridable in tests)

    Returns:
        The query result
    """
    for attempt in range(max_retries + 1):
        try:
            return query_func()
        except Exception as e:
            if not is_connection_reset(e) or attempt >= max_retries:
                raise
            delay = min(base_delay * (2 ** attempt), MAX_DELAY_SECONDS)
            logger.warning(
                f"Supabase connection reset, retry {attempt + 1}/{max_retries}. "
                f"Waiting {delay}s..."
            )
            sleep(delay)
