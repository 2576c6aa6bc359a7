"""Responses API endpoints (canonical form responses for API clients)"""
from fastapi import APIRouter, Depends
from typing import Dict, Optional
import logging

from app.config import Settings, get_settings
from app.database import get_supabase_client
from app.middleware.auth import get_current_user
from app.middleware.error_handler import ApiError, internal_error
from app.models.responses import ListResponsesResult, SingleResponseResult
from app.services.responses_service import ResponsesService

logger = logging.getLogger(__name__)
router = APIRouter()


def get_responses_service(
    auth_data: Dict = Depends(get_current_user),
    settings: Settings = Depends(get_settings)
) -> ResponsesService:
    """Responses service bound to the caller's RLS context"""
    client = get_supabase_client(settings, auth_data["raw_token"])
    return ResponsesService(client, settings)


@router.get("", response_model=ListResponsesResult)
async def list_responses(
    form_id: Optional[str] = None,
    status: Optional[str] = None,
    page_size: Optional[int] = None,
    cursor: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    auth_data: Dict = Depends(get_current_user),
    service: ResponsesService = Depends(get_responses_service)
):
    """List a form's responses, oldest submission first, cursor-paginated"""
    try:
        return service.list_responses(
            user_id=auth_data["user_id"],
            form_id=form_id,
            status=status,
            page_size=page_size,
            cursor=cursor,
            since=since,
            until=until
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"List responses error: {e}")
        raise internal_error("Failed to fetch responses")


@router.get("/{response_id}", response_model=SingleResponseResult)
async def get_response(
    response_id: str,
    auth_data: Dict = Depends(get_current_user),
    service: ResponsesService = Depends(get_responses_service)
):
    """Get one response as a canonical payload"""
    try:
        return service.get_response(response_id)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Get response error: {e}")
        raise internal_error()
