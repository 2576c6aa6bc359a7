"""Authentication middleware and dependencies"""
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict
from app.config import Settings, get_settings
from app.middleware.error_handler import ApiError, unauthorized
import hmac
import httpx
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings)
) -> Optional[Dict]:
    """
    Verify Supabase JWT token via Supabase Auth API
    """
    if not credentials:
        return None

    token = credentials.credentials

    try:
        # Verify token by calling Supabase auth API
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                f"{settings.supabase_url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": settings.supabase_anon_key
                }
            )

        if response.status_code != 200:
            logger.warning(f"Supabase auth failed: {response.status_code}")
            raise unauthorized("Invalid or expired token")

        user_data = response.json()
        logger.info(f"Auth successful for user: {user_data.get('id')}")

        return {
            "user_id": user_data.get("id"),
            "role": user_data.get("role"),
            "email": user_data.get("email"),
            "raw_token": token,
            "metadata": user_data.get("user_metadata", {})
        }
    except httpx.RequestError:
        raise unauthorized("Authentication service unavailable")
    except ApiError:
        raise
    except Exception:
        raise unauthorized("Invalid or expired token")


async def get_current_user(
    auth_data: Optional[Dict] = Depends(verify_token)
) -> Dict:
    """
    Get current authenticated user

    Args:
        auth_data: Authentication data from verify_token

    Returns:
        User auth data

    Raises:
        ApiError: 401 if the request carries no bearer token
    """
    if not auth_data:
        raise unauthorized("Missing authorization header")

    return auth_data


async def require_dispatch_key(
    x_dispatch_key: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings)
) -> None:
    """
    Guard for the server-to-server dispatch trigger.

    An empty configured key rejects every caller.
    """
    if not settings.dispatch_api_key or not hmac.compare_digest(
        x_dispatch_key or "", settings.dispatch_api_key
    ):
        raise unauthorized("Invalid dispatch key")


def user_can_access_form(client, form_id: str, user_id: str) -> bool:
    """
    Ask the database whether a user may read a form (owner or team member)

    Args:
        client: User-scoped Supabase client
        form_id: Form UUID
        user_id: User UUID

    Returns:
        True if the can_access_form RPC grants access
    """
    result = client.rpc("can_access_form", {"form_id": form_id, "user_id": user_id}).execute()
    return bool(result.data)
