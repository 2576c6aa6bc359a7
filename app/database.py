"""Database connection and utilities"""
from functools import lru_cache
from supabase import create_client, Client
from app.config import Settings


@lru_cache()
def _service_role_client(supabase_url: str, service_role_key: str) -> Client:
    return create_client(supabase_url, service_role_key)


def get_supabase_admin(settings: Settings) -> Client:
    """
    Get the service role client (bypasses RLS - use carefully)

    Clients are cached per (url, key) pair so a swapped settings object
    never reuses a stale connection.
    """
    return _service_role_client(settings.supabase_url, settings.supabase_service_role_key)


def get_supabase_client(settings: Settings, auth_token: str = None) -> Client:
    """
    Get Supabase client with user auth context

    Args:
        settings: Application settings
        auth_token: JWT token from user session

    Returns:
        Supabase client whose table and rpc calls run under the user's RLS
    """
    client = create_client(settings.supabase_url, settings.supabase_anon_key)
    if auth_token:
        client.postgrest.auth(auth_token)
    return client
