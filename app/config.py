"""Application configuration"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # Supabase
    supabase_url: str
    supabase_service_role_key: str
    supabase_anon_key: str

    # Application
    environment: str = "development"
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    # Shared key the submission trigger must send in X-Dispatch-Key
    dispatch_api_key: str = ""

    # Webhook delivery
    webhook_timeout_seconds: float = 30.0
    webhook_user_agent: str = "FormsEdge-Webhook/1.0"
    webhook_signature_header: str = "X-FormsEdge-Signature"
    webhook_response_body_limit: int = 5000
    webhook_integration_types: list[str] = ["webhook", "n8n", "zapier"]
    webhook_enforce_url_policy: bool = True

    # Responses API
    responses_default_page_size: int = 50
    responses_max_page_size: int = 200
    delivery_logs_max_limit: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
