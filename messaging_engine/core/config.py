"""Application configuration and settings."""

from typing import List, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Service Configuration
    service_name: str = "messaging-delivery-engine"
    service_version: str = "1.0.0"
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"

    # Supabase Configuration
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Infobip Configuration
    infobip_api_key: Optional[str] = None
    infobip_base_url: str = "https://api.infobip.com"
    infobip_sender_id: Optional[str] = None
    infobip_timeout_seconds: float = 30.0

    # Twilio Configuration (process-level sender)
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None
    twilio_phone_number: Optional[str] = None  # legacy name for the from-number
    twilio_timeout_seconds: float = 30.0

    # Provider settings cache
    provider_settings_cache_ttl_seconds: float = 60.0

    # Stored tenant secrets
    twilio_encryption_key: Optional[str] = None

    # Credential connection tests, per user
    credential_test_rate_limit: int = 5
    credential_test_rate_window_seconds: float = 60.0

    # Carrier-facing webhook endpoints
    public_base_url: Optional[str] = None
    sms_webhook_path: str = "/functions/v1/handle-sms-response"
    voice_webhook_path: str = "/functions/v1/handle-incoming-call"
    status_callback_path: str = "/functions/v1/update-call-status"

    # Retry Configuration (carrier configuration calls only)
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0

    # CORS
    enable_cors: bool = True
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    @field_validator("provider_settings_cache_ttl_seconds")
    @classmethod
    def validate_cache_ttl(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Provider settings cache TTL must be positive")
        return v

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if v:
            return v.rstrip("/")
        return v

    @property
    def twilio_sender_number(self) -> Optional[str]:
        """From-number for the process-level Twilio sender."""
        return self.twilio_from_number or self.twilio_phone_number

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Create global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
