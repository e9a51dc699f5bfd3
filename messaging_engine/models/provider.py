"""Provider selection and delivery models."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SMSProvider(str, Enum):
    """Known SMS carriers."""
    INFOBIP = "infobip"
    TWILIO = "twilio"


def other_provider(provider: SMSProvider) -> SMSProvider:
    """Return the counterpart carrier in the two-provider topology."""
    return SMSProvider.TWILIO if provider == SMSProvider.INFOBIP else SMSProvider.INFOBIP


class ProviderSettings(BaseModel):
    """Tenant-wide provider selection policy, immutable within a cache window."""
    model_config = ConfigDict(frozen=True)

    primary_provider: SMSProvider = Field(SMSProvider.INFOBIP, description="Provider tried first")
    enable_fallback: bool = Field(True, description="Allow the other provider as fallback")
    infobip_enabled: bool = Field(True, description="Infobip nominally enabled")
    infobip_base_url: str = Field("https://api.infobip.com", description="Infobip API base URL")
    infobip_sender_id: Optional[str] = Field(None, description="Infobip sender override")
    twilio_enabled: bool = Field(True, description="Twilio nominally enabled")
    fallback_on_error: bool = Field(True, description="Fall back when the primary errors")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ProviderSettings":
        """Map a ``sms_provider_settings`` row onto the settings model."""
        return cls(
            primary_provider=SMSProvider(row.get("primary_provider") or SMSProvider.INFOBIP.value),
            enable_fallback=bool(row.get("enable_fallback", True)),
            infobip_enabled=bool(row.get("infobip_enabled", True)),
            infobip_base_url=row.get("infobip_base_url") or "https://api.infobip.com",
            infobip_sender_id=row.get("infobip_sender_id"),
            twilio_enabled=bool(row.get("twilio_enabled", True)),
            fallback_on_error=bool(row.get("fallback_on_error", True)),
        )


DEFAULT_PROVIDER_SETTINGS = ProviderSettings()


class CacheEntry(BaseModel):
    """Provider settings stamped with the clock reading at fetch time."""
    model_config = ConfigDict(frozen=True)

    settings: ProviderSettings
    fetched_at: float

    def is_valid(self, now: float, ttl_seconds: float) -> bool:
        return now - self.fetched_at < ttl_seconds


class ProviderSendResult(BaseModel):
    """Outcome of a single carrier send call."""
    success: bool
    message_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None


class DeliveryAttempt(BaseModel):
    """One try against one provider."""
    provider: SMSProvider
    success: bool
    error: Optional[str] = None


class DeliveryResult(BaseModel):
    """Aggregate outcome of a delivery with fallback."""
    success: bool
    provider: SMSProvider = Field(..., description="Provider that succeeded, or the last one considered")
    attempts: List[DeliveryAttempt] = Field(default_factory=list, description="Ordered attempts")
    fallback_used: bool = False
    message_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = Field(None, description="NOT_CONFIGURED or SMS_ERROR on failure")


class ActiveProviderConfig(BaseModel):
    """Current provider configuration, for display and debugging."""
    settings: ProviderSettings
    infobip_available: bool
    twilio_available: bool
    active_provider: SMSProvider
