"""Pydantic schemas for request/response models."""

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

from messaging_engine.models.provider import DeliveryResult, SMSProvider
from messaging_engine.models.templates import TemplateSource, TemplateType, TemplateVariables
from messaging_engine.models.tenancy import CredentialLevel, FallbackChainItem

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope."""
    success: bool = Field(..., description="Whether the operation succeeded")
    data: Optional[T] = Field(None, description="Response payload")
    message: Optional[str] = Field(None, description="Human readable summary")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Response timestamp")


# Request Models
class SendSMSRequest(BaseModel):
    """Outbound SMS send request."""
    to: str = Field(..., min_length=1, description="Destination phone number, any common format")
    client_id: str = Field(..., min_length=1, description="Client the message is sent for")
    template_type: TemplateType = Field(TemplateType.GIFT_CARD_DELIVERY, description="Message purpose")
    campaign_id: Optional[str] = Field(None, description="Campaign identifier")
    condition_id: Optional[str] = Field(None, description="Campaign condition identifier")
    custom_message: Optional[str] = Field(None, max_length=1600, description="Direct template override")
    variables: TemplateVariables = Field(default_factory=TemplateVariables, description="Template variables")
    merge_data: Optional[Dict[str, Any]] = Field(None, description="{{tag}} values for marketing sends")

    @field_validator("to")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        """Require at least one digit in the destination."""
        if not any(ch.isdigit() for ch in v):
            raise ValueError("Destination must contain a phone number")
        return v.strip()


class ProviderSettingsUpdate(BaseModel):
    """Provider selection policy write; omitted fields keep their stored values."""
    primary_provider: Optional[SMSProvider] = None
    enable_fallback: Optional[bool] = None
    infobip_enabled: Optional[bool] = None
    infobip_base_url: Optional[str] = None
    infobip_sender_id: Optional[str] = None
    twilio_enabled: Optional[bool] = None
    fallback_on_error: Optional[bool] = None


class ConfigureWebhooksRequest(BaseModel):
    """Webhook provisioning request for one hierarchy tier."""
    level: CredentialLevel = Field(..., description="Tier whose phone number is configured")
    entity_id: Optional[str] = Field(None, description="Agency or client id; omitted for admin")


class TemplatePreviewRequest(BaseModel):
    """Template text to render against sample variables."""
    template: str = Field(..., min_length=1, max_length=1600, description="Template with {field} placeholders")
    variables: TemplateVariables = Field(default_factory=TemplateVariables, description="Sample variables")
    required_vars: List[str] = Field(default_factory=list, description="Placeholders the template must contain")


class CredentialTestRequest(BaseModel):
    """Carrier account to check before it is saved."""
    account_sid: str = Field(..., min_length=1, description="Twilio account SID")
    auth_token: str = Field(..., min_length=1, description="Plaintext auth token; never stored by a test")
    phone_number: Optional[str] = Field(None, description="Number to verify on the account")

    @field_validator("account_sid", "auth_token", "phone_number")
    @classmethod
    def strip_whitespace(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class UpdateCredentialRequest(CredentialTestRequest):
    """Carrier account write for one hierarchy tier."""
    level: CredentialLevel = Field(..., description="Tier that holds the account")
    entity_id: Optional[str] = Field(None, description="Agency or client id; omitted for admin")
    phone_number: str = Field(..., min_length=1, description="Sending number, E.164")
    friendly_name: Optional[str] = Field(None, max_length=100, description="Display name for the account")
    enabled: bool = Field(True, description="Whether the tier may be used for sending")
    monthly_limit: Optional[int] = Field(None, ge=0, description="Monthly message cap for the tier")
    skip_validation: bool = Field(False, description="Skip the carrier test; honored for platform admins only")
    expected_version: Optional[int] = Field(None, description="Stored config version the edit was based on")


# Response Models
class SendSMSResponse(BaseModel):
    """Outcome of an outbound send."""
    delivery: DeliveryResult
    template_source: TemplateSource
    message_length: int
    segments: int


class TemplatePreviewResponse(BaseModel):
    """Rendered template with length and segment estimates."""
    rendered: str
    is_valid: bool
    missing_vars: List[str] = Field(default_factory=list)
    message_length: int
    segments: int
    is_multipart: bool
    estimated_length: int = Field(..., description="Length once the carrier shortens links")
    estimated_segments: int
    url_count: int


class CredentialStatusResponse(BaseModel):
    """Effective carrier configuration for a client or agency."""
    level: CredentialLevel
    entity_id: Optional[str] = None
    active_level: Optional[CredentialLevel] = None
    active_name: Optional[str] = None
    phone_number: Optional[str] = None
    account_sid_last4: Optional[str] = None
    fallback_occurred: bool = False
    fallback_chain: List[FallbackChainItem] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Check timestamp")
    checks: Dict[str, Any] = Field(default_factory=dict, description="Health check details")
