"""Tenant credential hierarchy and authorization models."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CredentialLevel(str, Enum):
    """Tiers of the tenant hierarchy."""
    ADMIN = "admin"
    AGENCY = "agency"
    CLIENT = "client"


class TenantCredential(BaseModel):
    """Carrier account credential held at one hierarchy tier."""
    level: CredentialLevel
    entity_id: Optional[str] = Field(None, description="Agency or client id, None for admin")
    account_sid: str
    auth_token_encrypted: Optional[str] = None
    from_number: Optional[str] = None
    display_name: str = ""


class FallbackChainItem(BaseModel):
    """One tier inspected while resolving a credential."""
    level: CredentialLevel
    name: str
    available: bool
    reason: Optional[str] = None
    enabled: bool = False
    validated: bool = False
    circuit_open: bool = False


class CredentialResolution(BaseModel):
    """Resolved credential plus the tiers walked to find it."""
    credential: Optional[TenantCredential] = None
    fallback_chain: List[FallbackChainItem] = Field(default_factory=list)

    @property
    def fallback_occurred(self) -> bool:
        return bool(self.fallback_chain) and not self.fallback_chain[0].available


class AuthorizationDecision(BaseModel):
    """Result of an authorization check; computed per request, never cached."""
    authorized: bool
    is_admin: bool = False
    reason: Optional[str] = None


class WebhookConfigResult(BaseModel):
    """Outcome of pointing a carrier number at the callback endpoints."""
    success: bool
    level: CredentialLevel
    entity_id: Optional[str] = None
    phone_number: Optional[str] = None
    phone_sid: Optional[str] = None
    sms_url: Optional[str] = None
    voice_url: Optional[str] = None
    status_callback_url: Optional[str] = None


class CredentialTestResult(BaseModel):
    """Outcome of checking an account and phone number against the carrier."""
    success: bool
    error_code: Optional[str] = None
    error: Optional[str] = None
    account_name: Optional[str] = None
    account_status: Optional[str] = None
    account_type: Optional[str] = None
    phone_friendly_name: Optional[str] = None
    phone_capabilities: Dict[str, bool] = Field(default_factory=dict)


class CredentialSaveResult(BaseModel):
    """Outcome of storing a carrier account at one hierarchy tier."""
    level: CredentialLevel
    entity_id: Optional[str] = None
    account_sid_last4: str
    phone_number: str
    enabled: bool
    validated: bool
    config_version: Optional[int] = None
    webhooks_configured: bool = False
    webhook_error: Optional[str] = None
