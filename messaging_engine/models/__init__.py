"""
Models package for the Messaging Delivery Engine.
"""
from .provider import (
    DEFAULT_PROVIDER_SETTINGS,
    ActiveProviderConfig,
    CacheEntry,
    DeliveryAttempt,
    DeliveryResult,
    ProviderSendResult,
    ProviderSettings,
    SMSProvider,
    other_provider,
)
from .templates import (
    TemplateResolutionRequest,
    TemplateResolutionResult,
    TemplateSource,
    TemplateType,
    TemplateVariables,
)
from .tenancy import (
    AuthorizationDecision,
    CredentialLevel,
    CredentialResolution,
    FallbackChainItem,
    TenantCredential,
    WebhookConfigResult,
)

__all__ = [
    "DEFAULT_PROVIDER_SETTINGS",
    "ActiveProviderConfig",
    "CacheEntry",
    "DeliveryAttempt",
    "DeliveryResult",
    "ProviderSendResult",
    "ProviderSettings",
    "SMSProvider",
    "other_provider",
    "TemplateResolutionRequest",
    "TemplateResolutionResult",
    "TemplateSource",
    "TemplateType",
    "TemplateVariables",
    "AuthorizationDecision",
    "CredentialLevel",
    "CredentialResolution",
    "FallbackChainItem",
    "TenantCredential",
    "WebhookConfigResult",
]
