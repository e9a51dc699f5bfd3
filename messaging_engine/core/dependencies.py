"""
Dependency injection for FastAPI application.

Provides factory functions for creating service instances with proper
dependency injection and configuration. Process-wide services (storage
client, settings cache, sender registry) are built once via ``lru_cache``.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from messaging_engine.core.config import get_settings
from messaging_engine.core.exceptions import UnauthorizedError
from messaging_engine.core.logging import set_user_id
from messaging_engine.database.messaging_repository import (
    MessagingRepository,
    create_supabase_client,
)
from messaging_engine.services.authorization import AuthorizationService
from messaging_engine.services.credential_manager import AttemptRateLimiter, CredentialManager
from messaging_engine.services.credentials import CredentialHierarchy
from messaging_engine.services.delivery import DeliveryOrchestrator
from messaging_engine.services.providers.availability import ProviderAvailability
from messaging_engine.services.providers.registry import ProviderRegistry
from messaging_engine.services.settings_cache import ProviderSettingsCache
from messaging_engine.services.template_resolver import TemplateResolver
from messaging_engine.services.webhook_provisioner import WebhookProvisioner


@lru_cache()
def get_repository() -> MessagingRepository:
    """Get the storage repository backed by the Supabase client."""
    return MessagingRepository(create_supabase_client(get_settings()))


@lru_cache()
def get_settings_cache() -> ProviderSettingsCache:
    """Get the process-wide provider settings cache."""
    return ProviderSettingsCache(
        repository=get_repository(),
        ttl_seconds=get_settings().provider_settings_cache_ttl_seconds,
    )


@lru_cache()
def get_provider_availability() -> ProviderAvailability:
    """Get the provider availability checker."""
    return ProviderAvailability(get_settings())


@lru_cache()
def get_provider_registry() -> ProviderRegistry:
    """Get the registry of carrier senders."""
    return ProviderRegistry.default(get_settings())


@lru_cache()
def get_credential_test_limiter() -> AttemptRateLimiter:
    """Get the per-user limiter for carrier credential tests."""
    settings = get_settings()
    return AttemptRateLimiter(
        limit=settings.credential_test_rate_limit,
        window_seconds=settings.credential_test_rate_window_seconds,
    )


def get_delivery_orchestrator(
    settings_cache: ProviderSettingsCache = Depends(get_settings_cache),
    availability: ProviderAvailability = Depends(get_provider_availability),
    registry: ProviderRegistry = Depends(get_provider_registry),
    repository: MessagingRepository = Depends(get_repository),
) -> DeliveryOrchestrator:
    """
    Get delivery orchestrator with all dependencies injected.

    Args:
        settings_cache: Provider settings cache
        availability: Provider availability checker
        registry: Carrier sender registry
        repository: Storage repository for the delivery log

    Returns:
        Configured DeliveryOrchestrator instance
    """
    return DeliveryOrchestrator(
        settings_cache=settings_cache,
        availability=availability,
        registry=registry,
        repository=repository,
    )


def get_template_resolver(
    repository: MessagingRepository = Depends(get_repository),
) -> TemplateResolver:
    """Get template resolver."""
    return TemplateResolver(repository)


def get_authorization_service(
    repository: MessagingRepository = Depends(get_repository),
) -> AuthorizationService:
    """Get authorization service."""
    return AuthorizationService(repository)


def get_credential_hierarchy(
    repository: MessagingRepository = Depends(get_repository),
) -> CredentialHierarchy:
    """Get credential hierarchy resolver."""
    return CredentialHierarchy(repository)


def get_webhook_provisioner(
    authorization: AuthorizationService = Depends(get_authorization_service),
    hierarchy: CredentialHierarchy = Depends(get_credential_hierarchy),
) -> WebhookProvisioner:
    """Get webhook provisioner."""
    return WebhookProvisioner(authorization=authorization, hierarchy=hierarchy, settings=get_settings())


def get_credential_manager(
    repository: MessagingRepository = Depends(get_repository),
    authorization: AuthorizationService = Depends(get_authorization_service),
    provisioner: WebhookProvisioner = Depends(get_webhook_provisioner),
) -> CredentialManager:
    """Get carrier credential manager."""
    return CredentialManager(repository=repository, authorization=authorization, provisioner=provisioner)


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Get the verified caller id forwarded by the upstream gateway.

    Raises:
        UnauthorizedError: If no caller id is present
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError()

    user_id = x_user_id.strip()
    set_user_id(user_id)
    return user_id
