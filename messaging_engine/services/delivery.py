"""
SMS delivery orchestration with provider fallback.

Each send consults the cached provider policy, tries the primary provider if
it is configured, and falls back to the other provider at most once.
"""

from typing import List, Optional

import structlog

from messaging_engine.core.logging import log_business_event
from messaging_engine.database.messaging_repository import MessagingRepository
from messaging_engine.models.provider import (
    ActiveProviderConfig,
    DeliveryAttempt,
    DeliveryResult,
    ProviderSendResult,
    ProviderSettings,
    SMSProvider,
    other_provider,
)
from messaging_engine.services.providers.availability import ProviderAvailability
from messaging_engine.services.providers.registry import ProviderRegistry
from messaging_engine.services.settings_cache import ProviderSettingsCache
from messaging_engine.utils.phone import mask_phone, normalize_phone_e164

logger = structlog.get_logger(__name__)

NOT_CONFIGURED = "NOT_CONFIGURED"
SMS_ERROR = "SMS_ERROR"


class DeliveryOrchestrator:
    """Sends SMS through the primary provider with a single fallback."""

    def __init__(
        self,
        settings_cache: ProviderSettingsCache,
        availability: ProviderAvailability,
        registry: ProviderRegistry,
        repository: Optional[MessagingRepository] = None,
    ):
        self.settings_cache = settings_cache
        self.availability = availability
        self.registry = registry
        self.repository = repository

    async def _attempt(
        self,
        provider: SMSProvider,
        destination: str,
        body: str,
        settings: ProviderSettings,
        attempts: List[DeliveryAttempt],
    ) -> ProviderSendResult:
        """Run one provider send and record it; sender exceptions become failed attempts."""
        sender = self.registry.get(provider)
        if sender is None:
            result = ProviderSendResult(success=False, error=f"Unknown provider: {provider.value}")
        else:
            try:
                result = await sender.send(destination, body, provider_settings=settings)
            except Exception as e:
                logger.error("Sender raised during send", provider=provider.value, error=str(e))
                result = ProviderSendResult(success=False, error=str(e) or type(e).__name__)

        attempts.append(DeliveryAttempt(provider=provider, success=result.success, error=result.error))
        return result

    async def send(self, destination: str, body: str) -> DeliveryResult:
        """
        Deliver an SMS, falling back to the other provider when allowed.

        Args:
            destination: Destination phone number in any common format
            body: Rendered message text

        Returns:
            DeliveryResult describing every attempt; never raises for carrier failures
        """
        to = normalize_phone_e164(destination)
        settings = await self.settings_cache.get_settings()
        primary = settings.primary_provider
        fallback = other_provider(primary)
        attempts: List[DeliveryAttempt] = []

        logger.info(
            "Sending SMS",
            to=mask_phone(to),
            primary_provider=primary.value,
            enable_fallback=settings.enable_fallback,
        )

        if not self.availability.is_available(primary):
            logger.warning("Primary provider not configured", provider=primary.value)

            if settings.enable_fallback and self.availability.is_available(fallback):
                outcome = await self._attempt(fallback, to, body, settings, attempts)
                result = DeliveryResult(
                    success=outcome.success,
                    provider=fallback,
                    attempts=attempts,
                    fallback_used=True,
                    message_id=outcome.message_id,
                    status=outcome.status,
                    error=None if outcome.success else f"{fallback.value}: {outcome.error}",
                    error_code=None if outcome.success else SMS_ERROR,
                )
            else:
                result = DeliveryResult(
                    success=False,
                    provider=primary,
                    attempts=attempts,
                    error=f"Primary provider {primary.value} not configured and fallback not available",
                    error_code=NOT_CONFIGURED,
                )
            return await self._finish(to, result)

        primary_outcome = await self._attempt(primary, to, body, settings, attempts)
        if primary_outcome.success:
            return await self._finish(to, DeliveryResult(
                success=True,
                provider=primary,
                attempts=attempts,
                message_id=primary_outcome.message_id,
                status=primary_outcome.status,
            ))

        logger.warning("Primary provider failed", provider=primary.value, error=primary_outcome.error)

        if (
            settings.enable_fallback
            and settings.fallback_on_error
            and self.availability.is_available(fallback)
        ):
            fallback_outcome = await self._attempt(fallback, to, body, settings, attempts)
            if fallback_outcome.success:
                result = DeliveryResult(
                    success=True,
                    provider=fallback,
                    attempts=attempts,
                    fallback_used=True,
                    message_id=fallback_outcome.message_id,
                    status=fallback_outcome.status,
                )
            else:
                result = DeliveryResult(
                    success=False,
                    provider=fallback,
                    attempts=attempts,
                    fallback_used=True,
                    error=(
                        f"Both providers failed. Primary ({primary.value}): {primary_outcome.error}. "
                        f"Fallback ({fallback.value}): {fallback_outcome.error}"
                    ),
                    error_code=SMS_ERROR,
                )
            return await self._finish(to, result)

        return await self._finish(to, DeliveryResult(
            success=False,
            provider=primary,
            attempts=attempts,
            error=f"{primary.value}: {primary_outcome.error}",
            error_code=SMS_ERROR,
        ))

    async def _finish(self, destination: str, result: DeliveryResult) -> DeliveryResult:
        """Log the outcome and append it to the delivery log when storage is wired."""
        log_business_event(
            "sms_delivery_completed",
            to=mask_phone(destination),
            success=result.success,
            provider=result.provider.value,
            fallback_used=result.fallback_used,
            attempt_count=len(result.attempts),
            error_code=result.error_code,
        )

        if self.repository is not None:
            try:
                await self.repository.insert_delivery_log({
                    "phone": destination,
                    "provider": result.provider.value,
                    "success": result.success,
                    "fallback_used": result.fallback_used,
                    "message_id": result.message_id,
                    "status": result.status,
                    "error": result.error,
                    "attempts": [attempt.model_dump(mode="json") for attempt in result.attempts],
                })
            except Exception as e:
                logger.warning("Failed to record delivery log entry", error=str(e))

        return result

    async def get_active_provider_config(self) -> ActiveProviderConfig:
        """Current policy, availability, and the provider the next send would use."""
        settings = await self.settings_cache.get_settings()
        infobip_available = self.availability.is_available(SMSProvider.INFOBIP)
        twilio_available = self.availability.is_available(SMSProvider.TWILIO)

        active = settings.primary_provider
        if not self.availability.is_available(active) and settings.enable_fallback:
            active = other_provider(active)

        return ActiveProviderConfig(
            settings=settings,
            infobip_available=infobip_available,
            twilio_available=twilio_available,
            active_provider=active,
        )
