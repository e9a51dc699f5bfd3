"""
Carrier webhook provisioning.

Points a tenant's Twilio phone number at the platform's inbound SMS, voice,
and status callback endpoints, using whichever credential the hierarchy
resolves for the requested tier.
"""

import asyncio
from typing import Any, Callable, Optional

import structlog
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from messaging_engine.core.config import Settings, get_settings
from messaging_engine.core.exceptions import (
    DecryptFailedError,
    EncryptionError,
    ForbiddenError,
    WebhookConfigError,
)
from messaging_engine.core.logging import log_business_event
from messaging_engine.core.retry import (
    RetryConfig,
    create_async_retry_decorator,
    get_carrier_config_retry_config,
)
from messaging_engine.models.tenancy import CredentialLevel, TenantCredential, WebhookConfigResult
from messaging_engine.services.authorization import AuthorizationService
from messaging_engine.services.credentials import CredentialHierarchy
from messaging_engine.services.providers.twilio import build_twilio_client
from messaging_engine.utils.encryption import decrypt_secret
from messaging_engine.utils.phone import mask_phone

logger = structlog.get_logger(__name__)

WEBHOOK_METHOD = "POST"


class WebhookProvisioner:
    """Configures inbound webhooks on a tenant's carrier phone number."""

    def __init__(
        self,
        authorization: AuthorizationService,
        hierarchy: CredentialHierarchy,
        settings: Optional[Settings] = None,
        client_factory: Callable[[str, str], Client] = build_twilio_client,
        decrypt: Callable[[str], str] = decrypt_secret,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.authorization = authorization
        self.hierarchy = hierarchy
        self.settings = settings or get_settings()
        self.client_factory = client_factory
        self.decrypt = decrypt
        self.retry_config = retry_config or get_carrier_config_retry_config()

    def _callback_url(self, path: str) -> str:
        base_url = (self.settings.public_base_url or self.settings.supabase_url or "").rstrip("/")
        if not base_url:
            raise WebhookConfigError("Public base URL not configured; cannot build callback URLs")
        return f"{base_url}{path if path.startswith('/') else '/' + path}"

    async def _call_carrier(self, fn: Callable[..., Any], **kwargs: Any) -> Any:
        """Run a blocking Twilio SDK call off the event loop, retrying transport errors."""

        @create_async_retry_decorator(self.retry_config, service_name="twilio_webhooks")
        async def _run() -> Any:
            return await asyncio.to_thread(fn, **kwargs)

        return await _run()

    def _decrypt_token(self, credential: TenantCredential) -> str:
        if not credential.auth_token_encrypted:
            raise DecryptFailedError(
                "No stored carrier secret for the resolved account",
                level=credential.level.value,
                entity_id=credential.entity_id,
            )
        try:
            return self.decrypt(credential.auth_token_encrypted)
        except EncryptionError as e:
            logger.error(
                "Stored carrier secret could not be decrypted",
                level=credential.level.value,
                entity_id=credential.entity_id,
                error=str(e),
            )
            raise DecryptFailedError(level=credential.level.value, entity_id=credential.entity_id)

    async def configure_webhooks(
        self, user_id: str, level: CredentialLevel, entity_id: Optional[str] = None
    ) -> WebhookConfigResult:
        """
        Point the tier's phone number at the platform callbacks.

        Args:
            user_id: Caller; must be authorized to modify the tier
            level: Tier to configure
            entity_id: Agency or client id; omitted for admin

        Returns:
            WebhookConfigResult with the phone SID and configured URLs

        Raises:
            ValidationError: If the level/entity pair is malformed
            ForbiddenError: If the caller may not modify this tier
            NotConfiguredError: If no tier has a carrier account
            DecryptFailedError: If the stored secret cannot be decrypted
            WebhookConfigError: If the number lookup or update fails
        """
        decision = await self.authorization.check_authorization(user_id, level, entity_id)
        if not decision.authorized:
            raise ForbiddenError(decision.reason or "Not authorized", level=level.value, entity_id=entity_id)

        credential = await self.hierarchy.resolve_credential(level, entity_id)
        auth_token = self._decrypt_token(credential)

        if not credential.from_number:
            raise WebhookConfigError("Resolved account has no phone number", level=credential.level.value)

        return await self.point_number(
            credential.account_sid,
            auth_token,
            credential.from_number,
            level=credential.level,
            entity_id=credential.entity_id,
        )

    async def point_number(
        self,
        account_sid: str,
        auth_token: str,
        phone_number: str,
        level: CredentialLevel,
        entity_id: Optional[str] = None,
    ) -> WebhookConfigResult:
        """
        Point one number on a carrier account at the platform callbacks.

        Args:
            account_sid: Carrier account holding the number
            auth_token: Plaintext carrier secret
            phone_number: Number to configure
            level: Tier the account belongs to
            entity_id: Agency or client id of that tier

        Raises:
            WebhookConfigError: If callbacks cannot be built or the lookup or update fails
        """
        phone_number = "".join(ch for ch in phone_number if ch == "+" or ch.isdigit())

        sms_url = self._callback_url(self.settings.sms_webhook_path)
        voice_url = self._callback_url(self.settings.voice_webhook_path)
        status_callback_url = self._callback_url(self.settings.status_callback_path)

        client = self.client_factory(account_sid, auth_token)

        try:
            numbers = await self._call_carrier(
                client.incoming_phone_numbers.list, phone_number=phone_number, limit=1
            )
        except (TwilioRestException, OSError) as e:
            logger.error("Phone number lookup failed", phone=mask_phone(phone_number), error=str(e))
            raise WebhookConfigError(
                "Could not look up phone number for webhook config", phone_number=mask_phone(phone_number)
            )

        if not numbers:
            raise WebhookConfigError(
                "Phone number not found for webhook config", phone_number=mask_phone(phone_number)
            )

        phone_sid = numbers[0].sid

        try:
            await self._call_carrier(
                client.incoming_phone_numbers(phone_sid).update,
                sms_url=sms_url,
                sms_method=WEBHOOK_METHOD,
                voice_url=voice_url,
                voice_method=WEBHOOK_METHOD,
                status_callback=status_callback_url,
                status_callback_method=WEBHOOK_METHOD,
            )
        except (TwilioRestException, OSError) as e:
            logger.error("Webhook update failed", phone_sid=phone_sid, error=str(e))
            detail = e.msg if isinstance(e, TwilioRestException) else str(e)
            raise WebhookConfigError(
                f"Could not configure webhooks: {detail or 'Unknown error'}",
                phone_number=mask_phone(phone_number),
            )

        log_business_event(
            "carrier_webhooks_configured",
            level=level.value,
            entity_id=entity_id,
            phone=mask_phone(phone_number),
            phone_sid=phone_sid,
        )

        return WebhookConfigResult(
            success=True,
            level=level,
            entity_id=entity_id,
            phone_number=phone_number,
            phone_sid=phone_sid,
            sms_url=sms_url,
            voice_url=voice_url,
            status_callback_url=status_callback_url,
        )
