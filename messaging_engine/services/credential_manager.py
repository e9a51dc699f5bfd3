"""
Carrier credential management.

Tests a Twilio account against the carrier and stores it at one tier of the
tenant hierarchy. Auth tokens are encrypted before storage and never logged.
Every save is written to the configuration audit log, and the saved number is
pointed at the platform callbacks on a best-effort basis.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

import structlog
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from messaging_engine.core.exceptions import (
    CredentialTestFailedError,
    DatabaseError,
    EncryptionError,
    ForbiddenError,
    NotConfiguredError,
    ValidationError,
    VersionConflictError,
    WebhookConfigError,
)
from messaging_engine.core.logging import log_business_event
from messaging_engine.database.messaging_repository import MessagingRepository
from messaging_engine.models.schemas import UpdateCredentialRequest
from messaging_engine.models.tenancy import (
    CredentialLevel,
    CredentialSaveResult,
    CredentialTestResult,
)
from messaging_engine.services.authorization import AuthorizationService
from messaging_engine.services.credentials import ADMIN_DISPLAY_NAME, utcnow
from messaging_engine.services.providers.twilio import build_twilio_client
from messaging_engine.services.webhook_provisioner import WebhookProvisioner
from messaging_engine.utils.encryption import encrypt_secret
from messaging_engine.utils.phone import mask_phone, validate_account_sid, validate_e164

logger = structlog.get_logger(__name__)

MIN_AUTH_TOKEN_LENGTH = 10
REVALIDATE_AFTER = timedelta(days=30)
SUSPENDED_STATUS = "suspended"
CAPABILITY_NAMES = ("sms", "mms", "voice", "fax")


class AttemptRateLimiter:
    """Fixed-window attempt counter per key."""

    def __init__(self, limit: int = 5, window_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}

    def allow(self, key: str) -> bool:
        """Count one attempt for ``key``; False once the window's limit is used up."""
        now = self.clock()
        count, reset_at = self._windows.get(key, (0, 0.0))

        if now >= reset_at:
            self._windows[key] = (1, now + self.window_seconds)
            return True

        if count >= self.limit:
            return False

        self._windows[key] = (count + 1, reset_at)
        return True

    def retry_after(self, key: str) -> int:
        """Whole seconds until ``key`` may try again."""
        _, reset_at = self._windows.get(key, (0, 0.0))
        return max(int(reset_at - self.clock()) + 1, 1)


def _capabilities(raw: Any) -> Dict[str, bool]:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        items = raw
    else:
        items = {name: getattr(raw, name, None) for name in CAPABILITY_NAMES}
    return {str(k).lower(): bool(v) for k, v in items.items() if v is not None}


def _failed(error_code: str, error: str, **fields: Any) -> CredentialTestResult:
    return CredentialTestResult(success=False, error_code=error_code, error=error, **fields)


class CredentialManager:
    """Tests and stores carrier credentials for the tenant hierarchy."""

    def __init__(
        self,
        repository: MessagingRepository,
        authorization: AuthorizationService,
        provisioner: WebhookProvisioner,
        client_factory: Callable[[str, str], Client] = build_twilio_client,
        encrypt: Callable[[str], str] = encrypt_secret,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.authorization = authorization
        self.provisioner = provisioner
        self.client_factory = client_factory
        self.encrypt = encrypt
        self.clock = clock

    @staticmethod
    def format_problem(
        account_sid: str, auth_token: str, phone_number: Optional[str]
    ) -> Optional[Tuple[str, str, str]]:
        """Return ``(field, reason_code, message)`` for the first malformed value, or None."""
        if not validate_account_sid(account_sid):
            return (
                "account_sid",
                "INVALID_SID_FORMAT",
                "Invalid Twilio Account SID format. Should start with 'AC' and be 34 characters.",
            )
        if not auth_token or len(auth_token) < MIN_AUTH_TOKEN_LENGTH:
            return "auth_token", "INVALID_AUTH_TOKEN", "Auth token is required."
        if phone_number and not validate_e164(phone_number):
            return (
                "phone_number",
                "INVALID_PHONE_FORMAT",
                "Phone number must be in E.164 format (e.g. +15551234567).",
            )
        return None

    async def test_connection(
        self, account_sid: str, auth_token: str, phone_number: Optional[str] = None
    ) -> CredentialTestResult:
        """
        Check an account and, when given, a number on it against the carrier.

        Never raises for carrier-side problems; the result carries an error
        code instead.

        Args:
            account_sid: Twilio account SID
            auth_token: Plaintext auth token
            phone_number: E.164 number that must exist on the account and support SMS

        Returns:
            CredentialTestResult with account details on success
        """
        problem = self.format_problem(account_sid, auth_token, phone_number)
        if problem:
            _, reason_code, message = problem
            return _failed(reason_code, message)

        client = self.client_factory(account_sid, auth_token)

        try:
            account = await asyncio.to_thread(lambda: client.api.accounts(account_sid).fetch())
        except TwilioRestException as e:
            logger.warning("Carrier account check failed", account_sid_last4=account_sid[-4:], status=e.status)
            if e.status == 401:
                return _failed("AUTH_FAILED", "Authentication failed. Please check your Auth Token.")
            return _failed("TWILIO_ERROR", f"Twilio API error: {e.msg or e.status}")
        except OSError as e:
            logger.warning("Carrier unreachable during account check", error=str(e))
            return _failed(
                "NETWORK_ERROR", "Could not connect to Twilio. Please check your network and try again."
            )

        account_fields = {
            "account_name": getattr(account, "friendly_name", None),
            "account_status": getattr(account, "status", None),
            "account_type": getattr(account, "type", None),
        }

        if account_fields["account_status"] == SUSPENDED_STATUS:
            return _failed(
                "ACCOUNT_SUSPENDED",
                "This Twilio account is suspended. Please contact Twilio support.",
                **account_fields,
            )

        phone_fields: Dict[str, Any] = {}
        if phone_number:
            try:
                numbers = await asyncio.to_thread(
                    client.incoming_phone_numbers.list, phone_number=phone_number, limit=1
                )
            except (TwilioRestException, OSError) as e:
                logger.warning("Carrier number check failed", phone=mask_phone(phone_number), error=str(e))
                return _failed("PHONE_LOOKUP_FAILED", "Could not verify phone number in account.", **account_fields)

            if not numbers:
                return _failed(
                    "PHONE_NOT_FOUND",
                    f"Phone number {phone_number} not found in this Twilio account.",
                    **account_fields,
                )

            number = numbers[0]
            phone_fields = {
                "phone_friendly_name": getattr(number, "friendly_name", None),
                "phone_capabilities": _capabilities(getattr(number, "capabilities", None)),
            }

            if not phone_fields["phone_capabilities"].get("sms"):
                return _failed(
                    "PHONE_NOT_SMS_CAPABLE",
                    f"Phone number {phone_number} cannot send SMS. Please select a different number.",
                    **account_fields,
                    **phone_fields,
                )

        logger.info("Carrier credentials verified", account_sid_last4=account_sid[-4:])
        return CredentialTestResult(success=True, **account_fields, **phone_fields)

    async def _current_version(self, level: CredentialLevel, entity_id: str) -> int:
        if level == CredentialLevel.CLIENT:
            row = await self.repository.get_client(entity_id)
        else:
            row = await self.repository.get_agency(entity_id)

        if not row:
            raise NotConfiguredError(
                f"{level.value.capitalize()} not found: {entity_id}", level=level.value, entity_id=entity_id
            )
        return row.get("twilio_config_version") or 0

    def _entity_values(
        self, request: UpdateCredentialRequest, encrypted_token: str, user_id: str,
        now: datetime, version: int,
    ) -> Dict[str, Any]:
        return {
            "twilio_account_sid": request.account_sid,
            "twilio_auth_token_encrypted": encrypted_token,
            "twilio_phone_number": request.phone_number,
            "twilio_enabled": request.enabled,
            "twilio_validated_at": now.isoformat(),
            "twilio_configured_by": user_id,
            "twilio_configured_at": now.isoformat(),
            "twilio_friendly_name": request.friendly_name,
            "twilio_monthly_limit": request.monthly_limit,
            "twilio_revalidate_after": (now + REVALIDATE_AFTER).isoformat(),
            "twilio_failure_count": 0,
            "twilio_circuit_open_until": None,
            "twilio_last_error": None,
            "twilio_last_error_at": None,
            "twilio_validation_error": None,
            "twilio_config_version": version,
        }

    @staticmethod
    def _admin_values(request: UpdateCredentialRequest, encrypted_token: str, now: datetime) -> Dict[str, Any]:
        return {
            "admin_twilio_account_sid": request.account_sid,
            "admin_twilio_auth_token_encrypted": encrypted_token,
            "admin_twilio_phone_number": request.phone_number,
            "admin_twilio_enabled": request.enabled,
            "admin_twilio_validated_at": now.isoformat(),
            "admin_twilio_friendly_name": request.friendly_name or ADMIN_DISPLAY_NAME,
            "admin_twilio_last_error": None,
        }

    async def _write_audit(
        self, request: UpdateCredentialRequest, user_id: str, ip_address: Optional[str]
    ) -> None:
        entry = {
            "entity_type": request.level.value,
            "entity_id": request.entity_id if request.level != CredentialLevel.ADMIN else None,
            "action": "updated",
            "changed_by": user_id,
            "new_values": {
                "account_sid_last4": request.account_sid[-4:],
                "phone_number": request.phone_number,
                "enabled": request.enabled,
                "friendly_name": request.friendly_name,
                "monthly_limit": request.monthly_limit,
            },
            "ip_address": ip_address,
        }
        try:
            await self.repository.insert_credential_audit_log(entry)
        except DatabaseError as e:
            logger.warning("Failed to record credential audit entry", level=request.level.value, error=str(e))

    async def save_credentials(
        self, user_id: str, request: UpdateCredentialRequest, ip_address: Optional[str] = None
    ) -> CredentialSaveResult:
        """
        Store a carrier account at one tier.

        The account is tested against the carrier first unless a platform
        admin asks to skip the test. Webhook configuration of the saved
        number is attempted afterwards and never fails the save.

        Args:
            user_id: Caller; must be authorized to modify the tier
            request: Account, number, and tier to write
            ip_address: Caller address recorded in the audit log

        Returns:
            CredentialSaveResult

        Raises:
            ValidationError: If a value is malformed or the entity id is missing
            ForbiddenError: If the caller may not modify this tier
            NotConfiguredError: If the client or agency does not exist or encryption is not configured
            VersionConflictError: If ``expected_version`` is stale
            CredentialTestFailedError: If the carrier rejects the account or number
            DatabaseError: If the write fails
        """
        level = request.level

        problem = self.format_problem(request.account_sid, request.auth_token, request.phone_number)
        if problem:
            field, reason_code, message = problem
            raise ValidationError(message, field=field, reason_code=reason_code)

        decision = await self.authorization.check_authorization(user_id, level, request.entity_id)
        if not decision.authorized:
            raise ForbiddenError(decision.reason or "Not authorized", level=level.value, entity_id=request.entity_id)

        version: Optional[int] = None
        if level != CredentialLevel.ADMIN:
            current = await self._current_version(level, request.entity_id)
            if request.expected_version is not None and request.expected_version != current:
                raise VersionConflictError(
                    "Configuration was modified by another user. Please refresh and try again.",
                    current_version=current,
                )
            version = current + 1

        skip_test = request.skip_validation and decision.is_admin
        if request.skip_validation and not skip_test:
            logger.info("Ignoring skip_validation for non-admin caller", level=level.value)

        if not skip_test:
            result = await self.test_connection(request.account_sid, request.auth_token, request.phone_number)
            if not result.success:
                raise CredentialTestFailedError(
                    result.error or "Credential test failed",
                    reason_code=result.error_code,
                    level=level.value,
                )

        try:
            encrypted_token = self.encrypt(request.auth_token)
        except EncryptionError as e:
            logger.error("Carrier secret could not be encrypted", level=level.value, error=str(e))
            raise NotConfiguredError("Credential encryption is not configured", level=level.value)

        now = self.clock()
        if level == CredentialLevel.ADMIN:
            await self.repository.update_admin_credential(self._admin_values(request, encrypted_token, now))
        else:
            await self.repository.update_entity_credential(
                level.value,
                request.entity_id,
                self._entity_values(request, encrypted_token, user_id, now, version),
            )

        await self._write_audit(request, user_id, ip_address)

        webhook_error: Optional[str] = None
        try:
            await self.provisioner.point_number(
                request.account_sid,
                request.auth_token,
                request.phone_number,
                level=level,
                entity_id=request.entity_id,
            )
        except WebhookConfigError as e:
            logger.warning("Webhook configuration failed after save", level=level.value, error=e.detail)
            webhook_error = e.detail

        log_business_event(
            "carrier_credentials_saved",
            level=level.value,
            entity_id=request.entity_id,
            account_sid_last4=request.account_sid[-4:],
            phone=mask_phone(request.phone_number),
            validated=not skip_test,
            webhooks_configured=webhook_error is None,
        )

        return CredentialSaveResult(
            level=level,
            entity_id=request.entity_id if level != CredentialLevel.ADMIN else None,
            account_sid_last4=request.account_sid[-4:],
            phone_number=request.phone_number,
            enabled=request.enabled,
            validated=not skip_test,
            config_version=version,
            webhooks_configured=webhook_error is None,
            webhook_error=webhook_error,
        )
