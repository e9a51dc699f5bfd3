"""
Tenant carrier credential hierarchy.

Credentials may be held by a client, by its owning agency, or by the platform
admin. Resolution walks from the most specific tier upward and returns the
first usable tier. A tier is usable when it has an account that is enabled,
has passed a connection test, and whose circuit breaker is not open.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from messaging_engine.core.exceptions import NotConfiguredError
from messaging_engine.database.messaging_repository import MessagingRepository
from messaging_engine.models.tenancy import (
    CredentialLevel,
    CredentialResolution,
    FallbackChainItem,
    TenantCredential,
)

logger = structlog.get_logger(__name__)

ADMIN_DISPLAY_NAME = "Platform Master"
ADMIN_PREFIX = "admin_"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unreadable credential timestamp", value=str(value))
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _tier_state(row: Dict[str, Any], prefix: str, now: datetime) -> Tuple[bool, bool, bool, Optional[str]]:
    """
    Gate one tier's columns.

    Returns:
        ``(enabled, validated, circuit_open, reason)``; reason is None when usable
    """
    enabled = bool(row.get(f"{prefix}twilio_enabled"))
    validated = row.get(f"{prefix}twilio_validated_at") is not None
    circuit_until = parse_timestamp(row.get(f"{prefix}twilio_circuit_open_until"))
    circuit_open = circuit_until is not None and circuit_until > now

    if not row.get(f"{prefix}twilio_account_sid"):
        reason = "No account configured"
    elif not enabled:
        reason = "Not enabled"
    elif circuit_open:
        reason = "Circuit breaker open"
    elif not validated:
        reason = "Not validated"
    else:
        reason = None

    return enabled, validated, circuit_open, reason


def _chain_item(
    level: CredentialLevel, name: str, row: Dict[str, Any], prefix: str, now: datetime
) -> FallbackChainItem:
    enabled, validated, circuit_open, reason = _tier_state(row, prefix, now)
    return FallbackChainItem(
        level=level,
        name=name,
        available=reason is None,
        reason=reason,
        enabled=enabled,
        validated=validated,
        circuit_open=circuit_open,
    )


def _tenant_credential(
    level: CredentialLevel, row: Dict[str, Any], entity_id: Optional[str]
) -> TenantCredential:
    return TenantCredential(
        level=level,
        entity_id=entity_id,
        account_sid=row["twilio_account_sid"],
        auth_token_encrypted=row.get("twilio_auth_token_encrypted"),
        from_number=row.get("twilio_phone_number"),
        display_name=row.get("twilio_friendly_name") or row.get("name") or "",
    )


def _admin_credential(row: Dict[str, Any]) -> TenantCredential:
    return TenantCredential(
        level=CredentialLevel.ADMIN,
        entity_id=None,
        account_sid=row["admin_twilio_account_sid"],
        auth_token_encrypted=row.get("admin_twilio_auth_token_encrypted"),
        from_number=row.get("admin_twilio_phone_number"),
        display_name=row.get("admin_twilio_friendly_name") or ADMIN_DISPLAY_NAME,
    )


class CredentialHierarchy:
    """Resolves the effective carrier credential for a tier of the hierarchy."""

    def __init__(self, repository: MessagingRepository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.clock = clock

    async def resolve_with_chain(
        self, level: CredentialLevel, entity_id: Optional[str] = None
    ) -> CredentialResolution:
        """
        Walk the hierarchy, recording every tier inspected.

        Client resolution tries client, owning agency, then admin. Agency
        resolution tries agency, then admin. Admin resolution reads the
        platform singleton. Tiers that are disabled, unvalidated, or have an
        open circuit are recorded with a reason and skipped.

        Raises:
            NotConfiguredError: If the client or agency does not exist
            DatabaseError: If a storage lookup fails
        """
        now = self.clock()
        chain: List[FallbackChainItem] = []
        agency_id: Optional[str] = None

        if level == CredentialLevel.CLIENT:
            client = await self.repository.get_client(entity_id)
            if not client:
                raise NotConfiguredError(f"Client not found: {entity_id}", level=level.value, entity_id=entity_id)

            item = _chain_item(
                CredentialLevel.CLIENT,
                client.get("twilio_friendly_name") or client.get("name") or "",
                client,
                "",
                now,
            )
            chain.append(item)
            if item.available:
                credential = _tenant_credential(CredentialLevel.CLIENT, client, client.get("id") or entity_id)
                return CredentialResolution(credential=credential, fallback_chain=chain)

            agency_id = client.get("agency_id")

        elif level == CredentialLevel.AGENCY:
            agency_id = entity_id

        if agency_id:
            agency = await self.repository.get_agency(agency_id)
            if agency:
                item = _chain_item(
                    CredentialLevel.AGENCY,
                    agency.get("twilio_friendly_name") or agency.get("name") or "",
                    agency,
                    "",
                    now,
                )
                chain.append(item)
                if item.available:
                    credential = _tenant_credential(CredentialLevel.AGENCY, agency, agency.get("id") or agency_id)
                    return CredentialResolution(credential=credential, fallback_chain=chain)
            elif level == CredentialLevel.AGENCY:
                raise NotConfiguredError(f"Agency not found: {agency_id}", level=level.value, entity_id=agency_id)

        admin_row = await self.repository.get_admin_credential_row() or {}
        item = _chain_item(
            CredentialLevel.ADMIN,
            admin_row.get("admin_twilio_friendly_name") or ADMIN_DISPLAY_NAME,
            admin_row,
            ADMIN_PREFIX,
            now,
        )
        chain.append(item)

        credential = _admin_credential(admin_row) if item.available else None
        return CredentialResolution(credential=credential, fallback_chain=chain)

    async def resolve_credential(
        self, level: CredentialLevel, entity_id: Optional[str] = None
    ) -> TenantCredential:
        """
        Return the most specific credential configured for a tier.

        Raises:
            NotConfiguredError: If no tier in the chain has an account configured
            DatabaseError: If a storage lookup fails
        """
        resolution = await self.resolve_with_chain(level, entity_id)

        if resolution.credential is None:
            logger.warning("No carrier credential at any tier", level=level.value, entity_id=entity_id)
            raise NotConfiguredError(
                "No carrier configuration found. Configure an account at client, agency, or admin level.",
                level=level.value,
                entity_id=entity_id,
            )

        logger.info(
            "Carrier credential resolved",
            level=level.value,
            entity_id=entity_id,
            resolved_level=resolution.credential.level.value,
            fallback_occurred=resolution.fallback_occurred,
        )
        return resolution.credential
