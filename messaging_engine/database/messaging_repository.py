"""
Messaging database repository

Typed accessors over the Supabase tables the delivery engine reads and
writes. Business logic never builds queries itself; every storage access goes
through one of these methods, and every storage failure surfaces as
``DatabaseError``.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog
from supabase import Client, create_client

from messaging_engine.core.config import Settings, get_settings
from messaging_engine.core.exceptions import DatabaseError

logger = structlog.get_logger(__name__)

PROVIDER_SETTINGS_TABLE = "sms_provider_settings"
MESSAGE_TEMPLATES_TABLE = "message_templates"
CAMPAIGN_CONDITIONS_TABLE = "campaign_conditions"
CAMPAIGNS_TABLE = "campaigns"
CLIENTS_TABLE = "clients"
AGENCIES_TABLE = "agencies"
USER_ROLES_TABLE = "user_roles"
AGENCY_MEMBERSHIPS_TABLE = "user_agencies"
CLIENT_USERS_TABLE = "client_users"
DELIVERY_LOG_TABLE = "sms_delivery_log"
CREDENTIAL_AUDIT_TABLE = "twilio_config_audit_log"

PROVIDER_POLICY_COLUMNS = (
    "primary_provider",
    "enable_fallback",
    "infobip_enabled",
    "infobip_base_url",
    "infobip_sender_id",
    "twilio_enabled",
    "fallback_on_error",
)

TENANT_CREDENTIAL_COLUMNS = (
    "twilio_account_sid, twilio_auth_token_encrypted, "
    "twilio_phone_number, twilio_friendly_name, "
    "twilio_enabled, twilio_validated_at, twilio_circuit_open_until, "
    "twilio_revalidate_after, twilio_config_version"
)

ADMIN_CREDENTIAL_COLUMNS = (
    "admin_twilio_account_sid, admin_twilio_auth_token_encrypted, "
    "admin_twilio_phone_number, admin_twilio_friendly_name, "
    "admin_twilio_enabled, admin_twilio_validated_at"
)

CREDENTIAL_TABLES = {
    "client": CLIENTS_TABLE,
    "agency": AGENCIES_TABLE,
}


def create_supabase_client(settings: Optional[Settings] = None) -> Optional[Client]:
    """
    Create the Supabase client from configuration.

    Returns:
        Client instance, or None when Supabase is not configured
    """
    settings = settings or get_settings()
    if not settings.supabase_url or not settings.supabase_key:
        logger.warning("Supabase not configured, storage lookups will fail over to defaults")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.warning("Supabase client creation failed", error=str(e))
        return None


def _first(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, list):
        return data[0] if data else None
    return data or None


class MessagingRepository:
    """
    Repository for delivery engine storage operations.

    Wraps a Supabase client. When no client is available every accessor
    raises ``DatabaseError`` so callers apply their own fallback policy.
    """

    def __init__(self, client: Optional[Client]):
        """
        Initialize repository with a Supabase client.

        Args:
            client: Supabase client, or None when storage is unavailable
        """
        self.client = client

    def _execute(self, operation: str, build_query: Callable[[Client], Any]) -> Any:
        """Run a query, converting any failure into ``DatabaseError``."""
        if self.client is None:
            raise DatabaseError("Supabase client not configured", operation=operation)

        try:
            response = build_query(self.client).execute()
        except Exception as e:
            logger.error("Storage query failed", operation=operation, error=str(e))
            raise DatabaseError(f"Storage query failed: {str(e)}", operation=operation)

        return response.data

    # Provider settings

    async def get_provider_settings_row(self) -> Optional[Dict[str, Any]]:
        """Get the single provider settings row, or None when the table is empty."""
        data = self._execute(
            "get_provider_settings",
            lambda c: c.table(PROVIDER_SETTINGS_TABLE).select("*").limit(1),
        )
        return _first(data)

    async def update_provider_settings(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write provider policy columns, creating the row if none exists.

        Args:
            values: Column values to write; keys outside the policy columns are ignored

        Returns:
            The stored row
        """
        update = {k: v for k, v in values.items() if k in PROVIDER_POLICY_COLUMNS}
        update["updated_at"] = datetime.utcnow().isoformat()

        existing = await self.get_provider_settings_row()
        if existing and existing.get("id") is not None:
            data = self._execute(
                "update_provider_settings",
                lambda c: c.table(PROVIDER_SETTINGS_TABLE).update(update).eq("id", existing["id"]),
            )
        else:
            data = self._execute(
                "insert_provider_settings",
                lambda c: c.table(PROVIDER_SETTINGS_TABLE).insert(update),
            )

        logger.info("Provider settings written", columns=sorted(update.keys()))
        return _first(data) or {**(existing or {}), **update}

    # Templates

    async def get_condition_sms_fields(self, condition_id: str) -> Optional[Dict[str, Any]]:
        """Get the SMS template and link overrides of a campaign condition."""
        data = self._execute(
            "get_condition_sms_fields",
            lambda c: c.table(CAMPAIGN_CONDITIONS_TABLE)
            .select("sms_template, sms_link_url")
            .eq("id", condition_id)
            .limit(1),
        )
        return _first(data)

    async def get_campaign_opt_in_message(self, campaign_id: str) -> Optional[str]:
        """Get a campaign's opt-in request override."""
        row = _first(self._execute(
            "get_campaign_opt_in_message",
            lambda c: c.table(CAMPAIGNS_TABLE)
            .select("sms_opt_in_message")
            .eq("id", campaign_id)
            .limit(1),
        ))
        return row.get("sms_opt_in_message") if row else None

    async def get_default_client_template(
        self, client_id: str, name: str
    ) -> Optional[Dict[str, Any]]:
        """Get the client's default SMS template row with the given name."""
        data = self._execute(
            "get_default_client_template",
            lambda c: c.table(MESSAGE_TEMPLATES_TABLE)
            .select("body_template, sms_delivery_link_url")
            .eq("client_id", client_id)
            .eq("template_type", "sms")
            .eq("name", name)
            .eq("is_default", True)
            .limit(1),
        )
        return _first(data)

    # Tenancy

    async def get_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        """Get a client with its owning agency and carrier credential columns."""
        data = self._execute(
            "get_client",
            lambda c: c.table(CLIENTS_TABLE)
            .select(f"id, name, agency_id, {TENANT_CREDENTIAL_COLUMNS}")
            .eq("id", client_id)
            .limit(1),
        )
        return _first(data)

    async def get_agency(self, agency_id: str) -> Optional[Dict[str, Any]]:
        """Get an agency with its carrier credential columns."""
        data = self._execute(
            "get_agency",
            lambda c: c.table(AGENCIES_TABLE)
            .select(f"id, name, {TENANT_CREDENTIAL_COLUMNS}")
            .eq("id", agency_id)
            .limit(1),
        )
        return _first(data)

    async def get_admin_credential_row(self) -> Optional[Dict[str, Any]]:
        """Get the platform admin credential columns of the settings row."""
        data = self._execute(
            "get_admin_credential",
            lambda c: c.table(PROVIDER_SETTINGS_TABLE).select(ADMIN_CREDENTIAL_COLUMNS).limit(1),
        )
        return _first(data)

    async def update_entity_credential(
        self, level: str, entity_id: str, values: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Write carrier credential columns on a client or agency row.

        Args:
            level: ``client`` or ``agency``
            entity_id: Row id
            values: Column values to write

        Returns:
            The stored row
        """
        table = CREDENTIAL_TABLES.get(level)
        if table is None:
            raise DatabaseError(f"No credential table for level {level}", operation="update_entity_credential")

        update = {**values, "updated_at": datetime.utcnow().isoformat()}
        data = self._execute(
            "update_entity_credential",
            lambda c: c.table(table).update(update).eq("id", entity_id),
        )
        logger.info("Tenant credential written", level=level, entity_id=entity_id)
        return _first(data) or update

    async def update_admin_credential(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Write the platform admin credential columns, creating the settings row if none exists."""
        update = {**values, "updated_at": datetime.utcnow().isoformat()}

        existing = await self.get_provider_settings_row()
        if existing and existing.get("id") is not None:
            data = self._execute(
                "update_admin_credential",
                lambda c: c.table(PROVIDER_SETTINGS_TABLE).update(update).eq("id", existing["id"]),
            )
        else:
            data = self._execute(
                "insert_admin_credential",
                lambda c: c.table(PROVIDER_SETTINGS_TABLE).insert(update),
            )

        logger.info("Admin credential written")
        return _first(data) or update

    async def insert_credential_audit_log(self, entry: Dict[str, Any]) -> None:
        """Append one credential change to the configuration audit log."""
        entry = {**entry, "created_at": datetime.utcnow().isoformat()}
        self._execute(
            "insert_credential_audit_log",
            lambda c: c.table(CREDENTIAL_AUDIT_TABLE).insert(entry),
        )

    # Roles and memberships

    async def get_user_roles(self, user_id: str) -> List[str]:
        """Get the platform roles held by a user."""
        data = self._execute(
            "get_user_roles",
            lambda c: c.table(USER_ROLES_TABLE).select("role").eq("user_id", user_id),
        )
        return [row["role"] for row in (data or []) if row.get("role")]

    async def get_agency_membership_role(self, user_id: str, agency_id: str) -> Optional[str]:
        """Get the user's role within an agency, or None when not a member."""
        row = _first(self._execute(
            "get_agency_membership_role",
            lambda c: c.table(AGENCY_MEMBERSHIPS_TABLE)
            .select("role")
            .eq("user_id", user_id)
            .eq("agency_id", agency_id)
            .limit(1),
        ))
        return row.get("role") if row else None

    async def has_client_association(self, user_id: str, client_id: str) -> bool:
        """Check whether the user is directly associated with the client."""
        row = _first(self._execute(
            "has_client_association",
            lambda c: c.table(CLIENT_USERS_TABLE)
            .select("user_id")
            .eq("user_id", user_id)
            .eq("client_id", client_id)
            .limit(1),
        ))
        return row is not None

    # Delivery log

    async def insert_delivery_log(self, entry: Dict[str, Any]) -> None:
        """Append one delivery outcome to the delivery log."""
        entry = {**entry, "created_at": datetime.utcnow().isoformat()}
        self._execute(
            "insert_delivery_log",
            lambda c: c.table(DELIVERY_LOG_TABLE).insert(entry),
        )
