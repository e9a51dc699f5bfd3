"""
Tests for the tenant credential hierarchy.
"""
from datetime import datetime, timezone

import pytest

from messaging_engine.core.exceptions import DatabaseError, NotConfiguredError
from messaging_engine.models.tenancy import CredentialLevel
from messaging_engine.services.credentials import CredentialHierarchy


class TestCredentialHierarchy:
    """Test cases for credential resolution."""

    @pytest.fixture(autouse=True)
    def _setup(self, tenancy_repository):
        self.repository = tenancy_repository
        self.hierarchy = CredentialHierarchy(tenancy_repository)

    @pytest.mark.asyncio
    async def test_client_without_account_uses_agency(self):
        """Test a client with no account inherits its agency's."""
        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-1")

        assert resolution.credential.level == CredentialLevel.AGENCY
        assert resolution.credential.entity_id == "agency-1"
        assert resolution.credential.display_name == "Acme Agency"
        assert resolution.fallback_occurred is True
        assert [(item.level, item.available) for item in resolution.fallback_chain] == [
            (CredentialLevel.CLIENT, False),
            (CredentialLevel.AGENCY, True),
        ]
        assert resolution.fallback_chain[0].reason == "No account configured"

    @pytest.mark.asyncio
    async def test_client_with_own_account(self):
        """Test the client's own account is used first."""
        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-2")

        assert resolution.credential.level == CredentialLevel.CLIENT
        assert resolution.credential.display_name == "Client Two Line"
        assert resolution.credential.from_number == "+15553330000"
        assert resolution.fallback_occurred is False
        assert len(resolution.fallback_chain) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_admin(self):
        """Test the platform account is the last resort."""
        self.repository.agencies["agency-1"]["twilio_account_sid"] = None

        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-1")

        assert resolution.credential.level == CredentialLevel.ADMIN
        assert resolution.credential.entity_id is None
        assert resolution.credential.display_name == "Platform Master"
        assert [item.level for item in resolution.fallback_chain] == [
            CredentialLevel.CLIENT,
            CredentialLevel.AGENCY,
            CredentialLevel.ADMIN,
        ]

    @pytest.mark.asyncio
    async def test_agency_level(self):
        """Test agency resolution starts at the agency."""
        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.AGENCY, "agency-1")

        assert resolution.credential.level == CredentialLevel.AGENCY
        assert resolution.fallback_occurred is False

    @pytest.mark.asyncio
    async def test_admin_level(self):
        """Test admin resolution reads the platform singleton."""
        credential = await self.hierarchy.resolve_credential(CredentialLevel.ADMIN)

        assert credential.level == CredentialLevel.ADMIN
        assert credential.auth_token_encrypted == "enc-admin"

    @pytest.mark.asyncio
    async def test_nothing_configured(self):
        """Test NotConfiguredError when no tier has an account."""
        self.repository.agencies["agency-1"]["twilio_account_sid"] = None
        self.repository.admin_credential = None

        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-1")
        assert resolution.credential is None
        assert all(not item.available for item in resolution.fallback_chain)

        with pytest.raises(NotConfiguredError):
            await self.hierarchy.resolve_credential(CredentialLevel.CLIENT, "client-1")

    @pytest.mark.asyncio
    async def test_unknown_client(self):
        """Test an unknown client is reported as not configured."""
        with pytest.raises(NotConfiguredError, match="Client not found"):
            await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-404")

    @pytest.mark.asyncio
    async def test_unknown_agency(self):
        """Test an unknown agency is reported as not configured."""
        with pytest.raises(NotConfiguredError, match="Agency not found"):
            await self.hierarchy.resolve_with_chain(CredentialLevel.AGENCY, "agency-404")

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self):
        """Test storage errors are not mistaken for an absent credential."""
        self.repository.failing.add("get_agency")

        with pytest.raises(DatabaseError):
            await self.hierarchy.resolve_credential(CredentialLevel.CLIENT, "client-1")


class TestCredentialGating:
    """Test tiers are skipped unless enabled, validated, and closed-circuit."""

    NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.fixture(autouse=True)
    def _setup(self, tenancy_repository):
        self.repository = tenancy_repository
        self.hierarchy = CredentialHierarchy(tenancy_repository, clock=lambda: self.NOW)

    @pytest.mark.asyncio
    async def test_disabled_client_falls_back(self):
        """Test a disabled client account is recorded and skipped."""
        self.repository.clients["client-2"]["twilio_enabled"] = False

        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-2")

        assert resolution.credential.level == CredentialLevel.AGENCY
        client_item = resolution.fallback_chain[0]
        assert client_item.available is False
        assert client_item.enabled is False
        assert client_item.reason == "Not enabled"

    @pytest.mark.asyncio
    async def test_missing_enabled_flag_counts_as_disabled(self):
        """Test rows without the enabled column are not usable."""
        del self.repository.clients["client-2"]["twilio_enabled"]

        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-2")

        assert resolution.credential.level == CredentialLevel.AGENCY

    @pytest.mark.asyncio
    async def test_unvalidated_agency_falls_back_to_admin(self):
        """Test an agency account that never passed a connection test is skipped."""
        self.repository.agencies["agency-1"]["twilio_validated_at"] = None

        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.AGENCY, "agency-1")

        assert resolution.credential.level == CredentialLevel.ADMIN
        assert resolution.fallback_chain[0].reason == "Not validated"
        assert resolution.fallback_chain[0].validated is False

    @pytest.mark.asyncio
    async def test_open_circuit_falls_back(self):
        """Test a tier with an open circuit breaker is skipped."""
        self.repository.clients["client-2"]["twilio_circuit_open_until"] = "2026-06-01T12:30:00Z"

        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-2")

        assert resolution.credential.level == CredentialLevel.AGENCY
        assert resolution.fallback_chain[0].circuit_open is True
        assert resolution.fallback_chain[0].reason == "Circuit breaker open"

    @pytest.mark.asyncio
    async def test_expired_circuit_is_usable(self):
        """Test a circuit whose open window has passed no longer blocks the tier."""
        self.repository.clients["client-2"]["twilio_circuit_open_until"] = "2026-06-01T11:59:00+00:00"

        resolution = await self.hierarchy.resolve_with_chain(CredentialLevel.CLIENT, "client-2")

        assert resolution.credential.level == CredentialLevel.CLIENT
        assert resolution.fallback_chain[0].circuit_open is False

    @pytest.mark.asyncio
    async def test_disabled_admin_leaves_nothing(self):
        """Test a disabled platform account is not used as the last resort."""
        self.repository.agencies["agency-1"]["twilio_enabled"] = False
        self.repository.admin_credential["admin_twilio_enabled"] = False

        with pytest.raises(NotConfiguredError):
            await self.hierarchy.resolve_credential(CredentialLevel.CLIENT, "client-1")
