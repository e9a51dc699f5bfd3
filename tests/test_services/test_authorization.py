"""
Tests for carrier configuration authorization.
"""
import pytest

from messaging_engine.core.exceptions import DatabaseError, ValidationError
from messaging_engine.models.tenancy import CredentialLevel
from messaging_engine.services.authorization import AuthorizationService, validate_level_request


class TestValidateLevelRequest:
    """Test level/entity validation."""

    def test_admin_needs_no_entity(self):
        """Test the admin tier is valid without an entity id."""
        assert validate_level_request("admin", None) == CredentialLevel.ADMIN

    def test_missing_entity_id(self):
        """Test agency and client tiers require an entity id."""
        with pytest.raises(ValidationError) as exc_info:
            validate_level_request("client", None)

        assert exc_info.value.reason_code == "MISSING_ENTITY_ID"
        assert exc_info.value.status_code == 422

    def test_invalid_level(self):
        """Test unknown levels are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validate_level_request("tenant", "x")

        assert exc_info.value.reason_code == "INVALID_LEVEL"


class TestAuthorizationService:
    """Test modify and view decisions across the hierarchy."""

    @pytest.fixture(autouse=True)
    def _setup(self, tenancy_repository):
        self.repository = tenancy_repository
        self.service = AuthorizationService(tenancy_repository)

    @pytest.mark.asyncio
    async def test_admin_may_modify_any_tier(self):
        """Test platform admins are authorized everywhere."""
        for level, entity_id in [
            (CredentialLevel.ADMIN, None),
            (CredentialLevel.AGENCY, "agency-1"),
            (CredentialLevel.CLIENT, "client-2"),
        ]:
            decision = await self.service.check_authorization("user-admin", level, entity_id)
            assert decision.authorized is True
            assert decision.is_admin is True

    @pytest.mark.asyncio
    async def test_non_admin_denied_admin_tier(self):
        """Test only admins touch the platform tier."""
        decision = await self.service.check_authorization("user-agency-owner", CredentialLevel.ADMIN)

        assert decision.authorized is False
        assert decision.reason == "Only platform admins can modify admin-level carrier configuration"

    @pytest.mark.asyncio
    async def test_agency_owner_may_modify_agency_and_its_clients(self):
        """Test agency ownership covers the agency and its clients."""
        agency = await self.service.check_authorization("user-agency-owner", CredentialLevel.AGENCY, "agency-1")
        client = await self.service.check_authorization("user-agency-owner", CredentialLevel.CLIENT, "client-2")

        assert agency.authorized is True
        assert client.authorized is True
        assert agency.is_admin is False

    @pytest.mark.asyncio
    async def test_agency_owner_denied_other_agency(self):
        """Test ownership does not extend to other agencies."""
        decision = await self.service.check_authorization("user-agency-owner", CredentialLevel.AGENCY, "agency-2")

        assert decision.authorized is False
        assert decision.reason == "Only agency owners can modify agency carrier configuration"

    @pytest.mark.asyncio
    async def test_company_owner_may_modify_own_client(self):
        """Test a company owner associated with the client may modify it."""
        decision = await self.service.check_authorization("user-company-owner", CredentialLevel.CLIENT, "client-1")

        assert decision.authorized is True

    @pytest.mark.asyncio
    async def test_company_owner_denied_unassociated_client(self):
        """Test the company-owner role alone is not enough."""
        decision = await self.service.check_authorization("user-company-owner", CredentialLevel.CLIENT, "client-2")

        assert decision.authorized is False
        assert decision.reason == "Not authorized to modify this client's carrier configuration"

    @pytest.mark.asyncio
    async def test_client_member_can_view_but_not_modify(self):
        """Test plain client users have read access only."""
        modify = await self.service.check_authorization("user-client-member", CredentialLevel.CLIENT, "client-1")
        view = await self.service.check_view_authorization("user-client-member", CredentialLevel.CLIENT, "client-1")

        assert modify.authorized is False
        assert view.authorized is True

    @pytest.mark.asyncio
    async def test_view_denied_admin_tier_for_non_admin(self):
        """Test the admin tier is hidden from non-admins."""
        decision = await self.service.check_view_authorization("user-client-member", CredentialLevel.ADMIN)

        assert decision.authorized is False
        assert decision.reason == "Only platform admins can view admin-level carrier configuration"

    @pytest.mark.asyncio
    async def test_missing_entity_id_raises(self):
        """Test validation runs before any role lookup."""
        with pytest.raises(ValidationError):
            await self.service.check_authorization("user-admin", CredentialLevel.AGENCY, None)

        assert "get_user_roles" not in self.repository.calls

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self):
        """Test membership lookup failures are not treated as denials."""
        self.repository.failing.add("get_agency_membership_role")

        with pytest.raises(DatabaseError):
            await self.service.check_authorization("user-agency-owner", CredentialLevel.AGENCY, "agency-1")

    @pytest.mark.asyncio
    async def test_decisions_are_not_cached(self):
        """Test a revoked membership takes effect on the next check."""
        first = await self.service.check_authorization("user-agency-owner", CredentialLevel.AGENCY, "agency-1")
        del self.repository.agency_memberships[("user-agency-owner", "agency-1")]
        second = await self.service.check_authorization("user-agency-owner", CredentialLevel.AGENCY, "agency-1")

        assert first.authorized is True
        assert second.authorized is False

    @pytest.mark.asyncio
    async def test_is_admin(self):
        """Test the admin role check."""
        assert await self.service.is_admin("user-admin") is True
        assert await self.service.is_admin("user-company-owner") is False
