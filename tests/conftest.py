"""
Pytest configuration and fixtures for the Messaging Delivery Engine.
"""
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

from messaging_engine.core.config import Settings
from messaging_engine.core.exceptions import DatabaseError

VALIDATED_AT = "2026-01-01T00:00:00+00:00"


class FakeRepository:
    """
    In-memory stand-in for MessagingRepository.

    Tables are plain dicts keyed by id. Operations named in ``failing`` raise
    DatabaseError, and every call is counted in ``calls``.
    """

    def __init__(self):
        self.client = object()
        self.provider_settings: Optional[Dict[str, Any]] = None
        self.conditions: Dict[str, Dict[str, Any]] = {}
        self.campaigns: Dict[str, Dict[str, Any]] = {}
        self.client_templates: Dict[tuple, Dict[str, Any]] = {}
        self.clients: Dict[str, Dict[str, Any]] = {}
        self.agencies: Dict[str, Dict[str, Any]] = {}
        self.admin_credential: Optional[Dict[str, Any]] = None
        self.user_roles: Dict[str, List[str]] = {}
        self.agency_memberships: Dict[tuple, str] = {}
        self.client_users: set = set()
        self.delivery_log: List[Dict[str, Any]] = []
        self.credential_audit_log: List[Dict[str, Any]] = []
        self.failing: set = set()
        self.calls: Dict[str, int] = {}

    def _record(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        if operation in self.failing:
            raise DatabaseError("Storage unavailable", operation=operation)

    async def get_provider_settings_row(self):
        self._record("get_provider_settings_row")
        return self.provider_settings

    async def update_provider_settings(self, values):
        self._record("update_provider_settings")
        self.provider_settings = {**(self.provider_settings or {}), **values}
        return self.provider_settings

    async def get_condition_sms_fields(self, condition_id):
        self._record("get_condition_sms_fields")
        return self.conditions.get(condition_id)

    async def get_campaign_opt_in_message(self, campaign_id):
        self._record("get_campaign_opt_in_message")
        return (self.campaigns.get(campaign_id) or {}).get("sms_opt_in_message")

    async def get_default_client_template(self, client_id, name):
        self._record("get_default_client_template")
        return self.client_templates.get((client_id, name))

    async def get_client(self, client_id):
        self._record("get_client")
        return self.clients.get(client_id)

    async def get_agency(self, agency_id):
        self._record("get_agency")
        return self.agencies.get(agency_id)

    async def get_admin_credential_row(self):
        self._record("get_admin_credential_row")
        return self.admin_credential

    async def get_user_roles(self, user_id):
        self._record("get_user_roles")
        return list(self.user_roles.get(user_id, []))

    async def get_agency_membership_role(self, user_id, agency_id):
        self._record("get_agency_membership_role")
        return self.agency_memberships.get((user_id, agency_id))

    async def has_client_association(self, user_id, client_id):
        self._record("has_client_association")
        return (user_id, client_id) in self.client_users

    async def update_entity_credential(self, level, entity_id, values):
        self._record("update_entity_credential")
        table = self.clients if level == "client" else self.agencies
        table[entity_id] = {**table.get(entity_id, {}), **values}
        return table[entity_id]

    async def update_admin_credential(self, values):
        self._record("update_admin_credential")
        self.admin_credential = {**(self.admin_credential or {}), **values}
        return self.admin_credential

    async def insert_credential_audit_log(self, entry):
        self._record("insert_credential_audit_log")
        self.credential_audit_log.append(entry)

    async def insert_delivery_log(self, entry):
        self._record("insert_delivery_log")
        self.delivery_log.append(entry)


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the process environment and .env file."""
    values: Dict[str, Any] = {
        "infobip_api_key": None,
        "twilio_account_sid": None,
        "twilio_auth_token": None,
        "twilio_from_number": None,
        "twilio_phone_number": None,
        "supabase_url": None,
        "supabase_key": None,
        "twilio_encryption_key": None,
        "public_base_url": "https://hooks.example.com",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_factory():
    """Build isolated Settings with overrides."""
    return make_settings


@pytest.fixture
def fake_repository() -> FakeRepository:
    """Empty in-memory repository."""
    return FakeRepository()


@pytest.fixture
def both_providers_settings() -> Settings:
    """Settings with credentials for both carriers."""
    return make_settings(
        infobip_api_key="infobip-key",
        twilio_account_sid="AC" + "0" * 32,
        twilio_auth_token="twilio-token",
        twilio_from_number="+15550001111",
    )


@pytest.fixture
def tenancy_repository(fake_repository: FakeRepository) -> FakeRepository:
    """
    Repository seeded with one agency and two clients.

    - agency-1 owns client-1 (no credential) and client-2 (own credential)
    - agency-1 holds a credential; the platform admin holds one too
    - every stored credential is enabled and validated
    - user-agency-owner owns agency-1
    - user-company-owner is a client-1 user with the company_owner role
    - user-client-member is a client-1 user without that role
    """
    repo = fake_repository
    repo.agencies["agency-1"] = {
        "id": "agency-1",
        "name": "Acme Agency",
        "twilio_account_sid": "AC" + "a" * 32,
        "twilio_auth_token_encrypted": "enc-agency",
        "twilio_phone_number": "+15552220000",
        "twilio_friendly_name": None,
        "twilio_enabled": True,
        "twilio_validated_at": VALIDATED_AT,
        "twilio_config_version": 2,
    }
    repo.clients["client-1"] = {
        "id": "client-1",
        "name": "Client One",
        "agency_id": "agency-1",
        "twilio_account_sid": None,
    }
    repo.clients["client-2"] = {
        "id": "client-2",
        "name": "Client Two",
        "agency_id": "agency-1",
        "twilio_account_sid": "AC" + "c" * 32,
        "twilio_auth_token_encrypted": "enc-client",
        "twilio_phone_number": "+15553330000",
        "twilio_friendly_name": "Client Two Line",
        "twilio_enabled": True,
        "twilio_validated_at": VALIDATED_AT,
    }
    repo.admin_credential = {
        "admin_twilio_account_sid": "AC" + "f" * 32,
        "admin_twilio_auth_token_encrypted": "enc-admin",
        "admin_twilio_phone_number": "+15559990000",
        "admin_twilio_friendly_name": None,
        "admin_twilio_enabled": True,
        "admin_twilio_validated_at": VALIDATED_AT,
    }
    repo.user_roles = {
        "user-admin": ["admin"],
        "user-agency-owner": [],
        "user-company-owner": ["company_owner"],
        "user-client-member": [],
    }
    repo.agency_memberships[("user-agency-owner", "agency-1")] = "owner"
    repo.client_users.update({
        ("user-company-owner", "client-1"),
        ("user-client-member", "client-1"),
    })
    return repo


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.

    Dependency overrides installed by a test are cleared afterwards.
    """
    from messaging_engine.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_headers() -> dict:
    """Sample request headers with caller and correlation IDs."""
    return {
        "X-Correlation-ID": "test-correlation-123",
        "X-User-ID": "user-admin",
        "Content-Type": "application/json",
    }
