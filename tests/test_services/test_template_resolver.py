"""
Tests for template resolution.
"""
import pytest

from messaging_engine.models.templates import (
    TemplateResolutionRequest,
    TemplateSource,
    TemplateType,
)
from messaging_engine.services.template_resolver import SYSTEM_DEFAULT_TEMPLATES, TemplateResolver


def make_request(template_type=TemplateType.GIFT_CARD_DELIVERY, **kwargs) -> TemplateResolutionRequest:
    return TemplateResolutionRequest(template_type=template_type, client_id="client-1", **kwargs)


class TestTemplateResolver:
    """Test cases for TemplateResolver.resolve."""

    @pytest.fixture(autouse=True)
    def _setup(self, fake_repository):
        self.repository = fake_repository
        self.resolver = TemplateResolver(fake_repository)

    @pytest.mark.asyncio
    async def test_custom_message_wins_verbatim(self):
        """Test a custom message is returned without further lookups."""
        self.repository.conditions["cond-1"] = {"sms_template": "Condition text"}

        result = await self.resolver.resolve(make_request(condition_id="cond-1", custom_message="Hi {first_name}"))

        assert result.template == "Hi {first_name}"
        assert result.source == TemplateSource.CUSTOM
        assert self.repository.calls == {}

    @pytest.mark.asyncio
    async def test_blank_custom_message_is_ignored(self):
        """Test whitespace-only custom messages do not count."""
        result = await self.resolver.resolve(make_request(custom_message="   "))

        assert result.source == TemplateSource.SYSTEM

    @pytest.mark.asyncio
    async def test_system_default_without_overrides(self):
        """Test the built-in gift card text is used when nothing overrides it."""
        result = await self.resolver.resolve(make_request())

        assert result.source == TemplateSource.SYSTEM
        assert result.template == (
            "Hi {first_name}! Your ${value} {brand} gift card is ready. "
            "Code: {code}. Thanks for choosing {client_name}!"
        )

    @pytest.mark.asyncio
    async def test_condition_template_for_gift_card(self):
        """Test a condition's template overrides the client default."""
        self.repository.conditions["cond-1"] = {"sms_template": "Your card: {link}"}
        self.repository.client_templates[("client-1", "gift_card_delivery")] = {"body_template": "Client text"}

        result = await self.resolver.resolve(make_request(condition_id="cond-1"))

        assert result.template == "Your card: {link}"
        assert result.source == TemplateSource.CONDITION

    @pytest.mark.asyncio
    async def test_condition_template_ignored_for_other_types(self):
        """Test condition templates only apply to gift card delivery."""
        self.repository.conditions["cond-1"] = {"sms_template": "Condition text"}

        result = await self.resolver.resolve(
            make_request(TemplateType.OPT_IN_CONFIRMATION, condition_id="cond-1")
        )

        assert result.source == TemplateSource.SYSTEM
        assert result.template == SYSTEM_DEFAULT_TEMPLATES[TemplateType.OPT_IN_CONFIRMATION]

    @pytest.mark.asyncio
    async def test_campaign_opt_in_message(self):
        """Test a campaign's opt-in text overrides the opt-in request default."""
        self.repository.campaigns["camp-1"] = {"sms_opt_in_message": "{client_name}: reply YES"}

        result = await self.resolver.resolve(make_request(TemplateType.OPT_IN_REQUEST, campaign_id="camp-1"))

        assert result.template == "{client_name}: reply YES"
        assert result.source == TemplateSource.CONDITION

    @pytest.mark.asyncio
    async def test_client_default_template(self):
        """Test the client's default template is used before the system default."""
        self.repository.client_templates[("client-1", "opt_in_request")] = {"body_template": "Client opt in"}

        result = await self.resolver.resolve(make_request(TemplateType.OPT_IN_REQUEST))

        assert result.template == "Client opt in"
        assert result.source == TemplateSource.CLIENT

    @pytest.mark.asyncio
    async def test_marketing_uses_default_client_template_name(self):
        """Test marketing sends look up the client's 'default' template."""
        self.repository.client_templates[("client-1", "default")] = {"body_template": "Hello {{name}}"}

        result = await self.resolver.resolve(make_request(TemplateType.MARKETING))

        assert result.template == "Hello {{name}}"
        assert result.source == TemplateSource.CLIENT

    @pytest.mark.asyncio
    async def test_storage_errors_fall_through_to_system(self):
        """Test failing lookups are treated as no override."""
        self.repository.failing.update({"get_condition_sms_fields", "get_default_client_template"})

        result = await self.resolver.resolve(make_request(condition_id="cond-1"))

        assert result.source == TemplateSource.SYSTEM
        assert result.template == SYSTEM_DEFAULT_TEMPLATES[TemplateType.GIFT_CARD_DELIVERY]

    @pytest.mark.asyncio
    async def test_condition_error_falls_through_to_client(self):
        """Test a failing condition lookup still reaches the client tier."""
        self.repository.failing.add("get_condition_sms_fields")
        self.repository.client_templates[("client-1", "gift_card_delivery")] = {"body_template": "Client text"}

        result = await self.resolver.resolve(make_request(condition_id="cond-1"))

        assert result.source == TemplateSource.CLIENT


class TestLinkAndClientName:
    """Test cases for link URL and client name lookups."""

    @pytest.mark.asyncio
    async def test_condition_link_preferred(self, fake_repository):
        """Test the condition's link URL wins over the client's."""
        fake_repository.conditions["cond-1"] = {"sms_link_url": "https://c.example/{code}"}
        fake_repository.client_templates[("client-1", "gift_card_delivery")] = {
            "sms_delivery_link_url": "https://client.example/{code}"
        }

        url = await TemplateResolver(fake_repository).resolve_link_url("client-1", "cond-1")

        assert url == "https://c.example/{code}"

    @pytest.mark.asyncio
    async def test_client_link_used_without_condition(self, fake_repository):
        """Test the client's delivery link is the fallback."""
        fake_repository.client_templates[("client-1", "gift_card_delivery")] = {
            "sms_delivery_link_url": "https://client.example/{code}"
        }

        url = await TemplateResolver(fake_repository).resolve_link_url("client-1")

        assert url == "https://client.example/{code}"

    @pytest.mark.asyncio
    async def test_no_link_configured(self, fake_repository):
        """Test None is returned when no tier sets a link."""
        assert await TemplateResolver(fake_repository).resolve_link_url("client-1", "cond-1") is None

    @pytest.mark.asyncio
    async def test_fetch_client_name(self, tenancy_repository):
        """Test the client display name lookup."""
        resolver = TemplateResolver(tenancy_repository)

        assert await resolver.fetch_client_name("client-1") == "Client One"
        assert await resolver.fetch_client_name("missing") == ""

    @pytest.mark.asyncio
    async def test_fetch_client_name_storage_error(self, fake_repository):
        """Test storage errors yield an empty name."""
        fake_repository.failing.add("get_client")

        assert await TemplateResolver(fake_repository).fetch_client_name("client-1") == ""
