"""
Tests for the provider settings cache.
"""
import pytest

from messaging_engine.models.provider import DEFAULT_PROVIDER_SETTINGS, SMSProvider
from messaging_engine.services.settings_cache import ProviderSettingsCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestProviderSettingsCache:
    """Test cases for ProviderSettingsCache."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()

    def _cache(self, repository):
        return ProviderSettingsCache(repository, ttl_seconds=60.0, clock=self.clock)

    @pytest.mark.asyncio
    async def test_reads_within_ttl_share_one_query(self, fake_repository):
        """Test two reads within the TTL return the same object from one query."""
        fake_repository.provider_settings = {"primary_provider": "twilio", "enable_fallback": False}
        cache = self._cache(fake_repository)

        first = await cache.get_settings()
        self.clock.now += 59.9
        second = await cache.get_settings()

        assert first is second
        assert first.primary_provider == SMSProvider.TWILIO
        assert first.enable_fallback is False
        assert fake_repository.calls["get_provider_settings_row"] == 1

    @pytest.mark.asyncio
    async def test_read_after_ttl_refreshes_once(self, fake_repository):
        """Test an expired entry triggers exactly one refresh."""
        fake_repository.provider_settings = {"primary_provider": "infobip"}
        cache = self._cache(fake_repository)

        await cache.get_settings()
        self.clock.now += 60.0
        fake_repository.provider_settings = {"primary_provider": "twilio"}
        refreshed = await cache.get_settings()
        again = await cache.get_settings()

        assert refreshed.primary_provider == SMSProvider.TWILIO
        assert again is refreshed
        assert fake_repository.calls["get_provider_settings_row"] == 2

    @pytest.mark.asyncio
    async def test_storage_failure_returns_defaults_without_caching(self, fake_repository):
        """Test defaults are served and storage is retried on the next read."""
        fake_repository.failing.add("get_provider_settings_row")
        cache = self._cache(fake_repository)

        settings = await cache.get_settings()
        assert settings == DEFAULT_PROVIDER_SETTINGS
        assert settings.primary_provider == SMSProvider.INFOBIP
        assert settings.enable_fallback is True
        assert settings.fallback_on_error is True

        fake_repository.failing.clear()
        fake_repository.provider_settings = {"primary_provider": "twilio"}
        recovered = await cache.get_settings()

        assert recovered.primary_provider == SMSProvider.TWILIO
        assert fake_repository.calls["get_provider_settings_row"] == 2

    @pytest.mark.asyncio
    async def test_empty_table_returns_defaults(self, fake_repository):
        """Test no row means defaults, not cached."""
        cache = self._cache(fake_repository)

        assert await cache.get_settings() == DEFAULT_PROVIDER_SETTINGS
        await cache.get_settings()

        assert fake_repository.calls["get_provider_settings_row"] == 2

    @pytest.mark.asyncio
    async def test_clear_cache_forces_reload(self, fake_repository):
        """Test a settings write followed by clear_cache is seen immediately."""
        fake_repository.provider_settings = {"primary_provider": "infobip"}
        cache = self._cache(fake_repository)
        await cache.get_settings()

        await fake_repository.update_provider_settings({"primary_provider": "twilio"})
        cache.clear_cache()
        settings = await cache.get_settings()

        assert settings.primary_provider == SMSProvider.TWILIO
        assert fake_repository.calls["get_provider_settings_row"] == 2

    @pytest.mark.asyncio
    async def test_invalidate_is_clear_cache(self, fake_repository):
        """Test invalidate drops the entry too."""
        fake_repository.provider_settings = {"primary_provider": "infobip"}
        cache = self._cache(fake_repository)
        await cache.get_settings()

        cache.invalidate()
        await cache.get_settings()

        assert fake_repository.calls["get_provider_settings_row"] == 2

    @pytest.mark.asyncio
    async def test_row_defaults_for_missing_columns(self, fake_repository):
        """Test missing columns fall back to the default record's values."""
        fake_repository.provider_settings = {"id": 1}
        cache = self._cache(fake_repository)

        settings = await cache.get_settings()

        assert settings.primary_provider == SMSProvider.INFOBIP
        assert settings.infobip_base_url == "https://api.infobip.com"
