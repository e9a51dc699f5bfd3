"""
Provider settings cache.

Holds the tenant-wide provider selection policy for a fixed TTL so sends do
not query storage every time. The cached entry is an immutable value replaced
by a single assignment; concurrent refreshes may both query storage, and the
last one to finish wins.
"""

import time
from typing import Callable, Optional

import structlog

from messaging_engine.database.messaging_repository import MessagingRepository
from messaging_engine.models.provider import (
    DEFAULT_PROVIDER_SETTINGS,
    CacheEntry,
    ProviderSettings,
)

logger = structlog.get_logger(__name__)


class ProviderSettingsCache:
    """TTL-bounded cache of the single ``sms_provider_settings`` row."""

    def __init__(
        self,
        repository: MessagingRepository,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repository = repository
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entry: Optional[CacheEntry] = None

    async def get_settings(self) -> ProviderSettings:
        """
        Return the current provider settings.

        A valid cached entry is returned as-is. Otherwise storage is queried;
        if that fails or the table is empty the defaults are returned without
        being cached, so the next call tries storage again.
        """
        entry = self._entry
        if entry is not None and entry.is_valid(self.clock(), self.ttl_seconds):
            return entry.settings

        try:
            row = await self.repository.get_provider_settings_row()
        except Exception as e:
            logger.warning("Failed to load provider settings, using defaults", error=str(e))
            return DEFAULT_PROVIDER_SETTINGS

        if not row:
            logger.warning("No provider settings row found, using defaults")
            return DEFAULT_PROVIDER_SETTINGS

        try:
            settings = ProviderSettings.from_row(row)
        except ValueError as e:
            logger.warning("Invalid provider settings row, using defaults", error=str(e))
            return DEFAULT_PROVIDER_SETTINGS

        self._entry = CacheEntry(settings=settings, fetched_at=self.clock())
        logger.debug(
            "Provider settings refreshed",
            primary_provider=settings.primary_provider.value,
            enable_fallback=settings.enable_fallback,
        )
        return settings

    def clear_cache(self) -> None:
        """Drop the cached entry; the next read goes to storage."""
        self._entry = None
        logger.info("Provider settings cache cleared")

    invalidate = clear_cache
