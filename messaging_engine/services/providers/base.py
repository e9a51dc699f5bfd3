"""SMS sender interface."""

from abc import ABC, abstractmethod
from typing import Optional

from messaging_engine.models.provider import ProviderSendResult, ProviderSettings, SMSProvider


class SMSSender(ABC):
    """
    Interface every carrier sender implements.

    ``send`` reports carrier and transport failures through
    ``ProviderSendResult`` instead of raising.
    """

    provider: SMSProvider

    @abstractmethod
    async def send(
        self,
        destination: str,
        body: str,
        provider_settings: Optional[ProviderSettings] = None,
    ) -> ProviderSendResult:
        """Send ``body`` to an E.164 destination."""
        raise NotImplementedError
