"""Provider registry mapping each SMSProvider to its sender."""

from typing import Dict, Iterable, Optional

from messaging_engine.core.config import Settings
from messaging_engine.models.provider import SMSProvider
from messaging_engine.services.providers.base import SMSSender
from messaging_engine.services.providers.infobip import InfobipSender
from messaging_engine.services.providers.twilio import TwilioSender


class ProviderRegistry:
    """Lookup table of carrier senders."""

    def __init__(self, senders: Iterable[SMSSender] = ()):
        self._senders: Dict[SMSProvider, SMSSender] = {}
        for sender in senders:
            self.register(sender)

    def register(self, sender: SMSSender) -> None:
        self._senders[sender.provider] = sender

    def get(self, provider: SMSProvider) -> Optional[SMSSender]:
        return self._senders.get(provider)

    def __contains__(self, provider: SMSProvider) -> bool:
        return provider in self._senders

    @classmethod
    def default(cls, settings: Optional[Settings] = None) -> "ProviderRegistry":
        """Registry with the Infobip and Twilio senders."""
        return cls([InfobipSender(settings), TwilioSender(settings)])
