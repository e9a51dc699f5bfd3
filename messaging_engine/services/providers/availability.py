"""Provider availability from process configuration."""

from typing import Dict, Optional

from messaging_engine.core.config import Settings, get_settings
from messaging_engine.models.provider import SMSProvider


class ProviderAvailability:
    """
    Decides whether each provider has credentials in the process environment.

    Availability is independent of the ``*_enabled`` flags in the stored
    settings; it only reflects whether a send could be attempted at all.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def is_available(self, provider: SMSProvider) -> bool:
        if provider == SMSProvider.INFOBIP:
            return bool(self.settings.infobip_api_key)

        if provider == SMSProvider.TWILIO:
            return bool(
                self.settings.twilio_account_sid
                and self.settings.twilio_auth_token
                and self.settings.twilio_sender_number
            )

        return False

    def snapshot(self) -> Dict[SMSProvider, bool]:
        """Availability of every known provider."""
        return {provider: self.is_available(provider) for provider in SMSProvider}
