"""
Twilio SMS sender using the process-level Twilio account.
"""
import asyncio
from typing import Callable, Optional

import structlog
from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from messaging_engine.core.config import Settings, get_settings
from messaging_engine.models.provider import ProviderSendResult, ProviderSettings, SMSProvider
from messaging_engine.services.providers.base import SMSSender
from messaging_engine.utils.phone import mask_phone

logger = structlog.get_logger(__name__)

TwilioClientFactory = Callable[[str, str], Client]


def build_twilio_client(account_sid: str, auth_token: str, timeout: Optional[float] = None) -> Client:
    """Create a Twilio REST client with a request timeout."""
    timeout = timeout if timeout is not None else get_settings().twilio_timeout_seconds
    return Client(account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout))


class TwilioSender(SMSSender):
    """Sends SMS through ``client.messages.create``."""

    provider = SMSProvider.TWILIO

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[TwilioClientFactory] = None,
    ):
        self.settings = settings or get_settings()
        self.client_factory = client_factory or build_twilio_client
        self._client: Optional[Client] = None

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = self.client_factory(
                self.settings.twilio_account_sid, self.settings.twilio_auth_token
            )
        return self._client

    async def send(
        self,
        destination: str,
        body: str,
        provider_settings: Optional[ProviderSettings] = None,
    ) -> ProviderSendResult:
        """
        Send an SMS via Twilio.

        Returns:
            ProviderSendResult; never raises
        """
        from_number = self.settings.twilio_sender_number
        if not (self.settings.twilio_account_sid and self.settings.twilio_auth_token and from_number):
            return ProviderSendResult(success=False, error="Twilio credentials not configured")

        try:
            client = self._get_client()
            message = await asyncio.to_thread(
                client.messages.create, to=destination, from_=from_number, body=body
            )
        except TwilioRestException as e:
            logger.warning(
                "Twilio rejected message",
                to=mask_phone(destination),
                status_code=e.status,
                twilio_code=e.code,
            )
            return ProviderSendResult(success=False, error=e.msg or str(e))
        except Exception as e:
            logger.warning("Twilio request failed", to=mask_phone(destination), error=str(e))
            return ProviderSendResult(success=False, error=f"Twilio request failed: {str(e)}")

        logger.info("Twilio accepted message", to=mask_phone(destination), message_sid=message.sid)
        return ProviderSendResult(success=True, message_id=message.sid, status=message.status)
