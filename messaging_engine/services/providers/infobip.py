"""
Infobip SMS sender over the Infobip HTTP API.
"""
from typing import Any, Dict, Optional

import httpx
import structlog

from messaging_engine.core.config import Settings, get_settings
from messaging_engine.models.provider import ProviderSendResult, ProviderSettings, SMSProvider
from messaging_engine.services.providers.base import SMSSender
from messaging_engine.utils.phone import mask_phone

logger = structlog.get_logger(__name__)

SEND_PATH = "/sms/2/text/advanced"
REJECTED_STATUS_GROUPS = {"REJECTED", "UNDELIVERABLE", "EXPIRED"}


class InfobipSender(SMSSender):
    """Sends SMS through ``POST {base_url}/sms/2/text/advanced``."""

    provider = SMSProvider.INFOBIP

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.http_client = http_client

    def _build_payload(self, destination: str, body: str, sender_id: Optional[str]) -> Dict[str, Any]:
        message: Dict[str, Any] = {"destinations": [{"to": destination}], "text": body}
        if sender_id:
            message["from"] = sender_id
        return {"messages": [message]}

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            data = response.json()
            service_exception = (data.get("requestError") or {}).get("serviceException") or {}
            if service_exception.get("text"):
                return str(service_exception["text"])
        except (ValueError, AttributeError, TypeError):
            pass
        return f"Infobip API error: HTTP {response.status_code}"

    @staticmethod
    def _first_message(response: httpx.Response) -> Optional[Dict[str, Any]]:
        """First entry of ``messages``, or None when the body has no usable shape."""
        try:
            messages = response.json().get("messages") or [{}]
            message = messages[0]
        except (ValueError, AttributeError, TypeError, KeyError, IndexError):
            return None
        return message if isinstance(message, dict) else None

    async def send(
        self,
        destination: str,
        body: str,
        provider_settings: Optional[ProviderSettings] = None,
    ) -> ProviderSendResult:
        """
        Send an SMS via Infobip.

        Args:
            destination: E.164 destination number
            body: Message text
            provider_settings: Stored policy; its base URL and sender id override configuration

        Returns:
            ProviderSendResult; never raises
        """
        api_key = self.settings.infobip_api_key
        if not api_key:
            return ProviderSendResult(success=False, error="Infobip API key not configured")

        base_url = (
            provider_settings.infobip_base_url if provider_settings else self.settings.infobip_base_url
        ).rstrip("/")
        sender_id = (
            provider_settings.infobip_sender_id if provider_settings else None
        ) or self.settings.infobip_sender_id

        headers = {
            "Authorization": f"App {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        payload = self._build_payload(destination, body, sender_id)

        try:
            if self.http_client is not None:
                response = await self.http_client.post(
                    f"{base_url}{SEND_PATH}", json=payload, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=self.settings.infobip_timeout_seconds) as client:
                    response = await client.post(
                        f"{base_url}{SEND_PATH}", json=payload, headers=headers
                    )
        except httpx.TimeoutException:
            logger.warning("Infobip request timed out", to=mask_phone(destination))
            return ProviderSendResult(success=False, error="Infobip request timed out")
        except httpx.HTTPError as e:
            logger.warning("Infobip request failed", to=mask_phone(destination), error=str(e))
            return ProviderSendResult(success=False, error=f"Infobip request failed: {str(e)}")

        if response.status_code >= 400:
            error = self._error_text(response)
            logger.warning(
                "Infobip rejected message",
                to=mask_phone(destination),
                status_code=response.status_code,
                error=error,
            )
            return ProviderSendResult(success=False, error=error)

        message = self._first_message(response)
        if message is None:
            logger.warning("Infobip response unreadable", to=mask_phone(destination))
            return ProviderSendResult(success=False, error="Infobip returned an unreadable response")

        status_info = message.get("status")
        if not isinstance(status_info, dict):
            status_info = {}
        group = status_info.get("groupName")
        if group in REJECTED_STATUS_GROUPS:
            error = status_info.get("description") or f"Infobip status {group}"
            return ProviderSendResult(success=False, message_id=message.get("messageId"), status=group, error=error)

        logger.info("Infobip accepted message", to=mask_phone(destination), message_id=message.get("messageId"))
        return ProviderSendResult(
            success=True,
            message_id=message.get("messageId"),
            status=status_info.get("name") or group,
        )
