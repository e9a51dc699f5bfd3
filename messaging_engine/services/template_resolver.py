"""
SMS template resolution.

Picks the template text for a message purpose from, in priority order: a
direct custom message, a campaign condition (or campaign opt-in) override, the
client's default template, and finally the built-in system default.
"""

from typing import Dict, Optional

import structlog

from messaging_engine.database.messaging_repository import MessagingRepository
from messaging_engine.models.templates import (
    TemplateResolutionRequest,
    TemplateResolutionResult,
    TemplateSource,
    TemplateType,
)

logger = structlog.get_logger(__name__)

SYSTEM_DEFAULT_TEMPLATES: Dict[TemplateType, str] = {
    TemplateType.GIFT_CARD_DELIVERY: (
        "Hi {first_name}! Your ${value} {brand} gift card is ready. "
        "Code: {code}. Thanks for choosing {client_name}!"
    ),
    TemplateType.OPT_IN_REQUEST: (
        "This is {client_name}. Reply YES to receive your gift card and "
        "marketing messages for 30 days. Reply STOP to opt out."
    ),
    TemplateType.OPT_IN_CONFIRMATION: (
        "Thank you for opting in! You'll receive your gift card shortly. "
        "Reply STOP at any time to unsubscribe."
    ),
    TemplateType.MARKETING: "{message}",
}

CLIENT_TEMPLATE_NAMES: Dict[TemplateType, str] = {
    TemplateType.GIFT_CARD_DELIVERY: "gift_card_delivery",
    TemplateType.OPT_IN_REQUEST: "opt_in_request",
    TemplateType.OPT_IN_CONFIRMATION: "opt_in_confirmation",
    TemplateType.MARKETING: "default",
}


def _non_blank(value: Optional[str]) -> bool:
    return bool(value and value.strip())


class TemplateResolver:
    """Resolves SMS template text through the override hierarchy."""

    def __init__(self, repository: MessagingRepository):
        self.repository = repository

    async def resolve(self, request: TemplateResolutionRequest) -> TemplateResolutionResult:
        """
        Resolve the template for a send.

        Storage failures at any tier are logged and treated as "no override".

        Args:
            request: Message purpose plus the identifiers that may carry overrides

        Returns:
            Template text and the tier it came from
        """
        template_type = request.template_type

        if _non_blank(request.custom_message):
            logger.debug("Using custom message", template_type=template_type.value)
            return TemplateResolutionResult(template=request.custom_message, source=TemplateSource.CUSTOM)

        if request.condition_id and template_type == TemplateType.GIFT_CARD_DELIVERY:
            try:
                condition = await self.repository.get_condition_sms_fields(request.condition_id)
            except Exception as e:
                logger.warning("Condition template lookup failed", condition_id=request.condition_id, error=str(e))
                condition = None

            if condition and _non_blank(condition.get("sms_template")):
                logger.debug("Using condition-level template", condition_id=request.condition_id)
                return TemplateResolutionResult(template=condition["sms_template"], source=TemplateSource.CONDITION)

        if request.campaign_id and template_type == TemplateType.OPT_IN_REQUEST:
            try:
                opt_in_message = await self.repository.get_campaign_opt_in_message(request.campaign_id)
            except Exception as e:
                logger.warning("Campaign opt-in lookup failed", campaign_id=request.campaign_id, error=str(e))
                opt_in_message = None

            if _non_blank(opt_in_message):
                logger.debug("Using campaign opt-in message", campaign_id=request.campaign_id)
                return TemplateResolutionResult(template=opt_in_message, source=TemplateSource.CONDITION)

        try:
            client_template = await self.repository.get_default_client_template(
                request.client_id, CLIENT_TEMPLATE_NAMES[template_type]
            )
        except Exception as e:
            logger.warning("Client template lookup failed", client_id=request.client_id, error=str(e))
            client_template = None

        if client_template and _non_blank(client_template.get("body_template")):
            logger.debug("Using client default template", client_id=request.client_id)
            return TemplateResolutionResult(template=client_template["body_template"], source=TemplateSource.CLIENT)

        logger.debug("Using system default template", template_type=template_type.value)
        return TemplateResolutionResult(
            template=SYSTEM_DEFAULT_TEMPLATES[template_type], source=TemplateSource.SYSTEM
        )

    async def resolve_link_url(self, client_id: str, condition_id: Optional[str] = None) -> Optional[str]:
        """
        Resolve the gift card link URL: condition override, then client default.

        Returns:
            Link URL template, or None to fall back to the card code
        """
        if condition_id:
            try:
                condition = await self.repository.get_condition_sms_fields(condition_id)
            except Exception as e:
                logger.warning("Condition link lookup failed", condition_id=condition_id, error=str(e))
                condition = None

            if condition and _non_blank(condition.get("sms_link_url")):
                return condition["sms_link_url"]

        try:
            client_template = await self.repository.get_default_client_template(
                client_id, CLIENT_TEMPLATE_NAMES[TemplateType.GIFT_CARD_DELIVERY]
            )
        except Exception as e:
            logger.warning("Client link lookup failed", client_id=client_id, error=str(e))
            client_template = None

        if client_template and _non_blank(client_template.get("sms_delivery_link_url")):
            return client_template["sms_delivery_link_url"]

        return None

    async def fetch_client_name(self, client_id: str) -> str:
        """Client display name, or an empty string when unknown."""
        try:
            client = await self.repository.get_client(client_id)
        except Exception as e:
            logger.warning("Client name lookup failed", client_id=client_id, error=str(e))
            return ""

        return (client or {}).get("name") or ""
