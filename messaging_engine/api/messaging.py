"""
SMS API endpoints.

Outbound sends with template resolution and provider fallback, template
previews, and the provider selection policy read and write endpoints.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends

from messaging_engine.core.dependencies import (
    get_authorization_service,
    get_current_user_id,
    get_delivery_orchestrator,
    get_repository,
    get_settings_cache,
    get_template_resolver,
)
from messaging_engine.core.exceptions import ForbiddenError, SMSDeliveryError, ValidationError
from messaging_engine.core.logging import log_business_event, set_client_id
from messaging_engine.database.messaging_repository import MessagingRepository
from messaging_engine.models.provider import ActiveProviderConfig
from messaging_engine.models.schemas import (
    ApiResponse,
    ProviderSettingsUpdate,
    SendSMSRequest,
    SendSMSResponse,
    TemplatePreviewRequest,
    TemplatePreviewResponse,
)
from messaging_engine.models.templates import TemplateResolutionRequest, TemplateType
from messaging_engine.services.authorization import AuthorizationService
from messaging_engine.services.delivery import NOT_CONFIGURED, DeliveryOrchestrator
from messaging_engine.services.settings_cache import ProviderSettingsCache
from messaging_engine.services.template_resolver import TemplateResolver
from messaging_engine.utils.phone import mask_phone
from messaging_engine.utils.template_rendering import (
    estimate_shortened_length,
    get_segment_info,
    render_merge_tags,
    render_template,
    validate_template,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sms", tags=["sms"])


@router.post("/send", response_model=ApiResponse[SendSMSResponse])
async def send_sms(
    request: SendSMSRequest,
    user_id: str = Depends(get_current_user_id),
    resolver: TemplateResolver = Depends(get_template_resolver),
    orchestrator: DeliveryOrchestrator = Depends(get_delivery_orchestrator),
):
    """
    Resolve, render, and deliver an outbound SMS.

    Args:
        request: Destination, client, message purpose, and template variables
        user_id: Verified caller id
        resolver: Template resolver instance
        orchestrator: Delivery orchestrator instance

    Returns:
        Delivery outcome with the template source and segment count

    Raises:
        ValidationError: If the rendered message is empty
        SMSDeliveryError: If no provider delivered the message
    """
    set_client_id(request.client_id)
    logger.info(
        "SMS send requested",
        to=mask_phone(request.to),
        template_type=request.template_type.value,
        campaign_id=request.campaign_id,
        condition_id=request.condition_id,
    )

    resolution = await resolver.resolve(TemplateResolutionRequest(
        template_type=request.template_type,
        client_id=request.client_id,
        campaign_id=request.campaign_id,
        condition_id=request.condition_id,
        custom_message=request.custom_message,
    ))

    variables = request.variables.model_copy()
    if not variables.client_name and not variables.company:
        variables.client_name = await resolver.fetch_client_name(request.client_id) or None

    if request.template_type == TemplateType.GIFT_CARD_DELIVERY and not variables.link:
        link_url = await resolver.resolve_link_url(request.client_id, request.condition_id)
        if link_url:
            variables.link = render_template(link_url, variables)

    if request.template_type == TemplateType.MARKETING:
        merge_data = request.merge_data or {}
        # Merge tags go last so merge values are sent as written
        template = render_template(
            resolution.template, {**variables.model_dump(), **merge_data}, keep_merge_tags=True
        )
        body = render_merge_tags(template, merge_data)
    else:
        body = render_template(resolution.template, variables)

    if not body:
        raise ValidationError(
            "Rendered message is empty",
            field="custom_message",
            reason_code="EMPTY_MESSAGE",
            template_source=resolution.source.value,
        )

    delivery = await orchestrator.send(request.to, body)

    if not delivery.success:
        raise SMSDeliveryError(
            delivery.error or "SMS delivery failed",
            attempts=[attempt.model_dump(mode="json") for attempt in delivery.attempts],
            not_configured=delivery.error_code == NOT_CONFIGURED,
        )

    return ApiResponse(
        success=True,
        data=SendSMSResponse(
            delivery=delivery,
            template_source=resolution.source,
            message_length=len(body),
            segments=get_segment_info(len(body))["segments"],
        ),
        message=f"SMS sent via {delivery.provider.value}",
        timestamp=datetime.utcnow(),
    )


@router.post("/preview", response_model=ApiResponse[TemplatePreviewResponse])
async def preview_template(
    request: TemplatePreviewRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Render a template against sample variables without sending.

    Reports required placeholders the template lacks, the rendered length,
    and the length once the carrier shortens links.
    """
    check = validate_template(request.template, request.required_vars)
    rendered = render_template(request.template, request.variables)
    segments = get_segment_info(len(rendered))
    shortened = estimate_shortened_length(rendered)

    return ApiResponse(
        success=True,
        data=TemplatePreviewResponse(
            rendered=rendered,
            is_valid=check["is_valid"],
            missing_vars=check["missing_vars"],
            message_length=len(rendered),
            segments=segments["segments"],
            is_multipart=segments["is_multipart"],
            estimated_length=shortened["estimated_length"],
            estimated_segments=get_segment_info(shortened["estimated_length"])["segments"],
            url_count=shortened["url_count"],
        ),
        message=None if check["is_valid"] else "Template is missing required placeholders",
        timestamp=datetime.utcnow(),
    )


@router.get("/provider-config", response_model=ApiResponse[ActiveProviderConfig])
async def get_provider_config(
    user_id: str = Depends(get_current_user_id),
    orchestrator: DeliveryOrchestrator = Depends(get_delivery_orchestrator),
):
    """Get the provider policy, provider availability, and the provider the next send would use."""
    config = await orchestrator.get_active_provider_config()
    return ApiResponse(success=True, data=config, timestamp=datetime.utcnow())


@router.put("/provider-settings", response_model=ApiResponse[ActiveProviderConfig])
async def update_provider_settings(
    update: ProviderSettingsUpdate,
    user_id: str = Depends(get_current_user_id),
    authorization: AuthorizationService = Depends(get_authorization_service),
    repository: MessagingRepository = Depends(get_repository),
    settings_cache: ProviderSettingsCache = Depends(get_settings_cache),
    orchestrator: DeliveryOrchestrator = Depends(get_delivery_orchestrator),
):
    """
    Write the provider selection policy. Platform admins only.

    The settings cache is cleared before responding so the next send uses
    the new policy.

    Raises:
        ForbiddenError: If the caller is not a platform admin
        ValidationError: If no fields are supplied
    """
    if not await authorization.is_admin(user_id):
        raise ForbiddenError("Only platform admins can change SMS provider settings")

    values = update.model_dump(exclude_none=True, mode="json")
    if not values:
        raise ValidationError("No provider settings supplied", reason_code="EMPTY_UPDATE")

    await repository.update_provider_settings(values)
    settings_cache.clear_cache()

    log_business_event("sms_provider_settings_updated", changed_fields=sorted(values.keys()))

    config = await orchestrator.get_active_provider_config()
    return ApiResponse(
        success=True,
        data=config,
        message="Provider settings updated",
        timestamp=datetime.utcnow(),
    )
