"""
Carrier credential API endpoints.

Reports which tier of the tenant hierarchy supplies a carrier account, tests
and stores accounts, and configures inbound webhooks on the resolved number.
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request

from messaging_engine.core.dependencies import (
    get_authorization_service,
    get_credential_hierarchy,
    get_credential_manager,
    get_credential_test_limiter,
    get_current_user_id,
    get_webhook_provisioner,
)
from messaging_engine.core.exceptions import ForbiddenError, RateLimitedError
from messaging_engine.models.schemas import (
    ApiResponse,
    ConfigureWebhooksRequest,
    CredentialStatusResponse,
    CredentialTestRequest,
    UpdateCredentialRequest,
)
from messaging_engine.models.tenancy import (
    CredentialSaveResult,
    CredentialTestResult,
    WebhookConfigResult,
)
from messaging_engine.services.authorization import AuthorizationService, validate_level_request
from messaging_engine.services.credential_manager import AttemptRateLimiter, CredentialManager
from messaging_engine.services.credentials import CredentialHierarchy
from messaging_engine.services.webhook_provisioner import WebhookProvisioner

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/credentials", tags=["credentials"])


def client_ip(request: Request) -> Optional[str]:
    """Caller address from the proxy headers, falling back to the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


@router.get("/status", response_model=ApiResponse[CredentialStatusResponse])
async def get_credential_status(
    level: str = Query(..., description="admin, agency, or client"),
    entity_id: Optional[str] = Query(None, description="Agency or client id"),
    user_id: str = Depends(get_current_user_id),
    authorization: AuthorizationService = Depends(get_authorization_service),
    hierarchy: CredentialHierarchy = Depends(get_credential_hierarchy),
):
    """
    Get the effective carrier configuration for a tier.

    Raises:
        ValidationError: If the level is unknown or the entity id is missing
        ForbiddenError: If the caller may not view this tier
    """
    credential_level = validate_level_request(level, entity_id)

    decision = await authorization.check_view_authorization(user_id, credential_level, entity_id)
    if not decision.authorized:
        raise ForbiddenError(decision.reason or "Not authorized", level=level, entity_id=entity_id)

    resolution = await hierarchy.resolve_with_chain(credential_level, entity_id)
    credential = resolution.credential

    status = CredentialStatusResponse(
        level=credential_level,
        entity_id=entity_id,
        active_level=credential.level if credential else None,
        active_name=credential.display_name if credential else None,
        phone_number=credential.from_number if credential else None,
        account_sid_last4=credential.account_sid[-4:] if credential else None,
        fallback_occurred=resolution.fallback_occurred,
        fallback_chain=resolution.fallback_chain,
    )

    logger.info(
        "Credential status resolved",
        level=credential_level.value,
        entity_id=entity_id,
        active_level=status.active_level.value if status.active_level else None,
    )

    return ApiResponse(
        success=True,
        data=status,
        message=None if credential else "No carrier configuration at any level",
        timestamp=datetime.utcnow(),
    )


@router.post("/webhooks", response_model=ApiResponse[WebhookConfigResult])
async def configure_webhooks(
    request: ConfigureWebhooksRequest,
    user_id: str = Depends(get_current_user_id),
    provisioner: WebhookProvisioner = Depends(get_webhook_provisioner),
):
    """
    Point the tier's carrier phone number at the platform callback endpoints.

    Raises:
        ForbiddenError: If the caller may not modify this tier
        NotConfiguredError: If no tier has a carrier account
        DecryptFailedError: If the stored secret cannot be decrypted
        WebhookConfigError: If the carrier lookup or update fails
    """
    result = await provisioner.configure_webhooks(user_id, request.level, request.entity_id)

    return ApiResponse(
        success=True,
        data=result,
        message="Webhooks configured",
        timestamp=datetime.utcnow(),
    )


@router.post("/test", response_model=ApiResponse[CredentialTestResult])
async def check_credentials(
    request: CredentialTestRequest,
    user_id: str = Depends(get_current_user_id),
    manager: CredentialManager = Depends(get_credential_manager),
    limiter: AttemptRateLimiter = Depends(get_credential_test_limiter),
):
    """
    Check a carrier account, and optionally a number on it, without saving.

    A rejected account is reported in the payload with ``success`` false.

    Raises:
        RateLimitedError: If the caller exceeded the per-minute test limit
    """
    if not limiter.allow(user_id):
        raise RateLimitedError(
            "Too many test attempts. Please wait a moment and try again.",
            retry_after=limiter.retry_after(user_id),
        )

    result = await manager.test_connection(request.account_sid, request.auth_token, request.phone_number)

    return ApiResponse(
        success=result.success,
        data=result,
        message="Connection verified" if result.success else result.error,
        timestamp=datetime.utcnow(),
    )


@router.put("/config", response_model=ApiResponse[CredentialSaveResult])
async def update_credentials(
    update: UpdateCredentialRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    manager: CredentialManager = Depends(get_credential_manager),
):
    """
    Store a carrier account at one tier of the hierarchy.

    Raises:
        ValidationError: If a value is malformed or the entity id is missing
        ForbiddenError: If the caller may not modify this tier
        VersionConflictError: If the edit was based on a stale version
        CredentialTestFailedError: If the carrier rejects the account or number
        NotConfiguredError: If the entity does not exist or encryption is not configured
    """
    result = await manager.save_credentials(user_id, update, ip_address=client_ip(request))

    return ApiResponse(
        success=True,
        data=result,
        message=f"Twilio configuration saved successfully for {update.level.value}",
        timestamp=datetime.utcnow(),
    )
