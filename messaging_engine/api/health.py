"""
Health check endpoint for the Messaging Delivery Engine.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Request

from messaging_engine.core.config import get_settings
from messaging_engine.core.dependencies import get_provider_availability, get_repository
from messaging_engine.core.logging import get_logger
from messaging_engine.database.messaging_repository import MessagingRepository
from messaging_engine.models.provider import SMSProvider
from messaging_engine.models.schemas import HealthResponse
from messaging_engine.services.providers.availability import ProviderAvailability
from messaging_engine.utils.encryption import is_encryption_configured

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    repository: MessagingRepository = Depends(get_repository),
    availability: ProviderAvailability = Depends(get_provider_availability),
):
    """
    Liveness check.

    Reports whether storage and each carrier are configured. The service is
    ``degraded`` when no carrier is configured; it still answers requests.
    """
    settings = get_settings()
    providers = {provider.value: availability.is_available(provider) for provider in SMSProvider}

    checks = {
        "storage_configured": repository.client is not None,
        "encryption_configured": is_encryption_configured(),
        "providers": providers,
    }
    status = "healthy" if any(providers.values()) else "degraded"

    logger.info(
        "Health check completed",
        status=status,
        correlation_id=request.headers.get("X-Correlation-ID"),
    )

    return HealthResponse(
        status=status,
        version=settings.service_version,
        timestamp=datetime.utcnow(),
        checks=checks,
    )
