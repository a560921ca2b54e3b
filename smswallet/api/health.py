"""
Health check endpoints for the SMS Wallet Command Service.
"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from smswallet.core.config import get_settings
from smswallet.core.dependencies import (
    get_registration_client,
    get_sms_gateway_client,
    get_wallet_client,
)
from smswallet.core.logging import get_logger
from smswallet.database import check_database
from smswallet.services.registration_service import RegistrationClient
from smswallet.services.sms_gateway import SMSGatewayClient
from smswallet.services.wallet_service import WalletClient

router = APIRouter()
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    uptime_seconds: float
    timestamp: datetime
    service_name: str


class DependenciesHealthResponse(BaseModel):
    """Dependencies health check response model."""

    database: bool
    circuit_breakers: Dict[str, Dict[str, Any]]
    overall_status: str
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Basic health check endpoint.

    Returns service status, version, and uptime.
    """
    settings = get_settings()
    start_time = getattr(request.app.state, "start_time", time.time())

    response = HealthResponse(
        status="healthy",
        version=settings.service_version,
        uptime_seconds=time.time() - start_time,
        timestamp=datetime.utcnow(),
        service_name=settings.service_name,
    )

    logger.info("Health check completed", status=response.status, uptime_seconds=response.uptime_seconds)
    return response


@router.get("/health/dependencies", response_model=DependenciesHealthResponse)
async def dependencies_health_check(
    wallet_client: WalletClient = Depends(get_wallet_client),
    registration_client: RegistrationClient = Depends(get_registration_client),
    sms_client: SMSGatewayClient = Depends(get_sms_gateway_client),
):
    """
    Health check endpoint for the database and collaborator circuits.

    ``healthy`` needs the database up and every circuit closed; an open
    circuit with a working database is ``degraded``.
    """
    database_healthy = check_database()
    circuit_breakers = {
        "wallet": wallet_client.get_circuit_breaker_status(),
        "registration": registration_client.get_circuit_breaker_status(),
        "sms_gateway": sms_client.get_circuit_breaker_status(),
    }

    if not database_healthy:
        overall_status = "unhealthy"
    elif all(status["is_available"] for status in circuit_breakers.values()):
        overall_status = "healthy"
    else:
        overall_status = "degraded"

    logger.info(
        "Dependencies health check completed",
        database=database_healthy,
        overall_status=overall_status,
    )

    return DependenciesHealthResponse(
        database=database_healthy,
        circuit_breakers=circuit_breakers,
        overall_status=overall_status,
        timestamp=datetime.utcnow(),
    )
