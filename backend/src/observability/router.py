"""Observability API endpoints.

Provides metrics, health checks, and readiness probes for monitoring.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from database import get_db
from dependencies import get_attachment_storage
from communications.ports import AttachmentStoragePort
from .health import (
    check_database_health,
    check_attachment_storage_health,
    get_overall_health,
    HealthStatus,
)
from .logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Observability"])


@router.get(
    "/metrics",
    summary="Prometheus metrics endpoint",
    description="Exposes Prometheus metrics for monitoring and alerting",
    include_in_schema=False,  # Hide from OpenAPI docs
)
def metrics():
    """Expose Prometheus metrics in exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get(
    "/health",
    summary="Health check endpoint",
    description="Returns health status of system components (database, attachment storage)",
    status_code=200,
)
async def health_check(
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[AttachmentStoragePort, Depends(get_attachment_storage)],
):
    """Check health of all system components.

    Returns 200 OK unless a component is unhealthy, in which case 503.
    """
    components = {
        "database": check_database_health(db),
        "attachment_storage": await check_attachment_storage_health(storage),
    }

    overall_status = get_overall_health(components)

    response_data = {
        "status": overall_status.value,
        "components": {
            name: {
                "status": comp.status.value,
                "message": comp.message,
                "latency_ms": comp.latency_ms,
            }
            for name, comp in components.items()
        }
    }

    status_code = 200 if overall_status != HealthStatus.UNHEALTHY else 503

    return JSONResponse(
        content=response_data,
        status_code=status_code
    )


@router.get(
    "/ready",
    summary="Readiness check endpoint",
    description="Returns readiness status (for Kubernetes readiness probes)",
    status_code=200,
)
def readiness_check(db: Annotated[Session, Depends(get_db)]):
    """Check if application is ready to serve traffic (database reachable)."""
    db_health = check_database_health(db)

    if db_health.status == HealthStatus.HEALTHY:
        return {
            "status": "ready",
            "message": "Application is ready to serve traffic"
        }
    return JSONResponse(
        content={
            "status": "not_ready",
            "message": db_health.message
        },
        status_code=503
    )
