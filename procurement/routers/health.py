"""Health check endpoint for the load balancer and uptime monitoring."""

from fastapi import APIRouter
from pydantic import BaseModel

from procurement.database import check_db_connection
from procurement.settings import settings

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    environment: str
    database: str
    version: str = "1.0.0"


@router.get("/health", response_model=HealthResponse, include_in_schema=False)
def health_check() -> HealthResponse:
    """Always 200; `status` is "degraded" when the database is unreachable."""
    db_ok = check_db_connection()
    return HealthResponse(
        status="ok" if db_ok else "degraded",
        environment=settings.environment,
        database="connected" if db_ok else "unreachable",
    )
