"""
FastAPI application factory.

Uses lifespan context manager (preferred over on_event decorators in FastAPI 0.93+)
to handle startup/shutdown tasks cleanly.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from procurement.errors import ProcurementError, StorageError
from procurement.routers import admin, audit, health, invoices, purchase_orders
from procurement.settings import settings

# ── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting Procurement API [env=%s]", settings.environment)

    # Verify DB connectivity on startup (fail fast)
    from procurement.database import check_db_connection

    if not check_db_connection():
        logger.error("Database is not reachable on startup — check DATABASE_URL")
    else:
        logger.info("Database connection verified")

    yield  # ── Application runs here ──

    logger.info("Shutting down Procurement API")


# ── Error handling ────────────────────────────────────────────────────────────
async def procurement_error_handler(request: Request, exc: ProcurementError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    else:
        logger.info("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "message": exc.message},
    )


# ── App factory ───────────────────────────────────────────────────────────────
def create_app() -> FastAPI:
    app = FastAPI(
        title="Procurement API",
        description=(
            "Purchase orders, invoices and their reconciliation, reference data "
            "maintenance with duplicate merging, and an append-only audit log of "
            "every change."
        ),
        version="1.0.0",
        lifespan=lifespan,
        # Disable docs in production (enable for internal use or with auth)
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )

    app.add_exception_handler(ProcurementError, procurement_error_handler)

    # ── CORS ──────────────────────────────────────────────────────────────────
    # Dev: allow all origins. Staging/prod: explicit allowlist from ALLOWED_ORIGINS env var.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(audit.router)
    app.include_router(purchase_orders.router)
    app.include_router(invoices.router)
    app.include_router(admin.router)

    return app


app = create_app()
