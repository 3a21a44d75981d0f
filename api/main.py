"""Rental engine API: FastAPI entry point.

Registers middleware, routers, error handlers and lifecycle hooks.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.middleware import ActorMiddleware
from core.database import close_db, init_db
from core.logging_config import configure_logging
from core.observability.otel_setup import setup_otel
from verticals.rental.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CREATE_TABLES = os.getenv("CREATE_TABLES", "false").lower() == "true"
VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    configure_logging(LOG_LEVEL)
    setup_otel()
    if CREATE_TABLES:
        await init_db()

    logger.info("rental API started")
    yield
    await close_db()
    logger.info("rental API shut down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Rental Lifecycle Engine",
    description="Pickup, return and penalty processing for a clothing-rental point of sale",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ActorMiddleware)


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error("store unavailable", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable, please retry", "retryable": True},
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from verticals.rental.router import router as rental_router  # noqa: E402

app.include_router(rental_router, prefix="/api/rentals", tags=["Rentals"])


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}
