"""
Orderboard — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from orderboard.core.config import get_settings
from orderboard.core.errors import (
    NotFoundError,
    StaleWriteError,
    TransportError,
    ValidationError,
)
from orderboard.core.redis_client import close_redis
from orderboard.middleware.auth import JWTAuthMiddleware
from orderboard.api import health, menu, orders
from orderboard.api.deps import get_feed
from orderboard.services.catalog import CatalogService

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: first-run menu seed (skipped when the collection already has items)
    if settings.SEED_MENU_ON_STARTUP:
        try:
            await CatalogService(get_feed()).seed_if_empty()
        except TransportError as exc:
            logger.warning("Menu seed skipped, store unreachable: %s", exc)
    yield
    # Shutdown
    await close_redis()


app = FastAPI(
    title="Orderboard",
    description="Shared order ledger: checkout, lifecycle transitions and live order views.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Auth ──────────────────────────────────────────────────────────────────────
app.add_middleware(JWTAuthMiddleware)

# ── Prometheus Metrics ────────────────────────────────────────────────────────
if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")


# ── Domain errors → HTTP ──────────────────────────────────────────────────────
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(StaleWriteError)
async def stale_write_handler(request: Request, exc: StaleWriteError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Order is changing too fast, please retry."},
    )


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError):
    logger.error("Store unreachable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Order store unavailable. Please retry."},
    )


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(menu.router)
app.include_router(orders.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}


def run() -> None:
    uvicorn.run("orderboard.main:app", host=settings.HOST, port=settings.PORT)
