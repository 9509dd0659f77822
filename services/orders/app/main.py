"""
Grocery orders service
Order lifecycle REST API, catalog endpoints and live order updates over WebSocket
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from app.core_settings import get_settings
from app.api.routes import router as orders_router
from app.api.catalog import products_router, categories_router
from app.api.riders import router as riders_router
from app.domain.errors import OrderError
from app.infrastructure.db import engine, init_models
from app.realtime.notifier import RealtimeNotifier
from app.realtime.ws import router as realtime_router

settings = get_settings()

SERVICE_NAME = settings.SERVICE_NAME
SERVICE_VERSION = settings.SERVICE_VERSION
SERVICE_DESCRIPTION = "Grocery order lifecycle microservice"

setup_logging(
    service_name=SERVICE_NAME,
    level=settings.LOG_LEVEL,
    environment=os.getenv("ENVIRONMENT", "development"),
    version=SERVICE_VERSION,
)

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info(f"Starting {SERVICE_NAME} version {SERVICE_VERSION}")

    try:
        init_models()
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    app.state.notifier = RealtimeNotifier()
    logger.info(f"{SERVICE_NAME} started successfully")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")

app = FastAPI(
    title=SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

health_service = ServiceHealth(
    SERVICE_NAME,
    engine,
    SERVICE_VERSION,
    gauges={"realtime:connections": lambda: app.state.notifier.connection_count},
)
app.include_router(health_service.create_health_router())

app.include_router(orders_router)
app.include_router(products_router)
app.include_router(categories_router)
app.include_router(riders_router)
app.include_router(realtime_router)

@app.get("/")
async def root():
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs",
        "realtime": "/ws"
    }
