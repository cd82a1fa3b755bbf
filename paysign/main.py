"""
Paysign Gateway Service
FastAPI application entry point.
"""

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request

from paysign.config import settings
from paysign.routes import notifications_router
from paysign.utils.idempotency import close_redis


# Configurar logging estructurado
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.ENVIRONMENT == "production"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestión del ciclo de vida de la aplicación."""
    # Startup
    logger.info(
        "Starting Paysign Gateway Service",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        alipay_sandbox=settings.ALIPAY_SANDBOX,
    )

    yield

    # Shutdown
    logger.info("Shutting down Paysign Gateway Service")
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Servicio de notificaciones firmadas para Alipay y WeChat Pay",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Añade request_id a cada petición para trazabilidad."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

    # Bind request_id al logger
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "gateways": {
            "alipay": bool(settings.ALIPAY_APP_ID),
            "wechat": bool(settings.WECHAT_APP_ID),
        },
    }


# Incluir routers
app.include_router(notifications_router, prefix="/api/notifications", tags=["Notifications"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("paysign.main:app", host="0.0.0.0", port=8001, reload=True)
