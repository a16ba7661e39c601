"""
FastAPI application entry point.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import payments as payments_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.services.session_registry import SessionRegistry
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from core.settings import payment_settings
from infrastructure.external.payments import get_payment_status_client


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan"""
    app.state.payment_client = get_payment_status_client(payment_settings)
    app.state.payment_registry = SessionRegistry()
    logger.info(
        "payment_service_initialized",
        backend=payment_settings.backend.base_url,
        poll_interval=payment_settings.session.poll_interval_seconds,
        payment_window=payment_settings.session.payment_window_seconds,
    )

    yield

    await app.state.payment_registry.close_all()
    await app.state.payment_client.aclose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="PayOS QR payment sessions: create, poll, count down, cancel and retry",
)

# middleware runs bottom-up: request id first, then logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    """API root"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check"""
    return success_response(
        data={"status": "healthy", "active_sessions": len(app.state.payment_registry)},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
