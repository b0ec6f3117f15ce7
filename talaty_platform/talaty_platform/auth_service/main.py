"""
Talaty Auth Service - registration, login and session lifecycle.

Run with ``uvicorn --factory talaty_platform.talaty_platform.auth_service.main:create_app``.
Settings are loaded once at startup; a missing JWT secret or encryption key
stops the process before it serves a request.
"""
from contextlib import asynccontextmanager
from datetime import datetime
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import PasswordHasher
from .cipher import SensitiveDataCipher
from .config import Settings, load_settings
from .db import configure_database, init_db
from .errors import AuthError, CryptoError, RequestValidationFailed
from .notifications import Notifier
from .responses import error_response
from .routes import auth, health
from .tokens import TokenIssuer
from .utils.event_logger import configure_logging

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'self'",
}


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(RequestValidationFailed)
    async def validation_failed_handler(_request: Request, exc: RequestValidationFailed):
        return error_response(
            400, "Validation failed", "VALIDATION_ERROR",
            details=[error.to_dict() for error in exc.errors]
        )

    @app.exception_handler(AuthError)
    async def auth_error_handler(_request: Request, exc: AuthError):
        return error_response(401, exc.message, exc.code, headers={"WWW-Authenticate": "Bearer"})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict):
            return error_response(exc.status_code, exc.detail.get("message", ""), exc.detail.get("code"))
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(CryptoError)
    async def crypto_error_handler(request: Request, exc: CryptoError):
        logger.error("Crypto failure on %s %s", request.method, request.url.path)
        return error_response(500, "Internal server error", "INTERNAL_ERROR")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        message = str(exc) if settings.is_development else "Internal server error"
        return error_response(500, message, "INTERNAL_ERROR")


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings)
    configure_database(settings.DATABASE_URL)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """Initialize database on startup"""
        init_db()
        logger.info("Talaty auth service started (environment=%s)", settings.ENVIRONMENT)
        yield

    app = FastAPI(
        title="Talaty Auth Service",
        description="Registration, authentication and token lifecycle for the Talaty platform.",
        version="1.0.0",
        lifespan=lifespan
    )

    # Process-wide components, built once from the settings object
    app.state.settings = settings
    app.state.hasher = PasswordHasher(settings)
    app.state.tokens = TokenIssuer(settings)
    app.state.cipher = SensitiveDataCipher(settings.ENCRYPTION_KEY)
    app.state.notifier = Notifier(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "%s %s -> %s (%.1fms)",
            request.method, request.url.path, response.status_code, duration_ms
        )
        return response

    register_exception_handlers(app, settings)

    app.include_router(health.router)
    app.include_router(auth.router)

    @app.get("/")
    def root():
        """Root endpoint"""
        return {
            "service": "Talaty Auth Service",
            "version": "1.0.0",
            "status": "running",
            "health": "/health",
            "timestamp": datetime.utcnow().isoformat()
        }

    return app
