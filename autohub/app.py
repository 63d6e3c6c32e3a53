"""FastAPI application factory for the AutoHub backend."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from autohub.core.config import Settings, get_settings, is_loopback_origin
from autohub.core.errors import AppError
from autohub.core.logging import setup_logging
from autohub.core.mailer import resolve_smtp_secure
from autohub.repositories.analytics_store import AnalyticsStore
from autohub.repositories.auth_store import AuthStore
from autohub.repositories.cookie_store import CookieConsentStore
from autohub.repositories.email_store import EmailStore
from autohub.repositories.media_store import MediaStore
from autohub.repositories.site_store import SiteStore
from autohub.routers import analytics as analytics_router
from autohub.routers import auth as auth_router
from autohub.routers import cookies as cookies_router
from autohub.routers import email as email_router
from autohub.routers import health as health_router
from autohub.routers import media as media_router
from autohub.routers import site as site_router
from autohub.services.campaign_service import CampaignService
from autohub.services.subscription_service import SubscriptionService, sender_profile_missing_fields

logger = logging.getLogger(__name__)

LOOPBACK_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1)(:\d+)?"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject baseline security headers; uploaded media may be embedded cross-origin."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("Permissions-Policy", "camera=(), microphone=(), geolocation=()")
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
        if request.url.path.startswith("/uploads/"):
            response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        else:
            response.headers.setdefault("Cross-Origin-Resource-Policy", "same-site")
        response.headers.setdefault(
            "Content-Security-Policy",
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'",
        )
        if self._enforce_hsts and request.url.scheme == "https":
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains; preload")
        return response


class CachedStaticFiles(StaticFiles):
    def file_response(self, *args, **kwargs):
        resp = super().file_response(*args, **kwargs)
        # Upload names are unique per file, so contents never change.
        resp.headers["Cache-Control"] = "public, max-age=31536000, immutable"
        resp.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        return resp


def _configure_cors(app: FastAPI, settings: Settings) -> None:
    origins = list(settings.cors_origins)
    allow_loopback = not settings.is_production and any(is_loopback_origin(o) for o in origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_origin_regex=LOOPBACK_ORIGIN_REGEX if allow_loopback else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )


async def _log_smtp_readiness(app: FastAPI, settings: Settings) -> None:
    profile = await app.state.email_store.get_sender_profile()
    missing = sender_profile_missing_fields(profile)
    logger.info(
        "[email] subscriptionsEnabled=%s confirmationSendMode=%s smtp startup ready=%s host=%s port=%s "
        "secure=%s effectiveSecure=%s userSet=%s tlsRejectUnauthorized=%s fromEmail=%s missing=%s",
        settings.email_subscriptions_enabled,
        settings.email_confirm_mode,
        not missing,
        profile["smtpHost"] or "(empty)",
        profile["smtpPort"],
        profile["smtpSecure"],
        resolve_smtp_secure(profile["smtpPort"], profile["smtpSecure"]),
        bool(profile["smtpUser"].strip()),
        settings.smtp_tls_reject_unauthorized,
        profile["fromEmail"] or "(empty)",
        ",".join(missing) or "none",
    )


def create_app(storage_dir: Optional[Path] = None) -> FastAPI:
    """Factory compatible with uvicorn (``uvicorn autohub.app:create_app --factory``)."""
    setup_logging()
    settings = get_settings()
    root = Path(storage_dir or settings.storage_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await _log_smtp_readiness(app, settings)
        logger.info("API running on port %s (storage %s)", settings.port, root)
        yield

    app = FastAPI(title="AutoHub API", lifespan=lifespan)
    app.state.storage_dir = root
    app.state.media_store = MediaStore(root)
    app.state.analytics_store = AnalyticsStore(root)
    app.state.site_store = SiteStore(root)
    app.state.auth_store = AuthStore(root)
    app.state.email_store = EmailStore(root)
    app.state.cookie_store = CookieConsentStore(root)
    app.state.subscription_service = SubscriptionService(app.state.email_store, settings)
    app.state.campaign_service = CampaignService(app.state.email_store)

    _configure_cors(app, settings)
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.is_production)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))

    @app.exception_handler(AppError)
    async def app_error(request: Request, exc: AppError):
        return JSONResponse(exc.payload(), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse({"error": str(exc) or "Internal server error."}, status_code=500)

    app.mount("/uploads", CachedStaticFiles(directory=str(app.state.media_store.uploads_dir)), name="uploads")
    for module in (
        health_router,
        auth_router,
        media_router,
        site_router,
        analytics_router,
        cookies_router,
        email_router,
    ):
        app.include_router(module.router)
    return app
