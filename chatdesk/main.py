import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from chatdesk.api.router import api_router
from chatdesk.core.config import get_settings
from chatdesk.core.db import close_engine, get_session_factory, init_engine, initialize_database
from chatdesk.core.logging_config import configure_logging
from chatdesk.core.rate_limit import InMemoryRateLimiter, RateLimitRule, client_key
from chatdesk.infra.realtime import InMemoryRealtimeHub
from chatdesk.integrations.completion import HttpCompletionBackend
from chatdesk.integrations.messengers import PlatformMessenger
from chatdesk.services.history_cache import HistoryCache
from chatdesk.services.response_generator import GeneratorOptions, ResponseGenerator
from chatdesk.services.telemetry import APP_VERSION, TelemetryReporter

settings = get_settings()
settings.validate_security_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)

API_PREFIX = "/api"
UNLIMITED_PREFIXES = ("/api/v1/webhooks", "/api/v1/health")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize infrastructure
    engine = init_engine()
    app.state.db_engine = engine
    await initialize_database(engine)

    http_client = httpx.AsyncClient(timeout=settings.platform_timeout_seconds)
    app.state.http_client = http_client
    app.state.realtime_hub = InMemoryRealtimeHub()
    app.state.rate_limiter = InMemoryRateLimiter()
    app.state.history_cache = HistoryCache(
        max_keys=settings.history_cache_max_keys,
        max_messages=settings.history_cache_max_messages,
        ttl_seconds=settings.history_cache_ttl_seconds,
    )

    backend = HttpCompletionBackend(
        client=http_client,
        base_url=settings.completion_base_url,
        api_key=settings.completion_api_key,
        model=settings.completion_model,
        timeout_seconds=settings.completion_timeout_seconds,
    )
    if not backend.is_configured:
        logger.warning("Completion API key is not set; AI replies are disabled")
    app.state.response_generator = ResponseGenerator(
        backend,
        GeneratorOptions(
            history_window=settings.completion_history_window,
            max_tokens=settings.completion_max_tokens,
            temperature=settings.completion_temperature,
            presence_penalty=settings.completion_presence_penalty,
            frequency_penalty=settings.completion_frequency_penalty,
            max_reply_chars=settings.completion_max_reply_chars,
        ),
    )
    app.state.messenger = PlatformMessenger(http_client, timeout=settings.platform_timeout_seconds)

    telemetry = TelemetryReporter(settings, http_client, get_session_factory())
    telemetry_task = telemetry.start()
    logger.info("chatdesk %s started (%s)", APP_VERSION, settings.app_env)

    yield

    # Graceful shutdown
    if telemetry_task is not None:
        telemetry_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await telemetry_task
    await http_client.aclose()
    await close_engine(engine)
    logger.info("chatdesk stopped")


app = FastAPI(
    title="Chatdesk Support API",
    version=APP_VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)


def _error_response(status_code: int, error: str, details: list | None = None) -> JSONResponse:
    body: dict = {"success": False, "error": error}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = _error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg")}
        for error in exc.errors()
    ]
    return _error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", details)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server Error")


if settings.trusted_hosts:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.trusted_hosts,
    )

if settings.force_https:
    app.add_middleware(HTTPSRedirectMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def api_rate_limit(request: Request, call_next):
    path = request.url.path
    limiter: InMemoryRateLimiter | None = getattr(request.app.state, "rate_limiter", None)
    if (
        limiter is not None
        and path.startswith(API_PREFIX)
        and not path.startswith(UNLIMITED_PREFIXES)
    ):
        rule = RateLimitRule(
            limit=settings.api_rate_limit,
            window_seconds=settings.api_rate_window_seconds,
        )
        if not await limiter.allow(client_key(request, "api"), rule):
            return _error_response(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "Too many requests from this IP, please try again later.",
            )
    return await call_next(request)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault(
        "Referrer-Policy",
        "strict-origin-when-cross-origin",
    )
    response.headers.setdefault(
        "Permissions-Policy",
        "camera=(), microphone=(), geolocation=()",
    )
    if settings.force_https:
        response.headers.setdefault(
            "Strict-Transport-Security",
            "max-age=31536000; includeSubDomains",
        )
    return response


app.include_router(api_router, prefix=API_PREFIX)


@app.get("/", tags=["meta"])
async def root() -> dict[str, str]:
    return {"service": "chatdesk", "status": "ok"}
