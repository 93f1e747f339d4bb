import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request

from firebase_webhooks.core.config import Settings, get_settings
from firebase_webhooks.core.errors import (
    PayloadTooLarge,
    WebhookError,
    install_error_handlers,
)
from firebase_webhooks.middleware.body_size import BodySizeLimitMiddleware
from firebase_webhooks.middleware.security_headers import SecurityHeadersMiddleware
from firebase_webhooks.schemas.events import (
    WEBHOOK_PREFIX,
    VerifiedEvent,
    WebhookEndpoint,
    WebhookRequest,
)
from firebase_webhooks.services import signature
from firebase_webhooks.services.directory import (
    HttpUserDirectory,
    InMemoryUserDirectory,
    UserDirectory,
)
from firebase_webhooks.services.rate_limit import RateLimiter, client_identity
from firebase_webhooks.services.router import EventRouter

logger = logging.getLogger(__name__)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        return RateLimiter.from_redis_url(
            settings.redis_url,
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return RateLimiter.in_memory(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def build_directory(settings: Settings) -> HttpUserDirectory | InMemoryUserDirectory:
    if settings.downstream_url:
        return HttpUserDirectory.from_url(
            settings.downstream_url, timeout=settings.downstream_timeout_seconds
        )
    logger.warning("DOWNSTREAM_URL not set, user events are kept in memory only")
    return InMemoryUserDirectory()


# ---------- dependencies ----------
def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_event_router(request: Request) -> EventRouter:
    return request.app.state.event_router


def create_app(
    settings: Settings | None = None,
    directory: UserDirectory | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """
    Build the webhook receiver.

    ``directory`` and ``rate_limiter`` are built from settings when omitted;
    only components built here are closed on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level.upper())
        owned = []
        limiter = rate_limiter
        if limiter is None:
            limiter = build_rate_limiter(settings)
            owned.append(limiter.close)
        users = directory
        if users is None:
            users = build_directory(settings)
            owned.append(users.aclose)

        app.state.rate_limiter = limiter
        app.state.event_router = EventRouter(
            users, timeout=settings.downstream_timeout_seconds
        )
        logger.info(
            f"Webhook receiver ready: rate limit {settings.rate_limit_max_requests}"
            f"/{settings.rate_limit_window_seconds}s ({settings.rate_limit_backend})"
        )
        try:
            yield
        finally:
            for close in owned:
                try:
                    await close()
                except Exception:
                    logger.exception("Error while closing webhook resources")

    app = FastAPI(
        title="Firebase Webhook Receiver",
        description="Receives signed Firebase user lifecycle webhooks",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(SecurityHeadersMiddleware)
    install_error_handlers(app)

    @app.get(f"{WEBHOOK_PREFIX}/health")
    async def health():
        return {"status": "ok"}

    @app.post(f"{WEBHOOK_PREFIX}/{{endpoint}}")
    async def receive_webhook(
        endpoint: str,
        request: Request,
        settings: Settings = Depends(get_app_settings),
        limiter: RateLimiter = Depends(get_rate_limiter),
        router: EventRouter = Depends(get_event_router),
    ):
        # Raw bytes are read before any parsing so the HMAC sees the wire body
        webhook = WebhookRequest(
            body=await request.body(),
            headers=request.headers,
            endpoint=endpoint,
            client=client_identity(request, settings.trust_forwarded_for),
        )
        try:
            return await handle_webhook(webhook, settings, limiter, router)
        except WebhookError as e:
            logger.warning(
                f"Rejected {webhook.endpoint} from {webhook.client}: "
                f"{e.status_code} {e.reason}"
            )
            raise

    return app


async def handle_webhook(
    webhook: WebhookRequest,
    settings: Settings,
    limiter: RateLimiter,
    router: EventRouter,
) -> dict:
    if len(webhook.body) > settings.max_body_bytes:
        raise PayloadTooLarge(f"Body of {len(webhook.body)} bytes")

    endpoint = WebhookEndpoint.resolve(webhook.endpoint)
    signed = signature.verify_headers(
        webhook.body, settings.firebase_webhook_secret, webhook.headers
    )
    await limiter.check(webhook.client)
    event = VerifiedEvent.parse(endpoint, signed)
    return await router.dispatch(endpoint, event)


app = create_app()
