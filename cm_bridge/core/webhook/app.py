"""
FastAPI application factory for the webhook server.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from cm_bridge import __version__
from cm_bridge.config import get_config
from cm_bridge.core.rate_limiter import RateLimiter
from cm_bridge.core.telegram import TelegramClient
from cm_bridge.logging import get_logger, setup_logging
from cm_bridge.models.config import RelaySettings
from cm_bridge.models.webhook import IncomingRequest

from .handlers import WebhookHandler

logger = get_logger(__name__)

__all__ = ["build_handler", "create_app_from_config", "create_webhook_app"]

WEBHOOK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def build_handler(settings: RelaySettings) -> WebhookHandler:
    """
    Wire the production collaborators for ``settings``.

    Raises:
        RateLimitStorageError: If the rate limit storage root is unusable
    """
    return WebhookHandler(
        settings=settings,
        rate_limiter=RateLimiter.from_settings(settings),
        sender=TelegramClient(settings.telegram_api_key),
    )


async def to_incoming_request(request: Request) -> IncomingRequest:
    """Translate a Starlette request into the dispatcher's request model."""
    body = await request.body()
    return IncomingRequest.from_parts(
        method=request.method,
        headers=dict(request.headers),
        body=body,
        query=dict(request.query_params),
        client_identifier=request.client.host if request.client else None,
    )


def create_webhook_app(handler: WebhookHandler) -> FastAPI:
    """
    Create the FastAPI application around a ready handler.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting cm-bridge server",
            rate_limit=handler.rate_limiter.max_requests,
            window=handler.rate_limiter.time_window,
            signature_required=bool(handler.settings.signature),
        )
        yield
        close = getattr(handler.sender, "close", None)
        if callable(close):
            close()
        logger.info("cm-bridge server stopped")

    app = FastAPI(title="cm-bridge", version=__version__, lifespan=lifespan)
    app.state.handler = handler

    async def webhook(request: Request) -> Response:
        incoming = await to_incoming_request(request)
        # handle() blocks on file I/O and the Telegram call
        result = await run_in_threadpool(handler.handle, incoming)
        return Response(
            content=result.body,
            status_code=result.status_code,
            headers=result.headers,
        )

    async def health() -> dict:
        return {"status": "healthy", "version": __version__}

    app.get("/health")(health)
    app.api_route("/", methods=WEBHOOK_METHODS, include_in_schema=False)(webhook)
    app.api_route("/webhook", methods=WEBHOOK_METHODS)(webhook)

    return app


def create_app_from_config() -> FastAPI:
    """
    uvicorn factory: load configuration, set up logging, build the app.

    Raises:
        ConfigurationError: If required settings are missing or malformed
    """
    config = get_config()
    log_config = config.logging
    setup_logging(
        level=log_config.get("level", "INFO"),
        log_format=log_config.get("format", "json"),
        log_file=log_config.get("file"),
        max_bytes=log_config.get("max_bytes", 10485760),
        backup_count=log_config.get("backup_count", 5),
    )
    return create_webhook_app(build_handler(config.to_settings()))
