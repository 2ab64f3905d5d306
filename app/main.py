"""
SubScout — subscription and free-trial tracker for Gmail.

Wires the FastAPI app: logging, session middleware, rate limiting, and the
routers. All business logic lives in services/.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware

from .config import settings
from .logging_config import setup_logging
from .rate_limit import limiter
from .routers import settings as settings_router
from .routers import subscriptions, sync, webhooks


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(f"SubScout starting (app_url={settings.app_url})")
    yield
    logger.info("SubScout shutting down")


app = FastAPI(title="SubScout", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    https_only=settings.app_url.startswith("https"),
)

app.include_router(webhooks.router)
app.include_router(sync.router)
app.include_router(settings_router.router)
app.include_router(subscriptions.router)
