import logging
import sys
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from liftingtracker.api.v1 import auth, billing, dashboard, exercises, profile, registration, workouts

# Ensure app loggers print to stdout so you see them in the terminal
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logging.getLogger("liftingtracker").setLevel(logging.DEBUG)
from liftingtracker.config import settings
from liftingtracker.core.errors import AppError
from liftingtracker.db.session import init_db
from prometheus_client import make_asgi_app

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def scheduled_subscription_reconcile():
    """Pull subscription status from Stripe for every non-canceled local subscription."""
    from liftingtracker.db.session import async_session_maker
    from liftingtracker.services.stripe_service import reconcile_subscriptions

    async with async_session_maker() as session:
        changed = await reconcile_subscriptions(session)
        await session.commit()
    if changed:
        logger.info("Subscription reconcile: %d status change(s)", changed)


async def scheduled_draft_purge():
    """Delete registration drafts past their expiry."""
    from liftingtracker.db.session import async_session_maker
    from liftingtracker.services.registration import purge_expired_drafts

    async with async_session_maker() as session:
        await purge_expired_drafts(session)
        await session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_jwt_config()
    if settings.app_env == "production" and not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; subscription status relies on reconciliation only")
    await init_db()

    if settings.subscription_reconcile_hours > 0:
        scheduler.add_job(scheduled_subscription_reconcile, "interval", hours=settings.subscription_reconcile_hours)
    scheduler.add_job(scheduled_draft_purge, "cron", hour=3, minute=0)

    scheduler.start()
    yield
    scheduler.shutdown()


limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])

app = FastAPI(
    title="LiftingTracker Pro API",
    description="Workout logging, progress charts, registration wizard and Stripe subscriptions",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=500)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
        headers=exc.headers,
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if getattr(settings, "enable_hsts", False):
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()] if settings.cors_origins else ["*"]
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(auth.router, prefix="/api/v1")
app.include_router(registration.router, prefix="/api/v1")
app.include_router(profile.router, prefix="/api/v1")
app.include_router(workouts.router, prefix="/api/v1")
app.include_router(exercises.router, prefix="/api/v1")
app.include_router(billing.router, prefix="/api/v1")
app.include_router(dashboard.router, prefix="/api/v1")

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/health")
@limiter.exempt
def health(request: Request):
    return {"status": "ok"}
