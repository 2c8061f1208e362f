"""
main.py
Tutor Connect API entry point: logging, lifespan, middleware, error
handlers, operational routes and the service routers.
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from logging import LogRecord

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import func, select, text

import config.redis_client as redis_state
from config.database import close_db, get_db_context, init_db
from config.redis_client import close_redis, init_redis
from config.settings import settings
from shared.models.models import Subject
from shared.utils.errors import AppError

from services.admin.router import router as admin_router
from services.auth.router import router as auth_router
from services.booking.router import router as booking_router
from services.dashboard.router import router as dashboard_router
from services.review.router import router as review_router
from services.search.router import router as search_router
from services.student.router import router as student_router
from services.tutor.router import router as tutor_router
from services.wallet.router import router as wallet_router

ROUTERS = (
    auth_router,
    student_router,
    tutor_router,
    search_router,
    booking_router,
    wallet_router,
    review_router,
    dashboard_router,
    admin_router,
)

UNLIMITED_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json", "/metrics"})

SEED_SUBJECTS = (
    "Mathematics", "Physics", "Chemistry", "Biology", "English",
    "Amharic", "History", "Geography", "Computer Science", "Economics",
)


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)


# ── Lifespan ─────────────────────────────────────────────────

async def seed_subjects() -> None:
    """Fill an empty subject table with the default catalogue."""
    async with get_db_context() as db:
        if await db.scalar(select(func.count(Subject.id))):
            return
        db.add_all(Subject(name=name) for name in SEED_SUBJECTS)
    logger.info(f"Seeded {len(SEED_SUBJECTS)} subjects")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} ({settings.APP_ENV})")
    await init_db()
    await init_redis()
    if settings.APP_ENV == "development":
        await seed_subjects()
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} ready")

    yield

    await close_redis()
    await close_db()
    logger.info("Shutdown complete")


# ── Middleware ───────────────────────────────────────────────

def _register_middleware(app: FastAPI) -> None:
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=["*"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)

    @app.middleware("http")
    async def tag_request(request: Request, call_next):
        """Propagate or mint X-Request-ID and report X-Process-Time."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{(time.perf_counter() - started) * 1000:.2f}ms"
        return response

    @app.middleware("http")
    async def limit_anonymous(request: Request, call_next):
        """Per-IP budget for requests without a bearer token. Fails open."""
        client = redis_state.redis_client
        anonymous = not request.headers.get("Authorization", "").startswith("Bearer ")
        if client is None or not anonymous or request.url.path in UNLIMITED_PATHS:
            return await call_next(request)

        ip = request.client.host if request.client else "unknown"
        key = f"rate:unauth:{ip}"
        try:
            hits = await client.incr(key)
            if hits == 1:
                await client.expire(key, 60)
        except Exception as e:
            logger.error(f"Rate limit check failed: {e}")
            return await call_next(request)

        if hits > settings.RATE_LIMIT_UNAUTH_PER_MINUTE:
            logger.warning(f"Rate limit exceeded for {ip}")
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Please slow down.", "code": "rate_limited"},
                headers={"Retry-After": "60"},
            )
        return await call_next(request)


# ── Error handlers ───────────────────────────────────────────

def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        request_id = getattr(request.state, "request_id", None)
        log = logger.error if exc.status_code >= 500 else logger.info
        log(f"[{request_id}] {type(exc).__name__}: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        """Anything unexpected is a 500; details only leak in DEBUG."""
        request_id = getattr(request.state, "request_id", None)
        logger.error(f"[{request_id}] Unhandled {type(exc).__name__}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "detail": str(exc) if settings.DEBUG else "An internal server error occurred",
                "code": "internal_error",
                "request_id": request_id,
            },
        )


# ── Operational routes ───────────────────────────────────────

async def _probe_database() -> bool:
    try:
        async with get_db_context() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Health probe: database unreachable: {e}")
        return False
    return True


async def _probe_redis() -> bool:
    if redis_state.redis_client is None:
        return False
    try:
        await redis_state.redis_client.ping()
    except Exception as e:
        logger.warning(f"Health probe: redis unreachable: {e}")
        return False
    return True


def _register_operational_routes(app: FastAPI) -> None:
    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health():
        """200 when every dependency answers, 503 with the same body otherwise."""
        deps = {"database": await _probe_database(), "redis": await _probe_redis()}
        body = {
            "status": "ok" if all(deps.values()) else "degraded",
            "version": settings.APP_VERSION,
            **{name: "ok" if up else "error" for name, up in deps.items()},
        }
        return JSONResponse(content=body, status_code=200 if all(deps.values()) else 503)

    @app.get("/", include_in_schema=False)
    async def service_info():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }


# ── App factory ──────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Tutor Connect API

- **Auth**: email/password registration, JWT access tokens, sign-out deny-list
- **Search**: approved tutors by subject, city, price, mode, gender and rating
- **Bookings**: PENDING → ACCEPTED → COMPLETED, with the price held in escrow
- **Wallet**: deposits, withdrawals and an append-only transaction ledger
- **Admin**: tutor verification, suspensions and platform stats

Protected endpoints take `Authorization: Bearer <access_token>` from `POST /auth/login`.
        """,
        lifespan=lifespan,
    )

    _register_middleware(app)
    _register_error_handlers(app)
    _register_operational_routes(app)
    for router in ROUTERS:
        app.include_router(router)

    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
    )
