import logging
import traceback
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from brokerdesk.config import settings
from brokerdesk.database import engine, init_models
from brokerdesk.middleware.logging_config import configure_logging
from brokerdesk.middleware.metrics import access_decisions_total
from brokerdesk.scoping import ScopeViolation

configure_logging(settings.log_level, settings.log_format)

from brokerdesk.api.auth import router as auth_router  # noqa: E402
from brokerdesk.api.organizations import router as organizations_router  # noqa: E402
from brokerdesk.api.users import router as users_router  # noqa: E402
from brokerdesk.api.agents import router as agents_router  # noqa: E402
from brokerdesk.api.policies import router as policies_router  # noqa: E402
from brokerdesk.api.applications import router as applications_router  # noqa: E402
from brokerdesk.api.dependents import router as dependents_router  # noqa: E402
from brokerdesk.api.client_assignments import router as client_assignments_router  # noqa: E402
from brokerdesk.api.access_requests import router as access_requests_router  # noqa: E402
from brokerdesk.api.points import router as points_router  # noqa: E402
from brokerdesk.api.rewards import router as rewards_router  # noqa: E402
from brokerdesk.api.referrals import router as referrals_router  # noqa: E402
from brokerdesk.api.achievements import router as achievements_router  # noqa: E402
from brokerdesk.api.dashboard import router as dashboard_router  # noqa: E402
from brokerdesk.api.metrics import router as metrics_router  # noqa: E402

logger = logging.getLogger("brokerdesk")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create missing tables (also verifies the DB connection)
    await init_models()
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="BrokerDesk",
    description="Multi-tenant insurance brokerage dashboard API",
    version="0.1.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# ── Security headers middleware ──────────────────────────────────────────────
from brokerdesk.middleware.security_headers import SecurityHeadersMiddleware  # noqa: E402

app.add_middleware(SecurityHeadersMiddleware)

# ── Request context middleware (request ID + timing) ─────────────────────────
from brokerdesk.middleware.request_context import RequestContextMiddleware  # noqa: E402

app.add_middleware(RequestContextMiddleware)

# ── Prometheus metrics middleware ────────────────────────────────────────────
if settings.metrics_enabled:
    from brokerdesk.middleware.metrics import PrometheusMiddleware  # noqa: E402

    app.add_middleware(PrometheusMiddleware)


@app.exception_handler(ScopeViolation)
async def scope_violation_handler(request: Request, exc: ScopeViolation):
    """A principal asked for another organization's rows."""
    access_decisions_total.labels(kind="scope", outcome="denied").inc()
    logger.warning(
        "Scope violation on %s %s: principal %s requested organization %r (allowed %r)",
        request.method, request.url.path, exc.principal_id, exc.requested, exc.allowed,
    )
    return JSONResponse(
        status_code=403,
        content={"detail": "You do not have access to this organization"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return detailed error info in development mode so 500s are debuggable."""
    tb = traceback.format_exc()
    logger.error(
        "Unhandled %s on %s %s: %s\n%s",
        type(exc).__name__, request.method, request.url.path, exc, tb,
    )
    detail = f"{type(exc).__name__}: {exc}"
    if settings.environment == "development":
        return JSONResponse(
            status_code=500,
            content={"detail": detail, "traceback": tb.splitlines()[-5:]},
        )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Register API routers
app.include_router(auth_router)
app.include_router(organizations_router)
app.include_router(users_router)
app.include_router(agents_router)
app.include_router(policies_router)
app.include_router(applications_router)
app.include_router(dependents_router)
app.include_router(client_assignments_router)
app.include_router(access_requests_router)
app.include_router(points_router)
app.include_router(rewards_router)
app.include_router(referrals_router)
app.include_router(achievements_router)
app.include_router(dashboard_router)
app.include_router(metrics_router)


# ── Health check ─────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health_check():
    components: dict = {}

    # Database
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        components["database"] = {"status": "connected"}
    except Exception as exc:
        components["database"] = {"status": "disconnected", "error": str(exc)}

    # Redis (only when sessions live there)
    if settings.session_backend == "redis":
        try:
            r = aioredis.from_url(settings.redis_url, decode_responses=True)
            await r.ping()
            await r.aclose()
            components["redis"] = {"status": "connected"}
        except Exception as exc:
            components["redis"] = {"status": "disconnected", "error": str(exc)}

    db_ok = components["database"]["status"] == "connected"
    redis_ok = components.get("redis", {"status": "connected"})["status"] == "connected"

    if db_ok and redis_ok:
        overall = "healthy"
    elif not db_ok:
        overall = "unhealthy"
    else:
        overall = "degraded"

    return {
        "status": overall,
        "environment": settings.environment,
        "components": components,
    }
