"""
Security API
FastAPI application entry point

- Database handle built at startup, disposed at shutdown
- Optional expired-token sweeper with heartbeat
- Rate limiting with SlowAPI
- Error sanitization and security headers
- Health endpoint with DB ping
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from security_api import __version__
from security_api.api.routes import actions, audits, auth, memberships, owners, roles, tokens, users
from security_api.core.config import settings
from security_api.core.database import Database
from security_api.core.error_handler import ErrorSanitizationMiddleware, register_exception_handlers
from security_api.core.rate_limit import limiter, rate_limit_exceeded_handler
from security_api.core.security_headers import SecurityHeadersMiddleware
from security_api.services.session_service import SessionService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

_token_sweep_task: Optional[asyncio.Task] = None
_sweep_heartbeat: dict = {
    "last_run": None,
    "last_success": None,
    "tokens_deleted": 0,
    "errors": 0,
}


# ============== EXPIRED TOKEN SWEEPER ==============

async def run_token_sweep(database: Database):
    """Delete expired token rows and update heartbeat metrics."""
    _sweep_heartbeat["last_run"] = datetime.now(timezone.utc).isoformat()

    try:
        async with database.session() as db:
            deleted = await SessionService(db).sweep_expired()
        _sweep_heartbeat["last_success"] = datetime.now(timezone.utc).isoformat()
        _sweep_heartbeat["tokens_deleted"] += deleted
    except Exception as e:
        _sweep_heartbeat["errors"] += 1
        logger.error(f"Token sweep failed: {e}")


async def token_sweep_scheduler(database: Database):
    """Runs the sweep at the configured interval until cancelled during shutdown."""
    interval_seconds = settings.TOKEN_SWEEP_INTERVAL_MINUTES * 60
    logger.info(f"Token sweep scheduler started (interval: {settings.TOKEN_SWEEP_INTERVAL_MINUTES} minutes)")

    while True:
        await run_token_sweep(database)
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _token_sweep_task

    database = Database.from_settings(settings)
    app.state.database = database
    logger.info(f"{settings.APP_NAME} starting ({settings.ENVIRONMENT})")

    if settings.TOKEN_SWEEP_ENABLED:
        _token_sweep_task = asyncio.create_task(token_sweep_scheduler(database))
        logger.info("Token sweep scheduler ENABLED")
    else:
        logger.info("Token sweep scheduler DISABLED via config")

    yield

    if _token_sweep_task and not _token_sweep_task.done():
        _token_sweep_task.cancel()
        try:
            await _token_sweep_task
        except asyncio.CancelledError:
            logger.info("Token sweep scheduler cancelled")

    await database.dispose()


app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    description="""
## Security API

Multi-tenant access control backend.

### Features
- **Authentication**: bcrypt credentials, HS256 bearer JWTs, persisted session tokens
- **Grant catalog**: roles, actions and per-role capability grants
- **Memberships**: user-to-owner bindings with roles and direct action grants
- **Audit trail**: append-only record of every mutation

### Authentication
Use `/api/auth/login` to obtain a token and send it as `Authorization: Bearer <token>`.
Catalog, token and audit administration require the admin role.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Authentication", "description": "Registration, login, refresh and authorization checks"},
        {"name": "Users", "description": "Credential store"},
        {"name": "Roles", "description": "Roles and their capability grants"},
        {"name": "Actions", "description": "Action catalog and direct membership grants"},
        {"name": "Owners", "description": "Tenants"},
        {"name": "Memberships", "description": "User-to-owner bindings"},
        {"name": "Tokens", "description": "Persisted session tokens"},
        {"name": "Audits", "description": "Audit trail"},
    ],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
register_exception_handlers(app)

# Applies RATE_LIMIT_DEFAULT to every route without its own @limiter.limit
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(ErrorSanitizationMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

# Credentials cannot be combined with a wildcard origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(roles.router, prefix="/api/roles", tags=["Roles"])
app.include_router(actions.router, prefix="/api/actions", tags=["Actions"])
app.include_router(owners.router, prefix="/api/owners", tags=["Owners"])
app.include_router(memberships.router, prefix="/api/memberships", tags=["Memberships"])
app.include_router(tokens.router, prefix="/api/tokens", tags=["Tokens"])
app.include_router(audits.router, prefix="/api/audits", tags=["Audits"])


@app.get("/", tags=["Health"])
async def root():
    return {"name": settings.APP_NAME, "version": __version__, "docs": "/docs"}


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with an actual DB ping.
    Returns 503 if the database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "token_sweep": _sweep_heartbeat,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    database: Optional[Database] = getattr(app.state, "database", None)
    try:
        if database is None:
            raise RuntimeError("database not initialised")
        await database.ping()
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
