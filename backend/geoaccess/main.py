"""geoaccess: FastAPI application."""
from contextlib import asynccontextmanager
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from geoaccess.config import settings
from geoaccess.database import AsyncSessionLocal, async_engine
from geoaccess.errors import AccessDenied, IdentityError, OnboardingRequired, ProfileWriteError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def refresh_directory(app: FastAPI) -> None:
    """Reload provinces / branches / departments into every open session."""
    from geoaccess.directory import load_directory

    try:
        async with AsyncSessionLocal() as db:
            directory = await load_directory(db)
    except Exception as e:
        logger.error(f"Directory refresh failed: {e}")
        return
    app.state.registry.set_directory(directory)


async def prune_idle_sessions(app: FastAPI) -> None:
    app.state.registry.prune_idle()


@asynccontextmanager
async def lifespan(app: FastAPI):
    from geoaccess.identity import PasswordIdentityProvider
    from geoaccess.registry import SessionRegistry
    from geoaccess.sources import SqlProfileSource

    logger.info("Starting geoaccess API...")

    # Verify DB connection
    try:
        async with async_engine.begin() as conn:
            await conn.exec_driver_sql("SELECT 1")
        logger.info("Database connection verified")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    profile_source = SqlProfileSource(AsyncSessionLocal)
    app.state.registry = SessionRegistry(
        PasswordIdentityProvider(AsyncSessionLocal),
        profile_source,
    )
    await refresh_directory(app)

    # Schedule jobs
    scheduler.add_job(
        prune_idle_sessions, "interval", minutes=5, args=[app], id="prune_idle_sessions"
    )
    scheduler.add_job(
        refresh_directory,
        "interval",
        minutes=settings.DIRECTORY_REFRESH_MINUTES,
        args=[app],
        id="refresh_directory",
    )
    scheduler.start()
    logger.info("Scheduled jobs started (session pruning, directory refresh)")

    logger.info("geoaccess API started successfully")
    yield

    # Shutdown
    scheduler.shutdown()
    app.state.registry.close_all()
    await profile_source.aclose()
    await async_engine.dispose()
    logger.info("geoaccess API shut down")


app = FastAPI(
    title="geoaccess",
    description="Role, permission and province/branch scoping engine",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Session-store errors -> HTTP
# ---------------------------------------------------------------------------


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError):
    code = status.HTTP_401_UNAUTHORIZED if exc.recoverable else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content={"detail": exc.to_dict()})


@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": str(exc), "province_id": exc.province_id},
    )


@app.exception_handler(OnboardingRequired)
async def onboarding_required_handler(request: Request, exc: OnboardingRequired):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc)},
    )


@app.exception_handler(ProfileWriteError)
async def profile_write_error_handler(request: Request, exc: ProfileWriteError):
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "Profile could not be saved"},
    )


# Import and register routers
from geoaccess.routes import auth, scope

app.include_router(auth.router)
app.include_router(scope.router)


@app.get("/api/health")
async def health_check():
    registry = getattr(app.state, "registry", None)
    return {
        "status": "healthy",
        "service": "geoaccess API",
        "version": "1.0.0",
        "sessions": len(registry) if registry is not None else 0,
    }
