"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from arbiter import __version__
from arbiter.config import get_settings
from arbiter.core.reference import load_reference_snapshot
from arbiter.middleware.error_handler import setup_error_handlers

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("arbiter.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events - startup and shutdown."""
    from arbiter.database.engine import close_db, init_db

    await init_db()
    logger.info("Database initialized")

    app.state.reference = load_reference_snapshot(settings.REFERENCE_DATA_PATH or None)

    yield

    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title="Combat Arbiter",
    description="Turn-based combat rules engine for agent-played tabletop RPG sessions",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, type(e).__name__, e)
        raise
    logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handlers(app, debug=settings.DEBUG)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "online", "service": "Combat Arbiter", "version": __version__}


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "debug_mode": settings.DEBUG,
        "reference_loaded": getattr(app.state, "reference", None) is not None,
    }


# Routes
from arbiter.api.routes import actions, characters, combat, rules  # noqa: E402

app.include_router(combat.router, prefix="/api/combat", tags=["combat"])
app.include_router(actions.router, prefix="/api/actions", tags=["actions"])
app.include_router(characters.router, prefix="/api/characters", tags=["characters"])
app.include_router(rules.router, prefix="/api", tags=["rules"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "arbiter.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
