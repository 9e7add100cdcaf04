import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware

from .coaching_routes import router as coaching_router
from .config import Settings, get_settings
from .db import create_all, dispose_engine, get_engine
from .db.monitoring import get_pool_snapshot
from .engine import build_coaching_engine
from .logging_config import configure_logging
from .session_routes import router as session_router


configure_logging()
logger = logging.getLogger(__name__)


def _uses_sqlite(settings: Settings) -> bool:
    return bool(settings.database_url) and settings.database_url.startswith("sqlite")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger.info("Backend starting with persistence mode: %s", settings.cadence_persistence_mode)
    logger.info("OpenAI API key configured: %s", bool(settings.openai_api_key))
    if settings.cadence_persistence_mode == "database":
        if not settings.database_url:
            logger.error("CADENCE_DATABASE_URL is not set; database-backed requests will fail.")
        elif _uses_sqlite(settings):
            # SQLite deployments skip alembic and build the schema in place.
            await create_all()
    app.state.coaching_engine = build_coaching_engine(settings)
    try:
        yield
    finally:
        app.state.coaching_engine = None
        await dispose_engine()


app = FastAPI(title="Cadence Coach Backend", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(coaching_router)
app.include_router(session_router)


@app.get("/healthz")
def health(request: Request) -> Dict[str, Any]:
    engine = getattr(request.app.state, "coaching_engine", None)
    return {"status": "ok", "engine_ready": engine is not None}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    try:
        engine = get_engine()
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {
        "status": "ok",
        "pool": get_pool_snapshot(engine),
        "persistence_mode": settings.cadence_persistence_mode,
    }
