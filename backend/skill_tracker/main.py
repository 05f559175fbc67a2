import logging
from typing import Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .config import get_settings
from .db.session import get_engine
from .logging_config import configure_logging
from .skill_routes import router as skill_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Skill Tracker Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(skill_router)

settings_snapshot = get_settings()
logger.info("Backend starting for user: %s", settings_snapshot.user_id)
logger.info("Database configured: %s", bool(settings_snapshot.database_url))


@app.get("/healthz")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/healthz/database")
def database_health() -> Dict[str, str]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"status": "ok"}
