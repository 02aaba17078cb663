# src/botm/main.py
import logging
import secrets
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.exc import SQLAlchemyError

from .auth import router as auth_router
from .config import Settings, get_settings
from .db import Base, SessionLocal, engine
from .generator import run_batch

logger = logging.getLogger(__name__)

UNAUTHORIZED_HEADERS = {"WWW-Authenticate": 'Basic realm="publish"'}


def configure_logging(level: str = "INFO") -> None:
    # no-op when the server (or a test runner) already configured logging
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings().log_level)
    # Make sure DB tables exist before serving
    Base.metadata.create_all(bind=engine)
    yield


# ---------- Create app ----------

app = FastAPI(title="BOTM – Bangers of the Month", lifespan=lifespan)
app.include_router(auth_router)

security = HTTPBasic(realm="publish")


# ---------- Simple root + health ----------

@app.get("/")
def root():
    return {"message": "Backend is live!", "service": "botm"}


@app.get("/health")
def health():
    return {"status": "ok", "service": "botm"}


# ---------- Monthly generation trigger ----------

def check_trigger_credentials(
    credentials: HTTPBasicCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.generate_username or settings.generate_password is None:
        logger.error("GENERATE_USERNAME / GENERATE_PASSWORD are not configured")
        raise HTTPException(status_code=500, detail="Generate trigger is not configured")

    user_ok = secrets.compare_digest(credentials.username.encode(), settings.generate_username.encode())
    password_ok = secrets.compare_digest(
        credentials.password.encode(), settings.generate_password.get_secret_value().encode()
    )
    if not (user_ok and password_ok):
        raise HTTPException(status_code=401, detail="Unauthorized", headers=UNAUTHORIZED_HEADERS)


@app.post("/generate", dependencies=[Depends(check_trigger_credentials)])
def generate(spotify_id: Optional[str] = None, settings: Settings = Depends(get_settings)):
    """
    Generate the BOTM playlists for all active users (or just ``spotify_id``).
    """
    try:
        report = run_batch(settings, spotify_id, session_factory=SessionLocal)
    except SQLAlchemyError as e:
        logger.error("Failed to get users from database: %s", e)
        raise HTTPException(status_code=500, detail="Failed to get users from database")

    if report.failed:
        raise HTTPException(
            status_code=500,
            detail={
                "message": f"Failed to generate BOTM for {len(report.failed)} of {report.attempted} users",
                "failed": sorted(report.failed),
            },
        )
    return {"ok": True, "message": f"Generated for {report.attempted} users", "attempted": report.attempted}
