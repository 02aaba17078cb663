# src/botm/config.py

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, SecretStr

# ---- Load .env BEFORE reading any env vars ----
ENV_PATH = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseModel):
    spotify_client_id: str = ""
    spotify_client_secret: SecretStr = SecretStr("")
    spotify_redirect_uri: str = "http://127.0.0.1:8000/callback"
    app_secret_key: SecretStr = SecretStr("dev-secret")
    database_url: str = "sqlite:///./botm.db"

    # Basic auth for the scheduled /generate trigger
    generate_username: Optional[str] = None
    generate_password: Optional[SecretStr] = None

    top_tracks_time_range: str = "short_term"
    top_tracks_limit: int = 50
    http_timeout: float = 15.0
    batch_workers: int = 1
    log_level: str = "INFO"


def load_settings() -> Settings:
    load_dotenv(ENV_PATH, override=False)
    env = {
        "spotify_client_id": os.getenv("SPOTIFY_CLIENT_ID"),
        "spotify_client_secret": os.getenv("SPOTIFY_CLIENT_SECRET"),
        "spotify_redirect_uri": os.getenv("SPOTIFY_REDIRECT_URI"),
        "app_secret_key": os.getenv("APP_SECRET_KEY"),
        "database_url": os.getenv("DATABASE_URL"),
        "generate_username": os.getenv("GENERATE_USERNAME"),
        "generate_password": os.getenv("GENERATE_PASSWORD"),
        "top_tracks_time_range": os.getenv("TOP_TRACKS_TIME_RANGE"),
        "top_tracks_limit": os.getenv("TOP_TRACKS_LIMIT"),
        "http_timeout": os.getenv("HTTP_TIMEOUT"),
        "batch_workers": os.getenv("BATCH_WORKERS"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    # unset variables fall back to the model defaults
    return Settings(**{k: v for k, v in env.items() if v not in (None, "")})


@lru_cache
def get_settings() -> Settings:
    return load_settings()
