import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .db import get_db
from .errors import BotmError
from .spotify import SpotifyAPI, SpotifyOAuth
from .token_store import TokenStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["auth"])


def get_oauth(settings: Settings = Depends(get_settings)):
    oauth = SpotifyOAuth.from_settings(settings)
    try:
        yield oauth
    finally:
        oauth.close()


def get_api(settings: Settings = Depends(get_settings)):
    api = SpotifyAPI(timeout=settings.http_timeout)
    try:
        yield api
    finally:
        api.close()


@router.get("/connect")
def connect(oauth: SpotifyOAuth = Depends(get_oauth)):
    return {"auth_url": oauth.authorize_url()}


@router.get("/callback")
def callback(
    state: str,
    code: Optional[str] = None,
    error: Optional[str] = None,
    db: Session = Depends(get_db),
    oauth: SpotifyOAuth = Depends(get_oauth),
    api: SpotifyAPI = Depends(get_api),
):
    try:
        _ = oauth.parse_state(state)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid state")

    if error is not None:
        if error == "access_denied":
            detail = "You need to agree in order to use this service."
        else:
            detail = "Failed to connect with Spotify"
        raise HTTPException(status_code=400, detail=detail)
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    try:
        tokens = oauth.exchange_code(code)
        expiry = datetime.now(timezone.utc) + timedelta(seconds=tokens.expires_in or 0)
        me = api.get_me(tokens.access_token)
    except BotmError as e:
        logger.error("Failed to connect to Spotify: %s", e)
        raise HTTPException(status_code=502, detail="Failed to connect to Spotify")

    try:
        credential = TokenStore(db).upsert(
            me.id,
            access_token=tokens.access_token,
            expiry=expiry,
            refresh_token=tokens.refresh_token,
        )
    except (ValueError, SQLAlchemyError) as e:
        logger.error("Failed to store user %s: %s", me.id, e)
        raise HTTPException(status_code=500, detail="Failed to store user")

    logger.info("Connected Spotify user %s", credential.user_id)
    return {
        "ok": True,
        "spotify_user_id": credential.user_id,
        "user_token": oauth.user_token(credential.user_id),
    }


@router.post("/disconnect")
def disconnect(
    user_token: str,
    db: Session = Depends(get_db),
    oauth: SpotifyOAuth = Depends(get_oauth),
):
    try:
        user_id = oauth.parse_user_token(user_token)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid user token")

    if not TokenStore(db).delete(user_id):
        raise HTTPException(status_code=404, detail="User is not connected")

    logger.info("Disconnected Spotify user %s", user_id)
    return {"ok": True, "spotify_user_id": user_id}
