# src/botm/spotify.py

import base64
import logging
import time
import urllib.parse as up
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from itsdangerous import BadSignature, URLSafeSerializer
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from .config import Settings
from .errors import DeserializationFailed, ProviderRequestFailed

logger = logging.getLogger(__name__)

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API = "https://api.spotify.com/v1"

SCOPES = [
    "playlist-modify-private",
    "playlist-modify-public",
    "user-top-read",
    "user-read-private",
]
SCOPE_STR = " ".join(SCOPES)

PROFILE_TIMEOUT = 10.0

M = TypeVar("M", bound=BaseModel)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class MeResponse(BaseModel):
    id: str
    display_name: Optional[str] = None


class TrackItem(BaseModel):
    uri: str


class TopTracksResponse(BaseModel):
    items: List[TrackItem]


class CreatePlaylistResponse(BaseModel):
    id: str


def encode_basic_auth(client_id: str, client_secret: str) -> str:
    token = f"{client_id}:{client_secret}".encode("utf-8")
    return base64.b64encode(token).decode("utf-8")


def auth_header(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _send(http: httpx.Client, action: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
    logger.debug("Spotify %s: %s %s", action, method, url)
    try:
        r = http.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise ProviderRequestFailed(action, detail=f"{type(e).__name__}: {e}") from e
    if r.is_error:
        raise ProviderRequestFailed(action, r.status_code, r.text)
    return r


def _parse(model: Type[M], r: httpx.Response, action: str) -> M:
    try:
        return model.model_validate(r.json())
    except (ValueError, ValidationError) as e:
        raise DeserializationFailed(action, e) from e


class SpotifyOAuth:
    """Authorization-code flow against the Spotify accounts service."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        secret_key: str,
        *,
        http: Optional[httpx.Client] = None,
        timeout: float = 15.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.serializer = URLSafeSerializer(secret_key, salt="state-salt")
        self.http = http or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, *, http: Optional[httpx.Client] = None) -> "SpotifyOAuth":
        return cls(
            settings.spotify_client_id,
            settings.spotify_client_secret.get_secret_value(),
            settings.spotify_redirect_uri,
            settings.app_secret_key.get_secret_value(),
            http=http,
            timeout=settings.http_timeout,
        )

    def build_state(self, payload: Dict[str, Any]) -> str:
        return self.serializer.dumps(payload)

    def parse_state(self, state: str) -> Dict[str, Any]:
        try:
            return self.serializer.loads(state)
        except BadSignature as e:
            raise ValueError("Invalid state") from e

    def user_token(self, user_id: str) -> str:
        """Signed token naming a connected user, handed out by the callback."""
        return self.serializer.dumps({"sub": user_id})

    def parse_user_token(self, token: str) -> str:
        payload = self.parse_state(token)
        if not isinstance(payload, dict) or not payload.get("sub"):
            raise ValueError("Invalid user token")
        return str(payload["sub"])

    def authorize_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": SCOPE_STR,
            "state": self.build_state({"t": int(time.time())}),
            "show_dialog": "false",
        }
        return SPOTIFY_AUTHORIZE_URL + "?" + up.urlencode(params)

    def _token_request(self, action: str, data: Dict[str, str]) -> TokenResponse:
        headers = {"Authorization": "Basic " + encode_basic_auth(self.client_id, self.client_secret)}
        r = _send(self.http, action, "POST", SPOTIFY_TOKEN_URL, data=data, headers=headers)
        return _parse(TokenResponse, r, action)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(1),
        retry=retry_if_exception_type(ProviderRequestFailed),
        reraise=True,
    )
    def exchange_code(self, code: str) -> TokenResponse:
        data = {"grant_type": "authorization_code", "code": code, "redirect_uri": self.redirect_uri}
        return self._token_request("exchange_code", data)

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        # Single attempt: a failed refresh fails the caller's step.
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        return self._token_request("refresh_token", data)

    def close(self) -> None:
        self.http.close()


class SpotifyAPI:
    """Bearer-token calls against the Spotify Web API."""

    def __init__(self, *, http: Optional[httpx.Client] = None, timeout: float = 15.0, base_url: str = SPOTIFY_API):
        self.base_url = base_url.rstrip("/")
        self.http = http or httpx.Client(timeout=timeout)

    def get_me(self, access_token: str) -> MeResponse:
        r = _send(
            self.http,
            "get_me",
            "GET",
            f"{self.base_url}/me",
            headers=auth_header(access_token),
            timeout=PROFILE_TIMEOUT,
        )
        return _parse(MeResponse, r, "get_me")

    def get_top_tracks(self, access_token: str, time_range: str = "short_term", limit: int = 50) -> List[str]:
        """Return the track URIs of the user's top tracks, in Spotify's ranking order."""
        r = _send(
            self.http,
            "get_top_tracks",
            "GET",
            f"{self.base_url}/me/top/tracks",
            params={"time_range": time_range, "limit": limit},
            headers=auth_header(access_token),
        )
        return [item.uri for item in _parse(TopTracksResponse, r, "get_top_tracks").items]

    def create_playlist(self, access_token: str, user_id: str, name: str, description: str) -> str:
        payload = {"name": name, "description": description}
        r = _send(
            self.http,
            "create_playlist",
            "POST",
            f"{self.base_url}/users/{up.quote(user_id, safe='')}/playlists",
            json=payload,
            headers=auth_header(access_token),
        )
        return _parse(CreatePlaylistResponse, r, "create_playlist").id

    def add_tracks(self, access_token: str, playlist_id: str, uris: List[str], position: int = 0) -> None:
        if not uris:
            return
        _send(
            self.http,
            "add_tracks",
            "POST",
            f"{self.base_url}/playlists/{playlist_id}/tracks",
            json={"uris": uris, "position": position},
            headers=auth_header(access_token),
        )

    def close(self) -> None:
        self.http.close()
