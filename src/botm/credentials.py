import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from .errors import BotmError, RefreshFailed
from .spotify import SpotifyOAuth
from .token_store import TokenStore

logger = logging.getLogger(__name__)


def get_valid_token(
    store: TokenStore,
    oauth: SpotifyOAuth,
    user_id: str,
    now: Optional[datetime] = None,
) -> str:
    """Return an access token for ``user_id`` that is valid right now.

    The stored token is returned as long as ``now <= expiry``. Otherwise the
    refresh token is exchanged once and the result persisted in one write:
    access token, expiry, and the refresh token when Spotify rotated it.
    Nothing is written when the exchange fails.

    Must not run concurrently for the same user id.
    """
    now = now or datetime.now(timezone.utc)
    credential = store.get_credential(user_id, for_update=True)

    if now <= credential.expiry:
        logger.debug("Found valid access_token for user %s", user_id)
        return credential.access_token

    logger.debug("Found outdated access_token for user %s, getting new one", user_id)
    try:
        tokens = oauth.refresh_access_token(credential.refresh_token)
    except (BotmError, httpx.HTTPError) as e:
        raise RefreshFailed(user_id, e) from e

    # No expires_in means the token is due for refresh again immediately.
    expiry = now + timedelta(seconds=tokens.expires_in or 0)
    # a rotated refresh token goes out in the same write as the access token
    store.update_access(user_id, tokens.access_token, expiry, refresh_token=tokens.refresh_token)

    return tokens.access_token
