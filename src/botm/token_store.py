import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .errors import UserNotFound
from .models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserCredential:
    """Snapshot of one user's stored Spotify connection."""

    user_id: str
    active: bool
    access_token: str
    refresh_token: str
    expiry: datetime


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_credential(row: User) -> UserCredential:
    return UserCredential(
        user_id=row.spotify_id,
        active=bool(row.active),
        access_token=row.access_token or "",
        refresh_token=row.refresh_token,
        expiry=_as_utc(row.expiry_timestamp),
    )


class TokenStore:
    """Read/write access to the persisted credential rows.

    Every write commits on its own, so a caller never leaves half an update
    behind in the session.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_credential(self, user_id: str, *, for_update: bool = False) -> UserCredential:
        stmt = select(User).where(User.spotify_id == user_id)
        if for_update:
            # row lock on databases that support it, ignored by SQLite
            stmt = stmt.with_for_update()
        row = self.db.execute(stmt).scalars().first()
        if row is None:
            raise UserNotFound(user_id)
        return _to_credential(row)

    def list_active(self, user_id: Optional[str] = None) -> List[UserCredential]:
        stmt = select(User).where(User.active.is_(True))
        if user_id is not None:
            stmt = stmt.where(User.spotify_id == user_id)
        rows = self.db.execute(stmt.order_by(User.spotify_id)).scalars().all()
        return [_to_credential(r) for r in rows]

    def update_access(
        self,
        user_id: str,
        access_token: str,
        expiry: datetime,
        *,
        refresh_token: Optional[str] = None,
    ) -> None:
        values = {"access_token": access_token, "expiry_timestamp": expiry}
        if refresh_token:
            logger.debug("Saving new refresh token for user: %s", user_id)
            values["refresh_token"] = refresh_token
        self.db.execute(update(User).where(User.spotify_id == user_id).values(**values))
        self.db.commit()

    def update_refresh(self, user_id: str, refresh_token: str) -> None:
        logger.debug("Saving new refresh token for user: %s", user_id)
        self.db.execute(
            update(User).where(User.spotify_id == user_id).values(refresh_token=refresh_token)
        )
        self.db.commit()

    def delete(self, user_id: str) -> bool:
        """Remove the user's credentials. Returns False when there was no row."""
        result = self.db.execute(delete(User).where(User.spotify_id == user_id))
        self.db.commit()
        return result.rowcount > 0

    def upsert(
        self,
        user_id: str,
        *,
        access_token: str,
        expiry: datetime,
        refresh_token: Optional[str] = None,
    ) -> UserCredential:
        """Store the token pair from a fresh authorization and mark the user active."""
        existing = self.db.get(User, user_id)
        if existing:
            existing.access_token = access_token
            existing.expiry_timestamp = expiry
            existing.active = True
            if refresh_token:
                existing.refresh_token = refresh_token
            row = existing
        else:
            if not refresh_token:
                raise ValueError(f"Spotify did not return a refresh token for new user {user_id}")
            row = User(
                spotify_id=user_id,
                active=True,
                access_token=access_token,
                refresh_token=refresh_token,
                expiry_timestamp=expiry,
            )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return _to_credential(row)
