from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
from .db import Base

# Placeholder expiry for rows that have never held an access token
NEVER = datetime.min.replace(tzinfo=timezone.utc)


class User(Base):
    __tablename__ = "users"
    # Spotify user id (stable)
    spotify_id = Column(String, primary_key=True)
    active = Column(Boolean, nullable=False, default=True)
    refresh_token = Column(String, nullable=False)
    access_token = Column(String, nullable=False, default="")
    expiry_timestamp = Column(DateTime(timezone=True), nullable=False, default=NEVER)
