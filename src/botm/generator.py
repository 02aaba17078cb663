import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings
from .credentials import get_valid_token
from .errors import BotmError
from .naming import PlaylistTarget, playlist_target
from .spotify import SpotifyAPI, SpotifyOAuth
from .token_store import TokenStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationOutcome:
    user_id: str
    succeeded: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchReport:
    attempted: int = 0
    failed: FrozenSet[str] = frozenset()
    outcomes: Tuple[GenerationOutcome, ...] = field(default=(), compare=False)

    @property
    def ok(self) -> bool:
        return not self.failed

    def add(self, outcome: GenerationOutcome) -> "BatchReport":
        failed = self.failed if outcome.succeeded else self.failed | {outcome.user_id}
        return BatchReport(self.attempted + 1, failed, self.outcomes + (outcome,))

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[GenerationOutcome]) -> "BatchReport":
        report = cls()
        for outcome in outcomes:
            report = report.add(outcome)
        return report


class BatchGenerator:
    """Creates this month's BOTM playlist for every active user.

    Each user gets a database session of their own and is handled by exactly
    one task, so workers never share credential rows. A failure is logged and
    recorded for that user only; the rest of the batch carries on.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        oauth: SpotifyOAuth,
        api: SpotifyAPI,
        *,
        time_range: str = "short_term",
        limit: int = 50,
        max_workers: int = 1,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session_factory = session_factory
        self.oauth = oauth
        self.api = api
        self.time_range = time_range
        self.limit = limit
        self.max_workers = max(1, max_workers)
        self.clock = clock

    def candidates(self, target_user_id: Optional[str] = None) -> List[str]:
        with self.session_factory() as db:
            users = TokenStore(db).list_active(target_user_id)
        # dict keeps order and guarantees one task per user id
        return list(dict.fromkeys(u.user_id for u in users))

    def run(self, target_user_id: Optional[str] = None) -> BatchReport:
        if target_user_id is not None:
            logger.info("Generating for specific user: %s", target_user_id)
        user_ids = self.candidates(target_user_id)
        logger.info("Found %d users", len(user_ids))

        target = playlist_target(self.clock())
        logger.debug('Generating playlist "%s" with description "%s"', target.name, target.description)

        def work(user_id: str) -> GenerationOutcome:
            return self.generate_for(user_id, target)

        if self.max_workers == 1 or len(user_ids) <= 1:
            outcomes = [work(u) for u in user_ids]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="botm") as pool:
                outcomes = list(pool.map(work, user_ids))

        report = BatchReport.from_outcomes(outcomes)
        if report.failed:
            logger.error("Failed to generate BOTM for %d of %d users", len(report.failed), report.attempted)
        else:
            logger.info("Generated BOTM for %d users", report.attempted)
        return report

    def generate_for(self, user_id: str, target: PlaylistTarget) -> GenerationOutcome:
        try:
            with self.session_factory() as db:
                access_token = get_valid_token(TokenStore(db), self.oauth, user_id)

            logger.debug("Getting top tracks for user: %s", user_id)
            uris = self.api.get_top_tracks(access_token, self.time_range, self.limit)
            logger.debug("Got %d top tracks for %s", len(uris), user_id)

            playlist_id = self.api.create_playlist(access_token, user_id, target.name, target.description)
            logger.debug("Created playlist %s for %s", playlist_id, user_id)

            self.api.add_tracks(access_token, playlist_id, uris, position=0)
        except (BotmError, SQLAlchemyError) as e:
            logger.error("Failed to generate BOTM for %s: %s", user_id, e)
            return GenerationOutcome(user_id, False, str(e))
        except Exception as e:
            logger.exception("Failed to generate BOTM for %s", user_id)
            return GenerationOutcome(user_id, False, f"{type(e).__name__}: {e}")

        return GenerationOutcome(user_id, True)


def run_batch(
    settings: Settings,
    single_user_id: Optional[str] = None,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    oauth: Optional[SpotifyOAuth] = None,
    api: Optional[SpotifyAPI] = None,
) -> BatchReport:
    """Run one batch. Raises only when the candidate users cannot be loaded."""
    if session_factory is None:
        from .db import SessionLocal

        session_factory = SessionLocal

    own_oauth = oauth is None
    own_api = api is None
    oauth = oauth or SpotifyOAuth.from_settings(settings)
    api = api or SpotifyAPI(timeout=settings.http_timeout)
    try:
        generator = BatchGenerator(
            session_factory,
            oauth,
            api,
            time_range=settings.top_tracks_time_range,
            limit=settings.top_tracks_limit,
            max_workers=settings.batch_workers,
        )
        return generator.run(single_user_id)
    finally:
        if own_oauth:
            oauth.close()
        if own_api:
            api.close()
