"""Ranked profile projection with a bounded staleness window."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from ecotrack.config import Settings
from ecotrack.models import LeaderboardEntry, Profile
from ecotrack.store.base import LedgerStore
from ecotrack.utils.logging import get_logger


logger = get_logger(__name__)


def rank_profiles(profiles: list[Profile]) -> list[LeaderboardEntry]:
    """Order by coins (desc), then earlier joiners, then id."""
    ordered = sorted(profiles, key=lambda p: (-p.eco_coins, p.created_at, p.id))
    return [
        LeaderboardEntry(
            rank=position,
            profile_id=profile.id,
            username=profile.username,
            eco_coins=profile.eco_coins,
            total_reports=profile.total_reports,
            level=profile.level,
        )
        for position, profile in enumerate(ordered, start=1)
    ]


class LeaderboardAggregator:
    """Pull-based snapshot, rebuilt when older than the refresh interval.

    Readers may see ranks that lag the latest reward credit by up to
    `leaderboard_refresh_seconds`; call `refresh()` to force a rebuild.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock
        self._lock = threading.Lock()
        self._entries: list[LeaderboardEntry] = []
        self._built_at: Optional[float] = None

    @property
    def is_stale(self) -> bool:
        if self._built_at is None:
            return True
        return self.clock() - self._built_at >= self.settings.leaderboard_refresh_seconds

    def refresh(self) -> list[LeaderboardEntry]:
        entries = rank_profiles(self.store.list_profiles())
        with self._lock:
            self._entries = entries
            self._built_at = self.clock()
        logger.debug("leaderboard.refreshed count=%s", len(entries))
        return entries

    def get(self, limit: Optional[int] = None) -> list[LeaderboardEntry]:
        if self.is_stale:
            self.refresh()
        limit = self.settings.leaderboard_default_limit if limit is None else limit
        with self._lock:
            return list(self._entries[: max(0, limit)])

    def rank_of(self, profile_id: str) -> Optional[int]:
        if self.is_stale:
            self.refresh()
        with self._lock:
            for entry in self._entries:
                if entry.profile_id == profile_id:
                    return entry.rank
        return None
