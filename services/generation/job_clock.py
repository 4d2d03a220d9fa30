"""
In-memory job clock for the simulator.

Remembers when each simulated job was created so its status can be derived
from elapsed wall-clock time. Keyed by job id only; there are no shared
counters, so concurrent jobs never influence each other. Entries are
ephemeral and vanish on restart (a poll for a vanished id is an unknown job).
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from .models import utcnow

logger = logging.getLogger(__name__)


class JobClock:
    """Tracks creation time per job id and reports elapsed seconds."""

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        max_age_seconds: float = 3600.0,
    ):
        self._clock = clock
        self._max_age = timedelta(seconds=max_age_seconds)
        self._lock = threading.Lock()
        self._created: dict[str, datetime] = {}

    def register(self, job_id: str, created_at: Optional[datetime] = None) -> datetime:
        """Record a new job. Returns the creation timestamp used."""
        created_at = created_at or self._clock()
        with self._lock:
            self._prune_locked(self._clock())
            self._created[job_id] = created_at
        return created_at

    def created_at(self, job_id: str) -> Optional[datetime]:
        with self._lock:
            return self._created.get(job_id)

    def elapsed_seconds(self, job_id: str) -> Optional[float]:
        """Seconds since the job was registered, or None for an unknown id."""
        created = self.created_at(job_id)
        if created is None:
            return None
        return max(0.0, (self._clock() - created).total_seconds())

    def forget(self, job_id: str) -> None:
        with self._lock:
            self._created.pop(job_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._created)

    def _prune_locked(self, now: datetime) -> None:
        expired = [jid for jid, ts in self._created.items() if now - ts > self._max_age]
        for jid in expired:
            del self._created[jid]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired simulated jobs")
