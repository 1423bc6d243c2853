from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from ..profiles.model import Profile
from ..sessions.model import CheckInRecord, PenaltyRecord, QRSession


@dataclass
class _Tables:
    profiles: dict[str, Profile] = field(default_factory=dict)
    sessions: dict[str, QRSession] = field(default_factory=dict)
    checkins: list[CheckInRecord] = field(default_factory=list)
    penalties: list[PenaltyRecord] = field(default_factory=list)
    last_id: int = 0

    def copy(self) -> "_Tables":
        return _Tables(
            profiles=dict(self.profiles),
            sessions=dict(self.sessions),
            checkins=list(self.checkins),
            penalties=list(self.penalties),
            last_id=self.last_id,
        )


class MemoryStore:
    """Embedded, process-local store backing the in-memory repositories.

    Note: Rows are frozen dataclasses, so a shallow copy of the tables is a
    full snapshot. ``atomic()`` holds one re-entrant lock for the whole unit
    of work and restores the snapshot if the block raises.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables = _Tables()

    @property
    def tables(self) -> _Tables:
        return self._tables

    def next_id(self) -> int:
        with self._lock:
            self._tables.last_id += 1
            return self._tables.last_id

    @contextmanager
    def read(self) -> Iterator[_Tables]:
        with self._lock:
            yield self._tables

    @contextmanager
    def atomic(self) -> Iterator[_Tables]:
        with self._lock:
            snapshot = self._tables.copy()
            try:
                yield self._tables
            except BaseException:
                self._tables = snapshot
                raise
