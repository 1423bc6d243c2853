from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..core.enums import Role
from .model import Profile


class ProfileRepository(Protocol):
    """Read side of the user directory.

    Note: Profile EXP/level are only written inside a session transaction
    (see ``sessions.repository.SessionTransaction``), never through here.
    """

    def get_by_id(self, user_id: str) -> Optional[Profile]:
        raise NotImplementedError

    def list_all(self) -> Sequence[Profile]:
        raise NotImplementedError

    def list_matching(
        self,
        *,
        role: Optional[Role] = None,
        min_level: Optional[int] = None,
        max_level: Optional[int] = None,
        include_inactive: bool = False,
    ) -> Sequence[Profile]:
        raise NotImplementedError

    def upsert(self, profile: Profile) -> None:
        """Create or replace a directory entry (used by seeding/sync)."""

        raise NotImplementedError
