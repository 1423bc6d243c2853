from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import Role
from ..database.memory_store import MemoryStore
from .model import Profile
from .repository import ProfileRepository


class MemoryProfileRepository(ProfileRepository):
    def __init__(self, store: MemoryStore):
        self._store = store

    def get_by_id(self, user_id: str) -> Optional[Profile]:
        with self._store.read() as t:
            return t.profiles.get(user_id)

    def list_all(self) -> Sequence[Profile]:
        with self._store.read() as t:
            return sorted(t.profiles.values(), key=lambda p: p.user_id)

    def list_matching(
        self,
        *,
        role: Optional[Role] = None,
        min_level: Optional[int] = None,
        max_level: Optional[int] = None,
        include_inactive: bool = False,
    ) -> Sequence[Profile]:
        out: list[Profile] = []
        for p in self.list_all():
            if not include_inactive and not p.is_active:
                continue
            if role is not None and p.role != role:
                continue
            if min_level is not None and p.level < min_level:
                continue
            if max_level is not None and p.level > max_level:
                continue
            out.append(p)
        return out

    def upsert(self, profile: Profile) -> None:
        with self._store.atomic() as t:
            t.profiles[profile.user_id] = profile
