from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..core.enums import Role
from ..core.exceptions import InvalidSelection
from ..profiles.model import Profile
from ..profiles.repository import ProfileRepository


@dataclass(frozen=True)
class UserSelection:
    """Who a session expects to attend.

    Exactly one mode applies, checked in this order: explicit ids, every
    known user, then a directory filter (active users only unless
    ``include_inactive``; optional role and inclusive level range).
    """

    specific_users: Optional[tuple[str, ...]] = None
    use_all_users: bool = False
    include_inactive: bool = False
    role: Optional[Role] = None
    min_level: Optional[int] = None
    max_level: Optional[int] = None

    @classmethod
    def explicit(cls, user_ids: Iterable[str]) -> "UserSelection":
        return cls(specific_users=tuple(user_ids))

    @classmethod
    def all_users(cls) -> "UserSelection":
        return cls(use_all_users=True)

    @classmethod
    def active_users(cls) -> "UserSelection":
        return cls()

    @classmethod
    def by_filter(
        cls,
        *,
        role: Optional[Role] = None,
        min_level: Optional[int] = None,
        max_level: Optional[int] = None,
        include_inactive: bool = False,
    ) -> "UserSelection":
        return cls(role=role, min_level=min_level, max_level=max_level, include_inactive=include_inactive)

    @classmethod
    def from_payload(cls, data: Optional[dict]) -> "UserSelection":
        """Build from a JSON body such as ``{"mode": "filter", "role": "user", "min_level": 2}``."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidSelection("Selection must be a JSON object")
        mode = str(data.get("mode") or "active").lower()

        if mode == "explicit":
            users = data.get("user_ids") or []
            if not isinstance(users, list):
                raise InvalidSelection("user_ids must be a list")
            if not all(isinstance(u, str) for u in users):
                raise InvalidSelection("user_ids must be a list of strings")
            return cls.explicit(users)
        if mode == "all":
            return cls.all_users()
        if mode == "active":
            return cls.active_users()
        if mode == "filter":
            role_s = data.get("role")
            try:
                role = Role(role_s) if role_s else None
            except ValueError:
                raise InvalidSelection(f"Unknown role: {role_s}")
            return cls.by_filter(
                role=role,
                min_level=_optional_int(data.get("min_level"), "min_level"),
                max_level=_optional_int(data.get("max_level"), "max_level"),
                include_inactive=_optional_bool(data.get("include_inactive"), "include_inactive"),
            )
        raise InvalidSelection(f"Unknown selection mode: {mode}")


def _optional_bool(value, field_name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidSelection(f"{field_name} must be true or false")
    return value


def _optional_int(value, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidSelection(f"{field_name} must be an integer")


class SelectionResolver:
    """Turns a ``UserSelection`` into a concrete, ordered list of user ids."""

    def __init__(self, profiles: ProfileRepository):
        self._profiles = profiles

    def matching_profiles(self, selection: UserSelection) -> Sequence[Profile]:
        if selection.specific_users is not None:
            wanted = set(selection.specific_users)
            return [p for p in self._profiles.list_all() if p.user_id in wanted]
        if selection.use_all_users:
            return list(self._profiles.list_all())

        if (
            selection.min_level is not None
            and selection.max_level is not None
            and selection.min_level > selection.max_level
        ):
            raise InvalidSelection("min_level must not exceed max_level")

        return list(
            self._profiles.list_matching(
                role=selection.role,
                min_level=selection.min_level,
                max_level=selection.max_level,
                include_inactive=selection.include_inactive,
            )
        )

    def resolve(self, selection: UserSelection) -> list[str]:
        if selection.specific_users is not None:
            # Explicit ids are taken as given (the directory may lag behind the identity provider).
            return list(dict.fromkeys(u.strip() for u in selection.specific_users if u and u.strip()))
        return [p.user_id for p in self.matching_profiles(selection)]
