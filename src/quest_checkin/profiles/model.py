from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class Profile:
    """Domain entity: one user's gamification profile.

    Note: Plain data object (no DB access). ``level`` is stored rather than
    derived so that penalties can keep it from rising.
    """

    user_id: str
    display_name: str
    email: str
    role: Role = Role.USER
    exp: int = 0
    level: int = 1
    is_active: bool = True
    total_check_ins: int = 0
    total_penalties: int = 0
    last_check_in: Optional[datetime] = None
    last_penalty: Optional[datetime] = None
