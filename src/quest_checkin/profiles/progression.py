"""EXP and level rules shared by check-in rewards and missed-session penalties."""
from __future__ import annotations

from dataclasses import dataclass

from ..core.constants import EXP_PER_LEVEL, MIN_LEVEL


@dataclass(frozen=True)
class ExpChange:
    exp: int
    level: int
    delta: int


def level_for_exp(exp: int) -> int:
    return max(MIN_LEVEL, max(0, int(exp)) // EXP_PER_LEVEL + 1)


def apply_reward(*, exp: int, level: int, reward: int) -> ExpChange:
    """Credit ``reward`` EXP. The level may rise but never drops on a reward."""
    new_exp = max(0, int(exp)) + int(reward)
    new_level = max(int(level), level_for_exp(new_exp))
    return ExpChange(exp=new_exp, level=new_level, delta=int(reward))


def apply_penalty(*, exp: int, level: int, penalty: int) -> ExpChange:
    """Debit up to ``penalty`` EXP without going below zero.

    ``delta`` is the EXP actually lost. The level may fall with the balance
    but a penalty never raises it, and it never drops under ``MIN_LEVEL``.
    """
    current = max(0, int(exp))
    lost = min(current, int(penalty))
    new_exp = current - lost
    new_level = max(MIN_LEVEL, min(int(level), level_for_exp(new_exp)))
    return ExpChange(exp=new_exp, level=new_level, delta=lost)
