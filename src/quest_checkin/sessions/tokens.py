from __future__ import annotations

import secrets
import uuid
from datetime import datetime

from ..common.datetime_utils import epoch_millis
from ..core.constants import TOKEN_PREFIX, TOKEN_RANDOM_BYTES


def new_session_id() -> str:
    return uuid.uuid4().hex


def generate_token(created_at: datetime) -> str:
    """Opaque check-in token: creation time in millis plus a random suffix.

    Token equality is the only scan-validation key, so the suffix comes from
    ``secrets`` rather than ``random``.
    """
    return f"{TOKEN_PREFIX}{epoch_millis(created_at)}_{secrets.token_hex(TOKEN_RANDOM_BYTES)}"
