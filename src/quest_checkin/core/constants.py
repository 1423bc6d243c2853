"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

EXP_PER_LEVEL = 100
MIN_LEVEL = 1

TOKEN_PREFIX = "CHECKIN_qr_"
TOKEN_RANDOM_BYTES = 8

DEFAULT_HISTORY_LIMIT = 10
READ_RETRY_ATTEMPTS = 3

PENALTY_REASON_TEMPLATE = "Missed check-in: {title}"
