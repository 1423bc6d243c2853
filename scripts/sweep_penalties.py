"""Close every ended session and penalize its no-shows.

Intended for cron (e.g. every 5 minutes). Safe to overlap with itself or with
a manual reconciliation from the admin API.
"""
from __future__ import annotations

import importlib
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
for path in (REPO_ROOT, REPO_ROOT / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from config import get_settings_module

from quest_checkin.container import build_container


def main() -> int:
    settings = importlib.import_module(get_settings_module())
    logging.basicConfig(
        level=getattr(settings, "LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    container = build_container(
        db_config=dict(settings.DB_CONFIG),
        read_attempts=int(getattr(settings, "READ_RETRY_ATTEMPTS", 3)),
    )
    report = container.penalty_service.sweep_ended_sessions()

    print(
        f"OK: closed {len(report.penalized_by_session)} sessions, "
        f"penalized {report.total_penalized} users, "
        f"failed {len(report.failed_sessions)}"
    )
    return 1 if report.failed_sessions else 0


if __name__ == "__main__":
    sys.exit(main())
