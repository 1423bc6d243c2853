"""Example: drive the service layer directly, without Flask.

Runs against the in-memory backend so it needs no database.
"""

from datetime import datetime, timedelta, timezone

from quest_checkin.container import build_memory_container
from quest_checkin.database.bootstrap import ensure_demo_profiles
from quest_checkin.sessions.selection import UserSelection


def main():
    container = build_memory_container()
    ensure_demo_profiles(container.profiles_repo)

    start = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    token = container.session_service.create_session(
        title="Morning stand-up",
        start_at=start,
        end_at=start + timedelta(minutes=30),
        exp_reward=10,
        exp_penalty=5,
        created_by="admin-demo",
        selection=UserSelection.active_users(),
        now=start - timedelta(hours=1),
    )

    container.checkin_service.check_in(token, "user-alice", now=start + timedelta(minutes=5))
    report = container.penalty_service.sweep_ended_sessions(now=start + timedelta(hours=1))

    print("penalized:", report.penalized_by_session)
    for p in container.profiles_repo.list_all():
        print(f"{p.user_id:12} exp={p.exp:4} level={p.level}")


if __name__ == "__main__":
    main()
