from datetime import datetime, timedelta, timezone

import pytest

from quest_checkin.container import build_memory_container
from quest_checkin.core.constants import TOKEN_PREFIX
from quest_checkin.core.exceptions import InvalidSelection, NotFound, ValidationError
from quest_checkin.profiles.model import Profile
from quest_checkin.sessions.selection import UserSelection

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _container(*user_ids: str):
    c = build_memory_container()
    for uid in user_ids:
        c.profiles_repo.upsert(Profile(user_id=uid, display_name=uid.upper(), email=f"{uid}@example.com"))
    return c


def _create(c, *, start_in=timedelta(hours=1), length=timedelta(minutes=30), selection=None, **kwargs):
    params = dict(
        title="Daily stand-up",
        start_at=NOW + start_in,
        end_at=NOW + start_in + length,
        exp_reward=10,
        exp_penalty=5,
        created_by="admin",
        selection=selection or UserSelection.active_users(),
        now=NOW,
    )
    params.update(kwargs)
    return c.session_service.create_session(**params)


def test_create_session_returns_token_and_freezes_participants():
    c = _container("a", "b")

    token = _create(c)

    assert token.startswith(TOKEN_PREFIX)
    session = c.sessions_repo.get_active_by_token(token)
    assert session is not None
    assert session.all_users == ("a", "b")
    assert session.attendees == ()
    assert session.is_active is True

    # Users created later are not added to an existing session.
    c.profiles_repo.upsert(Profile(user_id="late", display_name="Late", email="late@example.com"))
    assert c.session_service.get_session(session.session_id).all_users == ("a", "b")


def test_tokens_are_unique_per_session():
    c = _container("a")

    tokens = {_create(c) for _ in range(5)}

    assert len(tokens) == 5


def test_empty_selection_is_rejected_and_nothing_is_stored():
    c = _container()

    with pytest.raises(InvalidSelection):
        _create(c)

    assert c.session_service.list_sessions() == []


def test_end_must_be_after_start():
    c = _container("a")

    with pytest.raises(InvalidSelection):
        _create(c, length=timedelta(0))


@pytest.mark.parametrize(
    "overrides",
    [{"title": "  "}, {"title": 5}, {"exp_reward": -1}, {"exp_penalty": "lots"}],
)
def test_invalid_fields_are_rejected(overrides):
    c = _container("a")

    with pytest.raises(ValidationError):
        _create(c, **overrides)


def test_current_and_next_session():
    c = _container("a")
    current = c.sessions_repo.get_active_by_token(_create(c, start_in=timedelta(minutes=-10)))
    upcoming = c.sessions_repo.get_active_by_token(_create(c, start_in=timedelta(hours=2)))

    status = c.session_service.user_status("a", now=NOW)

    assert status.current_session.session_id == current.session_id
    assert status.next_session.session_id == upcoming.session_id
    assert status.today_check_ins == 0


def test_current_session_hidden_once_user_checked_in():
    c = _container("a")
    token = _create(c, start_in=timedelta(minutes=-10))
    c.checkin_service.check_in(token, "a", now=NOW)

    assert c.session_service.current_session_for_user("a", now=NOW) is None
    assert c.session_service.today_check_in_count(now=NOW) == 1
    assert c.session_service.today_check_in_count(now=NOW, user_id="a") == 1
    assert c.session_service.today_check_in_count(now=NOW + timedelta(days=1)) == 0


def test_list_active_sessions_skips_finished_and_deactivated():
    c = _container("a")
    _create(c, start_in=timedelta(hours=-3))  # already over
    keep = c.sessions_repo.get_active_by_token(_create(c))
    dropped = c.sessions_repo.get_active_by_token(_create(c, start_in=timedelta(hours=3)))

    c.session_service.deactivate_session(dropped.session_id)

    active = c.session_service.list_active_sessions(now=NOW)
    assert [s.session_id for s in active] == [keep.session_id]
    assert c.sessions_repo.get_active_by_token(dropped.token) is None


def test_deactivate_unknown_session():
    with pytest.raises(NotFound):
        _container().session_service.deactivate_session("missing")


def test_session_stats():
    c = _container("a", "b", "c", "d")
    token = _create(c, start_in=timedelta(minutes=-5))
    c.checkin_service.check_in(token, "a", now=NOW)

    session = c.sessions_repo.get_active_by_token(token)
    stats = c.session_service.session_stats(session.session_id)

    assert stats.total_users == 4
    assert stats.total_attendees == 1
    assert stats.attendance_rate == 25.0
    assert stats.penalties_applied == 0


def test_preview_matches_what_create_would_store():
    c = _container("a", "b")
    c.profiles_repo.upsert(Profile(user_id="z", display_name="Z", email="z@x", is_active=False))

    preview = c.session_service.preview_affected_users(UserSelection.active_users())
    token = _create(c)

    assert [p.user_id for p in preview] == list(c.sessions_repo.get_active_by_token(token).all_users)
