import pytest

from quest_checkin.core.enums import Role
from quest_checkin.core.exceptions import InvalidSelection
from quest_checkin.database.memory_store import MemoryStore
from quest_checkin.profiles.memory_profile_repository import MemoryProfileRepository
from quest_checkin.profiles.model import Profile
from quest_checkin.sessions.selection import SelectionResolver, UserSelection


def _resolver() -> SelectionResolver:
    profiles = MemoryProfileRepository(MemoryStore())
    profiles.upsert(Profile(user_id="admin", display_name="Admin", email="a@x", role=Role.ADMIN, exp=500, level=6))
    profiles.upsert(Profile(user_id="u1", display_name="U1", email="u1@x", exp=10, level=1))
    profiles.upsert(Profile(user_id="u2", display_name="U2", email="u2@x", exp=150, level=2))
    profiles.upsert(Profile(user_id="u3", display_name="U3", email="u3@x", exp=320, level=4))
    profiles.upsert(Profile(user_id="gone", display_name="Gone", email="g@x", is_active=False))
    return SelectionResolver(profiles)


def test_explicit_ids_are_kept_in_order_and_deduplicated():
    resolver = _resolver()

    users = resolver.resolve(UserSelection.explicit(["u2", " u1 ", "u2", "", "unknown"]))

    assert users == ["u2", "u1", "unknown"]


def test_all_users_includes_inactive_and_admins():
    users = _resolver().resolve(UserSelection.all_users())

    assert users == ["admin", "gone", "u1", "u2", "u3"]


def test_default_selection_is_active_users_only():
    users = _resolver().resolve(UserSelection.active_users())

    assert "gone" not in users
    assert set(users) == {"admin", "u1", "u2", "u3"}


def test_filter_by_role_and_level_range_is_inclusive():
    users = _resolver().resolve(UserSelection.by_filter(role=Role.USER, min_level=2, max_level=4))

    assert users == ["u2", "u3"]


def test_inverted_level_range_is_rejected():
    with pytest.raises(InvalidSelection):
        _resolver().resolve(UserSelection.by_filter(min_level=5, max_level=2))


def test_from_payload_modes():
    assert UserSelection.from_payload(None) == UserSelection.active_users()
    assert UserSelection.from_payload({"mode": "all"}).use_all_users is True
    assert UserSelection.from_payload({"mode": "explicit", "user_ids": ["a", "b"]}).specific_users == ("a", "b")

    sel = UserSelection.from_payload({"mode": "filter", "role": "user", "min_level": "2", "include_inactive": True})
    assert sel.role == Role.USER
    assert sel.min_level == 2
    assert sel.max_level is None
    assert sel.include_inactive is True


@pytest.mark.parametrize(
    "payload",
    [
        {"mode": "nope"},
        {"mode": "explicit", "user_ids": "u1"},
        {"mode": "filter", "role": "superuser"},
        {"mode": "filter", "min_level": "high"},
        {"mode": "explicit", "user_ids": [None, "user-bob"]},
        {"mode": "explicit", "user_ids": [7]},
        {"mode": "filter", "include_inactive": "false"},
        ["all"],
        "all",
    ],
)
def test_from_payload_rejects_bad_input(payload):
    with pytest.raises(InvalidSelection):
        UserSelection.from_payload(payload)


def test_empty_explicit_list_selects_nobody():
    assert _resolver().resolve(UserSelection.explicit([])) == []
    assert _resolver().resolve(UserSelection.from_payload({"mode": "explicit", "user_ids": []})) == []


def test_include_inactive_defaults_to_false():
    assert UserSelection.from_payload({"mode": "filter"}).include_inactive is False
    assert UserSelection.from_payload({"mode": "filter", "include_inactive": False}).include_inactive is False
