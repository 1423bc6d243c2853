from quest_checkin.profiles.progression import apply_penalty, apply_reward, level_for_exp


def test_level_for_exp_steps_every_hundred():
    assert level_for_exp(0) == 1
    assert level_for_exp(99) == 1
    assert level_for_exp(100) == 2
    assert level_for_exp(250) == 3


def test_reward_raises_level_when_crossing_threshold():
    change = apply_reward(exp=95, level=1, reward=10)

    assert change.exp == 105
    assert change.level == 2
    assert change.delta == 10


def test_reward_never_lowers_a_stored_level():
    # Level 4 with 150 EXP can happen after penalties; a reward must not "correct" it down.
    change = apply_reward(exp=150, level=4, reward=10)

    assert change.exp == 160
    assert change.level == 4


def test_penalty_is_capped_at_current_exp():
    change = apply_penalty(exp=3, level=1, penalty=5)

    assert change.exp == 0
    assert change.level == 1
    assert change.delta == 3


def test_penalty_can_drop_level_but_never_below_one():
    change = apply_penalty(exp=105, level=2, penalty=10)

    assert change.exp == 95
    assert change.level == 1


def test_penalty_never_raises_level():
    # Stored level 1 with 250 EXP (e.g. migrated data): after the penalty the
    # derived level is 3, but the stored level must stay.
    change = apply_penalty(exp=250, level=1, penalty=5)

    assert change.exp == 245
    assert change.level == 1


def test_zero_penalty_changes_nothing():
    change = apply_penalty(exp=40, level=1, penalty=0)

    assert (change.exp, change.level, change.delta) == (40, 1, 0)
