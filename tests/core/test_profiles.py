"""Unit tests for profile operations - pure functions, no mocks needed."""

from nightnight.core.models import DEFAULT_REWARDS, DEFAULT_RULE, GlobalState, PointRule, Reward
from nightnight.core.profiles import (
    add_reward,
    create_initial_state,
    create_profile,
    generate_id,
    get_active_profile,
    new_reward,
    redeem_reward,
    remove_reward,
    rename_profile,
    start_sleep,
    switch_profile,
    update_active_profile,
    update_rule,
    wake_up,
)


class TestCreateProfile:
    """Tests for create_profile."""

    def test_defaults(self):
        """Fresh profile has zero balance, default catalog and rule."""
        profile = create_profile("Ada")
        assert profile.username == "Ada"
        assert profile.user_balance == 0
        assert profile.logs == ()
        assert profile.rewards == DEFAULT_REWARDS
        assert profile.point_rule == PointRule(max_daily_points=100, penalty_points=50)
        assert profile.is_sleeping is False
        assert profile.current_sleep_start is None

    def test_placeholder_username(self):
        """Empty username is allowed before registration."""
        assert create_profile("").username == ""

    def test_unique_ids(self):
        """Ids do not collide within one process, even at the same instant."""
        ids = [generate_id(1000) for _ in range(200)]
        assert len(set(ids)) == 200
        assert all(i.startswith("1000") for i in ids)

    def test_initial_state(self):
        """Initial state holds one active placeholder profile."""
        state = create_initial_state()
        assert len(state.profiles) == 1
        assert state.active_profile_id == state.profiles[0].id


class TestUpdateActiveProfile:
    """Tests for update_active_profile and active profile lookup."""

    def _state(self) -> GlobalState:
        a = create_profile("A").model_copy(update={"id": "a"})
        b = create_profile("B").model_copy(update={"id": "b"})
        c = create_profile("C").model_copy(update={"id": "c"})
        return GlobalState(active_profile_id="b", profiles=(a, b, c))

    def test_replaces_only_active(self):
        """Other profiles keep their order and identity."""
        state = self._state()
        new_state = update_active_profile(state, lambda p: p.model_copy(update={"user_balance": 7}))

        assert [p.id for p in new_state.profiles] == ["a", "b", "c"]
        assert new_state.profiles[1].user_balance == 7
        assert new_state.profiles[0] is state.profiles[0]
        assert new_state.profiles[2] is state.profiles[2]

    def test_old_state_untouched(self):
        """The previous snapshot is not modified."""
        state = self._state()
        update_active_profile(state, lambda p: p.model_copy(update={"user_balance": 7}))
        assert state.profiles[1].user_balance == 0

    def test_missing_active_is_noop(self):
        """A stale active id leaves the state unchanged."""
        state = self._state().model_copy(update={"active_profile_id": "gone"})
        assert update_active_profile(state, lambda p: p.model_copy(update={"user_balance": 7})) is state

    def test_unchanged_profile_returns_same_state(self):
        """An update with no effect returns the same state object."""
        state = self._state()
        assert update_active_profile(state, lambda p: p) is state

    def test_active_profile_fallback(self):
        """Stale active id falls back to the first profile."""
        state = self._state().model_copy(update={"active_profile_id": "gone"})
        assert get_active_profile(state).id == "a"

    def test_switch_profile(self):
        """Switching sets the id without validating it."""
        state = self._state()
        assert switch_profile(state, "c").active_profile_id == "c"
        assert switch_profile(state, "nope").active_profile_id == "nope"
        assert switch_profile(state, "b") is state


class TestSleepSession:
    """Tests for start_sleep and wake_up."""

    def test_start_and_wake(self):
        """A full session credits points and appends one log."""
        profile = create_profile("Ada").model_copy(update={"user_balance": 10})
        sleeping = start_sleep(profile, 1000)
        assert sleeping.is_sleeping is True
        assert sleeping.current_sleep_start == 1000

        awake = wake_up(sleeping, points=80, duration_minutes=420, rating=4, now=25_201_000)
        assert awake.is_sleeping is False
        assert awake.current_sleep_start is None
        assert awake.user_balance == 90
        assert len(awake.logs) == 1

        log = awake.logs[0]
        assert log.start_time == 1000
        assert log.end_time == 25_201_000
        assert log.points_earned == 80
        assert log.duration_minutes == 420
        assert log.quality_rating == 4

    def test_penalty_reduces_balance(self):
        """Negative points are deducted."""
        profile = start_sleep(create_profile("Ada"), 1000)
        awake = wake_up(profile, points=-50, duration_minutes=300, rating=None, now=2000)
        assert awake.user_balance == -50
        assert awake.logs[0].quality_rating is None

    def test_double_start_rejected(self):
        """Starting while sleeping keeps the original start time."""
        sleeping = start_sleep(create_profile("Ada"), 1000)
        assert start_sleep(sleeping, 5000) is sleeping

    def test_wake_without_start_rejected(self):
        """Waking up with no open session does nothing."""
        profile = create_profile("Ada")
        assert wake_up(profile, 80, 420, 4, now=2000) is profile

    def test_logs_append_in_order(self):
        """Logs are kept in completion order."""
        profile = create_profile("Ada")
        for start in (1000, 5000):
            profile = wake_up(start_sleep(profile, start), 10, 60, None, now=start + 100)
        assert [log.start_time for log in profile.logs] == [1000, 5000]


class TestRewards:
    """Tests for redeem, add and remove reward."""

    def test_redeem_deducts_and_counts(self):
        """Redeeming deducts cost and increments the count."""
        profile = create_profile("Ada").model_copy(update={"user_balance": 150})
        after = redeem_reward(profile, "1")
        assert after.user_balance == 50
        assert after.find_reward("1").redemption_count == 1
        assert after.find_reward("2").redemption_count == 0

    def test_insufficient_balance(self):
        """Reward costing 100 with balance 50 is rejected."""
        profile = create_profile("Ada").model_copy(update={"user_balance": 50})
        assert redeem_reward(profile, "1") is profile

    def test_exact_balance_allowed(self):
        """Balance equal to cost may be spent down to zero."""
        profile = create_profile("Ada").model_copy(update={"user_balance": 100})
        assert redeem_reward(profile, "1").user_balance == 0

    def test_unknown_reward(self):
        """Unknown reward id is rejected."""
        profile = create_profile("Ada").model_copy(update={"user_balance": 5000})
        assert redeem_reward(profile, "nope") is profile

    def test_balance_never_negative_from_redeem(self):
        """Repeated redemptions stop once the balance runs out."""
        profile = create_profile("Ada").model_copy(update={"user_balance": 230})
        for _ in range(10):
            profile = redeem_reward(profile, "3")
            assert profile.user_balance >= 0
        assert profile.user_balance == 30
        assert profile.find_reward("3").redemption_count == 4

    def test_add_and_remove(self):
        """Rewards can be added and removed by id."""
        reward = new_reward("Movie night", 300, "🎬")
        profile = add_reward(create_profile("Ada"), reward)
        assert profile.find_reward(reward.id) == reward

        profile = remove_reward(profile, reward.id)
        assert profile.find_reward(reward.id) is None

    def test_add_duplicate_id_rejected(self):
        """A reward id already in the catalog is not added twice."""
        profile = create_profile("Ada")
        assert add_reward(profile, Reward(id="1", name="Dup", cost=1)) is profile

    def test_remove_missing(self):
        """Removing an unknown id does nothing."""
        profile = create_profile("Ada")
        assert remove_reward(profile, "nope") is profile

    def test_removal_keeps_balance_and_logs(self):
        """Removing a redeemed reward does not refund or touch logs."""
        profile = create_profile("Ada").model_copy(update={"user_balance": 100})
        profile = remove_reward(redeem_reward(profile, "1"), "1")
        assert profile.user_balance == 0


class TestRuleAndName:
    """Tests for update_rule and rename_profile."""

    def test_update_rule(self):
        """Rule is replaced wholesale."""
        rule = PointRule(max_daily_points=200, penalty_points=10)
        assert update_rule(create_profile("Ada"), rule).point_rule == rule

    def test_rename_trims(self):
        """Names are trimmed."""
        assert rename_profile(create_profile(""), "  Ada  ").username == "Ada"

    def test_rename_blank_rejected(self):
        """Blank names leave the profile unchanged."""
        profile = create_profile("")
        assert rename_profile(profile, "   ") is profile

    def test_default_rule_constant(self):
        """Default rule matches the documented values."""
        assert DEFAULT_RULE.max_daily_points == 100
        assert DEFAULT_RULE.penalty_points == 50
