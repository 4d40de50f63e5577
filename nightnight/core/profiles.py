"""Profile Operations - Pure functions over profiles and the global state.

All functions are pure: callers pass the current time, nothing is mutated.
An operation that has no effect returns its input object unchanged, which
lets callers detect a rejected operation with an identity check.
"""

import time
import uuid
from typing import Callable

from .models import (
    DEFAULT_REWARDS,
    DEFAULT_RULE,
    GlobalState,
    PointRule,
    Reward,
    SleepLog,
    UserProfile,
)


ProfileUpdate = Callable[[UserProfile], UserProfile]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_id(now: int | None = None) -> str:
    """Generate a timestamp-prefixed id with a random suffix.

    Unique within a process lifetime; not meant to be unguessable.
    """
    if now is None:
        now = now_ms()
    return f"{now}{uuid.uuid4().hex[:9]}"


def create_profile(username: str, now: int | None = None) -> UserProfile:
    """Build a fresh profile with the default catalog and rule.

    Args:
        username: Display name (empty string for an unregistered placeholder)
        now: Creation time used for the id

    Returns:
        New UserProfile with zero balance and no logs
    """
    return UserProfile(
        id=generate_id(now),
        username=username,
        user_balance=0,
        logs=(),
        rewards=DEFAULT_REWARDS,
        point_rule=DEFAULT_RULE,
        is_sleeping=False,
        current_sleep_start=None,
    )


def create_initial_state(now: int | None = None) -> GlobalState:
    """State holding one placeholder profile pending registration."""
    profile = create_profile("", now)
    return GlobalState(active_profile_id=profile.id, profiles=(profile,))


def new_reward(name: str, cost: int, emoji: str = "", now: int | None = None) -> Reward:
    """Build a catalog entry with a fresh id and no redemptions."""
    return Reward(id=generate_id(now), name=name, cost=cost, emoji=emoji)


# ==================== Global State ====================


def get_active_profile(state: GlobalState) -> UserProfile:
    """Return the active profile, falling back to the first one.

    A stale active id is recovered locally and never raises.
    """
    for profile in state.profiles:
        if profile.id == state.active_profile_id:
            return profile
    return state.profiles[0]


def update_active_profile(state: GlobalState, update: ProfileUpdate) -> GlobalState:
    """Apply update to the active profile and return the new state.

    Every other profile keeps its position and identity. If the active id
    does not match any profile, or the update returns the profile untouched,
    the original state object is returned.
    """
    for index, profile in enumerate(state.profiles):
        if profile.id == state.active_profile_id:
            break
    else:
        return state

    updated = update(profile)
    if updated is profile:
        return state

    profiles = state.profiles[:index] + (updated,) + state.profiles[index + 1:]
    return state.model_copy(update={"profiles": profiles})


def switch_profile(state: GlobalState, profile_id: str) -> GlobalState:
    """Make profile_id the active profile without checking it exists."""
    if profile_id == state.active_profile_id:
        return state
    return state.model_copy(update={"active_profile_id": profile_id})


# ==================== Profile Updates ====================


def start_sleep(profile: UserProfile, now: int) -> UserProfile:
    """Open a sleep session. No effect if one is already open."""
    if profile.is_sleeping:
        return profile
    return profile.model_copy(update={"is_sleeping": True, "current_sleep_start": now})


def wake_up(
    profile: UserProfile,
    points: int,
    duration_minutes: int,
    rating: int | None,
    now: int,
    log_id: str | None = None,
) -> UserProfile:
    """Close the open session, credit its points and append its log.

    Waking up without an open session has no effect.

    Args:
        profile: Profile with an open session
        points: Signed points awarded by the points formula
        duration_minutes: Session length from the points formula
        rating: Optional 1-5 quality rating supplied by the user
        now: End time of the session
        log_id: Id for the new log (generated when omitted)

    Returns:
        Updated profile, or the same profile when not sleeping
    """
    if profile.current_sleep_start is None:
        return profile

    log = SleepLog(
        id=log_id or generate_id(now),
        start_time=profile.current_sleep_start,
        end_time=now,
        duration_minutes=duration_minutes,
        points_earned=points,
        quality_rating=rating,
    )
    return profile.model_copy(update={
        "is_sleeping": False,
        "current_sleep_start": None,
        "user_balance": profile.user_balance + points,
        "logs": profile.logs + (log,),
    })


def redeem_reward(profile: UserProfile, reward_id: str) -> UserProfile:
    """Spend points on a reward.

    This is the only place insufficient funds are rejected: an unknown
    reward or a balance below its cost leaves the profile unchanged.
    """
    reward = profile.find_reward(reward_id)
    if reward is None or profile.user_balance < reward.cost:
        return profile

    rewards = tuple(
        r.model_copy(update={"redemption_count": r.redemption_count + 1}) if r.id == reward_id else r
        for r in profile.rewards
    )
    return profile.model_copy(update={
        "user_balance": profile.user_balance - reward.cost,
        "rewards": rewards,
    })


def update_rule(profile: UserProfile, rule: PointRule) -> UserProfile:
    return profile.model_copy(update={"point_rule": rule})


def add_reward(profile: UserProfile, reward: Reward) -> UserProfile:
    """Append a reward. A reward id already in the catalog is rejected."""
    if profile.find_reward(reward.id) is not None:
        return profile
    return profile.model_copy(update={"rewards": profile.rewards + (reward,)})


def remove_reward(profile: UserProfile, reward_id: str) -> UserProfile:
    """Drop a reward. Past logs and balance are unaffected."""
    if profile.find_reward(reward_id) is None:
        return profile
    return profile.model_copy(update={
        "rewards": tuple(r for r in profile.rewards if r.id != reward_id),
    })


def rename_profile(profile: UserProfile, username: str) -> UserProfile:
    """Set the username (first-run registration). Blank names are rejected."""
    name = username.strip()
    if not name or name == profile.username:
        return profile
    return profile.model_copy(update={"username": name})
