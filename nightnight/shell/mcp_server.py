"""MCP Server - Tool definitions for the sleep tracker.

Each tool maps onto one Profile Store operation. Tools never touch profile
fields directly; they read frozen views and call store operations.
"""

import logging
import os

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings
from pydantic import ValidationError

from ..core.models import PointRule, UserProfile
from ..core.profiles import new_reward
from .profile_store import ProfileStore
from .storage import blob_store_from_env


logger = logging.getLogger(__name__)

NO_ACTIVE_PROFILE = "Active profile not found. Use switch_profile to pick one."

transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=["localhost:*", "127.0.0.1:*"],
)

mcp = FastMCP(
    "nightnight",
    instructions="""NightNight - Sleep habit tracker with a points shop.

Call start_sleep when the user goes to bed and wake_up when they get up.
Points earned from sleep can be spent with redeem_reward.
Use import_profile to bring in a profile exported from another device.""",
    stateless_http=True,
    transport_security=transport_security,
)

# Lazy-initialized store
_profile_store: ProfileStore | None = None


def get_profile_store() -> ProfileStore:
    """Get or create the hydrated profile store."""
    global _profile_store
    if _profile_store is None:
        store = ProfileStore(blob_store_from_env())
        store.hydrate()
        _profile_store = store
    return _profile_store


def storage_backend() -> str:
    """Name of the configured storage backend."""
    return os.environ.get("NIGHTNIGHT_STORAGE", "firestore")


def _profile_view(profile: UserProfile) -> dict:
    return {
        "id": profile.id,
        "username": profile.username,
        "balance": profile.user_balance,
        "is_sleeping": profile.is_sleeping,
        "current_sleep_start": profile.current_sleep_start,
        "point_rule": profile.point_rule.model_dump(),
        "log_count": len(profile.logs),
    }


# ==================== Profile Tools ====================


@mcp.tool()
def get_profile() -> dict:
    """Get the active profile's balance, session status and rule.

    Returns:
        Dictionary describing the active profile
    """
    return _profile_view(get_profile_store().active_profile)


@mcp.tool()
def list_profiles() -> dict:
    """List every profile and which one is active.

    Returns:
        Dictionary with active_profile_id and a profiles list
    """
    state = get_profile_store().state
    return {
        "active_profile_id": state.active_profile_id,
        "profiles": [
            {
                "id": p.id,
                "username": p.username,
                "balance": p.user_balance,
                "is_sleeping": p.is_sleeping,
            }
            for p in state.profiles
        ],
    }


@mcp.tool()
def register(username: str) -> dict:
    """Set the username of the active profile.

    Args:
        username: Display name (surrounding whitespace is removed)

    Returns:
        The updated profile or an error
    """
    store = get_profile_store()
    if not store.register_username(username):
        return {"error": "Username must be non-empty and different from the current one."}
    return _profile_view(store.active_profile)


@mcp.tool()
def switch_profile(profile_id: str) -> dict:
    """Make another profile active.

    Args:
        profile_id: ID of the profile to activate

    Returns:
        The profile now shown to the user
    """
    store = get_profile_store()
    if profile_id not in {p.id for p in store.state.profiles}:
        logger.warning("Switching to unknown profile: %s", profile_id)
    store.switch_profile(profile_id)
    return _profile_view(store.active_profile)


# ==================== Sleep Tools ====================


@mcp.tool()
def start_sleep() -> dict:
    """Start a sleep session now.

    Returns:
        Session start time or an error if one is already open
    """
    store = get_profile_store()
    if not store.has_active_profile:
        return {"error": NO_ACTIVE_PROFILE}
    if not store.start_sleep():
        return {"error": "A sleep session is already in progress."}
    return {"started_at": store.active_profile.current_sleep_start}


@mcp.tool()
def wake_up(points: int, duration_minutes: int, rating: int | None = None) -> dict:
    """End the open sleep session and credit its points.

    Args:
        points: Points awarded (negative for a penalty)
        duration_minutes: Length of the session in minutes
        rating: Optional sleep quality from 1 to 5

    Returns:
        The new log entry and balance, or an error
    """
    store = get_profile_store()
    if not store.has_active_profile:
        return {"error": NO_ACTIVE_PROFILE}
    try:
        woke = store.wake_up(points, duration_minutes, rating)
    except ValidationError as e:
        logger.warning("Rejected wake-up values: %s", str(e))
        return {"error": "Invalid session values."}

    if not woke:
        return {"error": "No sleep session in progress."}

    profile = store.active_profile
    return {
        "log": profile.logs[-1].model_dump(),
        "balance": profile.user_balance,
    }


@mcp.tool()
def get_logs(limit: int = 7) -> list[dict]:
    """Get the most recent sleep logs of the active profile.

    Args:
        limit: Maximum number of logs to return, newest first

    Returns:
        List of sleep logs
    """
    logs = get_profile_store().active_profile.logs
    return [log.model_dump() for log in reversed(logs[-limit:])] if limit > 0 else []


# ==================== Shop Tools ====================


@mcp.tool()
def list_rewards() -> list[dict]:
    """List the active profile's reward catalog.

    Returns:
        Rewards with cost and redemption counts
    """
    return [r.model_dump() for r in get_profile_store().active_profile.rewards]


@mcp.tool()
def redeem_reward(reward_id: str) -> dict:
    """Spend points on a reward.

    Args:
        reward_id: ID of the reward to redeem

    Returns:
        Remaining balance, or an error if unknown or unaffordable
    """
    store = get_profile_store()
    if not store.redeem_reward(reward_id):
        return {"error": "Reward not found or insufficient balance."}
    return {"balance": store.active_profile.user_balance}


@mcp.tool()
def add_reward(name: str, cost: int, emoji: str = "") -> dict:
    """Add a reward to the catalog.

    Args:
        name: Reward name
        cost: Price in points
        emoji: Display glyph

    Returns:
        The created reward
    """
    try:
        reward = new_reward(name, cost, emoji)
    except ValidationError:
        return {"error": "Cost must be zero or more."}

    if not get_profile_store().add_reward(reward):
        return {"error": "Reward could not be added."}
    return reward.model_dump()


@mcp.tool()
def remove_reward(reward_id: str) -> dict:
    """Remove a reward from the catalog.

    Args:
        reward_id: ID of the reward to remove

    Returns:
        Confirmation or an error
    """
    if not get_profile_store().remove_reward(reward_id):
        return {"error": "Reward not found."}
    return {"success": True}


@mcp.tool()
def update_rule(max_daily_points: int, penalty_points: int) -> dict:
    """Replace the active point rule.

    Args:
        max_daily_points: Cap for the early-sleep reward
        penalty_points: Deduction for sleeping late

    Returns:
        The rule now in effect
    """
    store = get_profile_store()
    store.update_rule(PointRule(max_daily_points=max_daily_points, penalty_points=penalty_points))
    return store.active_profile.point_rule.model_dump()


# ==================== Transfer Tools ====================


@mcp.tool()
def export_profile() -> str:
    """Export the active profile as JSON for import on another device.

    Returns:
        Serialized profile
    """
    return get_profile_store().export_active_profile()


@mcp.tool()
def import_profile(payload: str) -> dict:
    """Import an exported profile.

    A profile with the same username is overwritten but keeps its ID;
    otherwise the import is added as a new profile. Either way it becomes
    the active profile.

    Args:
        payload: JSON produced by export_profile

    Returns:
        The active profile after import, or an error
    """
    store = get_profile_store()
    if not store.import_profile(payload):
        return {"error": "Invalid profile data."}
    return _profile_view(store.active_profile)
