"""Core Data Models - Pydantic models for type safety.

All models are immutable value objects with no behavior beyond validation.
Attribute names are snake_case; the persisted/wire form is camelCase.
"""

from typing import Callable, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# Stable id given to a migrated single-profile document that carried none
LEGACY_PROFILE_ID = "legacy_user"


class _WireModel(BaseModel):
    """Base for all persisted records: frozen, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SleepLog(_WireModel):
    """One completed sleep session."""

    id: str
    start_time: int = Field(description="Epoch milliseconds the session began")
    end_time: Optional[int] = Field(default=None, description="None while the session is open")
    duration_minutes: int = Field(ge=0)
    points_earned: int = Field(description="Negative for a late-sleep penalty")
    quality_rating: Optional[int] = Field(default=None, ge=1, le=5)


class Reward(_WireModel):
    """A redeemable catalog entry."""

    id: str
    name: str
    cost: int = Field(ge=0)
    emoji: str = ""
    redemption_count: int = Field(default=0, ge=0)


class PointRule(_WireModel):
    """Policy for converting sleep timing into points."""

    max_daily_points: int = Field(description="Cap for the early-sleep reward")
    penalty_points: int = Field(description="Deduction for sleeping late")


class UserProfile(_WireModel):
    """A single user's complete habit-tracking record.

    Unknown extra fields are kept so that imports round-trip them.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    username: str = ""
    user_balance: int = 0
    logs: tuple[SleepLog, ...] = ()
    rewards: tuple[Reward, ...] = ()
    point_rule: PointRule
    is_sleeping: bool = False
    current_sleep_start: Optional[int] = None

    @model_validator(mode="after")
    def _check_session(self) -> "UserProfile":
        if self.is_sleeping != (self.current_sleep_start is not None):
            raise ValueError("isSleeping must be true exactly when currentSleepStart is set")
        return self

    def find_reward(self, reward_id: str) -> Reward | None:
        return next((r for r in self.rewards if r.id == reward_id), None)


class GlobalState(_WireModel):
    """Root persisted document: every profile plus the active one's id."""

    active_profile_id: str
    profiles: tuple[UserProfile, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "GlobalState":
        ids = [p.id for p in self.profiles]
        if len(ids) != len(set(ids)):
            raise ValueError("Profile ids must be unique")
        return self


class SleepPoints(_WireModel):
    """Result of the points formula for one finished session."""

    points: int
    duration_minutes: int = Field(ge=0)


# (start_ms, end_ms, rule) -> SleepPoints; the formula itself lives outside this package
SleepPointsFormula = Callable[[int, int, PointRule], SleepPoints]


DEFAULT_RULE = PointRule(max_daily_points=100, penalty_points=50)

DEFAULT_REWARDS: tuple[Reward, ...] = (
    Reward(id="1", name="能量飲料", cost=100, emoji="⚡"),
    Reward(id="2", name="熬夜贖罪券", cost=500, emoji="🎫"),
    Reward(id="3", name="賴床 10 分鐘", cost=50, emoji="⏰"),
    Reward(id="4", name="購買新皮膚", cost=1000, emoji="🎨"),
)
