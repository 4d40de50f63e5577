"""Migration Engine - Normalize any loaded document into a current GlobalState.

Two persisted shapes exist:
    legacy:  a single profile at the root ({"logs": [...], "userBalance": ...})
    current: {"activeProfileId": ..., "profiles": [...]}

Migration never raises. A document that does not validate is salvaged
record by record; whatever cannot be recovered is dropped and logged, and
the result is flagged as incomplete so the caller knows not to overwrite
the stored original with it.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from .models import (
    DEFAULT_RULE,
    LEGACY_PROFILE_ID,
    GlobalState,
    Reward,
    SleepLog,
    UserProfile,
)
from .profiles import create_initial_state, create_profile


logger = logging.getLogger(__name__)

# Pre-multi-profile name of penaltyPoints
LEGACY_PENALTY_KEY = "minDailyPoints"
LEGACY_PENALTY_FALLBACK = 50


@dataclass(frozen=True)
class MigrationResult:
    """Outcome of loading a stored document.

    Attributes:
        state: Usable current-shape state
        complete: False if anything in the stored document was discarded
    """

    state: GlobalState
    complete: bool = True


def repair_point_rule(rule: Any) -> dict[str, Any]:
    """Bring a raw point rule up to the current field names.

    A missing or non-mapping rule becomes the default rule. A legacy
    minDailyPoints value replaces penaltyPoints and is then dropped.

    Args:
        rule: Raw pointRule value from a document

    Returns:
        Dict in wire form, ready for validation
    """
    repaired = DEFAULT_RULE.model_dump(by_alias=True)
    if not isinstance(rule, Mapping):
        return repaired

    repaired.update(rule)
    if LEGACY_PENALTY_KEY in repaired:
        legacy_value = repaired.pop(LEGACY_PENALTY_KEY)
        repaired["penaltyPoints"] = LEGACY_PENALTY_FALLBACK if legacy_value is None else legacy_value
    return repaired


def reconcile_profile(
    raw: Mapping[str, Any],
    fallback_id: str | None = None,
    now: int | None = None,
) -> UserProfile:
    """Build a validated profile from a raw single-profile mapping.

    Document fields win over the defaults of a freshly created profile.
    The session flag is derived from currentSleepStart so the two can
    never disagree.

    Args:
        raw: Untyped profile fields in wire form
        fallback_id: Id used when the document carries none
        now: Time used for the id of the default profile

    Returns:
        Fully typed UserProfile

    Raises:
        ValidationError: If a field has an unusable value
    """
    username = raw.get("username") or ""
    merged = create_profile(str(username), now).model_dump(by_alias=True)
    merged.update(raw)

    merged["pointRule"] = repair_point_rule(merged.get("pointRule"))
    if fallback_id is not None and not merged.get("id"):
        merged["id"] = fallback_id
    merged["isSleeping"] = merged.get("currentSleepStart") is not None

    return UserProfile.model_validate(merged)


def _valid_items(items: Any, model: type[BaseModel], label: str) -> tuple[list[Any], int]:
    """Keep the raw items of a list that validate as model."""
    if not isinstance(items, list):
        return [], 1
    kept = []
    for item in items:
        try:
            model.model_validate(item)
        except ValidationError as e:
            logger.warning("Dropping invalid %s: %s", label, str(e))
            continue
        kept.append(item)
    return kept, len(items) - len(kept)


def salvage_profile(
    raw: Any,
    fallback_id: str | None = None,
    now: int | None = None,
) -> tuple[UserProfile | None, bool]:
    """Recover as much of a raw profile as validates.

    Invalid logs and rewards are dropped one by one before the profile is
    reconciled; if it still does not validate the whole profile is dropped.

    Returns:
        Tuple of (profile or None, whether nothing was lost)
    """
    if not isinstance(raw, Mapping):
        logger.warning("Dropping profile that is not an object")
        return None, False

    try:
        return reconcile_profile(raw, fallback_id, now), True
    except ValidationError:
        pass

    patched = dict(raw)
    dropped = 0
    if "logs" in patched:
        patched["logs"], lost = _valid_items(patched["logs"], SleepLog, "sleep log")
        dropped += lost
    if "rewards" in patched:
        patched["rewards"], lost = _valid_items(patched["rewards"], Reward, "reward")
        dropped += lost

    try:
        profile = reconcile_profile(patched, fallback_id, now)
    except ValidationError as e:
        logger.error("Dropping profile %s: %s", raw.get("id"), str(e))
        return None, False

    logger.warning("Recovered profile %s after dropping %d record(s)", profile.id, dropped)
    return profile, False


def is_legacy_document(doc: Any) -> bool:
    return isinstance(doc, Mapping) and "logs" in doc and "profiles" not in doc


def _salvage_current(doc: Mapping[str, Any], now: int | None) -> MigrationResult:
    raw_profiles = doc.get("profiles")
    if not isinstance(raw_profiles, list):
        logger.error("Stored profiles is not a list")
        return MigrationResult(create_initial_state(now), complete=False)

    complete = True
    profiles: list[UserProfile] = []
    seen: set[str] = set()
    for raw in raw_profiles:
        profile, intact = salvage_profile(raw, now=now)
        complete = complete and intact
        if profile is None:
            continue
        if profile.id in seen:
            logger.error("Dropping duplicate profile id %s", profile.id)
            complete = False
            continue
        seen.add(profile.id)
        profiles.append(profile)

    if not profiles:
        logger.error("No stored profile could be recovered")
        return MigrationResult(create_initial_state(now), complete=False)

    active_id = doc.get("activeProfileId")
    if not isinstance(active_id, str):
        active_id = profiles[0].id
        complete = False
    state = GlobalState(active_profile_id=active_id, profiles=tuple(profiles))
    return MigrationResult(state, complete)


def migrate(doc: Any, now: int | None = None) -> MigrationResult:
    """Normalize a parsed document of unknown shape.

    Args:
        doc: Parsed JSON value (may be None or any type)
        now: Time used for any newly created placeholder profile

    Returns:
        MigrationResult with a current-shape state
    """
    if is_legacy_document(doc):
        profile, intact = salvage_profile(doc, fallback_id=LEGACY_PROFILE_ID, now=now)
        if profile is None:
            return MigrationResult(create_initial_state(now), complete=False)
        logger.info("Migrated legacy single-profile document: %s", profile.id)
        state = GlobalState(active_profile_id=profile.id, profiles=(profile,))
        return MigrationResult(state, intact)

    if isinstance(doc, Mapping) and "profiles" in doc:
        try:
            return MigrationResult(GlobalState.model_validate(doc))
        except ValidationError as e:
            logger.error("Stored state failed validation, salvaging profiles: %s", str(e))
        return _salvage_current(doc, now)

    if doc is not None:
        logger.warning("Unrecognized document shape: %s", type(doc).__name__)
    return MigrationResult(create_initial_state(now))


def migrate_document(doc: Any, now: int | None = None) -> GlobalState:
    """Normalize a parsed document, discarding the completeness flag."""
    return migrate(doc, now).state


def load_document(raw: str | None, now: int | None = None) -> MigrationResult:
    """Parse serialized state and migrate it.

    Args:
        raw: JSON text from the blob store, or None on first run
        now: Time used for any newly created placeholder profile

    Returns:
        MigrationResult (never raises); unparseable text is incomplete
    """
    if raw is None:
        return MigrationResult(create_initial_state(now))

    try:
        doc = json.loads(raw)
    except ValueError as e:
        logger.error("Failed to parse saved data: %s", str(e))
        return MigrationResult(create_initial_state(now), complete=False)

    return migrate(doc, now)


def load_global_state(raw: str | None, now: int | None = None) -> GlobalState:
    return load_document(raw, now).state


def dump_global_state(state: GlobalState) -> str:
    """Serialize state in the persisted wire form."""
    return state.model_dump_json(by_alias=True)
