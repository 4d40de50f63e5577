"""Import/Merge Resolver - Fold an exported profile into the global state.

The username is the merge key because profile ids are local to one
installation. A matching profile keeps its own id and takes the imported
content; otherwise the import is appended under a new id. Everything is
validated before the state is touched.
"""

import json
import logging
import uuid
from typing import Any

from pydantic import ValidationError

from .models import GlobalState, UserProfile
from .migration import reconcile_profile
from .profiles import now_ms


logger = logging.getLogger(__name__)

REQUIRED_IMPORT_FIELDS = ("userBalance", "logs", "username")
IMPORTED_ID_SUFFIX = "_imported"


def imported_profile_id(now: int | None = None) -> str:
    """Fresh id for an appended import, tagged with its origin."""
    if now is None:
        now = now_ms()
    return f"{now}{uuid.uuid4().hex[:6]}{IMPORTED_ID_SUFFIX}"


def parse_import_payload(payload: str) -> UserProfile | None:
    """Parse, check and normalize an exported profile.

    Args:
        payload: JSON text of a single profile

    Returns:
        Normalized UserProfile, or None if the payload is unusable
    """
    try:
        doc: Any = json.loads(payload)
    except ValueError as e:
        logger.warning("Import payload is not valid JSON: %s", str(e))
        return None

    if not isinstance(doc, dict):
        logger.warning("Import payload is not an object")
        return None

    missing = [field for field in REQUIRED_IMPORT_FIELDS if field not in doc]
    if missing:
        logger.warning("Import payload missing fields: %s", ", ".join(missing))
        return None

    try:
        return reconcile_profile(doc)
    except ValidationError as e:
        logger.warning("Import payload failed validation: %s", str(e))
        return None


def merge_profile(state: GlobalState, candidate: UserProfile, now: int | None = None) -> GlobalState:
    """Overwrite the same-named profile or append the candidate.

    Args:
        state: Current global state
        candidate: Normalized imported profile
        now: Time used for a newly assigned id

    Returns:
        New state with the merged profile active
    """
    profiles = list(state.profiles)

    for index, existing in enumerate(profiles):
        if existing.username == candidate.username:
            merged = candidate.model_copy(update={"id": existing.id})
            profiles[index] = merged
            logger.info("Import overwrote profile %s", existing.id)
            break
    else:
        taken = {p.id for p in profiles}
        new_id = imported_profile_id(now)
        while new_id in taken:
            new_id = imported_profile_id(now)
        merged = candidate.model_copy(update={"id": new_id})
        profiles.append(merged)
        logger.info("Import added profile %s", new_id)

    return GlobalState(active_profile_id=merged.id, profiles=tuple(profiles))


def import_profile(state: GlobalState, payload: str, now: int | None = None) -> GlobalState | None:
    """Import a serialized profile into state.

    Returns:
        The new state, or None when the payload was rejected
    """
    candidate = parse_import_payload(payload)
    if candidate is None:
        return None
    return merge_profile(state, candidate, now)


def export_profile(profile: UserProfile) -> str:
    """Serialize a profile in the import wire format."""
    return profile.model_dump_json(by_alias=True)
