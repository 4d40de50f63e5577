"""Profile Store - Single in-memory holder of the global state.

All writes go through update_active_profile (or the state-level commit used
by switching and importing). Each accepted change replaces the held state
with a new immutable snapshot and, once hydrated, writes the whole document
back to the blob store.
"""

import logging
from typing import Callable

from ..core import importer
from ..core import profiles as ops
from ..core.migration import dump_global_state, load_document
from ..core.models import (
    GlobalState,
    PointRule,
    Reward,
    SleepPointsFormula,
    UserProfile,
)
from .storage import BlobStore, StorageReadError


logger = logging.getLogger(__name__)


class ProfileStore:
    """Owns the GlobalState and is its only writer.

    Readers get frozen models, so nothing outside the store can mutate the
    held state. Operations return True when they changed the state.
    """

    def __init__(self, blob_store: BlobStore, clock: Callable[[], int] = ops.now_ms) -> None:
        """Initialize with a placeholder state; call hydrate() before use.

        Args:
            blob_store: Where the serialized state is loaded from and saved to
            clock: Source of epoch-millisecond timestamps
        """
        self._blob_store = blob_store
        self._clock = clock
        self._state = ops.create_initial_state(clock())
        self._hydrated = False
        self._load_complete = True

    @property
    def state(self) -> GlobalState:
        return self._state

    @property
    def active_profile(self) -> UserProfile:
        return ops.get_active_profile(self._state)

    @property
    def hydrated(self) -> bool:
        return self._hydrated

    @property
    def load_complete(self) -> bool:
        """False if hydration had to drop part of the stored document."""
        return self._load_complete

    @property
    def has_active_profile(self) -> bool:
        """Whether the active id matches a profile (reads fall back otherwise)."""
        return any(p.id == self._state.active_profile_id for p in self._state.profiles)

    def hydrate(self) -> GlobalState:
        """Load and migrate the stored document.

        Saving is enabled only from here on, so a legacy document is never
        overwritten by the placeholder state. If the store cannot be read,
        saving stays disabled and hydrate() may be retried. A fully
        recovered document is written back once in the current shape; a
        partly recovered one is left as stored until the next change.
        """
        try:
            raw = self._blob_store.load()
        except StorageReadError as e:
            logger.error("Stored state unreadable, saving disabled: %s", str(e))
            return self._state

        result = load_document(raw, self._clock())
        self._state = result.state
        self._hydrated = True
        self._load_complete = result.complete
        logger.info(
            "Hydrated %d profile(s), active: %s",
            len(self._state.profiles),
            self._state.active_profile_id,
        )

        if result.complete:
            self._persist()
        else:
            logger.warning("Stored state only partly recovered; original kept until the next change")
        return self._state

    def _persist(self) -> None:
        if not self._blob_store.save(dump_global_state(self._state)):
            logger.warning("State write-back failed; in-memory state kept")

    def _commit(self, new_state: GlobalState) -> bool:
        if new_state is self._state:
            return False
        self._state = new_state
        if self._hydrated:
            self._persist()
        else:
            logger.debug("Change held in memory until hydration")
        return True

    # ==================== Mutation Primitive ====================

    def update_active_profile(self, update: ops.ProfileUpdate) -> GlobalState:
        """Apply update to the active profile.

        Args:
            update: Function from the current profile to its replacement

        Returns:
            The state after the update (unchanged if it had no effect)
        """
        self._commit(ops.update_active_profile(self._state, update))
        return self._state

    def _apply(self, update: ops.ProfileUpdate) -> bool:
        before = self._state
        return self.update_active_profile(update) is not before

    # ==================== Sleep Sessions ====================

    def start_sleep(self) -> bool:
        """Open a session at the current time. Rejected if already sleeping."""
        now = self._clock()
        return self._apply(lambda p: ops.start_sleep(p, now))

    def wake_up(self, points: int, duration_minutes: int, rating: int | None = None) -> bool:
        """Close the open session with values from the points formula.

        Rejected if no session is open.
        """
        now = self._clock()
        return self._apply(lambda p: ops.wake_up(p, points, duration_minutes, rating, now))

    def finish_sleep(self, formula: SleepPointsFormula, rating: int | None = None) -> bool:
        """Score the open session with formula and close it.

        Args:
            formula: Points formula called with (start, end, rule)
            rating: Optional 1-5 quality rating

        Returns:
            True if a session was closed
        """
        profile = self.active_profile
        if profile.current_sleep_start is None:
            return False

        now = self._clock()
        result = formula(profile.current_sleep_start, now, profile.point_rule)
        return self._apply(
            lambda p: ops.wake_up(p, result.points, result.duration_minutes, rating, now)
        )

    # ==================== Rewards & Rules ====================

    def redeem_reward(self, reward_id: str) -> bool:
        """Redeem a reward. Rejected if unknown or unaffordable."""
        return self._apply(lambda p: ops.redeem_reward(p, reward_id))

    def update_rule(self, rule: PointRule) -> bool:
        return self._apply(lambda p: ops.update_rule(p, rule))

    def add_reward(self, reward: Reward) -> bool:
        return self._apply(lambda p: ops.add_reward(p, reward))

    def remove_reward(self, reward_id: str) -> bool:
        return self._apply(lambda p: ops.remove_reward(p, reward_id))

    # ==================== Profiles ====================

    def register_username(self, username: str) -> bool:
        """Name the active profile (first-run registration)."""
        return self._apply(lambda p: ops.rename_profile(p, username))

    def switch_profile(self, profile_id: str) -> bool:
        """Change the active profile. The id is not checked."""
        return self._commit(ops.switch_profile(self._state, profile_id))

    def import_profile(self, payload: str) -> bool:
        """Merge an exported profile into the state.

        Returns:
            True on success; False leaves the state untouched
        """
        new_state = importer.import_profile(self._state, payload, self._clock())
        if new_state is None:
            return False
        self._commit(new_state)
        return True

    def export_active_profile(self) -> str:
        return importer.export_profile(self.active_profile)
