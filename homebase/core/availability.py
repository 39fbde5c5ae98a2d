"""Availability tracker — last known reachability of the remote API.

After a failure the orchestrator goes straight to the local store for a
decay window (5 minutes by default) instead of hammering a dead endpoint.
The state is persisted in the local key-value store so it survives restarts.
It is evaluated on every call, so recovery is picked up without a restart.
"""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Callable

from homebase.core.errors import StorageError
from homebase.data.db import KeyValueStore

logger = logging.getLogger(__name__)

_STATE_KEY = "api_status"


class ApiStatus(str, Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class AvailabilityTracker:
    """Process-wide remote reachability state with a decaying failure window."""

    def __init__(
        self,
        kv: KeyValueStore | None = None,
        decay_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if decay_seconds is None:
            from homebase.config import settings
            decay_seconds = settings.AVAILABILITY_DECAY_SECONDS

        self._kv = kv
        self._decay_seconds = decay_seconds
        self._clock = clock
        self.last_status = ApiStatus.UNKNOWN
        self.last_check_timestamp: float | None = None
        self._restore()

    def _restore(self) -> None:
        if self._kv is None:
            return
        try:
            raw = self._kv.get_item(_STATE_KEY)
        except StorageError as exc:
            logger.error("Could not read availability state: %s", exc)
            return
        if raw is None:
            return
        try:
            state = json.loads(raw)
            self.last_status = ApiStatus(state["status"])
            self.last_check_timestamp = state.get("checkedAt")
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring malformed availability state %r: %s", raw, exc)

    def _persist(self) -> None:
        if self._kv is None:
            return
        state = {"status": self.last_status.value, "checkedAt": self.last_check_timestamp}
        try:
            self._kv.set_item(_STATE_KEY, json.dumps(state))
        except StorageError as exc:
            # In-memory state still holds for this process
            logger.error("Could not persist availability state: %s", exc)

    def _record(self, status: ApiStatus) -> None:
        if status is not self.last_status:
            logger.info("Remote API status: %s -> %s", self.last_status.value, status.value)
        self.last_status = status
        self.last_check_timestamp = self._clock()
        self._persist()

    def record_success(self) -> None:
        self._record(ApiStatus.AVAILABLE)

    def record_failure(self) -> None:
        self._record(ApiStatus.UNAVAILABLE)

    def reset(self) -> None:
        """Forget everything, so the next call tries the remote again."""
        self.last_status = ApiStatus.UNKNOWN
        self.last_check_timestamp = None
        if self._kv is not None:
            try:
                self._kv.remove_item(_STATE_KEY)
            except StorageError as exc:
                logger.error("Could not clear availability state: %s", exc)
        logger.info("Remote API status reset")

    def should_prefer_local(self) -> bool:
        """True while a recorded failure is younger than the decay window."""
        if self.last_status is not ApiStatus.UNAVAILABLE or self.last_check_timestamp is None:
            return False
        return (self._clock() - self.last_check_timestamp) < self._decay_seconds
