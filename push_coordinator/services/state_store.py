"""Durable client state: prompt dismissal and last-known permission.

These are the only values that survive a restart. The subscription itself is
always re-derived from the live platform channel.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ValidationError

from push_coordinator.models.enums import PermissionState
from push_coordinator.schemas.subscription import DismissalRecord

logger = logging.getLogger(__name__)


class PersistedState(BaseModel):
    """On-disk shape of the state file."""

    dismissal: DismissalRecord | None = None
    last_permission: PermissionState | None = None


class StateStore:
    """JSON-file backed store for the coordinator's durable state."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._state = PersistedState()
        self._load()

    def _load(self) -> None:
        """Load state from disk."""
        if not self.path.exists():
            self._state = PersistedState()
            return
        try:
            with open(self.path) as f:
                self._state = PersistedState.model_validate(json.load(f))
            logger.debug(f"Loaded coordinator state from {self.path}")
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load {self.path.name}, starting fresh: {e}")
            self._state = PersistedState()

    def _save(self) -> None:
        """Save state to disk."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                f.write(self._state.model_dump_json(indent=2))
        except OSError as e:
            logger.error(f"Failed to save {self.path.name}: {e}")

    def dismissal(self) -> DismissalRecord | None:
        return self._state.dismissal

    def record_dismissal(self, when: datetime | None = None) -> DismissalRecord:
        """Remember that the user dismissed the prompt."""
        record = DismissalRecord(dismissed_at=when or datetime.now(UTC))
        self._state.dismissal = record
        self._save()
        return record

    def clear_dismissal(self) -> None:
        self._state.dismissal = None
        self._save()

    def last_permission(self) -> PermissionState | None:
        return self._state.last_permission

    def save_permission(self, permission: PermissionState) -> None:
        """Persist the permission state if it changed."""
        if self._state.last_permission == permission:
            return
        self._state.last_permission = permission
        self._save()
