from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from gradesync.domain.errors import StorageError
from gradesync.domain.logic.grading import GradingSystem
from gradesync.services.key_value import KeyValueStore
from gradesync.services.storage import GradebookStore

logger = logging.getLogger(__name__)

MIGRATION_COMPLETED_KEY = "gradingSystemMigrationCompleted"
LEGACY_KEY_PREFIX = "gradingSystem_"


class MigrationState(str, Enum):
    NOT_STARTED = "not_started"
    COMPLETED = "completed"


@dataclass
class MigrationResult:
    completed: bool
    migrated: list[int] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class GradingSystemMigrator:
    """Moves per-year grading system preferences into the gradebook, once.

    The completion flag is only written after every record was stored. A failing
    gradebook leaves the flag unset, so the next launch tries again.
    """

    def __init__(self, preferences: KeyValueStore, store: GradebookStore | None) -> None:
        self.preferences = preferences
        self.store = store

    @property
    def state(self) -> MigrationState:
        if self.preferences.get_bool(MIGRATION_COMPLETED_KEY):
            return MigrationState.COMPLETED
        return MigrationState.NOT_STARTED

    def _legacy_entries(self, skipped: list[str]) -> dict[int, GradingSystem]:
        entries: dict[int, GradingSystem] = {}
        for key in self.preferences.keys(LEGACY_KEY_PREFIX):
            suffix = key[len(LEGACY_KEY_PREFIX):]
            raw = self.preferences.get_str(key)
            if not suffix.isdigit() or raw not in {s.value for s in GradingSystem}:
                logger.warning("Skipping unreadable legacy grading system entry %r=%r", key, raw)
                skipped.append(key)
                continue
            entries[int(suffix)] = GradingSystem(raw)
        return entries

    def migrate(self) -> MigrationResult:
        result = MigrationResult(completed=False)
        try:
            if self.state is MigrationState.COMPLETED:
                logger.debug("Grading system migration already completed, skipping")
                return MigrationResult(completed=True)
            if self.store is None:
                logger.warning("Gradebook unavailable, grading system migration postponed")
                return result

            for start_year, system in sorted(self._legacy_entries(result.skipped).items()):
                existing = self.store.get_grading_assignment(start_year)
                if existing is not None and existing.is_explicit:
                    result.skipped.append(f"{LEGACY_KEY_PREFIX}{start_year}")
                    continue
                self.store.upsert_grading_assignment(start_year, system, explicit=True)
                result.migrated.append(start_year)
        except StorageError as exc:
            logger.warning("Grading system migration failed, will retry: %s", exc)
            return result

        try:
            self.preferences.set(MIGRATION_COMPLETED_KEY, True)
        except StorageError as exc:
            logger.warning("Could not record grading system migration, will rerun: %s", exc)
            return result
        result.completed = True
        logger.info("Grading system migration completed (%d years migrated)", len(result.migrated))
        return result
