from __future__ import annotations

"""
Creation-evidence timestamps and the process-wide evidence-mode switch.

Design intent:
- Stamp a record exactly once, at its first persist, and only while evidence mode is on.
- Never stamp retroactively: toggling the mode leaves existing records untouched.
- Take the mode config as an explicit argument rather than reading shared state.
"""

import logging
from typing import TypeVar

from daymark.internal_core.clock import Clock, iso_now
from daymark.internal_core.contracts import EvidenceModeConfig, LogRecord
from daymark.internal_core.record_store import GLOBAL_SCOPE, RecordStore
from daymark.temporal.integrity import parse_timestamp

logger = logging.getLogger(__name__)

EVIDENCE_MODE_COLLECTION = "evidence_mode"

RecordT = TypeVar("RecordT", bound=LogRecord)


def stamp(record: RecordT, config: EvidenceModeConfig, clock: Clock) -> RecordT:
    """Return `record` with an evidence timestamp when the mode is enabled."""
    if not config.enabled:
        return record
    if record.evidence_timestamp:
        return record
    return record.model_copy(update={"evidence_timestamp": iso_now(clock)})


class EvidenceModeService:
    def __init__(self, store: RecordStore, clock: Clock):
        self._store = store
        self._clock = clock

    def current(self) -> EvidenceModeConfig:
        items = self._store.get(GLOBAL_SCOPE, EVIDENCE_MODE_COLLECTION)
        if not items:
            return EvidenceModeConfig()
        return EvidenceModeConfig.model_validate(items[0])

    def _save(self, config: EvidenceModeConfig) -> EvidenceModeConfig:
        self._store.put(GLOBAL_SCOPE, EVIDENCE_MODE_COLLECTION, [config.model_dump()])
        return config

    def activate(self, profile_id: str) -> EvidenceModeConfig:
        config = EvidenceModeConfig(enabled=True, enabled_at=iso_now(self._clock), enabled_by=profile_id)
        logger.info("Evidence mode enabled by profile %s", profile_id)
        return self._save(config)

    def deactivate(self) -> EvidenceModeConfig:
        logger.info("Evidence mode disabled")
        return self._save(EvidenceModeConfig())

    def indicator(self) -> str | None:
        config = self.current()
        if not config.enabled or not config.enabled_at:
            return None
        since = parse_timestamp(config.enabled_at)
        return f"Evidence Mode active since {since.date().isoformat()}"
