from __future__ import annotations

"""
Finalization and revision ledger for daily and activity records.

Design intent:
- Model the record lifecycle as Draft -> Finalized, one way only.
- Edit drafts in place; turn every change to a finalized record into an appended revision.
- Append revisions one write at a time and report exactly what landed when a write fails.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Union, get_args

from pydantic import ValidationError as PydanticValidationError

from daymark.internal_core.clock import Clock, iso_now
from daymark.internal_core.contracts import (
    DIFF_IGNORED_FIELDS,
    SYSTEM_MANAGED_FIELDS,
    ActivityLog,
    AnyLog,
    DailyLog,
    LogKind,
    Revision,
    RevisionReason,
)
from daymark.internal_core.errors import IntegrityViolation, StorageError, ValidationError
from daymark.internal_core.record_store import RecordStore

logger = logging.getLogger(__name__)

REVISIONS_COLLECTION = "revisions"
COLLECTION_BY_KIND: dict[str, str] = {"daily": "daily_logs", "activity": "activity_logs"}
MODEL_BY_KIND: dict[str, type[DailyLog] | type[ActivityLog]] = {"daily": DailyLog, "activity": ActivityLog}

FINALIZED_MODIFY_REASON = (
    "This log has been finalized and cannot be directly modified. "
    "You can create a revision instead."
)

_REVISION_REASONS = frozenset(get_args(RevisionReason))


@dataclass(frozen=True)
class Draft:
    record: AnyLog


@dataclass(frozen=True)
class Finalized:
    record: AnyLog
    revisions: list[Revision]


LedgerEntry = Union[Draft, Finalized]


@dataclass(frozen=True)
class ModifyCheck:
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class RevisionOutcome:
    needs_revision: bool
    attempted: int = 0
    appended: int = 0
    appended_fields: list[str] = field(default_factory=list)
    failed_fields: list[str] = field(default_factory=list)
    error: str | None = None
    revisions: list[Revision] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.error is None and self.appended == self.attempted


def _normalized(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _changed_fields(before: Mapping[str, Any], after: Mapping[str, Any]) -> list[str]:
    keys = [key for key in after.keys() if key not in DIFF_IGNORED_FIELDS]
    return [key for key in keys if _normalized(before.get(key)) != _normalized(after.get(key))]


def parse_record(payload: Mapping[str, Any]) -> AnyLog:
    kind = payload.get("kind", "daily")
    model = MODEL_BY_KIND.get(str(kind))
    if model is None:
        raise ValidationError(f"Unsupported log kind: {kind}")
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {kind} log: {exc}") from exc


def finalize_precondition(record: AnyLog) -> str | None:
    """Return why `record` cannot be finalized, or None when it can."""
    if record.finalized:
        return "Log is already finalized"
    if isinstance(record, DailyLog) and not record.symptoms:
        return "Cannot finalize a log with no symptoms recorded"
    if isinstance(record, ActivityLog) and not record.activity_id:
        return "Cannot finalize an activity log without an activity"
    return None


def guard_direct_update(stored: AnyLog, proposed: AnyLog) -> None:
    """Reject a whole-record replace that would alter protected evidence."""
    before = stored.model_dump(mode="json")
    after = proposed.model_dump(mode="json")
    changed = _changed_fields(before, after)
    if stored.finalized and changed:
        raise IntegrityViolation(
            f"Finalized log {stored.id} cannot be replaced; changed fields: {', '.join(changed)}"
        )
    system_changes = [name for name in changed if name in SYSTEM_MANAGED_FIELDS]
    if system_changes:
        raise IntegrityViolation(f"System-managed fields cannot be edited: {', '.join(system_changes)}")


class RevisionLedger:
    def __init__(self, store: RecordStore, clock: Clock):
        self._store = store
        self._clock = clock

    def _locate(self, profile_id: str, log_id: str) -> tuple[LogKind, list[dict[str, Any]], int]:
        for kind, collection in COLLECTION_BY_KIND.items():
            items = self._store.get(profile_id, collection)
            for index, item in enumerate(items):
                if item.get("id") == log_id:
                    return kind, items, index  # type: ignore[return-value]
        raise KeyError(f"Unknown log_id: {log_id}")

    def load(self, profile_id: str, log_id: str) -> AnyLog:
        _, items, index = self._locate(profile_id, log_id)
        return parse_record(items[index])

    def entry_for(self, profile_id: str, log_id: str) -> LedgerEntry:
        record = self.load(profile_id, log_id)
        if record.finalized:
            return Finalized(record=record, revisions=self.get_revisions(profile_id, log_id))
        return Draft(record=record)

    def can_modify(self, profile_id: str, log_id: str) -> ModifyCheck:
        record = self.load(profile_id, log_id)
        if record.finalized:
            return ModifyCheck(allowed=False, reason=FINALIZED_MODIFY_REASON)
        return ModifyCheck(allowed=True)

    def finalize(self, profile_id: str, log_id: str, finalized_by: str) -> AnyLog:
        kind, items, index = self._locate(profile_id, log_id)
        record = parse_record(items[index])
        problem = finalize_precondition(record)
        if problem is not None:
            raise ValidationError(problem)
        now = iso_now(self._clock)
        finalized = record.model_copy(
            update={
                "finalized": True,
                "finalized_at": now,
                "finalized_by": finalized_by,
                "updated_at": now,
            }
        )
        items[index] = finalized.model_dump(mode="json")
        self._store.put(profile_id, COLLECTION_BY_KIND[kind], items)
        logger.info("Finalized %s log %s for profile %s", kind, log_id, profile_id)
        return finalized

    def revisions_by_log(self, profile_id: str) -> dict[str, list[Revision]]:
        """Group the profile's revisions by log id with a single collection read."""
        grouped: dict[str, list[Revision]] = {}
        for item in self._store.get(profile_id, REVISIONS_COLLECTION):
            revision = Revision.model_validate(item)
            grouped.setdefault(revision.log_id, []).append(revision)
        # sorted() is stable, so equal timestamps keep append order.
        return {log_id: sorted(items, key=lambda item: item.created_at) for log_id, items in grouped.items()}

    def get_revisions(self, profile_id: str, log_id: str) -> list[Revision]:
        revisions = [
            Revision.model_validate(item)
            for item in self._store.get(profile_id, REVISIONS_COLLECTION)
            if item.get("log_id") == log_id
        ]
        return sorted(revisions, key=lambda item: item.created_at)

    def _writable_changes(self, model: type[DailyLog] | type[ActivityLog], proposed: Mapping[str, Any]) -> dict[str, Any]:
        system = sorted(name for name in proposed if name in SYSTEM_MANAGED_FIELDS)
        if system:
            raise IntegrityViolation(f"System-managed fields cannot be edited: {', '.join(system)}")
        unknown = sorted(
            name for name in proposed if name not in model.model_fields and name not in DIFF_IGNORED_FIELDS
        )
        if unknown:
            raise ValidationError(f"Unknown fields for {model.__name__}: {', '.join(unknown)}")
        return {name: value for name, value in proposed.items() if name not in DIFF_IGNORED_FIELDS}

    def update_with_revision(
        self,
        profile_id: str,
        log_id: str,
        proposed_changes: Mapping[str, Any],
        reason: RevisionReason,
        reason_note: str | None = None,
        original: AnyLog | None = None,
    ) -> RevisionOutcome:
        if reason not in _REVISION_REASONS:
            raise ValidationError(f"Unsupported revision reason: {reason}")
        kind, items, index = self._locate(profile_id, log_id)
        stored = parse_record(items[index])
        if original is None:
            original = stored
        elif original.id != stored.id:
            raise ValidationError(f"Original record {original.id} does not match log {log_id}")

        model = MODEL_BY_KIND[kind]
        changes = self._writable_changes(model, proposed_changes)
        before = original.model_dump(mode="json")
        try:
            candidate = model.model_validate({**before, **changes})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid changes for {kind} log {log_id}: {exc}") from exc
        after = candidate.model_dump(mode="json")
        changed = [name for name in _changed_fields(before, after) if name in changes]

        if not stored.finalized:
            if changed:
                updated = candidate.model_copy(update={"updated_at": iso_now(self._clock)})
                items[index] = updated.model_dump(mode="json")
                self._store.put(profile_id, COLLECTION_BY_KIND[kind], items)
                logger.info("Updated draft %s log %s in place (%d field(s))", kind, log_id, len(changed))
            return RevisionOutcome(needs_revision=False, attempted=0, appended=0)

        return self._append_revisions(
            profile_id=profile_id,
            kind=kind,
            original=original,
            before=before,
            after=after,
            changed=changed,
            reason=reason,
            reason_note=reason_note,
        )

    def _append_revisions(
        self,
        *,
        profile_id: str,
        kind: LogKind,
        original: AnyLog,
        before: dict[str, Any],
        after: dict[str, Any],
        changed: list[str],
        reason: RevisionReason,
        reason_note: str | None,
    ) -> RevisionOutcome:
        appended: list[Revision] = []
        for position, field_path in enumerate(changed):
            revision = Revision(
                id=uuid.uuid4().hex,
                log_id=original.id,
                log_type=kind,
                profile_id=profile_id,
                field_path=field_path,
                original_value=before.get(field_path),
                new_value=after.get(field_path),
                reason=reason,
                reason_note=reason_note,
                created_at=iso_now(self._clock),
                snapshot=before,
            )
            try:
                existing = self._store.get(profile_id, REVISIONS_COLLECTION)
                existing.append(revision.model_dump(mode="json"))
                self._store.put(profile_id, REVISIONS_COLLECTION, existing)
            except StorageError as exc:
                logger.warning(
                    "Revision append for log %s stopped at field %s: %d of %d appended (%s)",
                    original.id,
                    field_path,
                    len(appended),
                    len(changed),
                    exc,
                )
                return RevisionOutcome(
                    needs_revision=True,
                    attempted=len(changed),
                    appended=len(appended),
                    appended_fields=[item.field_path for item in appended],
                    failed_fields=list(changed[position:]),
                    error=str(exc),
                    revisions=appended,
                )
            appended.append(revision)

        if appended:
            logger.info("Appended %d revision(s) to finalized log %s", len(appended), original.id)
        return RevisionOutcome(
            needs_revision=True,
            attempted=len(changed),
            appended=len(appended),
            appended_fields=[item.field_path for item in appended],
            revisions=appended,
        )

    def delete_record(self, profile_id: str, log_id: str) -> None:
        """Remove a record together with all of its revisions."""
        kind, items, index = self._locate(profile_id, log_id)
        del items[index]
        self._store.put(profile_id, COLLECTION_BY_KIND[kind], items)
        revisions = self._store.get(profile_id, REVISIONS_COLLECTION)
        kept = [item for item in revisions if item.get("log_id") != log_id]
        if len(kept) != len(revisions):
            self._store.put(profile_id, REVISIONS_COLLECTION, kept)
        logger.info("Deleted %s log %s and %d revision(s)", kind, log_id, len(revisions) - len(kept))
