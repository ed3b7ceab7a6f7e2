from __future__ import annotations

"""
Record lifecycle orchestration over the whole-collection store.

Design intent:
- Every mutation loads one collection, changes it, and writes it back whole.
- Stamp and flag records at creation only; later reads never recompute them.
- Keep domain rules in evidence/temporal/derivation/report modules, not here.
"""

import logging
import uuid
from typing import Any, Iterable, Mapping, Sequence, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from daymark.derivation.engine import CapacityResult, derive_functional_capacity
from daymark.evidence.ledger import (
    COLLECTION_BY_KIND,
    MODEL_BY_KIND,
    ModifyCheck,
    RevisionLedger,
    RevisionOutcome,
    guard_direct_update,
    parse_record,
)
from daymark.evidence.timestamp import EvidenceModeService, stamp
from daymark.internal_core.clock import Clock, iso_now
from daymark.internal_core.config import DaymarkConfig, load_config
from daymark.internal_core.contracts import (
    SYSTEM_MANAGED_FIELDS,
    ActivityLog,
    AnyLog,
    Appointment,
    DailyLog,
    EvidenceModeConfig,
    GapExplanation,
    Limitation,
    LogKind,
    Medication,
    Revision,
    RevisionReason,
)
from daymark.internal_core.errors import InsufficientDataError, IntegrityViolation, ValidationError
from daymark.internal_core.record_store import RecordStore
from daymark.report.assembler import EvidenceReport, assemble_report
from daymark.temporal.integrity import (
    ExplainedGap,
    build_retrospective_context,
    explain_gaps,
    find_gaps,
    parse_event_date,
)

logger = logging.getLogger(__name__)

LIMITATIONS_COLLECTION = "limitations"
GAP_EXPLANATIONS_COLLECTION = "gap_explanations"
MEDICATIONS_COLLECTION = "medications"
APPOINTMENTS_COLLECTION = "appointments"

# Fields a caller may not supply when creating a record.
_CREATE_RESERVED_FIELDS = SYSTEM_MANAGED_FIELDS | {"id", "profile_id", "updated_at"}

ModelT = TypeVar("ModelT", bound=BaseModel)


def _validate(model: type[ModelT], payload: Mapping[str, Any]) -> ModelT:
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {model.__name__}: {exc}") from exc


def _in_range(event_date: str, start_date: str | None, end_date: str | None) -> bool:
    if start_date and event_date < start_date:
        return False
    if end_date and event_date > end_date:
        return False
    return True


class LogService:
    def __init__(self, store: RecordStore, clock: Clock, config: DaymarkConfig | None = None):
        self._store = store
        self._clock = clock
        self._config = config if config is not None else load_config()
        self.evidence_mode = EvidenceModeService(store, clock)
        self.ledger = RevisionLedger(store, clock)

    @property
    def config(self) -> DaymarkConfig:
        return self._config

    def _load(self, profile_id: str, collection: str, model: type[ModelT]) -> list[ModelT]:
        return [_validate(model, item) for item in self._store.get(profile_id, collection)]

    def _append(self, profile_id: str, collection: str, item: BaseModel) -> None:
        items = self._store.get(profile_id, collection)
        items.append(item.model_dump(mode="json"))
        self._store.put(profile_id, collection, items)

    def create_log(
        self,
        profile_id: str,
        kind: LogKind,
        payload: Mapping[str, Any],
        *,
        retrospective_reason: str | None = None,
        retrospective_note: str | None = None,
        evidence_config: EvidenceModeConfig | None = None,
    ) -> AnyLog:
        model = MODEL_BY_KIND.get(kind)
        if model is None:
            raise ValidationError(f"Unsupported log kind: {kind}")
        reserved = sorted(name for name in payload if name in _CREATE_RESERVED_FIELDS)
        if reserved:
            raise IntegrityViolation(f"System-managed fields cannot be supplied: {', '.join(reserved)}")
        event_date = str(payload.get("event_date") or "")
        parse_event_date(event_date)

        now = iso_now(self._clock)
        context = build_retrospective_context(
            event_date,
            now,
            reason=retrospective_reason,
            note=retrospective_note,
            threshold_days=self._config.DAYMARK_RETROSPECTIVE_THRESHOLD_DAYS,
        )
        record = _validate(
            model,
            {
                **payload,
                "id": uuid.uuid4().hex,
                "profile_id": profile_id,
                "created_at": now,
                "updated_at": now,
                "retrospective_context": context.model_dump() if context is not None else None,
            },
        )
        mode = evidence_config if evidence_config is not None else self.evidence_mode.current()
        record = stamp(record, mode, self._clock)
        self._append(profile_id, COLLECTION_BY_KIND[kind], record)
        logger.info(
            "Created %s log %s for profile %s (event_date=%s, retrospective=%s, evidence_stamped=%s)",
            kind,
            record.id,
            profile_id,
            event_date,
            context is not None,
            record.evidence_timestamp is not None,
        )
        return record

    def create_daily_log(self, profile_id: str, payload: Mapping[str, Any], **kwargs: Any) -> DailyLog:
        return self.create_log(profile_id, "daily", payload, **kwargs)  # type: ignore[return-value]

    def create_activity_log(self, profile_id: str, payload: Mapping[str, Any], **kwargs: Any) -> ActivityLog:
        return self.create_log(profile_id, "activity", payload, **kwargs)  # type: ignore[return-value]

    def get_log(self, profile_id: str, log_id: str) -> AnyLog:
        return self.ledger.load(profile_id, log_id)

    def list_logs(
        self,
        profile_id: str,
        *,
        kind: LogKind | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[AnyLog]:
        for bound in (start_date, end_date):
            if bound:
                parse_event_date(bound)
        kinds = [kind] if kind is not None else list(COLLECTION_BY_KIND)
        records: list[AnyLog] = []
        for item_kind in kinds:
            for item in self._store.get(profile_id, COLLECTION_BY_KIND[item_kind]):
                record = parse_record(item)
                if _in_range(record.event_date, start_date, end_date):
                    records.append(record)
        return sorted(records, key=lambda item: (item.event_date, item.created_at, item.id))

    def update_log(
        self,
        profile_id: str,
        log_id: str,
        changes: Mapping[str, Any],
        *,
        reason: RevisionReason = "other",
        reason_note: str | None = None,
    ) -> RevisionOutcome:
        return self.ledger.update_with_revision(profile_id, log_id, changes, reason, reason_note)

    def replace_log(self, profile_id: str, log_id: str, proposed: Mapping[str, Any]) -> AnyLog:
        """Whole-record replace for drafts; finalized records must use `update_log`."""
        stored = self.ledger.load(profile_id, log_id)
        candidate = parse_record(
            {**stored.model_dump(mode="json"), **proposed, "kind": stored.kind, "id": stored.id, "profile_id": profile_id}
        )
        guard_direct_update(stored, candidate)
        updated = candidate.model_copy(update={"updated_at": iso_now(self._clock)})
        collection = COLLECTION_BY_KIND[stored.kind]
        items = self._store.get(profile_id, collection)
        items = [updated.model_dump(mode="json") if item.get("id") == log_id else item for item in items]
        self._store.put(profile_id, collection, items)
        return updated

    def finalize_log(self, profile_id: str, log_id: str, *, finalized_by: str | None = None) -> AnyLog:
        return self.ledger.finalize(profile_id, log_id, finalized_by or profile_id)

    def can_modify(self, profile_id: str, log_id: str) -> ModifyCheck:
        return self.ledger.can_modify(profile_id, log_id)

    def get_revisions(self, profile_id: str, log_id: str) -> list[Revision]:
        self.ledger.load(profile_id, log_id)
        return self.ledger.get_revisions(profile_id, log_id)

    def delete_log(self, profile_id: str, log_id: str) -> None:
        self.ledger.delete_record(profile_id, log_id)

    def add_limitation(self, profile_id: str, payload: Mapping[str, Any]) -> Limitation:
        now = iso_now(self._clock)
        limitation = _validate(
            Limitation,
            {**payload, "id": uuid.uuid4().hex, "profile_id": profile_id, "created_at": now, "updated_at": now},
        )
        self._append(profile_id, LIMITATIONS_COLLECTION, limitation)
        logger.info("Added %s limitation %s for profile %s", limitation.category, limitation.id, profile_id)
        return limitation

    def list_limitations(self, profile_id: str, *, active_only: bool = False) -> list[Limitation]:
        limitations = self._load(profile_id, LIMITATIONS_COLLECTION, Limitation)
        if active_only:
            return [item for item in limitations if item.is_active]
        return limitations

    def deactivate_limitation(self, profile_id: str, limitation_id: str) -> Limitation:
        items = self._store.get(profile_id, LIMITATIONS_COLLECTION)
        for index, item in enumerate(items):
            if item.get("id") == limitation_id:
                updated = _validate(Limitation, {**item, "is_active": False, "updated_at": iso_now(self._clock)})
                items[index] = updated.model_dump(mode="json")
                self._store.put(profile_id, LIMITATIONS_COLLECTION, items)
                return updated
        raise KeyError(f"Unknown limitation_id: {limitation_id}")

    def explain_gap(self, profile_id: str, start_date: str, end_date: str, note: str) -> GapExplanation:
        if parse_event_date(start_date) > parse_event_date(end_date):
            raise ValidationError(f"Gap start {start_date} is after gap end {end_date}")
        explanation = _validate(
            GapExplanation,
            {
                "id": uuid.uuid4().hex,
                "profile_id": profile_id,
                "start_date": start_date,
                "end_date": end_date,
                "note": note.strip(),
                "created_at": iso_now(self._clock),
            },
        )
        # One explanation per exact interval; a new note replaces the old one.
        items = [
            item
            for item in self._store.get(profile_id, GAP_EXPLANATIONS_COLLECTION)
            if (item.get("start_date"), item.get("end_date")) != (start_date, end_date)
        ]
        items.append(explanation.model_dump(mode="json"))
        self._store.put(profile_id, GAP_EXPLANATIONS_COLLECTION, items)
        return explanation

    def list_gap_explanations(self, profile_id: str) -> list[GapExplanation]:
        return self._load(profile_id, GAP_EXPLANATIONS_COLLECTION, GapExplanation)

    def add_medication(self, profile_id: str, payload: Mapping[str, Any]) -> Medication:
        now = iso_now(self._clock)
        medication = _validate(
            Medication,
            {**payload, "id": uuid.uuid4().hex, "profile_id": profile_id, "created_at": now, "updated_at": now},
        )
        self._append(profile_id, MEDICATIONS_COLLECTION, medication)
        return medication

    def list_medications(self, profile_id: str) -> list[Medication]:
        return self._load(profile_id, MEDICATIONS_COLLECTION, Medication)

    def add_appointment(self, profile_id: str, payload: Mapping[str, Any]) -> Appointment:
        now = iso_now(self._clock)
        appointment = _validate(
            Appointment,
            {**payload, "id": uuid.uuid4().hex, "profile_id": profile_id, "created_at": now, "updated_at": now},
        )
        parse_event_date(appointment.appointment_date)
        self._append(profile_id, APPOINTMENTS_COLLECTION, appointment)
        return appointment

    def list_appointments(self, profile_id: str) -> list[Appointment]:
        return self._load(profile_id, APPOINTMENTS_COLLECTION, Appointment)

    def find_gaps(
        self,
        profile_id: str,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
        min_gap_days: int | None = None,
    ) -> list[ExplainedGap]:
        dates = [record.event_date for record in self.list_logs(profile_id)]
        gaps = find_gaps(
            dates,
            min_gap_days if min_gap_days is not None else self._config.DAYMARK_GAP_MIN_DAYS,
            start_date,
            end_date,
        )
        return explain_gaps(gaps, self.list_gap_explanations(profile_id))

    def derive_capacity(self, profile_id: str, start_date: str, end_date: str) -> CapacityResult:
        records = self.list_logs(profile_id)
        return derive_functional_capacity(
            start_date,
            end_date,
            [item for item in records if isinstance(item, DailyLog)],
            [item for item in records if isinstance(item, ActivityLog)],
            self.list_limitations(profile_id),
            sample_limit=self._config.DAYMARK_EVIDENCE_SAMPLE_LIMIT,
        )

    def build_report(
        self,
        profile_id: str,
        start_date: str,
        end_date: str,
        *,
        include_capacity: bool = True,
        narratives: Iterable[str] | None = None,
    ) -> EvidenceReport:
        if parse_event_date(start_date) > parse_event_date(end_date):
            raise ValidationError(f"Start date {start_date} is after end date {end_date}")
        records = self.list_logs(profile_id, start_date=start_date, end_date=end_date)
        capacity: CapacityResult | None = None
        if include_capacity:
            try:
                capacity = self.derive_capacity(profile_id, start_date, end_date)
            except InsufficientDataError as exc:
                logger.info("Report for %s has no capacity section: %s", profile_id, exc)

        all_revisions = self.ledger.revisions_by_log(profile_id)
        revisions_by_log: dict[str, Sequence[Revision]] = {
            record.id: all_revisions.get(record.id, []) for record in records if record.finalized
        }
        appointments = [
            item for item in self.list_appointments(profile_id) if _in_range(item.appointment_date, start_date, end_date)
        ]
        return assemble_report(
            profile_id=profile_id,
            start_date=start_date,
            end_date=end_date,
            generated_at=iso_now(self._clock),
            app_version=self._config.DAYMARK_APP_VERSION,
            daily_logs=[item for item in records if isinstance(item, DailyLog)],
            activity_logs=[item for item in records if isinstance(item, ActivityLog)],
            revisions_by_log=revisions_by_log,
            gaps=self.find_gaps(profile_id, start_date=start_date, end_date=end_date),
            medications=self.list_medications(profile_id),
            appointments=appointments,
            capacity=capacity,
            evidence_mode=self.evidence_mode.current(),
            narratives=list(narratives) if narratives is not None else None,
        )
