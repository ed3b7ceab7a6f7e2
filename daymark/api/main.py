from __future__ import annotations

"""
HTTP API surface for the Daymark evidence core.

Design intent:
- Keep API orchestration thin and typed.
- Delegate domain logic to the records service and evidence/temporal/derivation/report modules.
- Return evidence-traceable payloads: claims carry record ids, gaps carry explanations.
"""

import logging
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from daymark.derivation.engine import CapacityResult
from daymark.internal_core.clock import SystemClock
from daymark.internal_core.config import load_config
from daymark.internal_core.contracts import (
    ActivityIntensity,
    ActivityLog,
    Appointment,
    DailyLog,
    EvidenceModeConfig,
    GapExplanation,
    ImpactAssessment,
    Limitation,
    LimitationCategory,
    LimitationFrequency,
    LimitationVariability,
    Medication,
    Revision,
    RevisionReason,
    SymptomEntry,
    TimeOfDay,
)
from daymark.internal_core.errors import (
    DaymarkError,
    InsufficientDataError,
    IntegrityViolation,
    StorageError,
    ValidationError,
)
from daymark.internal_core.record_store import build_record_store
from daymark.records.service import LogService
from daymark.report.assembler import render_plain_text


class EvidenceModeActivateRequest(BaseModel):
    profile_id: str = Field(min_length=1, max_length=128)


class EvidenceModeResponse(BaseModel):
    config: EvidenceModeConfig
    indicator: str | None = None


class DailyLogCreateRequest(BaseModel):
    event_date: str = Field(min_length=10, max_length=10)
    time_of_day: TimeOfDay = "morning"
    symptoms: list[SymptomEntry] = Field(default_factory=list)
    overall_severity: int = Field(default=0, ge=0, le=10)
    notes: str | None = None
    retrospective_reason: str | None = None
    retrospective_note: str | None = None


class ActivityLogCreateRequest(BaseModel):
    event_date: str = Field(min_length=10, max_length=10)
    activity_id: str = Field(min_length=1)
    activity_name: str = ""
    duration_minutes: int = Field(default=0, ge=0)
    planned_duration_minutes: int | None = Field(default=None, ge=0)
    intensity: ActivityIntensity = "light"
    weight_pounds: float | None = Field(default=None, ge=0.0)
    immediate_impact: ImpactAssessment = Field(default_factory=ImpactAssessment)
    stopped_early: bool = False
    assistance_needed: bool = False
    notes: str | None = None
    retrospective_reason: str | None = None
    retrospective_note: str | None = None


class LogUpdateRequest(BaseModel):
    changes: dict[str, Any] = Field(default_factory=dict)
    reason: RevisionReason = "other"
    reason_note: str | None = None


class RevisionOutcomeResponse(BaseModel):
    needs_revision: bool
    attempted: int
    appended: int
    appended_fields: list[str] = Field(default_factory=list)
    failed_fields: list[str] = Field(default_factory=list)
    error: str | None = None
    complete: bool
    revisions: list[Revision] = Field(default_factory=list)


class FinalizeRequest(BaseModel):
    finalized_by: str | None = None


class ModifyCheckResponse(BaseModel):
    allowed: bool
    reason: str | None = None


class LimitationCreateRequest(BaseModel):
    category: LimitationCategory
    frequency: LimitationFrequency = "sometimes"
    variability: LimitationVariability = "consistent"
    time_threshold_minutes: int | None = Field(default=None, ge=0)
    weight_threshold_pounds: float | None = Field(default=None, ge=0.0)
    notes: str | None = None


class GapExplanationRequest(BaseModel):
    start_date: str = Field(min_length=10, max_length=10)
    end_date: str = Field(min_length=10, max_length=10)
    note: str = Field(min_length=1, max_length=2000)


class MedicationCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    dosage: str = ""
    frequency: str = "as_needed"
    purpose: list[str] = Field(default_factory=list)
    start_date: str | None = None
    end_date: str | None = None
    side_effects: list[str] = Field(default_factory=list)


class AppointmentCreateRequest(BaseModel):
    appointment_date: str = Field(min_length=10, max_length=10)
    provider_name: str = Field(min_length=1)
    provider_type: str = "other"
    purpose: str = "follow_up"
    status: Literal["scheduled", "completed", "cancelled", "rescheduled", "no_show"] = "scheduled"
    notes: str | None = None


class GapItem(BaseModel):
    start_date: str
    end_date: str
    length_days: int
    missing_days: int
    explanation: str | None = None


class GapsResponse(BaseModel):
    gaps: list[GapItem] = Field(default_factory=list)
    explained_count: int = 0


class ClaimItem(BaseModel):
    category: str
    restricted: bool
    level: str
    value: dict[str, Any] = Field(default_factory=dict)
    evidence: list[str] = Field(default_factory=list)
    evidence_total: int = 0


class CapacityResponse(BaseModel):
    start_date: str
    end_date: str
    claims: list[ClaimItem] = Field(default_factory=list)
    rating: str
    can_work_full_time: bool
    sustains_posture: bool
    sustains_concentration: bool
    maintains_pace: bool
    accommodations: list[str] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)


class ReportSectionItem(BaseModel):
    title: str
    lines: list[str] = Field(default_factory=list)


class ReportResponse(BaseModel):
    title: str
    generated_at: str
    sections: list[ReportSectionItem] = Field(default_factory=list)
    text: str


app = FastAPI(title="Daymark Evidence API")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_log_service() -> LogService:
    existing = getattr(app.state, "log_service", None)
    if isinstance(existing, LogService):
        return existing
    config = load_config()
    logging.getLogger("daymark").setLevel(config.DAYMARK_LOG_LEVEL.upper())
    created = LogService(build_record_store(config), SystemClock(), config)
    setattr(app.state, "log_service", created)
    return created


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, KeyError):
        detail = exc.args[0] if exc.args else "Not found"
        return HTTPException(status_code=404, detail=str(detail))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, IntegrityViolation):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, InsufficientDataError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, StorageError):
        logger.error("Storage failure: %s", exc)
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _capacity_response(result: CapacityResult) -> CapacityResponse:
    summary = result.summary
    return CapacityResponse(
        start_date=result.start_date,
        end_date=result.end_date,
        claims=[
            ClaimItem(
                category=claim.category,
                restricted=claim.restricted,
                level=claim.level,
                value=claim.value,
                evidence=claim.evidence,
                evidence_total=claim.evidence_total,
            )
            for claim in result.claims.values()
        ],
        rating=result.rating,
        can_work_full_time=result.can_work_full_time,
        sustains_posture=result.full_time.sustains_posture,
        sustains_concentration=result.full_time.sustains_concentration,
        maintains_pace=result.full_time.maintains_pace,
        accommodations=result.accommodations,
        summary={
            "total_daily_logs": summary.total_daily_logs,
            "total_activity_logs": summary.total_activity_logs,
            "total_limitations": summary.total_limitations,
            "most_severe_days": summary.most_severe_days,
            "activity_limitations": summary.activity_limitations,
            "functional_declines": summary.functional_declines,
            "consistent_patterns": summary.consistent_patterns,
            "worsening_trends": summary.worsening_trends,
            "date_range_days": summary.date_range_days,
            "average_logs_per_week": summary.average_logs_per_week,
        },
    )


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/evidence-mode", response_model=EvidenceModeResponse)
async def get_evidence_mode() -> EvidenceModeResponse:
    service = _get_log_service()
    try:
        return EvidenceModeResponse(
            config=service.evidence_mode.current(),
            indicator=service.evidence_mode.indicator(),
        )
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.post("/evidence-mode/activate", response_model=EvidenceModeResponse)
async def activate_evidence_mode(payload: EvidenceModeActivateRequest) -> EvidenceModeResponse:
    service = _get_log_service()
    try:
        config = service.evidence_mode.activate(payload.profile_id)
        return EvidenceModeResponse(config=config, indicator=service.evidence_mode.indicator())
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.post("/evidence-mode/deactivate", response_model=EvidenceModeResponse)
async def deactivate_evidence_mode() -> EvidenceModeResponse:
    service = _get_log_service()
    try:
        return EvidenceModeResponse(config=service.evidence_mode.deactivate(), indicator=None)
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.post("/profiles/{profile_id}/logs/daily", response_model=DailyLog)
async def create_daily_log(profile_id: str, payload: DailyLogCreateRequest) -> DailyLog:
    data = payload.model_dump(exclude={"retrospective_reason", "retrospective_note"})
    try:
        return _get_log_service().create_daily_log(
            profile_id,
            data,
            retrospective_reason=payload.retrospective_reason,
            retrospective_note=payload.retrospective_note,
        )
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.post("/profiles/{profile_id}/logs/activity", response_model=ActivityLog)
async def create_activity_log(profile_id: str, payload: ActivityLogCreateRequest) -> ActivityLog:
    data = payload.model_dump(exclude={"retrospective_reason", "retrospective_note"})
    try:
        return _get_log_service().create_activity_log(
            profile_id,
            data,
            retrospective_reason=payload.retrospective_reason,
            retrospective_note=payload.retrospective_note,
        )
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.get("/profiles/{profile_id}/logs")
async def list_logs(
    profile_id: str,
    kind: Literal["daily", "activity"] | None = Query(default=None),
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
) -> dict[str, Any]:
    try:
        records = _get_log_service().list_logs(profile_id, kind=kind, start_date=start_date, end_date=end_date)
    except DaymarkError as exc:
        raise _http_error(exc) from exc
    return {"logs": [record.model_dump(mode="json") for record in records]}


@app.get("/profiles/{profile_id}/logs/{log_id}")
async def get_log(profile_id: str, log_id: str) -> dict[str, Any]:
    try:
        return _get_log_service().get_log(profile_id, log_id).model_dump(mode="json")
    except (DaymarkError, KeyError) as exc:
        raise _http_error(exc) from exc


@app.put("/profiles/{profile_id}/logs/{log_id}")
async def replace_log(profile_id: str, log_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    try:
        return _get_log_service().replace_log(profile_id, log_id, payload).model_dump(mode="json")
    except (DaymarkError, KeyError) as exc:
        raise _http_error(exc) from exc


@app.patch("/profiles/{profile_id}/logs/{log_id}", response_model=RevisionOutcomeResponse)
async def update_log(profile_id: str, log_id: str, payload: LogUpdateRequest) -> RevisionOutcomeResponse:
    try:
        outcome = _get_log_service().update_log(
            profile_id,
            log_id,
            payload.changes,
            reason=payload.reason,
            reason_note=payload.reason_note,
        )
    except (DaymarkError, KeyError) as exc:
        raise _http_error(exc) from exc
    return RevisionOutcomeResponse(
        needs_revision=outcome.needs_revision,
        attempted=outcome.attempted,
        appended=outcome.appended,
        appended_fields=outcome.appended_fields,
        failed_fields=outcome.failed_fields,
        error=outcome.error,
        complete=outcome.complete,
        revisions=outcome.revisions,
    )


@app.delete("/profiles/{profile_id}/logs/{log_id}")
async def delete_log(profile_id: str, log_id: str) -> dict[str, str]:
    try:
        _get_log_service().delete_log(profile_id, log_id)
    except (DaymarkError, KeyError) as exc:
        raise _http_error(exc) from exc
    return {"status": "deleted", "log_id": log_id}


@app.post("/profiles/{profile_id}/logs/{log_id}/finalize")
async def finalize_log(profile_id: str, log_id: str, payload: FinalizeRequest | None = None) -> dict[str, Any]:
    finalized_by = payload.finalized_by if payload is not None else None
    try:
        record = _get_log_service().finalize_log(profile_id, log_id, finalized_by=finalized_by)
    except (DaymarkError, KeyError) as exc:
        raise _http_error(exc) from exc
    return record.model_dump(mode="json")


@app.get("/profiles/{profile_id}/logs/{log_id}/can-modify", response_model=ModifyCheckResponse)
async def can_modify_log(profile_id: str, log_id: str) -> ModifyCheckResponse:
    try:
        check = _get_log_service().can_modify(profile_id, log_id)
    except (DaymarkError, KeyError) as exc:
        raise _http_error(exc) from exc
    return ModifyCheckResponse(allowed=check.allowed, reason=check.reason)


@app.get("/profiles/{profile_id}/logs/{log_id}/revisions")
async def list_revisions(profile_id: str, log_id: str) -> dict[str, list[Revision]]:
    try:
        return {"revisions": _get_log_service().get_revisions(profile_id, log_id)}
    except (DaymarkError, KeyError) as exc:
        raise _http_error(exc) from exc


@app.post("/profiles/{profile_id}/limitations", response_model=Limitation)
async def add_limitation(profile_id: str, payload: LimitationCreateRequest) -> Limitation:
    try:
        return _get_log_service().add_limitation(profile_id, payload.model_dump())
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.get("/profiles/{profile_id}/limitations")
async def list_limitations(profile_id: str, active_only: bool = Query(default=False)) -> dict[str, list[Limitation]]:
    try:
        return {"limitations": _get_log_service().list_limitations(profile_id, active_only=active_only)}
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.post("/profiles/{profile_id}/limitations/{limitation_id}/deactivate", response_model=Limitation)
async def deactivate_limitation(profile_id: str, limitation_id: str) -> Limitation:
    try:
        return _get_log_service().deactivate_limitation(profile_id, limitation_id)
    except (DaymarkError, KeyError) as exc:
        raise _http_error(exc) from exc


@app.post("/profiles/{profile_id}/gap-explanations", response_model=GapExplanation)
async def explain_gap(profile_id: str, payload: GapExplanationRequest) -> GapExplanation:
    try:
        return _get_log_service().explain_gap(profile_id, payload.start_date, payload.end_date, payload.note)
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.get("/profiles/{profile_id}/gap-explanations")
async def list_gap_explanations(profile_id: str) -> dict[str, list[GapExplanation]]:
    try:
        return {"gap_explanations": _get_log_service().list_gap_explanations(profile_id)}
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.post("/profiles/{profile_id}/medications", response_model=Medication)
async def add_medication(profile_id: str, payload: MedicationCreateRequest) -> Medication:
    try:
        return _get_log_service().add_medication(profile_id, payload.model_dump())
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.post("/profiles/{profile_id}/appointments", response_model=Appointment)
async def add_appointment(profile_id: str, payload: AppointmentCreateRequest) -> Appointment:
    try:
        return _get_log_service().add_appointment(profile_id, payload.model_dump())
    except DaymarkError as exc:
        raise _http_error(exc) from exc


@app.get("/profiles/{profile_id}/gaps", response_model=GapsResponse)
async def list_gaps(
    profile_id: str,
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    min_gap_days: int | None = Query(default=None, ge=1),
) -> GapsResponse:
    try:
        gaps = _get_log_service().find_gaps(
            profile_id,
            start_date=start_date,
            end_date=end_date,
            min_gap_days=min_gap_days,
        )
    except DaymarkError as exc:
        raise _http_error(exc) from exc
    return GapsResponse(
        gaps=[
            GapItem(
                start_date=item.gap.start_date,
                end_date=item.gap.end_date,
                length_days=item.gap.length_days,
                missing_days=item.gap.missing_days,
                explanation=item.explanation,
            )
            for item in gaps
        ],
        explained_count=sum(1 for item in gaps if item.explained),
    )


@app.get("/profiles/{profile_id}/capacity", response_model=CapacityResponse)
async def derive_capacity(
    profile_id: str,
    start_date: str = Query(...),
    end_date: str = Query(...),
) -> CapacityResponse:
    try:
        result = _get_log_service().derive_capacity(profile_id, start_date, end_date)
    except DaymarkError as exc:
        raise _http_error(exc) from exc
    return _capacity_response(result)


@app.get("/profiles/{profile_id}/report", response_model=ReportResponse)
async def build_report(
    profile_id: str,
    start_date: str = Query(...),
    end_date: str = Query(...),
) -> ReportResponse:
    try:
        report = _get_log_service().build_report(profile_id, start_date, end_date)
    except DaymarkError as exc:
        raise _http_error(exc) from exc
    return ReportResponse(
        title=report.title,
        generated_at=report.generated_at,
        sections=[ReportSectionItem(title=item.title, lines=item.lines) for item in report.sections],
        text=render_plain_text(report),
    )
