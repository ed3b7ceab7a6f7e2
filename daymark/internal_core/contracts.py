from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

SymptomId = Literal[
    "back_pain",
    "neck_pain",
    "joint_pain",
    "headache",
    "muscle_pain",
    "nerve_pain",
    "general_fatigue",
    "muscle_fatigue",
    "post_exertional_fatigue",
    "brain_fog",
    "memory_problems",
    "concentration_difficulty",
    "walking_difficulty",
    "balance_problems",
    "weakness",
    "dizziness",
    "vision_problems",
    "hearing_problems",
    "anxiety",
    "depression",
    "irritability",
    "insomnia",
    "sleep_disruption",
    "nausea",
    "shortness_of_breath",
    "heart_palpitations",
    "temperature_sensitivity",
    "restless_legs",
]

ActivityId = Literal[
    "cleaning_house",
    "laundry",
    "cooking",
    "dishes",
    "yard_work",
    "showering",
    "dressing",
    "grooming",
    "desk_work",
    "standing_work",
    "physical_work",
    "walking",
    "stretching",
    "physical_therapy",
    "swimming",
    "yoga",
    "socializing",
    "phone_calls",
    "grocery_shopping",
    "other_errands",
    "driving",
    "medical_appointment",
    "reading",
    "watching_tv",
    "hobbies",
    "other_activity",
]

LimitationCategory = Literal[
    "sitting",
    "standing",
    "walking",
    "lifting",
    "carrying",
    "reaching",
    "bending",
    "climbing",
    "concentration",
    "memory",
    "social",
    "self_care",
    "fine_motor",
    "gross_motor",
]

LimitationFrequency = Literal["always", "usually", "often", "sometimes", "occasionally", "rarely"]
LimitationVariability = Literal["consistent", "some_variability", "high_variability", "unpredictable"]
ActivityIntensity = Literal["light", "moderate", "heavy"]
TimeOfDay = Literal["morning", "afternoon", "evening", "night", "specific"]
LogKind = Literal["daily", "activity"]

RevisionReason = Literal[
    "typo_correction",
    "added_detail_omitted_earlier",
    "correction_after_reviewing_records",
    "clarification_requested",
    "other",
]

AppointmentStatus = Literal["scheduled", "completed", "cancelled", "rescheduled", "no_show"]

Collection = Literal[
    "daily_logs",
    "activity_logs",
    "limitations",
    "revisions",
    "gap_explanations",
    "medications",
    "appointments",
    "evidence_mode",
]

# Fields the system owns; user edits to these are integrity violations.
# retrospective_context is computed once at creation and never recomputed.
SYSTEM_MANAGED_FIELDS = frozenset(
    {
        "kind",
        "created_at",
        "evidence_timestamp",
        "finalized",
        "finalized_at",
        "finalized_by",
        "retrospective_context",
    }
)
_EVENT_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Identity and bookkeeping fields excluded from revision diffs.
DIFF_IGNORED_FIELDS = frozenset({"id", "profile_id", "updated_at"})


class RetrospectiveContext(BaseModel):
    model_config = ConfigDict(extra="forbid")

    days_delayed: int = Field(ge=0)
    flagged_at: str
    reason: Optional[str] = None
    note: Optional[str] = None


class SymptomEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    symptom_id: SymptomId
    severity: int = Field(ge=0, le=10)
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = None
    notes: Optional[str] = None


class ImpactAssessment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    overall_impact: int = Field(default=0, ge=0, le=10)
    symptoms: List[SymptomEntry] = Field(default_factory=list)
    notes: Optional[str] = None


class LogRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    profile_id: str
    event_date: str
    created_at: str
    updated_at: str
    evidence_timestamp: Optional[str] = None
    finalized: bool = False
    finalized_at: Optional[str] = None
    finalized_by: Optional[str] = None
    retrospective_context: Optional[RetrospectiveContext] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _validate_event_date(self) -> "LogRecord":
        if not _EVENT_DATE_RE.match(self.event_date):
            raise ValueError(f"event_date must be YYYY-MM-DD, got {self.event_date!r}")
        try:
            date.fromisoformat(self.event_date)
        except ValueError as exc:
            raise ValueError(f"event_date is not a calendar date: {self.event_date!r}") from exc
        return self


class DailyLog(LogRecord):
    kind: Literal["daily"] = "daily"
    time_of_day: TimeOfDay = "morning"
    symptoms: List[SymptomEntry] = Field(default_factory=list)
    overall_severity: int = Field(default=0, ge=0, le=10)


class ActivityLog(LogRecord):
    kind: Literal["activity"] = "activity"
    activity_id: Optional[ActivityId] = None
    activity_name: str = ""
    duration_minutes: int = Field(default=0, ge=0)
    planned_duration_minutes: Optional[int] = Field(default=None, ge=0)
    intensity: ActivityIntensity = "light"
    weight_pounds: Optional[float] = Field(default=None, ge=0.0)
    immediate_impact: ImpactAssessment = Field(default_factory=ImpactAssessment)
    stopped_early: bool = False
    assistance_needed: bool = False


AnyLog = Union[DailyLog, ActivityLog]


class Limitation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    profile_id: str
    category: LimitationCategory
    frequency: LimitationFrequency = "sometimes"
    variability: LimitationVariability = "consistent"
    time_threshold_minutes: Optional[int] = Field(default=None, ge=0)
    weight_threshold_pounds: Optional[float] = Field(default=None, ge=0.0)
    notes: Optional[str] = None
    is_active: bool = True
    created_at: str
    updated_at: str


class Revision(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    log_id: str
    log_type: LogKind
    profile_id: str
    field_path: str
    original_value: Any = None
    new_value: Any = None
    reason: RevisionReason
    reason_note: Optional[str] = None
    created_at: str
    snapshot: Dict[str, Any] = Field(default_factory=dict)


class EvidenceModeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    enabled_at: Optional[str] = None
    enabled_by: Optional[str] = None


class GapExplanation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    profile_id: str
    start_date: str
    end_date: str
    note: str = Field(min_length=1)
    created_at: str


class Medication(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    profile_id: str
    name: str = Field(min_length=1)
    dosage: str = ""
    frequency: str = "as_needed"
    purpose: List[str] = Field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    side_effects: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: str
    updated_at: str


class Appointment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    profile_id: str
    appointment_date: str
    provider_name: str = Field(min_length=1)
    provider_type: str = "other"
    purpose: str = "follow_up"
    status: AppointmentStatus = "scheduled"
    notes: Optional[str] = None
    created_at: str
    updated_at: str
