from __future__ import annotations

"""
Derive evidence-cited functional-capacity claims from logged records.

Design intent:
- Evaluate each capacity dimension from closed rule tables over the requested window.
- Cite supporting record and limitation ids on every restricted claim.
- Refuse to derive anything from an empty window.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

from daymark.derivation.rules import (
    ACTIVITY_MOVEMENTS,
    DIMENSION_RULES,
    FULL_TIME_MIN_CONCENTRATION_MINUTES,
    FULL_TIME_MIN_POSTURE_HOURS,
    LEVEL_BY_FREQUENCY,
    PROBLEM_ACTIVITY_IMPACT,
    QUOTA_STOPPED_EARLY_RATIO,
    SYMPTOM_REGIONS,
    CapacityDimension,
    DimensionRule,
    LimitationLevel,
    Trigger,
    WorkCapacityTier,
    more_restrictive,
    tier_for_lifting,
)
from daymark.internal_core.contracts import ActivityLog, DailyLog, Limitation
from daymark.internal_core.errors import InsufficientDataError, IntegrityViolation, ValidationError
from daymark.temporal.integrity import parse_event_date

logger = logging.getLogger(__name__)

DEFAULT_EVIDENCE_SAMPLE_LIMIT = 5
MOST_SEVERE_DAYS_LIMIT = 10
PATTERN_PRESENCE_RATIO = 0.5
TREND_MIN_LOGS = 10


@dataclass(frozen=True)
class DerivedClaim:
    category: CapacityDimension
    restricted: bool
    level: LimitationLevel
    value: dict[str, Any]
    evidence: list[str]
    evidence_total: int


@dataclass(frozen=True)
class EvidenceSummary:
    total_daily_logs: int
    total_activity_logs: int
    total_limitations: int
    most_severe_days: list[str]
    activity_limitations: list[str]
    functional_declines: list[str]
    consistent_patterns: list[str]
    worsening_trends: list[str]
    date_range_days: int
    average_logs_per_week: float


@dataclass(frozen=True)
class FullTimeAssessment:
    sustains_posture: bool
    sustains_concentration: bool
    maintains_pace: bool

    @property
    def capable(self) -> bool:
        return self.sustains_posture and self.sustains_concentration and self.maintains_pace


@dataclass(frozen=True)
class CapacityResult:
    start_date: str
    end_date: str
    claims: dict[str, DerivedClaim]
    rating: WorkCapacityTier
    full_time: FullTimeAssessment
    accommodations: list[str]
    summary: EvidenceSummary
    record_ids: list[str] = field(default_factory=list)

    @property
    def can_work_full_time(self) -> bool:
        return self.full_time.capable


def _in_window(event_date: str, start: date, end: date) -> bool:
    return start <= parse_event_date(event_date) <= end


def _chronological(records: Sequence[Any]) -> list[Any]:
    return sorted(records, key=lambda item: (item.event_date, item.created_at, item.id))


def _daily_matches(trigger: Trigger, log: DailyLog) -> bool:
    if trigger.source == "daily_overall":
        return log.overall_severity >= trigger.min_severity
    return any(
        entry.severity >= trigger.min_severity and SYMPTOM_REGIONS[entry.symptom_id] & trigger.regions
        for entry in log.symptoms
    )


def is_problem_activity(log: ActivityLog) -> bool:
    return log.stopped_early or log.immediate_impact.overall_impact >= PROBLEM_ACTIVITY_IMPACT


def _activity_pool(trigger: Trigger, activity_logs: Sequence[ActivityLog]) -> list[ActivityLog]:
    return [
        log
        for log in activity_logs
        if log.activity_id is not None and ACTIVITY_MOVEMENTS[log.activity_id] & trigger.movements
    ]


def _fired_ids(
    trigger: Trigger,
    daily_logs: Sequence[DailyLog],
    activity_logs: Sequence[ActivityLog],
) -> list[str]:
    """Return qualifying record ids when the trigger fires, else an empty list."""
    if trigger.source == "activity":
        pool = _activity_pool(trigger, activity_logs)
        qualifying = [log.id for log in pool if is_problem_activity(log)]
        total = len(pool)
    else:
        qualifying = [log.id for log in daily_logs if _daily_matches(trigger, log)]
        total = len(daily_logs)
    if total == 0 or not qualifying:
        return []
    if len(qualifying) / total > trigger.ratio:
        return qualifying
    return []


def evaluate_dimension(
    rule: DimensionRule,
    daily_logs: Sequence[DailyLog],
    activity_logs: Sequence[ActivityLog],
    limitations: Sequence[Limitation],
    *,
    sample_limit: int = DEFAULT_EVIDENCE_SAMPLE_LIMIT,
) -> DerivedClaim:
    matching_limitations = [
        item for item in limitations if item.is_active and item.category in rule.limitation_categories
    ]
    record_ids: list[str] = []
    for trigger in rule.triggers:
        for record_id in _fired_ids(trigger, daily_logs, activity_logs):
            if record_id not in record_ids:
                record_ids.append(record_id)

    if not matching_limitations and not record_ids:
        value = dict(rule.default_value)
        if rule.dimension == "bending":
            value["level"] = "unlimited"
        if rule.dimension == "climbing":
            value["stairs"] = "unlimited"
        return DerivedClaim(
            category=rule.dimension,
            restricted=False,
            level="unlimited",
            value=value,
            evidence=[],
            evidence_total=0,
        )

    level: LimitationLevel = rule.restricted_level
    for item in matching_limitations:
        level = more_restrictive(level, LEVEL_BY_FREQUENCY[item.frequency])

    value = dict(rule.restricted_value)
    if rule.dimension == "bending":
        value["level"] = level
    if rule.dimension == "climbing":
        value["stairs"] = level

    supporting = [item.id for item in matching_limitations] + record_ids
    return DerivedClaim(
        category=rule.dimension,
        restricted=True,
        level=level,
        value=value,
        evidence=supporting[:sample_limit],
        evidence_total=len(supporting),
    )


def _pace_flags(
    claim: DerivedClaim,
    activity_logs: Sequence[ActivityLog],
    limitations: Sequence[Limitation],
    *,
    sample_limit: int,
) -> DerivedClaim:
    unpredictable = [item.id for item in limitations if item.is_active and item.variability == "unpredictable"]
    stopped = [log.id for log in activity_logs if log.stopped_early]
    cannot_meet_quotas = bool(activity_logs) and len(stopped) / len(activity_logs) > QUOTA_STOPPED_EARLY_RATIO

    value = dict(claim.value)
    value["unpredictable_absences"] = bool(unpredictable)
    value["cannot_meet_quotas"] = cannot_meet_quotas
    if not unpredictable and not cannot_meet_quotas:
        return DerivedClaim(
            category=claim.category,
            restricted=claim.restricted,
            level=claim.level,
            value=value,
            evidence=claim.evidence,
            evidence_total=claim.evidence_total,
        )

    # Flag sources are cited after the trigger evidence.
    extra = unpredictable + (stopped if cannot_meet_quotas else [])
    supporting = list(claim.evidence)
    for item_id in extra:
        if item_id not in supporting:
            supporting.append(item_id)
    total = claim.evidence_total + len([item for item in extra if item not in claim.evidence])
    return DerivedClaim(
        category=claim.category,
        restricted=True,
        level=more_restrictive(claim.level, "occasional"),
        value=value,
        evidence=supporting[:sample_limit],
        evidence_total=total,
    )


def work_capacity_rating(claims: dict[str, DerivedClaim]) -> WorkCapacityTier:
    lifting = claims["lifting"].value
    standing_hours = claims["standing"].value["max_total_hours"]
    walking_hours = claims["walking"].value["max_total_hours"]
    return tier_for_lifting(
        lifting["max_pounds_occasional"],
        lifting["max_pounds_frequent"],
        standing_or_walking_limited=standing_hours <= 6 or walking_hours <= 6,
    )


def sustains_posture(claims: dict[str, DerivedClaim]) -> bool:
    hours = max(claims[name].value["max_total_hours"] for name in ("sitting", "standing", "walking"))
    return hours >= FULL_TIME_MIN_POSTURE_HOURS


def sustains_concentration(claims: dict[str, DerivedClaim]) -> bool:
    return claims["concentration"].value["max_continuous_minutes"] >= FULL_TIME_MIN_CONCENTRATION_MINUTES


def maintains_pace(claims: dict[str, DerivedClaim]) -> bool:
    pace = claims["pace"].value
    return not (pace.get("unpredictable_absences") or pace.get("cannot_meet_quotas"))


def assess_full_time(claims: dict[str, DerivedClaim]) -> FullTimeAssessment:
    return FullTimeAssessment(
        sustains_posture=sustains_posture(claims),
        sustains_concentration=sustains_concentration(claims),
        maintains_pace=maintains_pace(claims),
    )


def accommodations_for(claims: dict[str, DerivedClaim]) -> list[str]:
    out: list[str] = []
    if claims["sitting"].value.get("requires_breaks"):
        out.append("Frequent position changes required")
    if claims["standing"].restricted:
        out.append(f"Standing limited to {claims['standing'].value['max_total_hours']} hours total")
    if claims["walking"].restricted:
        out.append(f"Walking limited to {claims['walking'].value['max_continuous_minutes']} minutes at a time")
    if claims["respiratory"].restricted:
        out.append("Avoid exposure to dust, odors, and fumes")
    if claims["concentration"].value.get("requires_frequent_breaks"):
        out.append("Frequent rest breaks needed")
    if claims["pace"].value.get("requires_flexible_schedule") or claims["pace"].value.get("unpredictable_absences"):
        out.append("Flexible schedule required")
    if claims["social"].restricted:
        out.append("Limited public interaction")
    return out


def _humanize(identifier: str) -> str:
    return identifier.replace("_", " ").title()


def _consistent_patterns(daily_logs: Sequence[DailyLog]) -> list[str]:
    if not daily_logs:
        return []
    counts: dict[str, int] = {}
    for log in daily_logs:
        for symptom_id in {entry.symptom_id for entry in log.symptoms}:
            counts[symptom_id] = counts.get(symptom_id, 0) + 1
    patterns = []
    for symptom_id, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        if count > len(daily_logs) * PATTERN_PRESENCE_RATIO:
            share = round(count / len(daily_logs) * 100)
            patterns.append(f"{_humanize(symptom_id)} present in {share}% of logs")
    return patterns


def _worsening_trends(daily_logs: Sequence[DailyLog]) -> list[str]:
    if len(daily_logs) < TREND_MIN_LOGS:
        return []
    ordered = _chronological(daily_logs)
    third = len(ordered) // 3
    first_avg = sum(log.overall_severity for log in ordered[:third]) / third
    last_avg = sum(log.overall_severity for log in ordered[-third:]) / third
    if last_avg <= first_avg + 1:
        return []
    if first_avg == 0:
        return [f"Overall symptom severity increased from 0.0 to {last_avg:.1f}"]
    return [f"Overall symptom severity increased {round((last_avg - first_avg) / first_avg * 100)}%"]


def build_evidence_summary(
    daily_logs: Sequence[DailyLog],
    activity_logs: Sequence[ActivityLog],
    limitations: Sequence[Limitation],
    start: date,
    end: date,
) -> EvidenceSummary:
    range_days = (end - start).days + 1
    by_severity = sorted(_chronological(daily_logs), key=lambda log: -log.overall_severity)
    return EvidenceSummary(
        total_daily_logs=len(daily_logs),
        total_activity_logs=len(activity_logs),
        total_limitations=len(limitations),
        most_severe_days=[log.id for log in by_severity[:MOST_SEVERE_DAYS_LIMIT]],
        activity_limitations=[log.id for log in activity_logs if is_problem_activity(log)],
        functional_declines=[item.id for item in limitations if item.is_active],
        consistent_patterns=_consistent_patterns(daily_logs),
        worsening_trends=_worsening_trends(daily_logs),
        date_range_days=range_days,
        average_logs_per_week=round(len(daily_logs) / range_days * 7, 2),
    )


def verify_evidence(claims: dict[str, DerivedClaim], known_ids: set[str]) -> None:
    for claim in claims.values():
        unknown = [item for item in claim.evidence if item not in known_ids]
        if unknown:
            raise IntegrityViolation(
                f"Claim {claim.category} cites ids outside the derivation input: {', '.join(unknown)}"
            )


def derive_functional_capacity(
    start_date: str,
    end_date: str,
    daily_logs: Sequence[DailyLog],
    activity_logs: Sequence[ActivityLog],
    limitations: Sequence[Limitation] = (),
    *,
    sample_limit: int = DEFAULT_EVIDENCE_SAMPLE_LIMIT,
) -> CapacityResult:
    start = parse_event_date(start_date)
    end = parse_event_date(end_date)
    if start > end:
        raise ValidationError(f"Start date {start_date} is after end date {end_date}")
    if sample_limit < 1:
        raise ValidationError("sample_limit must be >= 1")

    daily = _chronological([log for log in daily_logs if _in_window(log.event_date, start, end)])
    activity = _chronological([log for log in activity_logs if _in_window(log.event_date, start, end)])
    if not daily and not activity:
        raise InsufficientDataError(f"Insufficient data: no logs found between {start_date} and {end_date}")

    claims: dict[str, DerivedClaim] = {}
    for rule in DIMENSION_RULES:
        claims[rule.dimension] = evaluate_dimension(rule, daily, activity, limitations, sample_limit=sample_limit)
    claims["pace"] = _pace_flags(claims["pace"], activity, limitations, sample_limit=sample_limit)

    known_ids = {log.id for log in daily} | {log.id for log in activity} | {item.id for item in limitations}
    verify_evidence(claims, known_ids)

    full_time = assess_full_time(claims)
    result = CapacityResult(
        start_date=start_date,
        end_date=end_date,
        claims=claims,
        rating=work_capacity_rating(claims),
        full_time=full_time,
        accommodations=accommodations_for(claims),
        summary=build_evidence_summary(daily, activity, limitations, start, end),
        record_ids=[log.id for log in daily] + [log.id for log in activity],
    )
    logger.info(
        "Derived capacity over %d daily/%d activity log(s): rating=%s restricted=%s full_time=%s",
        len(daily),
        len(activity),
        result.rating,
        sorted(name for name, claim in claims.items() if claim.restricted),
        full_time.capable,
    )
    return result
