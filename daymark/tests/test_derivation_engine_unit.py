from datetime import date, timedelta
from typing import Any, get_args

import pytest

from daymark.derivation.engine import (
    DerivedClaim,
    assess_full_time,
    derive_functional_capacity,
    maintains_pace,
    sustains_concentration,
    sustains_posture,
    verify_evidence,
    work_capacity_rating,
)
from daymark.derivation.rules import (
    ACTIVITY_MOVEMENTS,
    LEVEL_BY_FREQUENCY,
    SYMPTOM_REGIONS,
    tier_for_lifting,
)
from daymark.internal_core.contracts import (
    ActivityId,
    ActivityLog,
    DailyLog,
    Limitation,
    LimitationFrequency,
    SymptomId,
)
from daymark.internal_core.errors import InsufficientDataError, IntegrityViolation, ValidationError


def _day(index: int) -> str:
    return (date(2024, 1, 1) + timedelta(days=index)).isoformat()


def _daily(index: int, symptoms: list[tuple[str, int]], overall: int = 3) -> DailyLog:
    return DailyLog(
        id=f"d{index:02d}",
        profile_id="p1",
        event_date=_day(index),
        created_at=f"{_day(index)}T20:00:00.000Z",
        updated_at=f"{_day(index)}T20:00:00.000Z",
        symptoms=[{"symptom_id": symptom_id, "severity": severity} for symptom_id, severity in symptoms],
        overall_severity=overall,
    )


def _activity(index: int, activity_id: str, *, stopped_early: bool = False, impact: int = 2) -> ActivityLog:
    return ActivityLog(
        id=f"a{index:02d}",
        profile_id="p1",
        event_date=_day(index),
        created_at=f"{_day(index)}T20:00:00.000Z",
        updated_at=f"{_day(index)}T20:00:00.000Z",
        activity_id=activity_id,
        duration_minutes=20,
        stopped_early=stopped_early,
        immediate_impact={"overall_impact": impact},
    )


def _limitation(limitation_id: str, category: str, **overrides: Any) -> Limitation:
    payload: dict[str, Any] = {
        "id": limitation_id,
        "profile_id": "p1",
        "category": category,
        "created_at": "2024-01-01T00:00:00.000Z",
        "updated_at": "2024-01-01T00:00:00.000Z",
    }
    payload.update(overrides)
    return Limitation(**payload)


def _claim(category: str, value: dict[str, Any]) -> DerivedClaim:
    return DerivedClaim(category=category, restricted=False, level="unlimited", value=value, evidence=[], evidence_total=0)


def test_rule_tables_cover_every_vocabulary_member() -> None:
    assert set(SYMPTOM_REGIONS) == set(get_args(SymptomId))
    assert set(ACTIVITY_MOVEMENTS) == set(get_args(ActivityId))
    assert set(LEVEL_BY_FREQUENCY) == set(get_args(LimitationFrequency))


def test_zero_records_in_window_raise_insufficient_data() -> None:
    with pytest.raises(InsufficientDataError, match="Insufficient data"):
        derive_functional_capacity("2024-01-01", "2024-01-31", [], [])
    outside = [_daily(60, [("back_pain", 9)])]
    with pytest.raises(InsufficientDataError):
        derive_functional_capacity("2024-01-01", "2024-01-31", outside, [])


def test_inverted_window_is_a_validation_error() -> None:
    with pytest.raises(ValidationError, match="after end date"):
        derive_functional_capacity("2024-02-01", "2024-01-01", [_daily(0, [])], [])


def test_no_qualifying_signals_yield_unrestricted_defaults() -> None:
    logs = [_daily(i, [("headache", 3)], overall=2) for i in range(10)]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, [])
    for claim in result.claims.values():
        assert claim.restricted is False
        assert claim.evidence == []
        assert claim.evidence_total == 0
    assert result.claims["sitting"].value["max_total_hours"] == 6
    assert result.claims["lifting"].value["max_pounds_occasional"] == 20
    assert result.rating == "light"
    assert result.can_work_full_time is True
    assert result.accommodations == []


def test_thirty_qualifying_records_cap_sitting_evidence_at_five() -> None:
    logs = [_daily(i, [("back_pain", 8)]) for i in range(30)]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, [])
    sitting = result.claims["sitting"]
    assert sitting.restricted is True
    assert sitting.value["max_total_hours"] == 4
    assert sitting.value["requires_breaks"] is True
    assert len(sitting.evidence) <= 5
    assert sitting.evidence == ["d00", "d01", "d02", "d03", "d04"]
    assert sitting.evidence_total == 30
    assert "Frequent position changes required" in result.accommodations


def test_sitting_ratio_must_be_strictly_exceeded() -> None:
    logs = [_daily(i, [("back_pain", 8)] if i < 5 else [("headache", 2)]) for i in range(10)]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, [])
    assert result.claims["sitting"].restricted is False


def test_low_severity_back_pain_does_not_qualify() -> None:
    logs = [_daily(i, [("back_pain", 5)]) for i in range(10)]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, [])
    assert result.claims["sitting"].restricted is False


def test_active_limitation_restricts_and_is_cited_first() -> None:
    logs = [_daily(i, [("back_pain", 8)]) for i in range(8)]
    limitations = [
        _limitation("lim_sit", "sitting", frequency="usually"),
        _limitation("lim_old", "sitting", is_active=False),
    ]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, [], limitations)
    sitting = result.claims["sitting"]
    assert sitting.evidence[0] == "lim_sit"
    assert "lim_old" not in sitting.evidence
    assert sitting.level == "never"
    assert sitting.evidence_total == 9


def test_limitation_alone_restricts_dimension_without_records() -> None:
    logs = [_daily(0, [("headache", 2)])]
    result = derive_functional_capacity(
        "2024-01-01",
        "2024-01-31",
        logs,
        [],
        [_limitation("lim_climb", "climbing", frequency="often")],
    )
    climbing = result.claims["climbing"]
    assert climbing.restricted is True
    assert climbing.value == {"ladders": "never", "stairs": "occasional"}
    assert climbing.evidence == ["lim_climb"]


def test_rare_limitation_restricts_at_the_dimension_level() -> None:
    logs = [_daily(0, [("headache", 2)])]
    result = derive_functional_capacity(
        "2024-01-01",
        "2024-01-31",
        logs,
        [],
        [_limitation("lim_rare", "sitting", frequency="rarely")],
    )
    sitting = result.claims["sitting"]
    assert sitting.restricted is True
    assert sitting.level == "occasional"
    assert sitting.value["max_total_hours"] == 4
    assert sitting.evidence == ["lim_rare"]


def test_problem_lifting_activity_gives_sedentary_rating() -> None:
    logs = [_daily(0, [])]
    activities = [_activity(1, "grocery_shopping", stopped_early=True), _activity(2, "reading")]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, activities)
    lifting = result.claims["lifting"]
    assert lifting.restricted is True
    assert lifting.value["max_pounds_occasional"] == 10
    assert lifting.evidence == ["a01"]
    assert result.rating == "sedentary"


def test_walking_restricted_when_most_walks_are_problems() -> None:
    activities = [
        _activity(0, "walking", stopped_early=True),
        _activity(1, "walking", impact=8),
        _activity(2, "walking"),
    ]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", [], activities)
    walking = result.claims["walking"]
    assert walking.restricted is True
    assert walking.value["max_total_hours"] == 2
    assert walking.evidence == ["a00", "a01"]


def test_concentration_and_memory_from_cognitive_symptoms() -> None:
    logs = [_daily(i, [("brain_fog", 4)] if i < 4 else []) for i in range(10)]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, [])
    assert result.claims["memory"].restricted is True
    assert result.claims["concentration"].value["max_continuous_minutes"] == 20
    assert result.full_time.sustains_concentration is False
    assert result.can_work_full_time is False


def test_unpredictable_limitation_sets_pace_flag() -> None:
    logs = [_daily(0, [("headache", 2)])]
    limitations = [_limitation("lim_var", "standing", variability="unpredictable", frequency="rarely")]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, [], limitations)
    pace = result.claims["pace"]
    assert pace.value["unpredictable_absences"] is True
    assert pace.restricted is True
    assert "lim_var" in pace.evidence
    assert result.full_time.maintains_pace is False
    assert result.full_time.sustains_posture is True


def test_full_time_sub_conditions_are_independent() -> None:
    claims = {
        "sitting": _claim("sitting", {"max_total_hours": 4}),
        "standing": _claim("standing", {"max_total_hours": 2}),
        "walking": _claim("walking", {"max_total_hours": 2}),
        "concentration": _claim("concentration", {"max_continuous_minutes": 480}),
        "pace": _claim("pace", {"unpredictable_absences": False, "cannot_meet_quotas": False}),
    }
    assert sustains_posture(claims) is False
    assert sustains_concentration(claims) is True
    assert maintains_pace(claims) is True
    assessment = assess_full_time(claims)
    assert assessment.capable is False


def test_rating_boundaries_resolve_to_more_restrictive_tier() -> None:
    assert tier_for_lifting(10, 5, standing_or_walking_limited=False) == "sedentary"
    assert tier_for_lifting(20, 10, standing_or_walking_limited=True) == "light"
    assert tier_for_lifting(20, 10, standing_or_walking_limited=False) == "medium"
    assert tier_for_lifting(50, 25, standing_or_walking_limited=False) == "medium"
    assert tier_for_lifting(100, 50, standing_or_walking_limited=False) == "heavy"
    assert tier_for_lifting(101, 50, standing_or_walking_limited=False) == "very_heavy"


def test_rating_uses_lifting_and_standing_claims() -> None:
    claims = {
        "lifting": _claim("lifting", {"max_pounds_occasional": 20, "max_pounds_frequent": 10}),
        "standing": _claim("standing", {"max_total_hours": 8}),
        "walking": _claim("walking", {"max_total_hours": 8}),
    }
    assert work_capacity_rating(claims) == "medium"


def test_every_evidence_id_resolves_to_input() -> None:
    logs = [_daily(i, [("back_pain", 8), ("shortness_of_breath", 3)]) for i in range(12)]
    activities = [_activity(i, "laundry", stopped_early=True) for i in range(3)]
    limitations = [_limitation("lim_lift", "lifting")]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, activities, limitations)
    known = {log.id for log in logs} | {log.id for log in activities} | {"lim_lift"}
    for claim in result.claims.values():
        assert set(claim.evidence) <= known


def test_verify_evidence_rejects_foreign_ids() -> None:
    claims = {
        "sitting": DerivedClaim(
            category="sitting",
            restricted=True,
            level="occasional",
            value={},
            evidence=["ghost"],
            evidence_total=1,
        )
    }
    with pytest.raises(IntegrityViolation, match="ghost"):
        verify_evidence(claims, {"d00"})


def test_evidence_summary_reports_patterns_and_trend() -> None:
    logs = [_daily(i, [("general_fatigue", 5)], overall=2 if i < 5 else 8) for i in range(15)]
    result = derive_functional_capacity("2024-01-01", "2024-01-15", logs, [])
    summary = result.summary
    assert summary.total_daily_logs == 15
    assert summary.date_range_days == 15
    assert summary.average_logs_per_week == 7.0
    assert summary.consistent_patterns == ["General Fatigue present in 100% of logs"]
    assert summary.worsening_trends == ["Overall symptom severity increased 300%"]
    assert len(summary.most_severe_days) == 10
    assert result.claims["pace"].restricted is True


def test_sample_limit_is_configurable() -> None:
    logs = [_daily(i, [("back_pain", 8)]) for i in range(10)]
    result = derive_functional_capacity("2024-01-01", "2024-01-31", logs, [], sample_limit=2)
    assert result.claims["sitting"].evidence == ["d00", "d01"]
    assert result.claims["sitting"].evidence_total == 10
