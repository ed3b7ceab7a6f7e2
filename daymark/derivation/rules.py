from __future__ import annotations

"""
Closed rule tables for functional-capacity derivation.

Design intent:
- Map every symptom and activity id to body regions and movements explicitly.
- Keep thresholds in sorted boundary tables instead of nested conditionals.
- Let tests assert the tables are exhaustive over their vocabularies.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from daymark.internal_core.contracts import ActivityId, LimitationCategory, LimitationFrequency, SymptomId

BodyRegion = Literal[
    "spine",
    "lower_extremity",
    "upper_extremity",
    "musculoskeletal",
    "respiratory",
    "cognitive",
    "fatigue",
    "neurological",
    "sensory",
    "mental_health",
    "sleep",
    "cardiovascular",
    "systemic",
]

Movement = Literal["walking", "lifting", "standing", "sitting", "fine_motor"]

CapacityDimension = Literal[
    "sitting",
    "standing",
    "walking",
    "lifting",
    "manipulative",
    "respiratory",
    "concentration",
    "memory",
    "pace",
    "social",
    "bending",
    "climbing",
]

LimitationLevel = Literal["unlimited", "frequent", "occasional", "never"]
WorkCapacityTier = Literal["sedentary", "light", "medium", "heavy", "very_heavy"]
SignalSource = Literal["daily_symptom", "daily_overall", "activity"]

# Ascending restriction; index comparison picks the more restrictive level.
LIMITATION_LEVELS: tuple[LimitationLevel, ...] = ("unlimited", "frequent", "occasional", "never")
WORK_CAPACITY_ORDER: tuple[WorkCapacityTier, ...] = ("sedentary", "light", "medium", "heavy", "very_heavy")

SYMPTOM_REGIONS: dict[SymptomId, frozenset[BodyRegion]] = {
    "back_pain": frozenset({"spine"}),
    "neck_pain": frozenset({"spine"}),
    "joint_pain": frozenset({"lower_extremity", "upper_extremity"}),
    "headache": frozenset({"neurological"}),
    "muscle_pain": frozenset({"musculoskeletal"}),
    "nerve_pain": frozenset({"upper_extremity", "neurological"}),
    "general_fatigue": frozenset({"fatigue"}),
    "muscle_fatigue": frozenset({"fatigue", "musculoskeletal"}),
    "post_exertional_fatigue": frozenset({"fatigue"}),
    "brain_fog": frozenset({"cognitive"}),
    "memory_problems": frozenset({"cognitive"}),
    "concentration_difficulty": frozenset({"cognitive"}),
    "walking_difficulty": frozenset({"lower_extremity"}),
    "balance_problems": frozenset({"lower_extremity", "neurological"}),
    "weakness": frozenset({"musculoskeletal"}),
    "dizziness": frozenset({"neurological"}),
    "vision_problems": frozenset({"sensory"}),
    "hearing_problems": frozenset({"sensory"}),
    "anxiety": frozenset({"mental_health"}),
    "depression": frozenset({"mental_health"}),
    "irritability": frozenset({"mental_health"}),
    "insomnia": frozenset({"sleep"}),
    "sleep_disruption": frozenset({"sleep"}),
    "nausea": frozenset({"systemic"}),
    "shortness_of_breath": frozenset({"respiratory"}),
    "heart_palpitations": frozenset({"cardiovascular"}),
    "temperature_sensitivity": frozenset({"systemic"}),
    "restless_legs": frozenset({"lower_extremity"}),
}

ACTIVITY_MOVEMENTS: dict[ActivityId, frozenset[Movement]] = {
    "cleaning_house": frozenset({"standing", "lifting"}),
    "laundry": frozenset({"standing", "lifting"}),
    "cooking": frozenset({"standing"}),
    "dishes": frozenset({"standing"}),
    "yard_work": frozenset({"standing", "lifting", "walking"}),
    "showering": frozenset({"standing"}),
    "dressing": frozenset({"fine_motor"}),
    "grooming": frozenset({"fine_motor"}),
    "desk_work": frozenset({"sitting", "fine_motor"}),
    "standing_work": frozenset({"standing"}),
    "physical_work": frozenset({"standing", "lifting", "walking"}),
    "walking": frozenset({"walking"}),
    "stretching": frozenset(),
    "physical_therapy": frozenset(),
    "swimming": frozenset(),
    "yoga": frozenset(),
    "socializing": frozenset(),
    "phone_calls": frozenset({"sitting"}),
    "grocery_shopping": frozenset({"walking", "lifting"}),
    "other_errands": frozenset({"walking"}),
    "driving": frozenset({"sitting"}),
    "medical_appointment": frozenset(),
    "reading": frozenset({"sitting"}),
    "watching_tv": frozenset({"sitting"}),
    "hobbies": frozenset({"sitting", "fine_motor"}),
    "other_activity": frozenset(),
}

LEVEL_BY_FREQUENCY: dict[LimitationFrequency, LimitationLevel] = {
    "always": "never",
    "usually": "never",
    "often": "occasional",
    "sometimes": "frequent",
    "occasionally": "frequent",
    "rarely": "unlimited",
}


@dataclass(frozen=True)
class LiftingTier:
    tier: WorkCapacityTier
    max_pounds_occasional: float
    max_pounds_frequent: float
    requires_limited_standing: bool = False


# Sorted ascending; the first satisfied row wins, falling through to very_heavy.
LIFTING_TIERS: tuple[LiftingTier, ...] = (
    LiftingTier("sedentary", 10, 5),
    LiftingTier("light", 20, 10, requires_limited_standing=True),
    LiftingTier("medium", 50, 25),
    LiftingTier("heavy", 100, 50),
)

FULL_TIME_MIN_POSTURE_HOURS = 6
FULL_TIME_MIN_CONCENTRATION_MINUTES = 30
PROBLEM_ACTIVITY_IMPACT = 7
QUOTA_STOPPED_EARLY_RATIO = 0.5


@dataclass(frozen=True)
class Trigger:
    """One qualifying signal; it fires when qualifying/total exceeds `ratio`."""

    source: SignalSource
    ratio: float
    regions: frozenset[BodyRegion] = frozenset()
    movements: frozenset[Movement] = frozenset()
    min_severity: int = 0


@dataclass(frozen=True)
class DimensionRule:
    dimension: CapacityDimension
    triggers: tuple[Trigger, ...]
    limitation_categories: frozenset[LimitationCategory]
    restricted_level: LimitationLevel
    restricted_value: dict[str, Any] = field(default_factory=dict)
    default_value: dict[str, Any] = field(default_factory=dict)


DIMENSION_RULES: tuple[DimensionRule, ...] = (
    DimensionRule(
        dimension="sitting",
        triggers=(Trigger("daily_symptom", 0.5, regions=frozenset({"spine"}), min_severity=6),),
        limitation_categories=frozenset({"sitting"}),
        restricted_level="occasional",
        restricted_value={
            "max_continuous_minutes": 30,
            "max_total_hours": 4,
            "requires_breaks": True,
            "break_frequency_minutes": 30,
        },
        default_value={
            "max_continuous_minutes": 120,
            "max_total_hours": 6,
            "requires_breaks": False,
            "break_frequency_minutes": None,
        },
    ),
    DimensionRule(
        dimension="standing",
        triggers=(Trigger("daily_symptom", 0.4, regions=frozenset({"lower_extremity"}), min_severity=6),),
        limitation_categories=frozenset({"standing"}),
        restricted_level="occasional",
        restricted_value={
            "max_continuous_minutes": 20,
            "max_total_hours": 2,
            "requires_breaks": True,
            "break_frequency_minutes": 20,
        },
        default_value={
            "max_continuous_minutes": 120,
            "max_total_hours": 6,
            "requires_breaks": False,
            "break_frequency_minutes": None,
        },
    ),
    DimensionRule(
        dimension="walking",
        triggers=(Trigger("activity", 0.5, movements=frozenset({"walking"})),),
        limitation_categories=frozenset({"walking"}),
        restricted_level="occasional",
        restricted_value={"max_continuous_minutes": 15, "max_total_hours": 2, "max_distance_feet": 500},
        default_value={"max_continuous_minutes": 120, "max_total_hours": 6, "max_distance_feet": None},
    ),
    DimensionRule(
        dimension="lifting",
        triggers=(Trigger("activity", 0.0, movements=frozenset({"lifting"})),),
        limitation_categories=frozenset({"lifting", "carrying"}),
        restricted_level="occasional",
        restricted_value={"max_pounds_occasional": 10, "max_pounds_frequent": 5, "max_pounds_constant": 0},
        default_value={"max_pounds_occasional": 20, "max_pounds_frequent": 10, "max_pounds_constant": 5},
    ),
    DimensionRule(
        dimension="manipulative",
        triggers=(Trigger("daily_symptom", 0.0, regions=frozenset({"upper_extremity"}), min_severity=6),),
        limitation_categories=frozenset({"reaching", "fine_motor"}),
        restricted_level="frequent",
        restricted_value={"reaching_overhead": "occasional", "handling": "frequent", "fingering": "frequent"},
        default_value={"reaching_overhead": "unlimited", "handling": "unlimited", "fingering": "unlimited"},
    ),
    DimensionRule(
        dimension="respiratory",
        triggers=(Trigger("daily_symptom", 0.3, regions=frozenset({"respiratory"})),),
        limitation_categories=frozenset(),
        restricted_level="never",
        restricted_value={"dust": "never", "odors": "never", "fumes": "never"},
        default_value={"dust": "unlimited", "odors": "unlimited", "fumes": "unlimited"},
    ),
    DimensionRule(
        dimension="concentration",
        triggers=(
            Trigger("daily_overall", 0.3, min_severity=7),
            Trigger("daily_symptom", 0.3, regions=frozenset({"cognitive"})),
        ),
        limitation_categories=frozenset({"concentration"}),
        restricted_level="occasional",
        restricted_value={"max_continuous_minutes": 20, "requires_frequent_breaks": True},
        default_value={"max_continuous_minutes": 480, "requires_frequent_breaks": False},
    ),
    DimensionRule(
        dimension="memory",
        triggers=(Trigger("daily_symptom", 0.3, regions=frozenset({"cognitive"})),),
        limitation_categories=frozenset({"memory"}),
        restricted_level="occasional",
        restricted_value={"short_term_impaired": True},
        default_value={"short_term_impaired": False},
    ),
    DimensionRule(
        dimension="pace",
        triggers=(Trigger("daily_symptom", 0.4, regions=frozenset({"fatigue"})),),
        limitation_categories=frozenset(),
        restricted_level="occasional",
        restricted_value={"below_normal_pace": True, "requires_flexible_schedule": True},
        default_value={"below_normal_pace": False, "requires_flexible_schedule": False},
    ),
    DimensionRule(
        dimension="social",
        triggers=(),
        limitation_categories=frozenset({"social"}),
        restricted_level="occasional",
        restricted_value={"limited_public_contact": True},
        default_value={"limited_public_contact": False},
    ),
    DimensionRule(
        dimension="bending",
        triggers=(),
        limitation_categories=frozenset({"bending"}),
        restricted_level="frequent",
    ),
    DimensionRule(
        dimension="climbing",
        triggers=(),
        limitation_categories=frozenset({"climbing"}),
        restricted_level="frequent",
        restricted_value={"ladders": "never"},
        default_value={"ladders": "unlimited"},
    ),
)


def more_restrictive(left: LimitationLevel, right: LimitationLevel) -> LimitationLevel:
    return left if LIMITATION_LEVELS.index(left) >= LIMITATION_LEVELS.index(right) else right


def tier_for_lifting(
    max_pounds_occasional: float,
    max_pounds_frequent: float,
    *,
    standing_or_walking_limited: bool,
) -> WorkCapacityTier:
    for row in LIFTING_TIERS:
        if max_pounds_occasional > row.max_pounds_occasional:
            continue
        if max_pounds_frequent > row.max_pounds_frequent:
            continue
        if row.requires_limited_standing and not standing_or_walking_limited:
            continue
        return row.tier
    return "very_heavy"
