import random

import pytest

from daymark.internal_core.contracts import GapExplanation
from daymark.internal_core.errors import ValidationError
from daymark.temporal.integrity import (
    DEFAULT_BACKDATING_REASON,
    build_retrospective_context,
    days_delayed,
    delay_label,
    explain_gaps,
    find_gaps,
    logging_consistency,
    parse_event_date,
)


def _explanation(start: str, end: str, note: str) -> GapExplanation:
    return GapExplanation(
        id=f"gx_{start}",
        profile_id="p1",
        start_date=start,
        end_date=end,
        note=note,
        created_at="2024-02-01T00:00:00.000Z",
    )


def test_same_day_entry_has_no_delay_and_no_context() -> None:
    assert days_delayed("2024-01-01", "2024-01-01") == 0
    assert build_retrospective_context("2024-01-01", "2024-01-01T09:30:00.000Z") is None


def test_entry_eleven_days_late_gets_default_backdating_reason() -> None:
    created_at = "2024-01-12T08:00:00.000Z"
    assert days_delayed("2024-01-01", "2024-01-12") == 11
    context = build_retrospective_context("2024-01-01", created_at)
    assert context is not None
    assert context.days_delayed == 11
    assert context.reason == DEFAULT_BACKDATING_REASON
    assert context.flagged_at == created_at


def test_days_delayed_is_clamped_for_future_event_dates() -> None:
    assert days_delayed("2024-03-10", "2024-03-01T12:00:00.000Z") == 0


def test_days_delayed_never_negative_over_many_pairs() -> None:
    rng = random.Random(7)
    for _ in range(200):
        event_day = rng.randint(1, 28)
        created_day = rng.randint(1, 28)
        value = days_delayed(f"2024-02-{event_day:02d}", f"2024-02-{created_day:02d}T10:00:00.000Z")
        assert value >= 0
        assert value == max(0, created_day - event_day)


def test_declared_reason_attaches_context_below_threshold() -> None:
    context = build_retrospective_context(
        "2024-01-01",
        "2024-01-03T00:00:00.000Z",
        reason="Forgot to log at time of occurrence",
    )
    assert context is not None
    assert context.days_delayed == 2
    assert context.reason == "Forgot to log at time of occurrence"


def test_note_only_keeps_reason_empty_below_threshold() -> None:
    context = build_retrospective_context("2024-01-01", "2024-01-02T00:00:00.000Z", note="wrote from diary")
    assert context is not None
    assert context.reason is None
    assert context.note == "wrote from diary"


def test_threshold_is_exclusive() -> None:
    assert build_retrospective_context("2024-01-01", "2024-01-08T00:00:00.000Z") is None
    assert build_retrospective_context("2024-01-01", "2024-01-09T00:00:00.000Z") is not None


def test_delay_labels() -> None:
    assert delay_label(0) == "Logged same-day"
    assert delay_label(1) == "Logged 1 day after event"
    assert delay_label(9) == "Logged 9 days after event"


def test_parse_event_date_rejects_malformed_values() -> None:
    with pytest.raises(ValidationError, match="Invalid event date"):
        parse_event_date("2024/01/01")
    with pytest.raises(ValidationError, match="Invalid event date"):
        parse_event_date("2024-02-30")


def test_find_gaps_reports_single_interior_gap() -> None:
    gaps = find_gaps(["2024-01-01", "2024-01-02", "2024-01-10"], 4)
    assert len(gaps) == 1
    assert gaps[0].start_date == "2024-01-03"
    assert gaps[0].end_date == "2024-01-09"
    assert gaps[0].length_days == 6
    assert gaps[0].missing_days == 7


def test_find_gaps_is_order_independent_and_idempotent() -> None:
    dates = ["2024-01-20", "2024-01-01", "2024-01-05", "2024-01-05", "2024-01-12"]
    baseline = find_gaps(dates, 2, "2023-12-25", "2024-01-31")
    shuffled = list(dates)
    random.Random(3).shuffle(shuffled)
    assert find_gaps(shuffled, 2, "2023-12-25", "2024-01-31") == baseline
    assert find_gaps(dates + dates, 2, "2023-12-25", "2024-01-31") == baseline


def test_find_gaps_emits_leading_and_trailing_gaps_with_bounds() -> None:
    gaps = find_gaps(["2024-01-05", "2024-01-06"], 3, "2024-01-01", "2024-01-12")
    assert [(gap.start_date, gap.end_date) for gap in gaps] == [
        ("2024-01-01", "2024-01-04"),
        ("2024-01-07", "2024-01-12"),
    ]


def test_find_gaps_over_empty_bounded_range() -> None:
    gaps = find_gaps([], 3, "2024-01-01", "2024-01-05")
    assert len(gaps) == 1
    assert (gaps[0].start_date, gaps[0].end_date, gaps[0].length_days) == ("2024-01-01", "2024-01-05", 4)
    assert find_gaps([], 10, "2024-01-01", "2024-01-05") == []
    assert find_gaps([], 1) == []


def test_find_gaps_rejects_invalid_arguments() -> None:
    with pytest.raises(ValidationError, match="min_gap_days"):
        find_gaps(["2024-01-01"], 0)
    with pytest.raises(ValidationError, match="after range end"):
        find_gaps(["2024-01-01"], 1, "2024-02-01", "2024-01-01")


def test_explain_gaps_matches_exact_interval_only() -> None:
    gaps = find_gaps(["2024-01-01", "2024-01-10", "2024-01-20"], 3)
    explained = explain_gaps(
        gaps,
        [
            _explanation("2024-01-02", "2024-01-09", "Hospitalized"),
            _explanation("2024-01-11", "2024-01-18", "Off by one day"),
        ],
    )
    assert explained[0].explanation == "Hospitalized"
    assert explained[0].explained is True
    assert explained[1].explanation is None
    assert explained[1].explained is False


def test_logging_consistency_counts_coverage() -> None:
    stats = logging_consistency(["2024-01-01", "2024-01-02", "2024-01-06"], "2024-01-01", "2024-01-10")
    assert stats.total_days == 10
    assert stats.days_logged == 3
    assert stats.coverage_ratio == 0.3
    assert stats.longest_gap_days == 4
    assert stats.gap_count == 2
