from __future__ import annotations

"""
Logging-delay and documentation-gap analysis over event dates.

Design intent:
- Compare the user-chosen event date with the system creation time, never the reverse.
- Keep gap detection order independent and idempotent so reports are reproducible.
- Match gap explanations exactly; an unmatched gap stays unexplained.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Sequence

from daymark.internal_core.contracts import GapExplanation, RetrospectiveContext
from daymark.internal_core.errors import ValidationError

DEFAULT_RETROSPECTIVE_THRESHOLD_DAYS = 7
DEFAULT_BACKDATING_REASON = "Logged retrospectively after the event date"

RETROSPECTIVE_REASON_OPTIONS = [
    "Forgot to log at time of occurrence",
    "Symptoms prevented logging at the time",
    "Reconstructing from notes or memory",
    "Catching up after a gap",
    "Other",
]

_EVENT_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class GapSegment:
    start_date: str
    end_date: str
    length_days: int

    @property
    def missing_days(self) -> int:
        return self.length_days + 1


@dataclass(frozen=True)
class ExplainedGap:
    gap: GapSegment
    explanation: str | None

    @property
    def explained(self) -> bool:
        return self.explanation is not None


@dataclass(frozen=True)
class LoggingConsistency:
    total_days: int
    days_logged: int
    coverage_ratio: float
    longest_gap_days: int
    mean_gap_days: float
    gap_count: int


def parse_event_date(value: str) -> date:
    raw = (value or "").strip()
    if not _EVENT_DATE_RE.match(raw):
        raise ValidationError(f"Invalid event date (expected YYYY-MM-DD): {value!r}")
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid event date: {value!r}") from exc


def parse_timestamp(value: str) -> datetime:
    raw = (value or "").strip()
    if _EVENT_DATE_RE.match(raw):
        return datetime.combine(parse_event_date(raw), datetime.min.time(), tzinfo=timezone.utc)
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def days_delayed(event_date: str, created_at: str) -> int:
    """Whole calendar days between the event and its creation, clamped at zero."""
    event_day = parse_event_date(event_date)
    created_day = parse_timestamp(created_at).date()
    return max(0, (created_day - event_day).days)


def delay_label(days: int) -> str:
    if days <= 0:
        return "Logged same-day"
    if days == 1:
        return "Logged 1 day after event"
    return f"Logged {days} days after event"


def build_retrospective_context(
    event_date: str,
    created_at: str,
    *,
    reason: str | None = None,
    note: str | None = None,
    threshold_days: int = DEFAULT_RETROSPECTIVE_THRESHOLD_DAYS,
) -> RetrospectiveContext | None:
    delay = days_delayed(event_date, created_at)
    reason = (reason or "").strip() or None
    note = (note or "").strip() or None
    if delay <= threshold_days and reason is None and note is None:
        return None
    if reason is None and delay > threshold_days:
        reason = DEFAULT_BACKDATING_REASON
    return RetrospectiveContext(
        days_delayed=delay,
        flagged_at=created_at,
        reason=reason,
        note=note,
    )


def _segment(start: date, end: date) -> GapSegment:
    return GapSegment(
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        length_days=(end - start).days,
    )


def find_gaps(
    event_dates: Iterable[str],
    min_gap_days: int = 1,
    range_start: str | None = None,
    range_end: str | None = None,
) -> list[GapSegment]:
    """
    Find spans with no logged day.

    A span is reported when it covers at least `min_gap_days` missing days.
    Bounds are inclusive; dates outside supplied bounds are ignored.
    """
    if min_gap_days < 1:
        raise ValidationError("min_gap_days must be >= 1")
    lower = parse_event_date(range_start) if range_start else None
    upper = parse_event_date(range_end) if range_end else None
    if lower is not None and upper is not None and lower > upper:
        raise ValidationError(f"Range start {range_start} is after range end {range_end}")

    days = sorted({parse_event_date(item) for item in event_dates})
    if lower is not None:
        days = [day for day in days if day >= lower]
    if upper is not None:
        days = [day for day in days if day <= upper]

    gaps: list[GapSegment] = []
    if not days:
        if lower is not None and upper is not None and (upper - lower).days + 1 >= min_gap_days:
            gaps.append(_segment(lower, upper))
        return gaps

    if lower is not None and (days[0] - lower).days >= min_gap_days:
        gaps.append(_segment(lower, days[0] - timedelta(days=1)))

    for prev, cur in zip(days, days[1:]):
        missing = (cur - prev).days - 1
        if missing >= min_gap_days:
            gaps.append(_segment(prev + timedelta(days=1), cur - timedelta(days=1)))

    if upper is not None and (upper - days[-1]).days >= min_gap_days:
        gaps.append(_segment(days[-1] + timedelta(days=1), upper))
    return gaps


def explain_gaps(
    gaps: Sequence[GapSegment],
    explanations: Sequence[GapExplanation],
) -> list[ExplainedGap]:
    by_interval = {(item.start_date, item.end_date): item.note for item in explanations}
    return [
        ExplainedGap(gap=gap, explanation=by_interval.get((gap.start_date, gap.end_date)))
        for gap in gaps
    ]


def logging_consistency(event_dates: Iterable[str], range_start: str, range_end: str) -> LoggingConsistency:
    lower = parse_event_date(range_start)
    upper = parse_event_date(range_end)
    if lower > upper:
        raise ValidationError(f"Range start {range_start} is after range end {range_end}")
    total_days = (upper - lower).days + 1
    logged = {parse_event_date(item) for item in event_dates}
    days_logged = len([day for day in logged if lower <= day <= upper])
    gaps = find_gaps([day.isoformat() for day in logged], 1, range_start, range_end)
    sizes = [gap.missing_days for gap in gaps]
    return LoggingConsistency(
        total_days=total_days,
        days_logged=days_logged,
        coverage_ratio=round(days_logged / total_days, 4),
        longest_gap_days=max(sizes, default=0),
        mean_gap_days=round(sum(sizes) / len(sizes), 2) if sizes else 0.0,
        gap_count=len(gaps),
    )
