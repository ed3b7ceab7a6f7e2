from __future__ import annotations

"""
Compose an evidence report from stored records and precomputed analysis.

Design intent:
- Keep the section order fixed so every export reads the same way.
- List every raw record with its integrity annotations; never summarize records away.
- Interleave gap markers at their chronological position with exact-match explanations.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence, Union

from daymark.derivation.engine import CapacityResult, DerivedClaim
from daymark.internal_core.contracts import (
    ActivityLog,
    Appointment,
    DailyLog,
    EvidenceModeConfig,
    Medication,
    Revision,
)
from daymark.report.stats import DescriptiveStats, describe
from daymark.temporal.integrity import ExplainedGap, days_delayed, delay_label

SECTION_ORDER: tuple[str, ...] = (
    "Report Information",
    "Data Summary",
    "Raw Logs",
    "Medications and Appointments",
    "Variability Metrics",
    "Narrative Drafts",
    "Disclaimer",
)

DISCLAIMER = (
    "This report documents user-reported information only. The application does not provide "
    "medical advice, diagnosis, or treatment recommendations. Data presented reflects logged "
    "entries and does not constitute clinical assessment."
)

NO_EXPLANATION = "No explanation provided"
RULE = "-" * 80


@dataclass(frozen=True)
class ReportSection:
    title: str
    lines: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EvidenceReport:
    title: str
    generated_at: str
    app_name: str
    sections: list[ReportSection]

    def section(self, title: str) -> ReportSection:
        for item in self.sections:
            if item.title == title:
                return item
        raise KeyError(f"Unknown report section: {title}")


RawEntry = Union[DailyLog, ActivityLog, ExplainedGap]


def _entry_key(entry: RawEntry) -> tuple[str, int, str, str]:
    if isinstance(entry, ExplainedGap):
        return (entry.gap.start_date, 0, "", "")
    return (entry.event_date, 1, entry.created_at, entry.id)


def _format_value(value: Any) -> str:
    if value is None:
        return "(empty)"
    if isinstance(value, (list, dict)):
        return repr(value)
    return str(value)


def _record_lines(record: DailyLog | ActivityLog, revisions: Sequence[Revision]) -> list[str]:
    label = "Daily log" if isinstance(record, DailyLog) else "Activity log"
    lines = [f"[{record.event_date}] {label} {record.id}"]
    if isinstance(record, DailyLog):
        symptoms = ", ".join(f"{entry.symptom_id} ({entry.severity}/10)" for entry in record.symptoms)
        lines.append(f"  Overall severity: {record.overall_severity}/10")
        lines.append(f"  Symptoms: {symptoms or 'None recorded'}")
    else:
        planned = (
            f", planned {record.planned_duration_minutes} min"
            if record.planned_duration_minutes is not None
            else ""
        )
        lines.append(
            f"  Activity: {record.activity_name or record.activity_id or 'unspecified'} "
            f"({record.duration_minutes} min{planned}, {record.intensity})"
        )
        flags = []
        if record.stopped_early:
            flags.append("stopped early")
        if record.assistance_needed:
            flags.append("assistance needed")
        lines.append(
            f"  Immediate impact: {record.immediate_impact.overall_impact}/10"
            + (f"; {', '.join(flags)}" if flags else "")
        )
    if record.notes:
        lines.append(f"  Notes: {record.notes}")
    lines.append(f"  Created: {record.created_at} | Updated: {record.updated_at}")
    lines.append(f"  Evidence timestamp: {record.evidence_timestamp or 'None recorded'}")
    lines.append(f"  Delay: {delay_label(days_delayed(record.event_date, record.created_at))}")
    if record.finalized:
        lines.append(f"  Status: Finalized at {record.finalized_at} by {record.finalized_by}")
    else:
        lines.append("  Status: Draft")
    lines.append(f"  Revisions: {len(revisions)}")
    for revision in revisions:
        note = f"; {revision.reason_note}" if revision.reason_note else ""
        lines.append(
            f"    - {revision.created_at} {revision.field_path}: "
            f"{_format_value(revision.original_value)} -> {_format_value(revision.new_value)} "
            f"({revision.reason}{note})"
        )
    context = record.retrospective_context
    if context is not None:
        parts = [f"{context.days_delayed} day(s) after event"]
        if context.reason:
            parts.append(f"reason: {context.reason}")
        if context.note:
            parts.append(f"note: {context.note}")
        lines.append(f"  Retrospective entry: {'; '.join(parts)}")
    return lines


def _gap_lines(entry: ExplainedGap) -> list[str]:
    gap = entry.gap
    return [
        f"[GAP] {gap.start_date} to {gap.end_date} ({gap.missing_days} day(s) without entries)",
        f"  Explanation: {entry.explanation if entry.explanation is not None else NO_EXPLANATION}",
    ]


def _claim_line(claim: DerivedClaim) -> str:
    name = claim.category.replace("_", " ").title()
    values = ", ".join(f"{key}={value}" for key, value in claim.value.items())
    if not claim.restricted:
        return f"{name}: unrestricted ({values})"
    cited = ", ".join(claim.evidence)
    return (
        f"{name}: restricted, level {claim.level} ({values}); "
        f"evidence {len(claim.evidence)} of {claim.evidence_total}: {cited}"
    )


def _stats_lines(label: str, stats: DescriptiveStats) -> list[str]:
    if stats.count == 0:
        return [f"{label}: no values recorded"]
    bands = ", ".join(f"{name} {count}" for name, count in stats.histogram.items())
    return [
        f"{label}: n={stats.count} mean={stats.mean} median={stats.median} stddev={stats.stddev}",
        f"  Bands: {bands}",
    ]


def narrative_drafts(capacity: CapacityResult | None) -> list[str]:
    """Editable statements restating each restricted claim with its citations."""
    if capacity is None:
        return []
    drafts = []
    for claim in capacity.claims.values():
        if not claim.restricted:
            continue
        name = claim.category.replace("_", " ")
        drafts.append(
            f"Logged records document a {name} limitation at the {claim.level} level, "
            f"supported by {claim.evidence_total} item(s) including {', '.join(claim.evidence)}."
        )
    return drafts


def assemble_report(
    *,
    profile_id: str,
    start_date: str,
    end_date: str,
    generated_at: str,
    app_version: str,
    daily_logs: Sequence[DailyLog],
    activity_logs: Sequence[ActivityLog],
    revisions_by_log: Mapping[str, Sequence[Revision]],
    gaps: Sequence[ExplainedGap],
    medications: Sequence[Medication] = (),
    appointments: Sequence[Appointment] = (),
    capacity: CapacityResult | None = None,
    evidence_mode: EvidenceModeConfig | None = None,
    narratives: Sequence[str] | None = None,
    title: str = "Symptom and Activity Evidence Report",
    app_name: str = "Daymark",
) -> EvidenceReport:
    records: list[DailyLog | ActivityLog] = [*daily_logs, *activity_logs]

    info = ReportSection(
        "Report Information",
        [
            f"Title: {title}",
            f"Profile: {profile_id}",
            f"Generated: {generated_at}",
            f"Date Range: {start_date} to {end_date}",
            f"Application Version: {app_version}",
        ],
    )
    if evidence_mode is not None and evidence_mode.enabled:
        info.lines.append(f"Evidence Mode: enabled since {evidence_mode.enabled_at}")
    else:
        info.lines.append("Evidence Mode: not enabled")

    summary = ReportSection(
        "Data Summary",
        [
            f"Daily logs: {len(daily_logs)}",
            f"Activity logs: {len(activity_logs)}",
            f"Finalized records: {sum(1 for item in records if item.finalized)}",
            f"Records with revisions: {sum(1 for item in records if revisions_by_log.get(item.id))}",
            f"Records with evidence timestamps: {sum(1 for item in records if item.evidence_timestamp)}",
            f"Retrospective entries: {sum(1 for item in records if item.retrospective_context is not None)}",
            f"Documentation gaps: {len(gaps)} ({sum(1 for item in gaps if item.explained)} explained)",
        ],
    )
    if capacity is not None:
        summary.lines.append("")
        summary.lines.append("Derived functional capacity:")
        summary.lines.extend(f"  {_claim_line(claim)}" for claim in capacity.claims.values())
        summary.lines.append(f"  Work capacity rating: {capacity.rating}")
        full_time = capacity.full_time
        summary.lines.append(
            f"  Full-time capable: {'yes' if full_time.capable else 'no'} "
            f"(posture {full_time.sustains_posture}, concentration {full_time.sustains_concentration}, "
            f"pace {full_time.maintains_pace})"
        )
        if capacity.accommodations:
            summary.lines.append(f"  Accommodations: {'; '.join(capacity.accommodations)}")
        for pattern in capacity.summary.consistent_patterns:
            summary.lines.append(f"  Pattern: {pattern}")
        for trend in capacity.summary.worsening_trends:
            summary.lines.append(f"  Trend: {trend}")
        summary.lines.append(f"  Average daily logs per week: {capacity.summary.average_logs_per_week}")

    entries: list[RawEntry] = sorted([*records, *gaps], key=_entry_key)
    raw = ReportSection("Raw Logs")
    for entry in entries:
        if isinstance(entry, ExplainedGap):
            raw.lines.extend(_gap_lines(entry))
        else:
            raw.lines.extend(_record_lines(entry, revisions_by_log.get(entry.id, [])))
    if not entries:
        raw.lines.append("No records in range")

    care = ReportSection("Medications and Appointments")
    care.lines.append("Medications:")
    for medication in medications:
        status = "active" if medication.is_active else "inactive"
        care.lines.append(f"  - {medication.name} {medication.dosage} ({medication.frequency}, {status})".rstrip())
    if not medications:
        care.lines.append("  None recorded")
    care.lines.append("Appointments:")
    for appointment in sorted(appointments, key=lambda item: (item.appointment_date, item.id)):
        care.lines.append(
            f"  - {appointment.appointment_date} {appointment.provider_name} "
            f"({appointment.provider_type}, {appointment.purpose}, {appointment.status})"
        )
    if not appointments:
        care.lines.append("  None recorded")

    metrics = ReportSection("Variability Metrics")
    metrics.lines.extend(_stats_lines("Daily overall severity", describe([log.overall_severity for log in daily_logs])))
    metrics.lines.extend(
        _stats_lines(
            "Activity immediate impact",
            describe([log.immediate_impact.overall_impact for log in activity_logs]),
        )
    )

    drafts = list(narratives) if narratives is not None else narrative_drafts(capacity)
    narrative = ReportSection("Narrative Drafts", [f"{index}. {text}" for index, text in enumerate(drafts, 1)])
    if not drafts:
        narrative.lines.append("No narrative drafts available")

    disclaimer = ReportSection("Disclaimer", [DISCLAIMER])

    sections = [info, summary, raw, care, metrics, narrative, disclaimer]
    return EvidenceReport(title=title, generated_at=generated_at, app_name=app_name, sections=sections)


def render_plain_text(report: EvidenceReport) -> str:
    lines = [report.app_name, "Evidence Report", ""]
    for section in report.sections:
        lines.append(section.title)
        lines.append(RULE)
        lines.extend(section.lines)
        lines.append("")
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"
