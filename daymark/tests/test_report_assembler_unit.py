from datetime import datetime, timezone
from typing import Any

import pytest

from daymark.internal_core.clock import FixedClock
from daymark.internal_core.config import DaymarkConfig
from daymark.internal_core.errors import ValidationError
from daymark.internal_core.record_store import InMemoryRecordStore
from daymark.records.service import LogService
from daymark.report.assembler import NO_EXPLANATION, RULE, SECTION_ORDER, render_plain_text
from daymark.report.stats import describe


def _config() -> DaymarkConfig:
    return DaymarkConfig(
        DAYMARK_STORE_BACKEND="memory",
        DAYMARK_DATA_DIR="./data",
        DAYMARK_RETROSPECTIVE_THRESHOLD_DAYS=7,
        DAYMARK_GAP_MIN_DAYS=3,
        DAYMARK_EVIDENCE_SAMPLE_LIMIT=5,
        DAYMARK_APP_VERSION="9.9.9",
        DAYMARK_LOG_LEVEL="INFO",
    )


def _seeded_service() -> tuple[LogService, dict[str, Any]]:
    clock = FixedClock(datetime(2024, 1, 20, 9, 0, tzinfo=timezone.utc))
    service = LogService(InMemoryRecordStore(), clock, _config())
    first = service.create_daily_log(
        "p1",
        {"event_date": "2024-01-01", "symptoms": [{"symptom_id": "back_pain", "severity": 8}], "overall_severity": 2},
    )
    second = service.create_daily_log(
        "p1",
        {"event_date": "2024-01-02", "symptoms": [{"symptom_id": "back_pain", "severity": 7}], "overall_severity": 4},
    )
    third = service.create_daily_log(
        "p1",
        {"event_date": "2024-01-10", "symptoms": [{"symptom_id": "headache", "severity": 9}], "overall_severity": 9},
    )
    service.finalize_log("p1", first.id)
    service.update_log("p1", first.id, {"notes": "fixed"}, reason="typo_correction")
    service.explain_gap("p1", "2024-01-03", "2024-01-09", "Hospitalized")
    return service, {"first": first, "second": second, "third": third}


def test_sections_follow_fixed_order() -> None:
    service, _ = _seeded_service()
    report = service.build_report("p1", "2024-01-01", "2024-01-15")
    assert [section.title for section in report.sections] == list(SECTION_ORDER)
    assert report.section("Disclaimer").lines[0].startswith("This report documents user-reported information only.")


def test_report_information_lists_version_and_evidence_mode() -> None:
    service, _ = _seeded_service()
    info = service.build_report("p1", "2024-01-01", "2024-01-15").section("Report Information").lines
    assert "Application Version: 9.9.9" in info
    assert "Date Range: 2024-01-01 to 2024-01-15" in info
    assert "Generated: 2024-01-20T09:00:00.000Z" in info
    assert "Evidence Mode: not enabled" in info


def test_gap_markers_are_interleaved_chronologically() -> None:
    service, records = _seeded_service()
    raw = service.build_report("p1", "2024-01-01", "2024-01-15").section("Raw Logs").lines
    headers = [line for line in raw if line.startswith("[")]
    assert headers == [
        f"[2024-01-01] Daily log {records['first'].id}",
        f"[2024-01-02] Daily log {records['second'].id}",
        "[GAP] 2024-01-03 to 2024-01-09 (7 day(s) without entries)",
        f"[2024-01-10] Daily log {records['third'].id}",
        "[GAP] 2024-01-11 to 2024-01-15 (5 day(s) without entries)",
    ]
    first_gap = raw.index("[GAP] 2024-01-03 to 2024-01-09 (7 day(s) without entries)")
    assert raw[first_gap + 1] == "  Explanation: Hospitalized"
    trailing = raw.index("[GAP] 2024-01-11 to 2024-01-15 (5 day(s) without entries)")
    assert raw[trailing + 1] == f"  Explanation: {NO_EXPLANATION}"


def test_raw_logs_carry_integrity_annotations_and_revisions() -> None:
    service, _ = _seeded_service()
    raw = service.build_report("p1", "2024-01-01", "2024-01-15").section("Raw Logs").lines
    assert "  Status: Finalized at 2024-01-20T09:00:00.000Z by p1" in raw
    assert "  Revisions: 1" in raw
    assert "    - 2024-01-20T09:00:00.000Z notes: (empty) -> fixed (typo_correction)" in raw
    assert "  Evidence timestamp: None recorded" in raw
    assert "  Delay: Logged 19 days after event" in raw
    assert any(line.startswith("  Retrospective entry: 19 day(s) after event") for line in raw)
    assert raw.count("  Status: Draft") == 2


def test_data_summary_counts_and_capacity() -> None:
    service, _ = _seeded_service()
    summary = service.build_report("p1", "2024-01-01", "2024-01-15").section("Data Summary").lines
    assert "Daily logs: 3" in summary
    assert "Finalized records: 1" in summary
    assert "Records with revisions: 1" in summary
    assert "Retrospective entries: 3" in summary
    assert "Documentation gaps: 2 (1 explained)" in summary
    assert "Derived functional capacity:" in summary
    assert any(line.startswith("  Sitting: restricted, level occasional") for line in summary)


def test_capacity_is_omitted_when_window_has_no_records() -> None:
    service, _ = _seeded_service()
    report = service.build_report("p1", "2023-06-01", "2023-06-05")
    assert "Derived functional capacity:" not in report.section("Data Summary").lines
    assert report.section("Narrative Drafts").lines == ["No narrative drafts available"]
    raw = report.section("Raw Logs").lines
    assert raw[0] == "[GAP] 2023-06-01 to 2023-06-05 (5 day(s) without entries)"


def test_narratives_cite_restricted_claims_and_accept_overrides() -> None:
    service, _ = _seeded_service()
    drafts = service.build_report("p1", "2024-01-01", "2024-01-15").section("Narrative Drafts").lines
    assert any("sitting limitation at the occasional level" in line for line in drafts)

    custom = service.build_report("p1", "2024-01-01", "2024-01-15", narratives=["Edited statement."])
    assert custom.section("Narrative Drafts").lines == ["1. Edited statement."]


def test_medications_and_appointments_section() -> None:
    service, _ = _seeded_service()
    service.add_medication("p1", {"name": "Naproxen", "dosage": "500mg", "frequency": "twice_daily"})
    service.add_appointment("p1", {"appointment_date": "2024-01-05", "provider_name": "Dr. Lee"})
    service.add_appointment("p1", {"appointment_date": "2024-03-05", "provider_name": "Dr. Out"})
    care = service.build_report("p1", "2024-01-01", "2024-01-15").section("Medications and Appointments").lines
    assert "  - Naproxen 500mg (twice_daily, active)" in care
    assert "  - 2024-01-05 Dr. Lee (other, follow_up, scheduled)" in care
    assert not any("Dr. Out" in line for line in care)


def test_variability_metrics_use_descriptive_stats() -> None:
    service, _ = _seeded_service()
    metrics = service.build_report("p1", "2024-01-01", "2024-01-15").section("Variability Metrics").lines
    assert metrics[0] == "Daily overall severity: n=3 mean=5.0 median=4.0 stddev=2.94"
    assert metrics[1] == "  Bands: mild 1, moderate 1, severe 0, extreme 1"
    assert metrics[2] == "Activity immediate impact: no values recorded"


def test_describe_handles_empty_input() -> None:
    stats = describe([])
    assert stats.count == 0
    assert stats.mean is None
    assert stats.histogram == {"mild": 0, "moderate": 0, "severe": 0, "extreme": 0}


def test_render_plain_text_draws_rule_under_each_heading() -> None:
    service, _ = _seeded_service()
    text = render_plain_text(service.build_report("p1", "2024-01-01", "2024-01-15"))
    lines = text.splitlines()
    assert lines[:2] == ["Daymark", "Evidence Report"]
    for title in SECTION_ORDER:
        index = lines.index(title)
        assert lines[index + 1] == RULE
    assert text.endswith("\n") and not text.endswith("\n\n")


def test_inverted_report_window_is_rejected() -> None:
    service, _ = _seeded_service()
    with pytest.raises(ValidationError):
        service.build_report("p1", "2024-02-01", "2024-01-01")


class CountingStore(InMemoryRecordStore):
    def __init__(self) -> None:
        super().__init__()
        self.reads: dict[str, int] = {}

    def get(self, profile_id: str, collection: str) -> list[dict[str, Any]]:
        self.reads[collection] = self.reads.get(collection, 0) + 1
        return super().get(profile_id, collection)


def test_report_reads_revisions_collection_once() -> None:
    store = CountingStore()
    clock = FixedClock(datetime(2024, 1, 20, 9, 0, tzinfo=timezone.utc))
    service = LogService(store, clock, _config())
    for day in ("2024-01-01", "2024-01-02", "2024-01-03"):
        record = service.create_daily_log(
            "p1", {"event_date": day, "symptoms": [{"symptom_id": "headache", "severity": 4}]}
        )
        service.finalize_log("p1", record.id)
        service.update_log("p1", record.id, {"notes": f"note {day}"}, reason="typo_correction")

    store.reads.clear()
    report = service.build_report("p1", "2024-01-01", "2024-01-03")

    assert store.reads["revisions"] == 1
    assert report.section("Raw Logs").lines.count("  Revisions: 1") == 3


def test_list_logs_validates_bounds() -> None:
    service, _ = _seeded_service()
    with pytest.raises(ValidationError, match="Invalid event date"):
        service.list_logs("p1", start_date="2024/01/01")
    with pytest.raises(ValidationError, match="Invalid event date"):
        service.list_logs("p1", end_date="Jan 5")
