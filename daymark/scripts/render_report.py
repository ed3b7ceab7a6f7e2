from __future__ import annotations

import argparse
import logging
from pathlib import Path

from daymark.internal_core.clock import SystemClock
from daymark.internal_core.config import load_config
from daymark.internal_core.errors import DaymarkError
from daymark.internal_core.record_store import JsonFileRecordStore
from daymark.records.service import LogService
from daymark.report.assembler import render_plain_text


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Render a plain-text evidence report from a JSON record store"
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Root of the JSON record store (default: DAYMARK_DATA_DIR)",
    )
    parser.add_argument("--profile", required=True, help="Profile id to report on.")
    parser.add_argument("--start-date", required=True, help="First event date (YYYY-MM-DD).")
    parser.add_argument("--end-date", required=True, help="Last event date (YYYY-MM-DD).")
    parser.add_argument(
        "--output",
        default=None,
        help="Write the report to this file instead of stdout.",
    )
    parser.add_argument(
        "--no-capacity",
        action="store_true",
        help="Skip the derived functional-capacity summary.",
    )
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(level=config.DAYMARK_LOG_LEVEL.upper())
    root = Path(args.data_dir).expanduser() if args.data_dir else config.data_dir_path()
    if not root.exists():
        raise SystemExit(f"data directory not found: {root}")

    service = LogService(JsonFileRecordStore(root), SystemClock(), config)
    try:
        report = service.build_report(
            args.profile,
            args.start_date,
            args.end_date,
            include_capacity=not args.no_capacity,
        )
    except DaymarkError as exc:
        raise SystemExit(f"report failed: {exc}") from exc

    text = render_plain_text(report)
    if args.output:
        Path(args.output).expanduser().write_text(text, encoding="utf-8")
        print(f"report written: {args.output}")
    else:
        print(text, end="")


if __name__ == "__main__":
    main()
