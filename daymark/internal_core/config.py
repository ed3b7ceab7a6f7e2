from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _project_root() -> Path:
    # daymark/internal_core/config.py -> daymark -> repo root
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_choice(name: str, default: str, allowed: set[str]) -> str:
    value = _getenv_str(name, default).strip().lower()
    if value not in allowed:
        raise ValueError(f"Unsupported {name}: {value!r} (expected one of {sorted(allowed)})")
    return value


@dataclass(frozen=True)
class DaymarkConfig:
    DAYMARK_STORE_BACKEND: str
    DAYMARK_DATA_DIR: str
    DAYMARK_RETROSPECTIVE_THRESHOLD_DAYS: int
    DAYMARK_GAP_MIN_DAYS: int
    DAYMARK_EVIDENCE_SAMPLE_LIMIT: int
    DAYMARK_APP_VERSION: str
    DAYMARK_LOG_LEVEL: str

    def data_dir_path(self, repo_root: Path | None = None) -> Path:
        base = repo_root if repo_root is not None else _project_root()
        return (base / self.DAYMARK_DATA_DIR).expanduser().resolve()


def load_config() -> DaymarkConfig:
    threshold = _getenv_int("DAYMARK_RETROSPECTIVE_THRESHOLD_DAYS", 7)
    gap_min_days = _getenv_int("DAYMARK_GAP_MIN_DAYS", 3)
    sample_limit = _getenv_int("DAYMARK_EVIDENCE_SAMPLE_LIMIT", 5)
    if threshold < 0:
        raise ValueError("DAYMARK_RETROSPECTIVE_THRESHOLD_DAYS must be >= 0")
    if gap_min_days < 1:
        raise ValueError("DAYMARK_GAP_MIN_DAYS must be >= 1")
    if sample_limit < 1:
        raise ValueError("DAYMARK_EVIDENCE_SAMPLE_LIMIT must be >= 1")

    return DaymarkConfig(
        DAYMARK_STORE_BACKEND=_getenv_choice("DAYMARK_STORE_BACKEND", "memory", {"memory", "json"}),
        DAYMARK_DATA_DIR=_getenv_str("DAYMARK_DATA_DIR", "./data"),
        DAYMARK_RETROSPECTIVE_THRESHOLD_DAYS=threshold,
        DAYMARK_GAP_MIN_DAYS=gap_min_days,
        DAYMARK_EVIDENCE_SAMPLE_LIMIT=sample_limit,
        DAYMARK_APP_VERSION=_getenv_str("DAYMARK_APP_VERSION", "0.1.0"),
        DAYMARK_LOG_LEVEL=_getenv_str("DAYMARK_LOG_LEVEL", "INFO"),
    )
