from .clock import Clock, FixedClock, SystemClock, iso_now
from .config import DaymarkConfig, load_config
from .errors import (
    DaymarkError,
    InsufficientDataError,
    IntegrityViolation,
    StorageError,
    ValidationError,
)
from .record_store import InMemoryRecordStore, JsonFileRecordStore, RecordStore, build_record_store

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "iso_now",
    "DaymarkConfig",
    "load_config",
    "DaymarkError",
    "InsufficientDataError",
    "IntegrityViolation",
    "StorageError",
    "ValidationError",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "RecordStore",
    "build_record_store",
]
