from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Protocol, Tuple

from .config import DaymarkConfig
from .errors import StorageError

logger = logging.getLogger(__name__)

# Scope key for process-wide values such as the evidence-mode config.
GLOBAL_SCOPE = "__global__"

_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class RecordStore(Protocol):
    def get(self, profile_id: str, collection: str) -> List[Dict[str, Any]]: ...

    def put(self, profile_id: str, collection: str, items: List[Dict[str, Any]]) -> None: ...


class InMemoryRecordStore:
    """Whole-collection store kept in a dict; reads return deep copies."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._collections: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}

    def get(self, profile_id: str, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._collections.get((profile_id, collection), []))

    def put(self, profile_id: str, collection: str, items: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._collections[(profile_id, collection)] = copy.deepcopy(list(items))

    def clear(self) -> None:
        with self._lock:
            self._collections.clear()


class JsonFileRecordStore:
    """One JSON file per (profile, collection), replaced atomically on write."""

    def __init__(self, root: Path):
        self._root = Path(root)
        self._lock = RLock()

    def _path(self, profile_id: str, collection: str) -> Path:
        for name in (profile_id, collection):
            if not _SAFE_NAME_RE.match(name or ""):
                raise StorageError(f"Invalid storage key: {name!r}")
        return self._root / profile_id / f"{collection}.json"

    def get(self, profile_id: str, collection: str) -> List[Dict[str, Any]]:
        path = self._path(profile_id, collection)
        with self._lock:
            if not path.exists():
                return []
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                raise StorageError(f"Failed to read {collection} for {profile_id}: {exc}") from exc
        if not isinstance(payload, list):
            raise StorageError(f"Corrupt collection {collection} for {profile_id}: expected a list")
        return payload

    def put(self, profile_id: str, collection: str, items: List[Dict[str, Any]]) -> None:
        path = self._path(profile_id, collection)
        with self._lock:
            tmp_name = ""
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(prefix=f".{collection}.", suffix=".tmp", dir=path.parent)
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(list(items), handle, ensure_ascii=False, indent=2)
                os.replace(tmp_name, path)
            except (OSError, TypeError, ValueError) as exc:
                if tmp_name:
                    Path(tmp_name).unlink(missing_ok=True)
                raise StorageError(f"Failed to write {collection} for {profile_id}: {exc}") from exc
        logger.debug("Wrote %d item(s) to %s", len(items), path)


def build_record_store(config: DaymarkConfig) -> RecordStore:
    if config.DAYMARK_STORE_BACKEND == "json":
        root = config.data_dir_path()
        logger.info("Using JSON file record store at %s", root)
        return JsonFileRecordStore(root)
    return InMemoryRecordStore()
