"""Durable owner records touched by the provisioning workflow.

The workflow only writes the handful of fields it owns (source/derived ids,
status flags, timestamps) and reads the record back to build the derived
resource. :class:`JsonOwnerStore` keeps them in a local JSON file; production
deployments can plug in any object satisfying :class:`PersistenceAdapter`.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

SOURCE_RESOURCE_FIELD = "source_resource_id"
COMPLETED_FLAG_FIELD = "provisioning_completed"
STATUS_FIELD = "provisioning_status"
TERMINAL_STATUSES = frozenset({"completed", "failed"})


class PersistenceError(RuntimeError):
    pass


class PersistenceAdapter(Protocol):
    def update(self, owner_id: str, fields: Mapping[str, object]) -> None: ...

    def fetch(self, owner_id: str) -> dict[str, object] | None: ...

    def find_unfinished(self) -> list[tuple[str, str]]:
        """Return ``(owner_id, source_resource_id)`` for records still in flight."""
        ...


def utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


def source_created_fields(source_resource_id: str, *, now: datetime) -> dict[str, object]:
    return {
        SOURCE_RESOURCE_FIELD: source_resource_id,
        STATUS_FIELD: "source_created",
        "provisioning_updated_at": now.isoformat(),
    }


def completion_fields(
    *,
    source_resource_id: str,
    derived_resource_id: str,
    associated: bool,
    association_error: str | None,
    now: datetime,
) -> dict[str, object]:
    return {
        SOURCE_RESOURCE_FIELD: source_resource_id,
        "derived_resource_id": derived_resource_id,
        COMPLETED_FLAG_FIELD: True,
        "provisioning_completed_at": now.isoformat(),
        "source_association": "success" if associated else "failed",
        "source_association_error": association_error,
        STATUS_FIELD: "completed",
        "provisioning_error": None,
        "provisioning_updated_at": now.isoformat(),
    }


def failure_fields(error: str, *, now: datetime) -> dict[str, object]:
    return {
        STATUS_FIELD: "failed",
        "provisioning_error": error,
        "provisioning_updated_at": now.isoformat(),
    }


def is_unfinished(record: Mapping[str, object]) -> bool:
    source = record.get(SOURCE_RESOURCE_FIELD)
    if not isinstance(source, str) or not source.strip():
        return False
    if record.get(COMPLETED_FLAG_FIELD) is True:
        return False
    return record.get(STATUS_FIELD) not in TERMINAL_STATUSES


@dataclass
class JsonOwnerStore:
    """Owner records persisted as one JSON object keyed by owner id."""

    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> dict[str, dict[str, object]]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Owner state file is corrupt: {self.path}") from e
        if not isinstance(raw, dict):
            raise PersistenceError(f"Owner state file must hold an object: {self.path}")
        return {k: v for k, v in raw.items() if isinstance(v, dict)}

    def _save_unlocked(self, records: dict[str, dict[str, object]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(
            json.dumps(records, indent=2, ensure_ascii=False, default=str) + "\n",
            encoding="utf-8",
        )
        tmp.replace(self.path)

    def fetch(self, owner_id: str) -> dict[str, object] | None:
        with self._lock:
            record = self._load_unlocked().get(owner_id)
            return dict(record) if record is not None else None

    def update(self, owner_id: str, fields: Mapping[str, object]) -> None:
        """Merge ``fields`` into the owner's record, creating it if needed."""

        with self._lock:
            records = self._load_unlocked()
            merged = {**records.get(owner_id, {}), **fields, "updated_at": utc_iso_now()}
            records[owner_id] = merged
            try:
                self._save_unlocked(records)
            except OSError as e:
                raise PersistenceError(f"Failed to write owner {owner_id}: {e}") from e
        logger.debug("Updated owner record", extra={"owner_id": owner_id, "fields": sorted(fields)})

    def find_unfinished(self) -> list[tuple[str, str]]:
        with self._lock:
            records = self._load_unlocked()
        return [
            (owner_id, str(record[SOURCE_RESOURCE_FIELD]))
            for owner_id, record in records.items()
            if is_unfinished(record)
        ]
