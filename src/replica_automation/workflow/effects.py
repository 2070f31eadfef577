"""Inputs and outputs of the pure transition logic.

Outcomes describe what an upstream call returned. Side effects describe work the
scheduler must perform after a decision. Neither performs any I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class UpstreamStatus(str, Enum):
    READY = "ready"
    TRAINING = "training"
    FAILED = "failed"
    UNKNOWN = "unknown"


_STATUS_ALIASES: dict[str, UpstreamStatus] = {
    "ready": UpstreamStatus.READY,
    "completed": UpstreamStatus.READY,
    "training": UpstreamStatus.TRAINING,
    "started": UpstreamStatus.TRAINING,
    "queued": UpstreamStatus.TRAINING,
    "pending": UpstreamStatus.TRAINING,
    "in_progress": UpstreamStatus.TRAINING,
    "failed": UpstreamStatus.FAILED,
    "error": UpstreamStatus.FAILED,
}


def normalize_upstream_status(raw: object) -> UpstreamStatus:
    """Map a loosely typed upstream status string onto :class:`UpstreamStatus`."""

    if not isinstance(raw, str):
        return UpstreamStatus.UNKNOWN
    return _STATUS_ALIASES.get(raw.strip().lower(), UpstreamStatus.UNKNOWN)


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Result of a successful status query."""

    status: UpstreamStatus
    error: str | None = None
    raw_status: str | None = None

    @classmethod
    def from_raw(cls, raw_status: object, error: str | None = None) -> StatusReport:
        return cls(
            status=normalize_upstream_status(raw_status),
            error=error,
            raw_status=raw_status if isinstance(raw_status, str) else None,
        )


@dataclass(frozen=True, slots=True)
class StatusQueryFailed:
    """The status query itself failed (network, rate limiting, bad payload)."""

    message: str


PollOutcome = StatusReport | StatusQueryFailed


@dataclass(frozen=True, slots=True)
class DerivedCreated:
    derived_resource_id: str
    associated: bool = True
    association_error: str | None = None


@dataclass(frozen=True, slots=True)
class DerivedCreationFailed:
    message: str


CreationOutcome = DerivedCreated | DerivedCreationFailed


@dataclass(frozen=True, slots=True)
class CreateDerived:
    """Create the derived resource for the job's owner."""


@dataclass(frozen=True, slots=True)
class PersistCompletion:
    derived_resource_id: str
    associated: bool = True
    association_error: str | None = None


@dataclass(frozen=True, slots=True)
class PersistFailure:
    error: str


@dataclass(frozen=True, slots=True)
class RemoveJob:
    """Drop the job from the registry."""


SideEffect = CreateDerived | PersistCompletion | PersistFailure | RemoveJob
