"""Job model and the pure transition logic of the provisioning workflow.

Nothing in this module performs I/O. The scheduler feeds it upstream outcomes
and executes the side effects it returns.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import assert_never

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .effects import (
    CreateDerived,
    CreationOutcome,
    DerivedCreated,
    DerivedCreationFailed,
    PersistCompletion,
    PersistFailure,
    PollOutcome,
    RemoveJob,
    SideEffect,
    StatusQueryFailed,
    StatusReport,
    UpstreamStatus,
)

MAX_ATTEMPTS_ERROR = "Max monitoring attempts reached"
SOURCE_FAILED_ERROR = "Source resource training failed"


class JobState(str, Enum):
    PENDING = "pending"
    POLLING = "polling"
    READY = "ready"
    CREATING_DERIVED = "creating_derived"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: frozenset[JobState] = frozenset({JobState.COMPLETED, JobState.FAILED})

ALLOWED_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.PENDING: {JobState.POLLING},
    JobState.POLLING: {JobState.READY, JobState.FAILED},
    JobState.READY: {JobState.CREATING_DERIVED, JobState.COMPLETED, JobState.FAILED},
    JobState.CREATING_DERIVED: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
}

POLLABLE_STATES: frozenset[JobState] = frozenset({JobState.PENDING, JobState.POLLING})
CREATION_STATES: frozenset[JobState] = frozenset({JobState.READY, JobState.CREATING_DERIVED})


class IllegalTransitionError(ValueError):
    pass


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class Job(BaseModel):
    """Snapshot of one owner's provisioning workflow.

    Jobs are immutable; the scheduler replaces them in the registry instead of
    mutating them, so snapshots handed to callers never change underneath them.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner_id: str
    source_resource_id: str
    state: JobState = JobState.POLLING
    derived_resource_id: str | None = None
    last_checked_at: datetime = Field(default_factory=utc_now)
    attempts: int = Field(default=0, ge=0)
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _derived_only_when_completed(self) -> Job:
        completed = self.state is JobState.COMPLETED
        if completed != bool(self.derived_resource_id):
            raise ValueError("derived_resource_id must be set if and only if state is completed")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


@dataclass(frozen=True, slots=True)
class Decision:
    job: Job
    effects: tuple[SideEffect, ...] = ()

    @property
    def removes_job(self) -> bool:
        return any(isinstance(effect, RemoveJob) for effect in self.effects)


def transition(job: Job, to: JobState, **updates: object) -> Job:
    """Return a copy of ``job`` moved to ``to``, validating the edge."""

    if to is not job.state and to not in ALLOWED_TRANSITIONS[job.state]:
        raise IllegalTransitionError(f"Illegal transition: {job.state.value} -> {to.value}")
    return Job.model_validate({**job.model_dump(), **updates, "state": to})


def is_attempts_exceeded(job: Job, max_attempts: int) -> bool:
    return job.attempts > max_attempts


def decide_poll(
    job: Job, outcome: PollOutcome | None, *, max_attempts: int, now: datetime
) -> Decision:
    """Decide what a poll of ``job`` leads to.

    ``outcome`` may be None when the attempt budget is already exhausted and the
    upstream was not queried at all.
    """

    if job.state not in POLLABLE_STATES:
        raise IllegalTransitionError(f"Cannot poll a job in state {job.state.value}")

    polled = {"attempts": job.attempts + 1, "last_checked_at": now}
    current = JobState.POLLING

    if is_attempts_exceeded(job, max_attempts):
        failed = transition(
            transition(job, current), JobState.FAILED, error=MAX_ATTEMPTS_ERROR, **polled
        )
        return Decision(job=failed, effects=(PersistFailure(error=MAX_ATTEMPTS_ERROR),))

    if outcome is None:
        raise ValueError("A poll outcome is required while attempts remain")

    job = transition(job, current)

    if isinstance(outcome, StatusQueryFailed):
        return Decision(job=transition(job, current, error=outcome.message, **polled))

    if isinstance(outcome, StatusReport):
        status = outcome.status
        if status is UpstreamStatus.READY:
            ready = transition(job, JobState.READY, error=None, **polled)
            return Decision(job=ready, effects=(CreateDerived(),))
        if status is UpstreamStatus.FAILED:
            error = outcome.error or SOURCE_FAILED_ERROR
            failed = transition(job, JobState.FAILED, error=error, **polled)
            return Decision(job=failed, effects=(PersistFailure(error=error),))
        if status is UpstreamStatus.TRAINING:
            return Decision(job=transition(job, current, error=None, **polled))
        if status is UpstreamStatus.UNKNOWN:
            error = f"Unrecognized upstream status: {outcome.raw_status!r}"
            return Decision(job=transition(job, current, error=error, **polled))
        assert_never(status)

    assert_never(outcome)


def decide_creation(job: Job, outcome: CreationOutcome, *, now: datetime) -> Decision:
    """Decide what the derived-resource creation attempt leads to.

    Creation failures are terminal: they usually mean the owner record is not
    usable as input, which another attempt would not fix.
    """

    if job.state not in CREATION_STATES:
        raise IllegalTransitionError(
            f"Cannot create a derived resource for a job in state {job.state.value}"
        )

    if isinstance(outcome, DerivedCreated):
        completed = transition(
            job,
            JobState.COMPLETED,
            derived_resource_id=outcome.derived_resource_id,
            error=None,
            last_checked_at=now,
        )
        persist = PersistCompletion(
            derived_resource_id=outcome.derived_resource_id,
            associated=outcome.associated,
            association_error=outcome.association_error,
        )
        return Decision(job=completed, effects=(persist, RemoveJob()))

    if isinstance(outcome, DerivedCreationFailed):
        failed = transition(job, JobState.FAILED, error=outcome.message, last_checked_at=now)
        return Decision(job=failed, effects=(PersistFailure(error=outcome.message),))

    assert_never(outcome)
