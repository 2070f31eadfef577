"""In-memory registry of active provisioning jobs.

The registry is the only shared mutable state in the workflow. It holds
immutable :class:`Job` snapshots keyed by owner id, so readers always see a
consistent job and writers replace whole snapshots under the lock.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator

from .state_machine import Job


class PendingSnapshot(Iterable[Job]):
    """Non-terminal jobs as of the moment the snapshot was taken.

    Iterating is restartable and never observes later registry mutations.
    """

    def __init__(self, jobs: Iterable[Job]) -> None:
        self._jobs = tuple(jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)

    def __bool__(self) -> bool:
        return bool(self._jobs)


class JobRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def upsert(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.owner_id] = job

    def add_if_absent(self, job: Job) -> tuple[Job, bool]:
        """Insert ``job`` unless its owner already has one.

        Returns the job registered for the owner and whether it was inserted.
        """

        with self._lock:
            existing = self._jobs.get(job.owner_id)
            if existing is not None:
                return existing, False
            self._jobs[job.owner_id] = job
            return job, True

    def get(self, owner_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(owner_id)

    def remove(self, owner_id: str) -> Job | None:
        with self._lock:
            return self._jobs.pop(owner_id, None)

    def replace_if_current(self, job: Job) -> bool:
        """Write back ``job`` only if the same job is still registered.

        Returns False when the job was cancelled (or superseded by a new job for
        the same owner) while the caller was working on it.
        """

        with self._lock:
            existing = self._jobs.get(job.owner_id)
            if existing is None or existing.job_id != job.job_id:
                return False
            self._jobs[job.owner_id] = job
            return True

    def remove_if_current(self, job: Job) -> bool:
        with self._lock:
            existing = self._jobs.get(job.owner_id)
            if existing is None or existing.job_id != job.job_id:
                return False
            del self._jobs[job.owner_id]
            return True

    def all(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())

    def all_pending(self) -> PendingSnapshot:
        with self._lock:
            return PendingSnapshot(j for j in self._jobs.values() if not j.is_terminal)

    def has_pending(self) -> bool:
        with self._lock:
            return any(not j.is_terminal for j in self._jobs.values())
