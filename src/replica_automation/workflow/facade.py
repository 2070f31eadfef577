"""Public entry points of the provisioning workflow.

None of these block on upstream calls: they touch the in-memory registry (and,
for ``start``, write the source id onto the owner record) and return.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from replica_automation.persistence.owner_store import PersistenceAdapter, source_created_fields

from .registry import JobRegistry
from .scheduler import BackgroundScheduler
from .state_machine import Job, JobState, utc_now

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=1)


class WorkflowFacade:
    def __init__(
        self,
        *,
        registry: JobRegistry,
        scheduler: BackgroundScheduler,
        persistence: PersistenceAdapter,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._registry = registry
        self._scheduler = scheduler
        self._persistence = persistence
        self._retention = retention
        self._clock = clock

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    def start(self, owner_id: str, source_resource_id: str) -> Job:
        """Begin provisioning for ``owner_id``.

        Idempotent: if the owner already has a job, that job is returned
        unchanged and nothing else happens.
        """

        owner_id = owner_id.strip()
        source_resource_id = source_resource_id.strip()
        if not owner_id:
            raise ValueError("owner_id is required")
        if not source_resource_id:
            raise ValueError("source_resource_id is required")

        now = self._clock()
        candidate = Job(
            owner_id=owner_id,
            source_resource_id=source_resource_id,
            state=JobState.POLLING,
            last_checked_at=now,
            created_at=now,
        )
        job, created = self._registry.add_if_absent(candidate)
        if not created:
            logger.info(
                "Provisioning already active for owner",
                extra={"owner_id": owner_id, "job_id": job.job_id, "state": job.state.value},
            )
            return job

        logger.info(
            "Started provisioning workflow",
            extra={"owner_id": owner_id, "source_resource_id": source_resource_id},
        )
        self._persist_source(owner_id, source_resource_id, now)
        self._scheduler.ensure_running()
        return job

    def _persist_source(self, owner_id: str, source_resource_id: str, now: datetime) -> None:
        try:
            self._persistence.update(owner_id, source_created_fields(source_resource_id, now=now))
        except Exception:
            logger.exception(
                "Failed to persist source resource id", extra={"owner_id": owner_id}
            )

    def get_status(self, owner_id: str) -> Job | None:
        return self._registry.get(owner_id)

    def list_jobs(self) -> list[Job]:
        return self._registry.all()

    def cancel(self, owner_id: str) -> bool:
        """Forget the owner's job. Already persisted fields are left as they are."""

        removed = self._registry.remove(owner_id)
        if removed is not None:
            logger.info(
                "Cancelled provisioning workflow",
                extra={"owner_id": owner_id, "state": removed.state.value},
            )
        self._scheduler.stop_if_idle()
        return removed is not None

    def cleanup(self, retention: timedelta | None = None) -> list[str]:
        """Drop terminal jobs last checked longer ago than the retention window.

        Returns the owner ids that were removed.
        """

        cutoff = self._clock() - (self._retention if retention is None else retention)
        removed: list[str] = []
        for job in self._registry.all():
            if job.is_terminal and job.last_checked_at < cutoff:
                if self._registry.remove_if_current(job):
                    removed.append(job.owner_id)
        if removed:
            logger.info("Cleaned up finished provisioning jobs", extra={"owner_ids": removed})
        return removed

    def recover(self) -> list[Job]:
        """Rebuild polling jobs for owners whose provisioning never finished.

        In-memory state does not survive a restart; owner records that carry a
        source resource id but no terminal status are picked up again.
        """

        recovered: list[Job] = []
        now = self._clock()
        for owner_id, source_resource_id in self._persistence.find_unfinished():
            job, created = self._registry.add_if_absent(
                Job(
                    owner_id=owner_id,
                    source_resource_id=source_resource_id,
                    last_checked_at=now,
                    created_at=now,
                )
            )
            if created:
                recovered.append(job)
        if recovered:
            logger.info(
                "Recovered unfinished provisioning jobs",
                extra={"owner_ids": [j.owner_id for j in recovered]},
            )
            self._scheduler.ensure_running()
        return recovered

    def shutdown(self, timeout: float | None = None) -> None:
        """Process-shutdown hook: sweep finished jobs and stop the scheduler."""

        self.cleanup()
        self._scheduler.stop(wait=True, timeout=timeout)
