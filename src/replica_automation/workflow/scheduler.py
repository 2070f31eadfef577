"""Background polling scheduler for provisioning jobs.

One worker thread drives every job: it wakes up every ``interval_seconds``,
processes the pending jobs one after another, and suspends itself when nothing
is left to poll. :meth:`BackgroundScheduler.ensure_running` brings it back.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import assert_never

from replica_automation.persistence.owner_store import (
    PersistenceAdapter,
    completion_fields,
    failure_fields,
)
from replica_automation.provisioning.client import OwnerContext, ProvisioningClient

from .effects import (
    CreateDerived,
    CreationOutcome,
    DerivedCreated,
    DerivedCreationFailed,
    PersistCompletion,
    PersistFailure,
    PollOutcome,
    RemoveJob,
    StatusQueryFailed,
)
from .registry import JobRegistry
from .state_machine import (
    CREATION_STATES,
    Decision,
    Job,
    JobState,
    decide_creation,
    decide_poll,
    is_attempts_exceeded,
    transition,
    utc_now,
)

logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class BackgroundScheduler:
    def __init__(
        self,
        *,
        registry: JobRegistry,
        client: ProvisioningClient,
        persistence: PersistenceAdapter,
        interval_seconds: float = 300.0,
        inter_job_delay_seconds: float = 1.0,
        max_attempts: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if inter_job_delay_seconds < 0:
            raise ValueError("inter_job_delay_seconds must be >= 0")

        self._registry = registry
        self._client = client
        self._persistence = persistence
        self._interval = interval_seconds
        self._inter_job_delay = inter_job_delay_seconds
        self._max_attempts = max_attempts
        self._clock = clock

        # Guards _worker and _stop_event.
        self._state_lock = threading.Lock()
        # Held for the duration of a tick; ticks never overlap.
        self._tick_lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._worker is not None and self._worker.is_alive()

    def ensure_running(self) -> bool:
        """Start the worker thread unless it is already running.

        Returns True if a new worker was started.
        """

        with self._state_lock:
            if self._worker is not None and self._worker.is_alive():
                return False
            stop_event = threading.Event()
            worker = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="provisioning-scheduler",
                daemon=True,
            )
            self._worker = worker
            self._stop_event = stop_event
            worker.start()
        logger.info(
            "Started provisioning scheduler", extra={"interval_seconds": self._interval}
        )
        return True

    def stop(self, *, wait: bool = False, timeout: float | None = None) -> None:
        """Stop the worker thread.

        A tick in progress finishes its current job; in-flight upstream calls are
        not interrupted. With ``wait`` the caller blocks until the worker exits.
        """

        with self._state_lock:
            worker = self._worker
            self._worker = None
            self._stop_event.set()
        if worker is None:
            return
        logger.info("Stopping provisioning scheduler")
        if wait and worker is not threading.current_thread():
            worker.join(timeout)

    def tick(self) -> bool:
        """Run one tick synchronously on the calling thread.

        Returns False when there was nothing left to poll and the scheduler
        suspended itself.
        """

        return self._tick(threading.Event())

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            if not self._tick(stop_event):
                break
        logger.debug("Provisioning scheduler worker exited")

    def _tick(self, stop_event: threading.Event) -> bool:
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous tick still running; skipping")
            return True
        try:
            pending = self._registry.all_pending()
            if not pending:
                return not self._suspend_if_idle()

            logger.info("Polling pending provisioning jobs", extra={"count": len(pending)})
            for index, job in enumerate(pending):
                if index and stop_event.wait(self._inter_job_delay):
                    break
                try:
                    self.process_job(job.owner_id)
                except Exception:
                    logger.exception(
                        "Unexpected error while processing provisioning job",
                        extra={"owner_id": job.owner_id, "job_id": job.job_id},
                    )
            return True
        finally:
            self._tick_lock.release()

    def _suspend_if_idle(self) -> bool:
        # Checked under the state lock so a concurrent ensure_running() either
        # sees the worker still registered (and the job is picked up next tick)
        # or starts a fresh worker.
        with self._state_lock:
            if self._registry.has_pending():
                return False
            worker = self._worker
            self._worker = None
            self._stop_event.set()
        if worker is not None:
            logger.info("No pending provisioning jobs; scheduler suspended")
        return True

    def stop_if_idle(self) -> bool:
        """Stop the worker only if no job at all is registered.

        Returns True if the scheduler is stopped.
        """

        with self._state_lock:
            if len(self._registry) > 0:
                return False
            worker = self._worker
            self._worker = None
            self._stop_event.set()
        if worker is not None:
            logger.info("No provisioning jobs left; scheduler stopped")
        return True

    def process_job(self, owner_id: str) -> None:
        """Advance the job registered for ``owner_id`` by one step."""

        job = self._registry.get(owner_id)
        if job is None or job.is_terminal:
            return

        if job.state in CREATION_STATES:
            # Interrupted between readiness and creation on an earlier tick.
            resumed = transition(
                job,
                JobState.CREATING_DERIVED,
                attempts=job.attempts + 1,
                last_checked_at=self._clock(),
            )
            if self._registry.replace_if_current(resumed):
                self._create_derived(resumed)
            return

        outcome: PollOutcome | None = None
        if not is_attempts_exceeded(job, self._max_attempts):
            outcome = self._query_status(job)
        decision = decide_poll(job, outcome, max_attempts=self._max_attempts, now=self._clock())
        self._apply(job, decision)

    def _query_status(self, job: Job) -> PollOutcome:
        try:
            return self._client.get_status(job.source_resource_id)
        except Exception as e:
            logger.warning(
                "Status query failed; will retry next tick",
                extra={
                    "owner_id": job.owner_id,
                    "source_resource_id": job.source_resource_id,
                    "error": _describe(e),
                },
            )
            return StatusQueryFailed(message=_describe(e))

    def _apply(self, previous: Job, decision: Decision) -> None:
        job = decision.job
        if not self._registry.replace_if_current(job):
            logger.info(
                "Job no longer registered; discarding result",
                extra={"owner_id": job.owner_id, "job_id": job.job_id},
            )
            return

        if previous.state is not job.state:
            logger.info(
                "Provisioning job changed state",
                extra={
                    "owner_id": job.owner_id,
                    "from_state": previous.state.value,
                    "to_state": job.state.value,
                    "attempts": job.attempts,
                    "error": job.error,
                },
            )

        for effect in decision.effects:
            if isinstance(effect, CreateDerived):
                self._create_derived(job)
            elif isinstance(effect, PersistCompletion):
                self._persist(
                    job.owner_id,
                    completion_fields(
                        source_resource_id=job.source_resource_id,
                        derived_resource_id=effect.derived_resource_id,
                        associated=effect.associated,
                        association_error=effect.association_error,
                        now=self._clock(),
                    ),
                )
            elif isinstance(effect, PersistFailure):
                self._persist(job.owner_id, failure_fields(effect.error, now=self._clock()))
            elif isinstance(effect, RemoveJob):
                self._registry.remove_if_current(job)
            else:
                assert_never(effect)

    def _create_derived(self, job: Job) -> None:
        creating = job
        if job.state is not JobState.CREATING_DERIVED:
            creating = transition(job, JobState.CREATING_DERIVED)
            if not self._registry.replace_if_current(creating):
                return

        outcome = self._attempt_creation(creating)
        decision = decide_creation(creating, outcome, now=self._clock())
        self._apply(creating, decision)

    def _attempt_creation(self, job: Job) -> CreationOutcome:
        try:
            record = self._persistence.fetch(job.owner_id)
        except Exception as e:
            return DerivedCreationFailed(message=f"Failed to fetch owner record: {_describe(e)}")
        if record is None:
            return DerivedCreationFailed(message=f"Owner record {job.owner_id} not found")

        context = OwnerContext(
            owner_id=job.owner_id, source_resource_id=job.source_resource_id, record=record
        )
        try:
            derived_id = self._client.create_derived(context)
        except Exception as e:
            logger.error(
                "Derived resource creation failed",
                extra={"owner_id": job.owner_id, "error": _describe(e)},
            )
            return DerivedCreationFailed(message=_describe(e))

        try:
            self._client.associate_source(derived_id, job.source_resource_id)
        except Exception as e:
            logger.warning(
                "Could not associate source resource with derived resource",
                extra={"owner_id": job.owner_id, "derived_resource_id": derived_id},
            )
            return DerivedCreated(
                derived_resource_id=derived_id, associated=False, association_error=_describe(e)
            )
        return DerivedCreated(derived_resource_id=derived_id)

    def _persist(self, owner_id: str, fields: Mapping[str, object]) -> None:
        try:
            self._persistence.update(owner_id, fields)
        except Exception:
            logger.exception(
                "Failed to persist provisioning result; in-memory state still advances",
                extra={"owner_id": owner_id},
            )
