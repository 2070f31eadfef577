"""Wire the provisioning workflow together from settings.

The workflow is an explicitly constructed object owned by whatever process
bootstraps the application; there is no module-level instance.
"""

from __future__ import annotations

import atexit
import logging
from collections.abc import Callable
from datetime import datetime

from replica_automation.config import ProvisioningSettings
from replica_automation.persistence.owner_store import JsonOwnerStore, PersistenceAdapter
from replica_automation.provisioning.client import ProvisioningClient, TavusClient
from replica_automation.workflow.facade import WorkflowFacade
from replica_automation.workflow.registry import JobRegistry
from replica_automation.workflow.scheduler import BackgroundScheduler
from replica_automation.workflow.state_machine import utc_now

logger = logging.getLogger(__name__)


def build_workflow(
    settings: ProvisioningSettings,
    *,
    client: ProvisioningClient | None = None,
    persistence: PersistenceAdapter | None = None,
    clock: Callable[[], datetime] = utc_now,
    recover: bool = True,
    register_atexit: bool = False,
) -> WorkflowFacade:
    """Build a :class:`WorkflowFacade` with its scheduler and collaborators.

    ``client`` and ``persistence`` default to the Tavus API and the JSON owner
    store configured in ``settings``.
    """

    if client is None:
        client = TavusClient(
            api_key=settings.tavus_api_key,
            base_url=settings.tavus_base_url,
            timeout_seconds=settings.request_timeout_seconds,
            llm_model=settings.derived_llm_model,
        )
    if persistence is None:
        persistence = JsonOwnerStore(settings.owners_state_file)

    registry = JobRegistry()
    scheduler = BackgroundScheduler(
        registry=registry,
        client=client,
        persistence=persistence,
        interval_seconds=settings.poll_interval_seconds,
        inter_job_delay_seconds=settings.inter_job_delay_seconds,
        max_attempts=settings.max_attempts,
        clock=clock,
    )
    workflow = WorkflowFacade(
        registry=registry,
        scheduler=scheduler,
        persistence=persistence,
        retention=settings.retention,
        clock=clock,
    )

    if recover:
        try:
            workflow.recover()
        except Exception:
            logger.exception("Failed to recover unfinished provisioning jobs")

    if register_atexit:
        atexit.register(workflow.shutdown)
    return workflow
