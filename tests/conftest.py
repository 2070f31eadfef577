"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import Mock

import pytest

from replica_automation.persistence.owner_store import JsonOwnerStore
from replica_automation.provisioning.client import TavusClient
from replica_automation.workflow.facade import WorkflowFacade
from replica_automation.workflow.registry import JobRegistry
from replica_automation.workflow.scheduler import BackgroundScheduler
from tests.fakes import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 1, tzinfo=UTC))


@pytest.fixture
def owner_store(tmp_path: Path) -> JsonOwnerStore:
    """Provide an owner store in a temporary state directory."""
    return JsonOwnerStore(tmp_path / "provisioning_state" / "owners.json")


@pytest.fixture
def client() -> Mock:
    """Provide a mocked Tavus client; tests set return values per call."""
    return Mock(spec=TavusClient)


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def scheduler(
    registry: JobRegistry, client: Mock, owner_store: JsonOwnerStore, clock: FakeClock
) -> Iterator[BackgroundScheduler]:
    # A long interval keeps the worker thread idle; tests drive ticks by hand.
    sched = BackgroundScheduler(
        registry=registry,
        client=client,
        persistence=owner_store,
        interval_seconds=3600.0,
        inter_job_delay_seconds=0.0,
        max_attempts=3,
        clock=clock,
    )
    yield sched
    sched.stop(wait=True, timeout=5.0)


@pytest.fixture
def workflow(
    registry: JobRegistry,
    scheduler: BackgroundScheduler,
    owner_store: JsonOwnerStore,
    clock: FakeClock,
) -> WorkflowFacade:
    return WorkflowFacade(
        registry=registry,
        scheduler=scheduler,
        persistence=owner_store,
        retention=timedelta(hours=1),
        clock=clock,
    )
