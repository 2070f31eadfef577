"""Unit tests for the in-memory job registry."""

from __future__ import annotations

from replica_automation.workflow.registry import JobRegistry
from replica_automation.workflow.state_machine import Job, JobState


def _job(owner_id: str, **overrides: object) -> Job:
    return Job.model_validate({"owner_id": owner_id, "source_resource_id": "src", **overrides})


def test_get_and_remove_are_forgiving() -> None:
    registry = JobRegistry()

    assert registry.get("missing") is None
    assert registry.remove("missing") is None

    job = _job("owner-1")
    registry.upsert(job)
    assert registry.get("owner-1") == job
    assert registry.remove("owner-1") == job
    assert registry.remove("owner-1") is None
    assert len(registry) == 0


def test_add_if_absent_keeps_first_job() -> None:
    registry = JobRegistry()
    first = _job("owner-1")

    assert registry.add_if_absent(first) == (first, True)
    assert registry.add_if_absent(_job("owner-1")) == (first, False)
    assert len(registry) == 1


def test_replace_if_current_checks_job_identity() -> None:
    registry = JobRegistry()
    original = _job("owner-1")
    registry.upsert(original)

    updated = original.model_copy(update={"attempts": 1})
    assert registry.replace_if_current(updated) is True
    assert registry.get("owner-1") == updated

    stranger = _job("owner-1", attempts=7)
    assert registry.replace_if_current(stranger) is False
    assert registry.remove_if_current(stranger) is False

    registry.remove("owner-1")
    assert registry.replace_if_current(updated) is False


def test_all_pending_is_a_restartable_snapshot() -> None:
    registry = JobRegistry()
    registry.upsert(_job("polling"))
    registry.upsert(_job("ready", state=JobState.READY))
    registry.upsert(_job("failed", state=JobState.FAILED))
    registry.upsert(_job("done", state=JobState.COMPLETED, derived_resource_id="d"))

    snapshot = registry.all_pending()
    registry.remove("polling")
    registry.upsert(_job("late"))

    first_pass = [j.owner_id for j in snapshot]
    second_pass = [j.owner_id for j in snapshot]
    assert first_pass == ["polling", "ready"]
    assert second_pass == first_pass
    assert len(snapshot) == 2
    assert registry.has_pending()


def test_empty_snapshot_is_falsy() -> None:
    registry = JobRegistry()
    registry.upsert(_job("failed", state=JobState.FAILED))

    assert not registry.all_pending()
    assert not registry.has_pending()
