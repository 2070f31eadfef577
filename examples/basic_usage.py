#!/usr/bin/env python3
"""Programmatic provisioning example.

This demonstrates using the workflow components directly:

* load settings from `.env`
* start provisioning for a persona whose Tavus replica is already training
* watch the job until the persona is created (or the job fails)

The owner id and replica id are passed as arguments (not read from `.env`).
"""

from __future__ import annotations

import argparse
import time
from typing import Sequence

from replica_automation import ProvisioningSettings, build_workflow
from replica_automation.logging import configure_logging
from replica_automation.persistence.owner_store import JsonOwnerStore


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision a Tavus persona for a replica.")
    parser.add_argument("--owner", required=True, help="Persona (owner) id")
    parser.add_argument("--replica", required=True, help="Tavus replica id already training")
    parser.add_argument("--name", required=True, help="Persona display name")
    parser.add_argument("--description", default="", help="Persona description")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = ProvisioningSettings()
    configure_logging(settings.log_level)

    store = JsonOwnerStore(settings.owners_state_file)
    store.update(args.owner, {"name": args.name, "description": args.description})

    workflow = build_workflow(settings, persistence=store, register_atexit=True)
    job = workflow.start(args.owner, args.replica)
    print(f"Provisioning {job.owner_id} (replica {job.source_resource_id}), state={job.state.value}")

    while (job := workflow.get_status(args.owner)) is not None and not job.is_terminal:
        time.sleep(settings.poll_interval_seconds)

    if job is None:
        record = store.fetch(args.owner) or {}
        print(f"Completed: persona {record.get('derived_resource_id')}")
        return 0

    print(f"Failed: {job.error}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
