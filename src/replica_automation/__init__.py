"""Replica automation.

Drives the replica provisioning pipeline in the background:
- poll a Tavus replica until training finishes
- create a Tavus persona bound to the trained replica
- persist the linkage onto the owning persona record
"""

__version__ = "0.1.0"

from replica_automation.bootstrap import build_workflow
from replica_automation.config import ProvisioningSettings
from replica_automation.workflow.facade import WorkflowFacade
from replica_automation.workflow.state_machine import Job, JobState

__all__ = [
    "__version__",
    "Job",
    "JobState",
    "ProvisioningSettings",
    "WorkflowFacade",
    "build_workflow",
]
