"""Upstream provisioning API boundary."""

from replica_automation.provisioning.client import (
    OwnerContext,
    ProvisioningClient,
    ProvisioningError,
    TavusClient,
)

__all__ = ["OwnerContext", "ProvisioningClient", "ProvisioningError", "TavusClient"]
