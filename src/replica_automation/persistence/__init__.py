"""Owner record persistence."""

from replica_automation.persistence.owner_store import (
    JsonOwnerStore,
    PersistenceAdapter,
    PersistenceError,
)

__all__ = ["JsonOwnerStore", "PersistenceAdapter", "PersistenceError"]
