"""Provisioning workflow engine.

This package holds:
- the job model and pure transition logic (state machine)
- the in-memory job registry
- the background polling scheduler
- the facade external callers use

Submodules are imported directly; nothing is re-exported here.
"""

__all__: list[str] = []
