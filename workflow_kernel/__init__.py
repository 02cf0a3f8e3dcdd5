"""
Workflow Kernel - request workflow engine

A tenant-scoped, versioned state machine for procurement requests with:
- Idempotent definition provisioning from declarative graphs
- Lazy instance bootstrap with status-based recovery
- Atomic transitions (instance, request status, audit event)
- Append-only audit trail
"""

__version__ = "0.1.0"
