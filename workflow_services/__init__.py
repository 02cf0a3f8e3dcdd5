"""
workflow_services -- public API of the request workflow engine.

Dependency direction:
    workflow_services/ -> workflow_config/, workflow_kernel/  (allowed)
    workflow_kernel/   -> workflow_services/                  (FORBIDDEN)
"""

from workflow_services.request_workflow import RequestWorkflowService

__all__ = [
    "RequestWorkflowService",
]
