"""Services for the workflow kernel (write side)."""

from workflow_kernel.services.definition_provisioner import DefinitionProvisioner
from workflow_kernel.services.instance_manager import InstanceManager
from workflow_kernel.services.request_status import RequestStatusWriter
from workflow_kernel.services.transition_executor import TransitionExecutor

__all__ = [
    "DefinitionProvisioner",
    "InstanceManager",
    "RequestStatusWriter",
    "TransitionExecutor",
]
