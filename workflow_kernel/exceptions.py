"""
Typed exception hierarchy for the workflow kernel.

Every error has a typed class (catch by type, not message), a class-level
``code`` attribute (machine-readable, API-safe) and structured attributes
carrying its context.

    WorkflowKernelError (base)
    |
    +-- DefinitionError
    |   +-- DefinitionNotFoundError
    |   +-- InitialStateNotFoundError
    |
    +-- RequestError
    |   +-- RequestNotFoundError
    |   +-- InvalidRequestStatusError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigError
        +-- WorkflowConfigError
        +-- AssemblyError          (workflow_config.assembler)
        +-- ConfigIntegrityError   (workflow_config.integrity)

Code            | When raised
----------------|------------------------------------------------------------
DEFINITION_NOT_FOUND    | No active definition for tenant/key/target type
INITIAL_STATE_NOT_FOUND | Active definition carries no states at all
REQUEST_NOT_FOUND       | Owning request missing for the tenant
INVALID_REQUEST_STATUS  | State maps to a value outside RequestStatus
OPTIMISTIC_LOCK_CONFLICT| Instance changed by another transaction
IMMUTABILITY_VIOLATION  | Update/delete of an audit event or definition
WORKFLOW_CONFIG_INVALID | Workflow graph failed load-time validation
CONFIG_ASSEMBLY_ERROR   | Set directory or fragment missing or malformed
CONFIG_INTEGRITY_MISMATCH | Assembled checksum differs from the approved pin

``TRANSITION_NOT_ALLOWED`` is deliberately absent: a transition that does
not match the current state is an expected outcome, returned as a
``TransitionResult`` with ``moved=False``, never raised.

Handling patterns::

    try:
        result = executor.transition_by_action(tenant_id, request_id, "APPROVE")
    except DefinitionNotFoundError:
        provisioner.ensure_definition(tenant_id)   # provision, then re-resolve
    except OptimisticLockError as e:
        # Someone else moved the instance; re-read before deciding again
        log.warning("stale transition on %s", e.entity_id)
    else:
        if not result.moved:
            return error_response(result.reason.value)
"""


class WorkflowKernelError(Exception):
    """
    Base exception for all workflow kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "WORKFLOW_KERNEL_ERROR"


# Definition-related exceptions


class DefinitionError(WorkflowKernelError):
    """Base exception for workflow definition errors."""

    code: str = "DEFINITION_ERROR"


class DefinitionNotFoundError(DefinitionError):
    """No active workflow definition exists for the tenant."""

    code: str = "DEFINITION_NOT_FOUND"

    def __init__(self, tenant_id: str, key: str, target_type: str):
        self.tenant_id = tenant_id
        self.key = key
        self.target_type = target_type
        super().__init__(
            f"No active workflow definition {key}/{target_type} "
            f"for tenant {tenant_id}"
        )


class InitialStateNotFoundError(DefinitionError):
    """The active definition has no state an instance could start in."""

    code: str = "INITIAL_STATE_NOT_FOUND"

    def __init__(self, definition_id: str):
        self.definition_id = definition_id
        super().__init__(
            f"Workflow definition {definition_id} has no initial state"
        )


# Request-related exceptions


class RequestError(WorkflowKernelError):
    """Base exception for errors concerning the owning request."""

    code: str = "REQUEST_ERROR"


class RequestNotFoundError(RequestError):
    """Request does not exist within the tenant."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, tenant_id: str, request_id: str):
        self.tenant_id = tenant_id
        self.request_id = request_id
        super().__init__(f"Request {request_id} not found for tenant {tenant_id}")


class InvalidRequestStatusError(RequestError):
    """A workflow state maps to a status the request cannot hold."""

    code: str = "INVALID_REQUEST_STATUS"

    def __init__(self, state_code: str, status: str):
        self.state_code = state_code
        self.status = status
        super().__init__(
            f"State {state_code} maps to unknown request status {status!r}"
        )


# Concurrency-related exceptions


class ConcurrencyError(WorkflowKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(WorkflowKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    WorkflowEvent rows are append-only; WorkflowDefinition rows are never
    hard-deleted (they are superseded by deactivation).
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration-related exceptions


class ConfigError(WorkflowKernelError):
    """Base exception for workflow configuration errors."""

    code: str = "CONFIG_ERROR"


class WorkflowConfigError(ConfigError):
    """A workflow graph failed load-time validation."""

    code: str = "WORKFLOW_CONFIG_INVALID"

    def __init__(self, set_name: str, errors: list[str]):
        self.set_name = set_name
        self.errors = errors
        super().__init__(
            f"Workflow configuration '{set_name}' failed validation:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )
