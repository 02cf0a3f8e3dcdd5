"""
workflow_services.request_workflow -- the request workflow facade.

Responsibility:
    Wires the kernel services for the request workflow once and exposes the
    engine's operations to callers (API handlers, jobs, tests).  Operations
    that make sense on their own run in their own transaction; operations
    meant to be combined with the caller's writes take the caller's session.

Architecture position:
    Services -- top of the stack.  May import from workflow_kernel and
    workflow_config.  The kernel never imports from here.

Transaction ownership:
    own transaction      ensure_definition, publish_new_version,
                         transition_by_action_atomic, transition_to_status,
                         presidency_decision, get_history, list_pending
    caller's session     ensure_instance, transition_by_action

Failure modes:
    - Kernel exceptions propagate unchanged; own-transaction methods roll
      back everything they wrote before re-raising.

Usage:
    service = RequestWorkflowService(get_session_factory())
    service.ensure_definition(tenant_id)
    with session_scope() as session:
        result = service.transition_by_action(
            session, tenant_id, request_id, "SUBMIT", actor_user_id=user_id,
        )
        if not result.moved:
            ...
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from workflow_config import get_workflow_spec
from workflow_config.settings import EngineSettings, load_engine_settings
from workflow_kernel.db.engine import (
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from workflow_kernel.db.repositories import RequestRepository, SqlRequestRepository
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.dtos import DefinitionInfo, PendingInstance, WorkflowHistory
from workflow_kernel.domain.permissions import (
    AdvisoryPermissionChecker,
    GrantPermissionChecker,
    PermissionChecker,
)
from workflow_kernel.domain.workflow import (
    PRESIDENCY_ACTIONS,
    PresidencyDecision,
    RequestStatus,
    TransitionResult,
    WorkflowSpec,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.workflow import WorkflowInstance
from workflow_kernel.selectors.workflow_selector import (
    DEFAULT_QUEUE_LIMIT,
    WorkflowSelector,
)
from workflow_kernel.services.definition_provisioner import DefinitionProvisioner
from workflow_kernel.services.instance_manager import InstanceManager
from workflow_kernel.services.transition_executor import TransitionExecutor

logger = get_logger("services.request_workflow")

RequestRepositoryFactory = Callable[[Session], RequestRepository]


class RequestWorkflowService:
    """
    Facade over provisioning, instance bootstrap and transitions.

    Contract:
        Holds no session state between calls; every call builds its kernel
        services on the session it runs in.

    Non-goals:
        - Does NOT authenticate actors or look up their grants; callers
          pass ``actor_permissions`` when the engine should enforce them.
        - Does NOT retry on OptimisticLockError.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        spec: WorkflowSpec | None = None,
        clock: Clock | None = None,
        permission_checker: PermissionChecker | None = None,
        request_repository_factory: RequestRepositoryFactory | None = None,
    ):
        self._session_factory = session_factory
        self._spec = spec or get_workflow_spec()
        self._clock = clock or SystemClock()
        self._permission_checker = permission_checker or AdvisoryPermissionChecker()
        self._request_repository_factory = (
            request_repository_factory or SqlRequestRepository
        )

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> RequestWorkflowService:
        """Initialise the engine and build a service from EngineSettings."""
        settings = settings or load_engine_settings()
        init_engine_from_url(settings.database_url, **settings.engine_kwargs())
        checker = (
            GrantPermissionChecker()
            if settings.enforce_permissions
            else AdvisoryPermissionChecker()
        )
        return cls(
            get_session_factory(),
            spec=get_workflow_spec(settings.definition_set),
            clock=clock,
            permission_checker=checker,
        )

    @property
    def spec(self) -> WorkflowSpec:
        return self._spec

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def ensure_definition(self, tenant_id: UUID) -> DefinitionInfo:
        """Provision (or repair) the tenant's active definition."""
        with session_scope(self._session_factory) as session:
            definition = DefinitionProvisioner(
                session, self._spec, self._clock,
            ).ensure_definition(tenant_id)
            return DefinitionInfo.from_model(definition)

    def publish_new_version(self, tenant_id: UUID) -> DefinitionInfo:
        """Supersede the tenant's active definition with a new version."""
        with session_scope(self._session_factory) as session:
            definition = DefinitionProvisioner(
                session, self._spec, self._clock,
            ).publish_new_version(tenant_id)
            return DefinitionInfo.from_model(definition)

    # ------------------------------------------------------------------
    # Caller's transaction
    # ------------------------------------------------------------------

    def ensure_instance(
        self,
        session: Session,
        tenant_id: UUID,
        request_id: UUID,
    ) -> WorkflowInstance:
        """Get or create the request's instance inside ``session``."""
        return InstanceManager(
            session,
            self._spec,
            self._clock,
            self._request_repository_factory(session),
        ).ensure_instance(tenant_id, request_id)

    def transition_by_action(
        self,
        session: Session,
        tenant_id: UUID,
        request_id: UUID,
        action: str,
        actor_user_id: UUID | None = None,
        note: str | None = None,
        actor_permissions: Iterable[str] | None = None,
    ) -> TransitionResult:
        """Apply ``action`` inside the caller's transaction."""
        return self._executor(session).transition_by_action(
            tenant_id,
            request_id,
            action,
            actor_user_id=actor_user_id,
            note=note,
            actor_permissions=actor_permissions,
        )

    # ------------------------------------------------------------------
    # Own transaction
    # ------------------------------------------------------------------

    def transition_by_action_atomic(
        self,
        tenant_id: UUID,
        request_id: UUID,
        action: str,
        actor_user_id: UUID | None = None,
        note: str | None = None,
        actor_permissions: Iterable[str] | None = None,
    ) -> TransitionResult:
        """Apply ``action`` in a transaction of its own."""
        with session_scope(self._session_factory) as session:
            return self.transition_by_action(
                session,
                tenant_id,
                request_id,
                action,
                actor_user_id=actor_user_id,
                note=note,
                actor_permissions=actor_permissions,
            )

    def transition_to_status(
        self,
        tenant_id: UUID,
        request_id: UUID,
        target_status: RequestStatus | str,
        actor_user_id: UUID | None = None,
        note: str | None = None,
        actor_permissions: Iterable[str] | None = None,
    ) -> TransitionResult:
        """Move the request towards ``target_status`` in its own transaction."""
        with session_scope(self._session_factory) as session:
            return self._executor(session).transition_to_status(
                tenant_id,
                request_id,
                target_status,
                actor_user_id=actor_user_id,
                note=note,
                actor_permissions=actor_permissions,
            )

    def presidency_decision(
        self,
        tenant_id: UUID,
        request_id: UUID,
        decision: PresidencyDecision | str,
        actor_user_id: UUID | None = None,
        note: str | None = None,
        actor_permissions: Iterable[str] | None = None,
    ) -> TransitionResult:
        """
        Record a presidency dispatch decision.

        Raises:
            ValueError: ``decision`` is neither APPROVE nor REJECT.
        """
        decision = PresidencyDecision(decision)
        action = PRESIDENCY_ACTIONS[decision]
        logger.info(
            "presidency_decision",
            extra={
                "tenant_id": str(tenant_id),
                "request_id": str(request_id),
                "decision": decision.value,
                "action": action,
            },
        )
        return self.transition_by_action_atomic(
            tenant_id,
            request_id,
            action,
            actor_user_id=actor_user_id,
            note=note,
            actor_permissions=actor_permissions,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_history(self, tenant_id: UUID, request_id: UUID) -> WorkflowHistory | None:
        with session_scope(self._session_factory) as session:
            return WorkflowSelector(session).get_history(tenant_id, request_id)

    def list_pending(
        self,
        tenant_id: UUID,
        state_code: str,
        limit: int = DEFAULT_QUEUE_LIMIT,
    ) -> list[PendingInstance]:
        """Approval queue: instances waiting in ``state_code``."""
        with session_scope(self._session_factory) as session:
            return WorkflowSelector(session).list_instances_in_state(
                tenant_id, state_code, limit=limit,
            )

    def _executor(self, session: Session) -> TransitionExecutor:
        return TransitionExecutor(
            session,
            self._spec,
            clock=self._clock,
            permission_checker=self._permission_checker,
            request_repository=self._request_repository_factory(session),
        )
