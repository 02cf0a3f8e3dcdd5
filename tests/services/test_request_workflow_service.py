"""
Tests for RequestWorkflowService -- the request workflow facade.

Covers:
- Own-transaction operations commit their work
- Caller-session operations leave commit and rollback to the caller
- presidency_decision() maps decisions to the presidency actions
- Reads: history and approval queue
- A storage failure mid-transition rolls back the whole transition
- from_settings() wiring
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from workflow_config.settings import EngineSettings
from workflow_kernel.db.engine import create_tables, reset_engine, session_scope
from workflow_kernel.db.repositories import SqlRequestRepository
from workflow_kernel.domain.permissions import GrantPermissionChecker
from workflow_kernel.domain.workflow import (
    PresidencyDecision,
    RequestStatus,
    TransitionRejection,
)
from workflow_kernel.exceptions import DefinitionNotFoundError
from workflow_kernel.models.request import Request
from workflow_kernel.models.workflow import WorkflowEvent, WorkflowInstance
from workflow_services import RequestWorkflowService


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def request_status(session_factory, request_id) -> RequestStatus:
    with session_scope(session_factory) as sess:
        return sess.get(Request, request_id).status


def count_rows(session_factory, model) -> int:
    with session_scope(session_factory) as sess:
        return sess.execute(select(func.count()).select_from(model)).scalar_one()


class StorageDown(RuntimeError):
    pass


class FailingRequestRepository(SqlRequestRepository):
    """Request store that fails while writing a status."""

    def update_status(self, tenant_id, request_id, status):
        raise StorageDown("request store unavailable")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def service(session_factory, deterministic_clock) -> RequestWorkflowService:
    return RequestWorkflowService(session_factory, clock=deterministic_clock)


@pytest.fixture
def submitted(service, seed_request, tenant_id, deterministic_clock):
    """A committed request already moved to SUBMITTED."""
    service.ensure_definition(tenant_id)
    request_id = seed_request()
    deterministic_clock.advance(60)
    service.transition_by_action_atomic(tenant_id, request_id, "SUBMIT")
    deterministic_clock.advance(60)
    return request_id


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


class TestProvisioning:

    def test_default_spec(self, service):
        assert service.spec.key == "REQUEST_STANDARD"

    def test_ensure_definition_commits(self, service, tenant_id):
        info = service.ensure_definition(tenant_id)

        assert info.version == 1
        assert info.is_active
        assert info.tenant_id == tenant_id
        assert info.spec_fingerprint == service.spec.fingerprint
        assert service.ensure_definition(tenant_id).id == info.id

    def test_publish_new_version(self, service, tenant_id):
        v1 = service.ensure_definition(tenant_id)
        v2 = service.publish_new_version(tenant_id)

        assert v2.version == 2
        assert v2.id != v1.id
        assert service.ensure_definition(tenant_id).id == v2.id


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestOwnTransaction:

    def test_atomic_transition_commits(self, service, session_factory, submitted):
        assert request_status(session_factory, submitted) == RequestStatus.SUBMITTED
        assert count_rows(session_factory, WorkflowEvent) == 1

    def test_transition_to_status(self, service, session_factory, submitted, tenant_id):
        result = service.transition_to_status(tenant_id, submitted, "REJECTED", note="sem orçamento")

        assert result.action == "REJECT"
        assert request_status(session_factory, submitted) == RequestStatus.REJECTED

    def test_rejection_is_a_result(self, service, session_factory, submitted, tenant_id):
        result = service.transition_by_action_atomic(tenant_id, submitted, "FULFILL")

        assert result.moved is False
        assert result.reason == TransitionRejection.TRANSITION_NOT_ALLOWED
        assert count_rows(session_factory, WorkflowEvent) == 1

    def test_not_provisioned(self, service, seed_request, tenant_id, session_factory):
        request_id = seed_request()

        with pytest.raises(DefinitionNotFoundError):
            service.transition_by_action_atomic(tenant_id, request_id, "SUBMIT")
        assert count_rows(session_factory, WorkflowInstance) == 0


class TestPresidencyDecision:

    @pytest.mark.parametrize(
        "decision, action, status",
        [
            ("APPROVE", "PRESIDENCY_APPROVE", RequestStatus.APPROVED),
            (PresidencyDecision.REJECT, "PRESIDENCY_REJECT", RequestStatus.REJECTED),
        ],
    )
    def test_decision(self, service, session_factory, submitted, tenant_id, decision, action, status, captured_logs):
        result = service.presidency_decision(tenant_id, submitted, decision, actor_user_id=uuid4())

        assert result.moved
        assert result.action == action
        assert result.required_permission == "presidency.approve"
        assert request_status(session_factory, submitted) == status

        logged = [r for r in captured_logs() if r["message"] == "presidency_decision"]
        assert logged[0]["action"] == action

    def test_from_final_stage(self, service, session_factory, submitted, tenant_id):
        service.transition_by_action_atomic(tenant_id, submitted, "APPROVE")
        result = service.presidency_decision(tenant_id, submitted, "APPROVE")

        assert result.to_state.code == "APPROVED"

    def test_unknown_decision(self, service, submitted, tenant_id, session_factory):
        with pytest.raises(ValueError):
            service.presidency_decision(tenant_id, submitted, "ESCALATE")
        assert count_rows(session_factory, WorkflowEvent) == 1

    def test_after_terminal_state(self, service, submitted, tenant_id):
        service.presidency_decision(tenant_id, submitted, "REJECT")
        result = service.presidency_decision(tenant_id, submitted, "APPROVE")

        assert result.moved is False


class TestCallerTransaction:

    def test_caller_commits(self, service, session_factory, seed_request, tenant_id):
        service.ensure_definition(tenant_id)
        request_id = seed_request()

        with session_scope(session_factory) as sess:
            instance = service.ensure_instance(sess, tenant_id, request_id)
            assert instance.current_state.code == "DRAFT"
            service.transition_by_action(sess, tenant_id, request_id, "SUBMIT")

        assert request_status(session_factory, request_id) == RequestStatus.SUBMITTED

    def test_caller_rollback_discards_everything(self, service, session_factory, seed_request, tenant_id):
        service.ensure_definition(tenant_id)
        request_id = seed_request()

        with pytest.raises(RuntimeError, match="caller failed"):
            with session_scope(session_factory) as sess:
                service.transition_by_action(sess, tenant_id, request_id, "SUBMIT")
                raise RuntimeError("caller failed")

        assert request_status(session_factory, request_id) == RequestStatus.DRAFT
        assert count_rows(session_factory, WorkflowInstance) == 0
        assert count_rows(session_factory, WorkflowEvent) == 0
        assert service.get_history(tenant_id, request_id) is None


class TestStorageFailure:

    def test_failed_status_write_rolls_back_transition(
        self, session_factory, seed_request, tenant_id, deterministic_clock,
    ):
        failing = RequestWorkflowService(
            session_factory,
            clock=deterministic_clock,
            request_repository_factory=FailingRequestRepository,
        )
        failing.ensure_definition(tenant_id)
        request_id = seed_request()

        with pytest.raises(StorageDown):
            failing.transition_by_action_atomic(tenant_id, request_id, "SUBMIT")

        # The instance bootstrap and its state change were rolled back too
        assert count_rows(session_factory, WorkflowInstance) == 0
        assert count_rows(session_factory, WorkflowEvent) == 0
        assert request_status(session_factory, request_id) == RequestStatus.DRAFT


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:

    def test_history(self, service, submitted, tenant_id):
        service.transition_by_action_atomic(tenant_id, submitted, "APPROVE", note="ok")
        history = service.get_history(tenant_id, submitted)

        assert history.current_state.code == "AWAITING_ADMIN_APPROVAL"
        assert history.current_state.request_status == RequestStatus.SUBMITTED
        assert [e.action for e in history.events] == ["APPROVE", "SUBMIT"]
        assert history.events[0].note == "ok"

    def test_history_without_instance(self, service, seed_request, tenant_id):
        assert service.get_history(tenant_id, seed_request()) is None

    def test_list_pending(self, service, submitted, seed_request, tenant_id):
        queue = service.list_pending(tenant_id, "SUBMITTED")

        assert [p.request_id for p in queue] == [submitted]
        assert queue[0].title == "Material de escritório"
        assert service.list_pending(tenant_id, "AWAITING_ADMIN_APPROVAL") == []


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestFromSettings:

    @pytest.fixture
    def settings_service(self):
        settings = EngineSettings(
            database_url="sqlite://",
            definition_set="request_two_stage",
            enforce_permissions=True,
        )
        service = RequestWorkflowService.from_settings(settings)
        create_tables()
        yield service
        reset_engine()

    def test_wires_configured_set(self, settings_service):
        assert settings_service.spec.key == "REQUEST_TWO_STAGE"

    def test_enforces_permissions(self, settings_service):
        tenant_id = uuid4()
        settings_service.ensure_definition(tenant_id)
        with session_scope() as sess:
            request = Request(tenant_id=tenant_id, gtmi_number="GTMI-2026-000900", title="Cadeiras")
            sess.add(request)
            sess.flush()
            request_id = request.id

        denied = settings_service.transition_by_action_atomic(
            tenant_id, request_id, "APPROVE", actor_permissions=["requests.reject"],
        )
        allowed = settings_service.transition_by_action_atomic(
            tenant_id, request_id, "APPROVE", actor_permissions=["requests.approve"],
        )

        assert isinstance(settings_service._permission_checker, GrantPermissionChecker)
        assert denied.reason == TransitionRejection.PERMISSION_DENIED
        assert allowed.to_state.code == "APPROVED"
