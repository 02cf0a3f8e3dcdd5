"""
Tests for the workflow ORM models.

Covers:
- Append-only WorkflowEvent (update and delete rejected)
- WorkflowDefinition never deleted
- Unique constraints: one active definition, one edge per (state, action),
  one instance per request, one GTMI number per tenant
- Optimistic lock_version on instances
- State status mapping checked on use
- Timestamps read back as UTC-aware datetimes
"""

from datetime import UTC, datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from workflow_kernel.domain.workflow import RequestStatus
from workflow_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidRequestStatusError,
)
from workflow_kernel.models.request import Request
from workflow_kernel.models.workflow import (
    WorkflowDefinition,
    WorkflowEvent,
    WorkflowInstance,
    WorkflowStateDefinition,
    WorkflowTransitionDefinition,
)


@pytest.fixture
def states(session, provisioned_definition):
    return {s.code: s for s in provisioned_definition.states}


@pytest.fixture
def instance(session, provisioned_definition, states, make_request, deterministic_clock):
    request = make_request()
    now = deterministic_clock.now()
    inst = WorkflowInstance(
        tenant_id=request.tenant_id,
        definition_id=provisioned_definition.id,
        current_state_id=states["DRAFT"].id,
        request_id=request.id,
        created_at=now,
        updated_at=now,
    )
    session.add(inst)
    session.flush()
    return inst


@pytest.fixture
def workflow_event(session, instance, states, deterministic_clock):
    evt = WorkflowEvent(
        tenant_id=instance.tenant_id,
        instance_id=instance.id,
        from_state_id=states["DRAFT"].id,
        to_state_id=states["SUBMITTED"].id,
        action="SUBMIT",
        created_at=deterministic_clock.now(),
    )
    session.add(evt)
    session.flush()
    return evt


class TestEventImmutability:

    def test_update_rejected(self, session, workflow_event):
        workflow_event.note = "rewritten history"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "WorkflowEvent"
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_delete_rejected(self, session, workflow_event):
        session.delete(workflow_event)

        with pytest.raises(ImmutabilityViolationError, match="cannot delete"):
            session.flush()

    def test_event_without_from_state(self, session, instance, states, deterministic_clock):
        evt = WorkflowEvent(
            tenant_id=instance.tenant_id,
            instance_id=instance.id,
            from_state_id=None,
            to_state_id=states["DRAFT"].id,
            action="START",
            created_at=deterministic_clock.now(),
        )
        session.add(evt)
        session.flush()

        assert evt.from_state is None
        assert evt.to_state.code == "DRAFT"


class TestDefinitionConstraints:

    def test_delete_rejected(self, session, provisioned_definition):
        session.delete(provisioned_definition)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "WorkflowDefinition"

    def test_second_active_definition_rejected(self, session, provisioned_definition):
        session.add(
            WorkflowDefinition(
                tenant_id=provisioned_definition.tenant_id,
                key=provisioned_definition.key,
                name="Rogue",
                target_type=provisioned_definition.target_type,
                version=2,
                is_active=True,
            )
        )
        with pytest.raises(IntegrityError):
            session.flush()

    def test_inactive_versions_may_coexist(self, session, provisioned_definition):
        for version in (2, 3):
            session.add(
                WorkflowDefinition(
                    tenant_id=provisioned_definition.tenant_id,
                    key=provisioned_definition.key,
                    name="Old",
                    target_type=provisioned_definition.target_type,
                    version=version,
                    is_active=False,
                )
            )
        session.flush()

    def test_duplicate_version_rejected(self, session, provisioned_definition):
        session.add(
            WorkflowDefinition(
                tenant_id=provisioned_definition.tenant_id,
                key=provisioned_definition.key,
                name="Clash",
                target_type=provisioned_definition.target_type,
                version=provisioned_definition.version,
                is_active=False,
            )
        )
        with pytest.raises(IntegrityError):
            session.flush()

    def test_other_tenant_has_its_own_active_definition(self, session, provisioned_definition):
        session.add(
            WorkflowDefinition(
                tenant_id=uuid4(),
                key=provisioned_definition.key,
                name=provisioned_definition.name,
                target_type=provisioned_definition.target_type,
                version=1,
                is_active=True,
            )
        )
        session.flush()

    def test_duplicate_action_from_state_rejected(self, session, provisioned_definition, states):
        session.add(
            WorkflowTransitionDefinition(
                tenant_id=provisioned_definition.tenant_id,
                workflow_id=provisioned_definition.id,
                from_state_id=states["DRAFT"].id,
                to_state_id=states["REJECTED"].id,
                action="SUBMIT",
            )
        )
        with pytest.raises(IntegrityError):
            session.flush()

    def test_states_and_transitions_ordered(self, provisioned_definition):
        sort_orders = [s.sort_order for s in provisioned_definition.states]
        assert sort_orders == sorted(sort_orders)
        positions = [t.sort_order for t in provisioned_definition.transitions]
        assert positions == list(range(len(positions)))


class TestInstance:

    def test_one_instance_per_request(self, session, instance, provisioned_definition, states, deterministic_clock):
        now = deterministic_clock.now()
        session.add(
            WorkflowInstance(
                tenant_id=instance.tenant_id,
                definition_id=provisioned_definition.id,
                current_state_id=states["SUBMITTED"].id,
                request_id=instance.request_id,
                created_at=now,
                updated_at=now,
            )
        )
        with pytest.raises(IntegrityError):
            session.flush()

    def test_lock_version_increments(self, session, instance, states, deterministic_clock):
        assert instance.lock_version == 1

        instance.current_state_id = states["SUBMITTED"].id
        instance.updated_at = deterministic_clock.now() + timedelta(seconds=1)
        session.flush()

        assert instance.lock_version == 2

    def test_request_id_is_not_a_foreign_key(self):
        assert not WorkflowInstance.__table__.c.request_id.foreign_keys

    def test_instance_for_request_outside_requests_table(self, session, provisioned_definition, states, tenant_id, deterministic_clock):
        now = deterministic_clock.now()
        inst = WorkflowInstance(
            tenant_id=tenant_id,
            definition_id=provisioned_definition.id,
            current_state_id=states["DRAFT"].id,
            request_id=uuid4(),
            created_at=now,
            updated_at=now,
        )
        session.add(inst)
        session.flush()
        assert session.get(Request, inst.request_id) is None

    def test_is_completed(self, instance, deterministic_clock):
        assert not instance.is_completed
        instance.completed_at = deterministic_clock.now()
        assert instance.is_completed


class TestUTCTimestamps:

    def test_reloaded_timestamps_are_aware(self, session, workflow_event, instance, deterministic_clock):
        session.expire_all()

        event = session.get(WorkflowEvent, workflow_event.id)
        assert event.created_at.tzinfo is not None
        assert event.created_at.utcoffset() == timedelta(0)
        assert event.created_at == deterministic_clock.now()

        reloaded = session.get(WorkflowInstance, instance.id)
        assert reloaded.updated_at.utcoffset() == timedelta(0)

    def test_naive_value_stored_as_utc(self, session, instance):
        instance.completed_at = datetime(2026, 2, 1, 12, 30)
        session.flush()
        session.expire_all()

        reloaded = session.get(WorkflowInstance, instance.id)
        assert reloaded.completed_at == datetime(2026, 2, 1, 12, 30, tzinfo=UTC)

    def test_offset_value_normalised_to_utc(self, session, instance):
        plus_three = timezone(timedelta(hours=3))
        instance.completed_at = datetime(2026, 2, 1, 15, 30, tzinfo=plus_three)
        session.flush()
        session.expire_all()

        reloaded = session.get(WorkflowInstance, instance.id)
        assert reloaded.completed_at.utcoffset() == timedelta(0)
        assert reloaded.completed_at == datetime(2026, 2, 1, 12, 30, tzinfo=UTC)


class TestStateStatusMapping:

    def test_mapped_status(self, states):
        assert states["AWAITING_ADMIN_APPROVAL"].mapped_status() == RequestStatus.SUBMITTED

    def test_unmapped_state(self):
        state = WorkflowStateDefinition(code="HOLD", name="Hold", request_status=None)
        assert state.mapped_status() is None

    def test_unknown_status_raises(self):
        state = WorkflowStateDefinition(code="ODD", name="Odd", request_status="PENDING")

        with pytest.raises(InvalidRequestStatusError) as exc_info:
            state.mapped_status()

        assert exc_info.value.state_code == "ODD"
        assert exc_info.value.status == "PENDING"


class TestRequest:

    def test_gtmi_number_unique_per_tenant(self, session, make_request, tenant_id):
        make_request(gtmi_number="GTMI-2026-000001")
        session.add(
            Request(tenant_id=tenant_id, gtmi_number="GTMI-2026-000001", title="dup")
        )
        with pytest.raises(IntegrityError):
            session.flush()

    def test_gtmi_number_reusable_across_tenants(self, make_request):
        make_request(gtmi_number="GTMI-2026-000002")
        other = make_request(gtmi_number="GTMI-2026-000002", tenant=uuid4())
        assert other.status == RequestStatus.DRAFT
