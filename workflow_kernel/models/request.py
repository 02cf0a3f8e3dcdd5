"""
Module: workflow_kernel.models.request
Responsibility: ORM persistence for the procurement request whose lifecycle the
    workflow engine governs.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain enums.

Invariants enforced:
    - (tenant_id, gtmi_number) is unique: the GTMI number is the human-facing
      identifier within a tenant.
    - ``status`` is always a ``RequestStatus`` value.  Workflow-driven changes
      go through ``RequestStatusWriter`` only.

Failure modes:
    - IntegrityError on duplicate GTMI number within a tenant.
"""

from uuid import UUID

from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import TimestampedBase, UUIDString
from workflow_kernel.domain.workflow import RequestStatus


class Request(TimestampedBase):
    """
    Procurement request (requisição) owned by a tenant.

    Only the columns the workflow engine reads or writes are mapped here;
    line items, tickets and attachments belong to other parts of the portal.
    """

    __tablename__ = "requests"

    __table_args__ = (
        UniqueConstraint("tenant_id", "gtmi_number", name="uq_request_gtmi"),
        Index("idx_request_tenant_status", "tenant_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Human-facing number, e.g. "GTMI-2026-000123"
    gtmi_number: Mapped[str] = mapped_column(String(50), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    status: Mapped[RequestStatus] = mapped_column(
        SAEnum(RequestStatus, native_enum=False, length=20),
        nullable=False,
        default=RequestStatus.DRAFT,
    )

    def __repr__(self) -> str:
        return f"<Request {self.gtmi_number}: {self.status.value}>"
