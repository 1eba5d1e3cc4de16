"""
Module: provisioning_kernel.models.alert
Responsibility: ORM persistence for negotiation-milestone alerts.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - Created exactly once per detected forward transition.
    - Only ``is_read`` and ``read_at`` may change after insert; never deleted
      (db/immutability.py listeners).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from provisioning_kernel.db.base import TrackedBase, UUIDString
from provisioning_kernel.domain.analysis import AlertType, MilestoneAlert, ProvisionAlert
from provisioning_kernel.domain.values import Milestone

# Fields that may change on an existing alert (read lifecycle)
ALERT_MUTABLE_FIELDS = frozenset({"is_read", "read_at"})


class ProvisionAlertModel(TrackedBase):
    """Persistent negotiation alert."""

    __tablename__ = "provision_alerts"

    __table_args__ = (
        Index("idx_alert_contract", "contract_id"),
        Index("idx_alert_unread", "is_read", "alerted_at"),
    )

    contract_id: Mapped[str] = mapped_column(String(100), nullable=False)
    analysis_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    previous_milestone: Mapped[str] = mapped_column(String(20), nullable=False)
    new_milestone: Mapped[str] = mapped_column(String(20), nullable=False)
    previous_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    new_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    alerted_at: Mapped[datetime] = mapped_column(nullable=False)
    # Position within the transition chain raised by one analysis
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ProvisionAlert {self.contract_id} "
            f"{self.previous_milestone}->{self.new_milestone} read={self.is_read}>"
        )

    def to_dto(self) -> ProvisionAlert:
        """Convert ORM model to frozen domain DTO."""
        return ProvisionAlert(
            alert_id=self.id,
            contract_id=self.contract_id,
            analysis_id=self.analysis_id,
            alert_type=AlertType(self.alert_type),
            previous_milestone=Milestone(self.previous_milestone),
            new_milestone=Milestone(self.new_milestone),
            previous_percentage=self.previous_percentage,
            new_percentage=self.new_percentage,
            message=self.message,
            is_read=self.is_read,
            alerted_at=self.alerted_at,
            read_at=self.read_at,
        )

    @classmethod
    def from_alert(
        cls,
        alert: MilestoneAlert,
        analysis_id: UUID | None,
        alerted_at: datetime,
        created_by_id: UUID,
        sequence: int = 0,
    ) -> ProvisionAlertModel:
        """Create an unread alert row from a detected transition."""
        return cls(
            contract_id=alert.contract_id,
            analysis_id=analysis_id,
            alert_type=alert.alert_type.value,
            previous_milestone=alert.previous_milestone.value,
            new_milestone=alert.new_milestone.value,
            previous_percentage=alert.previous_percentage,
            new_percentage=alert.new_percentage,
            message=alert.message,
            is_read=False,
            alerted_at=alerted_at,
            sequence=sequence,
            created_by_id=created_by_id,
        )
