"""
Module: provisioning_kernel.models.milestone_state
Responsibility: Explicit per-contract milestone memory used by the tracker.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - One row per contract (UNIQUE contract_id).
    - ``milestone`` never regresses (db/immutability.py listener raises
      MilestoneRegressionError).  ``percentage`` follows the latest analysis.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from provisioning_kernel.db.base import Base, UUIDString
from provisioning_kernel.domain.analysis import MilestoneState
from provisioning_kernel.domain.values import Milestone


class ContractMilestoneStateModel(Base):
    """Last recorded milestone and percentage of a contract."""

    __tablename__ = "contract_milestone_states"

    __table_args__ = (
        UniqueConstraint("contract_id", name="uq_milestone_state_contract"),
    )

    contract_id: Mapped[str] = mapped_column(String(100), nullable=False)
    milestone: Mapped[str] = mapped_column(String(20), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(nullable=False)
    last_analysis_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ContractMilestoneState {self.contract_id} {self.milestone} {self.percentage}%>"

    def to_dto(self) -> MilestoneState:
        """Convert ORM model to frozen domain DTO."""
        return MilestoneState(
            contract_id=self.contract_id,
            milestone=Milestone(self.milestone),
            percentage=self.percentage,
        )
