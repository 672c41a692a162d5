"""
Module: fieldwork_kernel.models.schedule
Responsibility: ORM persistence for jobs, their work units, their ad hoc
    settlements and their stage history.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    APPEND_ONLY_HISTORY -- ``stage_history`` and ``additional_settlements``
        rows are never updated or deleted (ORM listeners in
        db/immutability.py).  Rows carry a per-job ``sequence`` so the
        original order survives reloads.
    - One work unit per (job, category) (uq_category_schedule).

Storage notes:
    - Stages, work types and payment statuses are stored as their string
      values (the Korean stage labels for stages).
    - The job's rate header is flattened into ``rate_*`` columns; the
      transport sub-record is stored as JSON with amounts as strings so
      Decimal precision survives.
    - The job's ``total_settlement`` is NOT stored.  It is derived from the
      work units and additional settlements every time.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldwork_kernel.db.base import Base, TrackedBase


class ScheduleModel(TrackedBase):
    """A job: one farmer, one field."""

    __tablename__ = "schedules"

    __table_args__ = (
        Index("idx_schedule_farmer", "farmer_id"),
        Index("idx_schedule_field", "field_id"),
        Index("idx_schedule_payment", "payment_id"),
    )

    farmer_id: Mapped[str] = mapped_column(String(36), nullable=False)
    farmer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    field_id: Mapped[str] = mapped_column(String(36), nullable=False)
    field_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    flag_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    work_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Rate header
    rate_base_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    rate_unit: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    rate_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate_negotiated_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate_additional_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    transport_info: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    scheduled_start: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_start: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_end: Mapped[datetime | None] = mapped_column(nullable=True)

    memo: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    category_schedules: Mapped[list["CategoryScheduleModel"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="CategoryScheduleModel.position",
    )

    additional_settlements: Mapped[list["AdditionalSettlementModel"]] = relationship(
        back_populates="schedule",
        cascade="save-update, merge",
        order_by="AdditionalSettlementModel.sequence",
    )

    stage_history: Mapped[list["StageHistoryModel"]] = relationship(
        back_populates="schedule",
        cascade="save-update, merge",
        order_by="StageHistoryModel.sequence",
    )

    def __repr__(self) -> str:
        return f"<Schedule {self.id} farmer={self.farmer_id} field={self.field_id}>"


class CategoryScheduleModel(Base):
    """One job's work unit for one category."""

    __tablename__ = "category_schedules"

    __table_args__ = (
        UniqueConstraint("schedule_id", "category_id", name="uq_category_schedule"),
        Index("idx_category_schedule_category", "category_id"),
        Index("idx_category_schedule_stage", "stage"),
    )

    schedule_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    category_id: Mapped[str] = mapped_column(String(36), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)

    stage: Mapped[str] = mapped_column(String(20), nullable=False)

    worker_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    worker_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    scheduled_start: Mapped[datetime | None] = mapped_column(nullable=True)

    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    settlement_skipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Rate entered on completion, when one was
    rate_base_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate_negotiated_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate_unit: Mapped[str | None] = mapped_column(String(50), nullable=True)

    memo: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    schedule: Mapped[ScheduleModel] = relationship(back_populates="category_schedules")


class AdditionalSettlementModel(Base):
    """An ad hoc charge against one work unit.  Append-only."""

    __tablename__ = "additional_settlements"

    __table_args__ = (
        UniqueConstraint("schedule_id", "sequence", name="uq_additional_settlement_seq"),
    )

    schedule_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("schedules.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    category_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(4000), nullable=False)
    settled_at: Mapped[datetime] = mapped_column(nullable=False)
    registered_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    schedule: Mapped[ScheduleModel] = relationship(back_populates="additional_settlements")


class StageHistoryModel(Base):
    """One stage history record of a job.  Append-only."""

    __tablename__ = "stage_history"

    __table_args__ = (
        UniqueConstraint("schedule_id", "sequence", name="uq_stage_history_seq"),
        Index("idx_stage_history_category", "category_id"),
    )

    schedule_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("schedules.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    category_id: Mapped[str] = mapped_column(String(36), nullable=False)
    stage: Mapped[str] = mapped_column(String(20), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)

    schedule: Mapped[ScheduleModel] = relationship(back_populates="stage_history")
