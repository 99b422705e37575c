"""Leave catalog, allocation, and request models."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from hr_workflows.models.base import Base, ManagerMapMixin, TimestampMixin


class LeaveType(Base, TimestampMixin):
    """Leave type in the catalog. Paid types draw down an allocation."""

    __tablename__ = "leave_types"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False)
    annual_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)


class LeaveManagerMap(Base, ManagerMapMixin):
    """Manager who decides an employee's leave requests."""

    __tablename__ = "leave_manager_map"


class LeaveAllocation(Base, TimestampMixin):
    """Per-employee, per-leave-type balance."""

    __tablename__ = "leave_allocations"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    leave_type_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("leave_types.id"),
        nullable=False,
    )
    allocated: Mapped[int] = mapped_column(Integer, nullable=False)
    used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", name="uq_leave_allocation"),
        CheckConstraint("allocated >= 0", name="leave_allocation_allocated_check"),
        CheckConstraint("used >= 0", name="leave_allocation_used_check"),
    )

    @property
    def remaining(self) -> int:
        return self.allocated - self.used


class LeaveRequest(Base):
    """Leave request. manager_id is frozen when the request is submitted."""

    __tablename__ = "leave_requests"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    manager_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    leave_type_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("leave_types.id"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    days: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="Pending")
    manager_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("days > 0", name="leave_request_days_check"),
        CheckConstraint("end_date >= start_date", name="leave_request_dates_check"),
        CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected')",
            name="leave_request_status_check",
        ),
    )
