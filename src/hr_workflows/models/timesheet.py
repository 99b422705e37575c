"""Weekly timesheet models with entries and an append-only history."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_workflows.models.base import Base, ManagerMapMixin


class TimesheetManagerMap(Base, ManagerMapMixin):
    """Manager who decides an employee's timesheets."""

    __tablename__ = "timesheet_manager_map"


class Timesheet(Base):
    """One timesheet per employee per week."""

    __tablename__ = "timesheets"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    manager_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    manager_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "week_start_date", name="uq_timesheet_week"),
        CheckConstraint(
            "status IN ('Submitted', 'Approved', 'Rejected')",
            name="timesheet_status_check",
        ),
    )

    entries: Mapped[list[TimesheetEntry]] = relationship(
        order_by="TimesheetEntry.position",
        cascade="all, delete-orphan",
    )
    history: Mapped[list[TimesheetHistory]] = relationship(
        order_by="TimesheetHistory.sequence",
        cascade="all, delete-orphan",
    )


class TimesheetEntry(Base):
    """Hours worked on one day of the week."""

    __tablename__ = "timesheet_entries"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    timesheet_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("timesheets.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    day: Mapped[str] = mapped_column(String, nullable=False)
    hours: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("hours >= 0 AND hours <= 24", name="timesheet_entry_hours_check"),
    )


class TimesheetHistory(Base):
    """Status change record. Rows are only ever appended."""

    __tablename__ = "timesheet_history"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    timesheet_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("timesheets.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("timesheet_id", "sequence", name="uq_timesheet_history_sequence"),
    )
