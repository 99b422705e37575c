"""Salary component, payroll entry, and payslip models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from hr_workflows.models.base import Base, TimestampMixin


class SalaryComponent(Base, TimestampMixin):
    """Earning or deduction line for an employee. Never edited in place."""

    __tablename__ = "salary_components"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    effective_from: Mapped[date] = mapped_column(nullable=False)

    __table_args__ = (
        CheckConstraint("type IN ('earning', 'deduction')", name="salary_component_type_check"),
        CheckConstraint("amount >= 0", name="salary_component_amount_check"),
    )


class PayrollEntry(Base):
    """Monthly payroll result for one employee.

    The (employee_id, month) key allows one row, which is either the
    current Draft or the terminal Finalized entry.
    """

    __tablename__ = "payroll_entries"

    employee_id: Mapped[str] = mapped_column(String, primary_key=True)
    month: Mapped[str] = mapped_column(String, primary_key=True)
    gross: Mapped[Decimal] = mapped_column(nullable=False)
    deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("status IN ('Draft', 'Finalized')", name="payroll_entry_status_check"),
    )


class Payslip(Base, TimestampMixin):
    """Payslip materialized when an entry is finalized."""

    __tablename__ = "payslips"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    month: Mapped[str] = mapped_column(String, nullable=False)
    gross: Mapped[Decimal] = mapped_column(nullable=False)
    deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "month", name="uq_payslip_employee_month"),
    )
