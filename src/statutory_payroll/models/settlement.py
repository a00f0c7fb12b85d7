"""Full and final settlement model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from statutory_payroll.models.base import Base, JSONType, Money, TimestampMixin, UpdatedAtMixin

ZERO = Decimal("0")


class FullAndFinalSettlement(Base, TimestampMixin, UpdatedAtMixin):
    """Exit-time settlement, one per (employee, last working date)."""

    __tablename__ = "full_and_final_settlement"

    settlement_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    settlement_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_working_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    last_drawn_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    # Additions
    notice_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notice_period_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    earned_leave_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=ZERO)
    earned_leave_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    gratuity_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    gratuity_details: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    bonus_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    other_payments: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    # Deductions
    unpaid_leave_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=ZERO)
    unpaid_leave_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    outstanding_loans: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    outstanding_advances: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    other_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    # Informational, settled through the reimbursement workflow
    pending_reimbursements: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    # Derived
    gross_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "last_working_date", name="settlement_employee_exit_unique"),
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'paid', 'cancelled')",
            name="settlement_status_check",
        ),
    )
