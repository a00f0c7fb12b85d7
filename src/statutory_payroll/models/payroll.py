"""Payroll period, payslip, pre-check, loan and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statutory_payroll.models.base import Base, JSONType, Money, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from statutory_payroll.models.employee import Employee


# Payslip uniqueness covers non-voided rows only
ACTIVE_PAYSLIP_PREDICATE = {
    "postgresql": "NOT is_voided",
    "sqlite": "is_voided = 0",
}


# ===== Payroll Periods =====


class PayrollPeriod(Base, TimestampMixin, UpdatedAtMixin):
    """Monthly payroll run for a tenant, unique per (tenant, month, year)."""

    __tablename__ = "payroll_period"

    payroll_period_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    # Status to restore when a frozen period is unfrozen
    frozen_from_status: Mapped[str | None] = mapped_column(String, nullable=True)

    # Stage flags
    attendance_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pre_check_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    earnings_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deductions_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payslips_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payslips_distributed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Aggregate totals over non-voided payslips
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_net: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_employer_contributions: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )

    # Actor stamps
    created_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    processed_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "month", "year", name="payroll_period_tenant_month_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_period_month_check"),
        CheckConstraint(
            "status IN ('draft', 'processing', 'locked', 'finalized', 'paid')",
            name="payroll_period_status_check",
        ),
    )

    # Relationships
    payslips: Mapped[list[Payslip]] = relationship(back_populates="payroll_period")
    pre_checks: Mapped[list[PayrollPreCheck]] = relationship(back_populates="payroll_period")

    @property
    def label(self) -> str:
        return f"{self.month}/{self.year}"


class Payslip(Base, TimestampMixin):
    """Immutable monthly payslip for one employee.

    Component maps hold decimal strings keyed by the closed component sets in
    calculators.types; uniqueness of (period, employee) applies to
    non-voided rows only so a voided payslip can be regenerated.
    """

    __tablename__ = "payslip"

    payslip_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    payroll_period_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("payroll_period.payroll_period_id", ondelete="RESTRICT"),
        nullable=False,
    )
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
    salary_structure_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("salary_structure.salary_structure_id"),
        nullable=True,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    earnings: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    deductions: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    employer_contributions: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    statutory_details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)

    gross_salary: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False)
    net_salary: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_employer_contributions: Mapped[Decimal] = mapped_column(Money, nullable=False)

    days_in_period: Mapped[int] = mapped_column(Integer, nullable=False)
    payable_days: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    days_worked: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    days_present: Mapped[int] = mapped_column(Integer, nullable=False)
    days_absent: Mapped[int] = mapped_column(Integer, nullable=False)
    half_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pro_ration_factor: Mapped[Decimal] = mapped_column(Numeric(7, 6), nullable=False)

    is_negative_net: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_voided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    voided_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_distributed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    distributed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    calculation_hash: Mapped[str] = mapped_column(String, nullable=False)
    engine_version: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index(
            "payslip_period_employee_active_unique",
            "payroll_period_id",
            "employee_id",
            unique=True,
            postgresql_where=text(ACTIVE_PAYSLIP_PREDICATE["postgresql"]),
            sqlite_where=text(ACTIVE_PAYSLIP_PREDICATE["sqlite"]),
        ),
        CheckConstraint("gross_salary >= 0", name="payslip_gross_non_negative"),
        CheckConstraint("total_deductions >= 0", name="payslip_deductions_non_negative"),
        CheckConstraint(
            "pro_ration_factor >= 0 AND pro_ration_factor <= 1",
            name="payslip_pro_ration_range",
        ),
    )

    # Relationships
    payroll_period: Mapped[PayrollPeriod] = relationship(back_populates="payslips")
    employee: Mapped[Employee] = relationship()


class PayrollPreCheck(Base, TimestampMixin):
    """Pre-run issue that must be resolved or ignored before finalizing."""

    __tablename__ = "payroll_pre_check"

    pre_check_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    payroll_period_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("payroll_period.payroll_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=True,
    )
    check_type: Mapped[str] = mapped_column(String, nullable=False)
    check_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    resolved_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "check_type IN ('absence', 'leave', 'loan', 'advance', 'reimbursement', "
            "'salary_structure', 'other')",
            name="pre_check_type_check",
        ),
        CheckConstraint(
            "check_status IN ('pending', 'warning', 'error', 'resolved', 'ignored')",
            name="pre_check_status_check",
        ),
    )

    # Relationships
    payroll_period: Mapped[PayrollPeriod] = relationship(back_populates="pre_checks")


# ===== Supplementary pay, loans and reimbursements =====


class SupplementaryPay(Base, TimestampMixin):
    """One-off earning (arrears, incentive, bonus) for a given month."""

    __tablename__ = "supplementary_pay"

    supplementary_pay_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    pay_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    is_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_period_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("payroll_period.payroll_period_id"),
        nullable=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "pay_type IN ('arrears', 'incentive', 'bonus', 'other')",
            name="supplementary_pay_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="supplementary_pay_status_check",
        ),
        CheckConstraint("amount >= 0", name="supplementary_pay_amount_non_negative"),
    )


class Loan(Base, TimestampMixin, UpdatedAtMixin):
    """Employee loan or salary advance."""

    __tablename__ = "loan"

    loan_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    loan_type: Mapped[str] = mapped_column(String, nullable=False, default="loan")
    principal_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tenure_months: Mapped[int] = mapped_column(Integer, nullable=False)
    emi_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    outstanding_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    auto_deduct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    disbursed_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint("loan_type IN ('loan', 'advance')", name="loan_type_check"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'active', 'closed', 'rejected')",
            name="loan_status_check",
        ),
        CheckConstraint("outstanding_amount >= 0", name="loan_outstanding_non_negative"),
    )

    # Relationships
    emis: Mapped[list[LoanEMI]] = relationship(back_populates="loan", order_by="LoanEMI.emi_number")


class LoanEMI(Base, TimestampMixin):
    """Scheduled loan installment."""

    __tablename__ = "loan_emi"

    loan_emi_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    loan_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("loan.loan_id", ondelete="CASCADE"),
        nullable=False,
    )
    emi_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    principal_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    interest_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    paid_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    payslip_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("payslip.payslip_id"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("loan_id", "emi_number", name="loan_emi_number_unique"),
        CheckConstraint(
            "status IN ('pending', 'paid', 'partial', 'overdue', 'waived')",
            name="loan_emi_status_check",
        ),
    )

    # Relationships
    loan: Mapped[Loan] = relationship(back_populates="emis")

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, Decimal("0"))


class Reimbursement(Base, TimestampMixin):
    """Expense claim."""

    __tablename__ = "reimbursement"

    reimbursement_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    claim_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'paid')",
            name="reimbursement_status_check",
        ),
    )


# ===== Audit =====


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_user_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
