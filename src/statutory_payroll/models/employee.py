"""Employee, salary structure, attendance, leave and declaration models."""

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
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statutory_payroll.models.base import Base, JSONType, Money, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from statutory_payroll.models.company import Tenant


class Employee(Base, TimestampMixin):
    """Employee master record (read-only to the payroll core)."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    gender: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    date_of_joining: Mapped[date] = mapped_column(Date, nullable=False)
    exit_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Statutory identifiers and flags
    pf_contribution: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    uan: Mapped[str | None] = mapped_column(String, nullable=True)
    esi_number: Mapped[str | None] = mapped_column(String, nullable=True)
    pan: Mapped[str | None] = mapped_column(String, nullable=True)

    # Bank details for salary transfer
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_ifsc: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_code", name="employee_tenant_code_unique"),
        CheckConstraint(
            "status IN ('active', 'inactive', 'exited')",
            name="employee_status_check",
        ),
    )

    # Relationships
    tenant: Mapped[Tenant] = relationship(back_populates="employees")
    salary_structures: Mapped[list[SalaryStructure]] = relationship(back_populates="employee")

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}".strip()


class SalaryStructure(Base, TimestampMixin):
    """Monthly salary structure, keyed by effective date."""

    __tablename__ = "salary_structure"

    salary_structure_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    basic: Mapped[Decimal] = mapped_column(Money, nullable=False)
    dearness_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    hra: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    special_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    # {"conveyance": "1600.00", ...}
    other_allowances: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    # Fixed monthly deductions, e.g. {"canteen": "500.00"}
    other_deductions: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    pf_base: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    esi_base: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "effective_date", name="salary_structure_effective_unique"),
        CheckConstraint("basic >= 0", name="salary_structure_basic_non_negative"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="salary_structures")


class AttendanceRecord(Base, TimestampMixin):
    """One attendance mark per employee per day.

    Status is one of present, absent, half-day, holiday, weekend. It is not
    constrained in the schema because rows arrive from biometric imports; the
    aggregator reports unknown values instead of guessing.
    """

    __tablename__ = "attendance_record"

    attendance_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "attendance_date", name="attendance_employee_date_unique"),
    )


# ===== Leave =====


class LeaveType(Base, TimestampMixin):
    """Leave type definition (PL, EL, CL, SL, LOP...)."""

    __tablename__ = "leave_type"

    leave_type_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_encashable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (UniqueConstraint("tenant_id", "code", name="leave_type_tenant_code_unique"),)


class LeaveBalance(Base, TimestampMixin):
    """Leave balance of an employee for a calendar year."""

    __tablename__ = "leave_balance"

    leave_balance_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("leave_type.leave_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    allocated: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    used: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="leave_balance_unique"),
    )

    # Relationships
    leave_type: Mapped[LeaveType] = relationship()


class LeaveRequest(Base, TimestampMixin):
    """Leave application."""

    __tablename__ = "leave_request"

    leave_request_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("leave_type.leave_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="leave_request_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="leave_request_dates_check"),
    )


# ===== Income tax declarations =====


class ITDeclaration(Base, TimestampMixin, UpdatedAtMixin):
    """Employee's income-tax investment declaration for a financial year."""

    __tablename__ = "it_declaration"

    declaration_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    # Starting calendar year of the financial year, 2025 for FY 2025-26
    financial_year: Mapped[int] = mapped_column(Integer, nullable=False)
    section_80c: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    section_80d: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    section_80g: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    section_80tta: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    section_24b: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    section_80ee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "financial_year", name="it_declaration_employee_fy_unique"),
        CheckConstraint(
            "status IN ('draft', 'submitted', 'under_review', 'approved', 'rejected')",
            name="it_declaration_status_check",
        ),
    )

    def section_amounts(self) -> dict[str, Decimal]:
        """Declared amount per section."""
        return {
            "80C": self.section_80c,
            "80D": self.section_80d,
            "80G": self.section_80g,
            "80TTA": self.section_80tta,
            "24B": self.section_24b,
            "80EE": self.section_80ee,
        }
