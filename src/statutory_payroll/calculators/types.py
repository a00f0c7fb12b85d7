"""Type definitions for the payslip calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar
from uuid import UUID

from statutory_payroll.errors import MalformedRecordError

ZERO = Decimal("0")


class ComponentSet:
    """Closed set of named, non-negative money components.

    Subclasses are dataclasses whose fields are the only permitted keys; the
    last field is the catch-all bucket. Persisted as {name: "decimal string"}.
    """

    RECORD_TYPE: ClassVar[str] = "component set"

    def total(self) -> Decimal:
        return sum((getattr(self, f.name) for f in fields(self)), ZERO)

    def items(self) -> list[tuple[str, Decimal]]:
        return [(f.name, getattr(self, f.name)) for f in fields(self)]

    def add(self, name: str, amount: Decimal) -> None:
        """Accumulate an amount into a component."""
        if name not in self.keys():
            raise KeyError(f"Unknown {self.RECORD_TYPE} component '{name}'")
        if amount < 0:
            raise ValueError(f"{self.RECORD_TYPE} component '{name}' cannot be negative")
        setattr(self, name, getattr(self, name) + amount)

    def to_json(self) -> dict[str, str]:
        return {name: str(amount) for name, amount in self.items()}

    @classmethod
    def keys(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_json(cls, data: dict[str, Any] | None, record_id: UUID | str = "?"):
        """Parse a persisted component map, rejecting unknown keys and bad amounts."""
        if data is not None and not isinstance(data, dict):
            raise MalformedRecordError(cls.RECORD_TYPE, record_id, f"expected a component map, got {data!r}")
        values: dict[str, Decimal] = {}
        for name, raw in (data or {}).items():
            if name not in cls.keys():
                raise MalformedRecordError(cls.RECORD_TYPE, record_id, f"unknown component '{name}'")
            try:
                amount = Decimal(str(raw))
            except InvalidOperation as exc:
                raise MalformedRecordError(
                    cls.RECORD_TYPE, record_id, f"component '{name}' is not a number: {raw!r}"
                ) from exc
            if not amount.is_finite() or amount < 0:
                raise MalformedRecordError(
                    cls.RECORD_TYPE, record_id, f"component '{name}' is invalid: {raw!r}"
                )
            values[name] = amount
        return cls(**values)


@dataclass
class Earnings(ComponentSet):
    """Payslip earnings."""

    RECORD_TYPE: ClassVar[str] = "earnings"

    basic: Decimal = ZERO
    dearness_allowance: Decimal = ZERO
    hra: Decimal = ZERO
    special_allowance: Decimal = ZERO
    arrears: Decimal = ZERO
    incentive: Decimal = ZERO
    bonus: Decimal = ZERO
    other_allowances: Decimal = ZERO


@dataclass
class Deductions(ComponentSet):
    """Payslip employee deductions."""

    RECORD_TYPE: ClassVar[str] = "deductions"

    pf: Decimal = ZERO
    esi: Decimal = ZERO
    pt: Decimal = ZERO
    lwf: Decimal = ZERO
    tds: Decimal = ZERO
    loan: Decimal = ZERO
    advance: Decimal = ZERO
    other_deductions: Decimal = ZERO


@dataclass
class EmployerContributions(ComponentSet):
    """Employer-side statutory contributions (not part of net pay)."""

    RECORD_TYPE: ClassVar[str] = "employer contributions"

    pf_provident: Decimal = ZERO
    pf_pension: Decimal = ZERO
    esi: Decimal = ZERO
    lwf: Decimal = ZERO

    @property
    def pf(self) -> Decimal:
        return self.pf_provident + self.pf_pension


# ===== Attendance =====


@dataclass
class AttendanceSummary:
    """Attendance aggregate for one employee over a period.

    payable_days / denominator_days is the exact pro-ration ratio;
    pro_ration_factor is its rounded display value.
    """

    days_in_period: int
    present_days: int = 0
    half_days: int = 0
    absent_days: int = 0
    holiday_days: int = 0
    weekend_days: int = 0
    unmarked_days: int = 0
    payable_days: Decimal = ZERO
    denominator_days: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def working_days(self) -> Decimal:
        return Decimal(self.present_days) + Decimal(self.half_days) / 2

    @property
    def pro_ration_factor(self) -> Decimal:
        if self.denominator_days <= 0:
            return ZERO
        factor = min(self.payable_days / Decimal(self.denominator_days), Decimal("1"))
        return factor.quantize(Decimal("0.000001"))


# ===== Statutory slab rows and results =====


@dataclass(frozen=True)
class ProfessionalTaxRow:
    """Validated professional tax slab row."""

    min_amount: Decimal
    max_amount: Decimal | None
    monthly_amounts: dict[str, Decimal]
    person_type: str = "all"
    slab_id: UUID | None = None

    def matches(self, gross: Decimal) -> bool:
        return gross >= self.min_amount and (self.max_amount is None or gross <= self.max_amount)


@dataclass(frozen=True)
class LabourWelfareRow:
    """Validated labour welfare fund row."""

    employee_amounts: dict[str, Decimal]
    employer_amounts: dict[str, Decimal]
    slab_id: UUID | None = None


@dataclass(frozen=True)
class TaxSlabRow:
    """Income tax slab row; upper None means no upper limit."""

    lower: Decimal
    upper: Decimal | None
    percent: Decimal


@dataclass
class PFResult:
    base: Decimal = ZERO
    wages: Decimal = ZERO
    employee: Decimal = ZERO
    employer_provident: Decimal = ZERO
    employer_pension: Decimal = ZERO

    @property
    def employer(self) -> Decimal:
        return self.employer_provident + self.employer_pension


@dataclass
class ESIResult:
    base: Decimal = ZERO
    applicable: bool = False
    employee: Decimal = ZERO
    employer: Decimal = ZERO


@dataclass
class LWFResult:
    employee: Decimal = ZERO
    employer: Decimal = ZERO


@dataclass
class TDSResult:
    regime: str
    annual_income: Decimal = ZERO
    exemptions: Decimal = ZERO
    annual_taxable_income: Decimal = ZERO
    annual_tax: Decimal = ZERO
    tds_already_deducted: Decimal = ZERO
    remaining_months: int = 1
    monthly_tds: Decimal = ZERO

    def to_json(self) -> dict[str, Any]:
        return {
            "regime": self.regime,
            "annual_income": str(self.annual_income),
            "exemptions": str(self.exemptions),
            "annual_taxable_income": str(self.annual_taxable_income),
            "annual_tax": str(self.annual_tax),
            "tds_already_deducted": str(self.tds_already_deducted),
            "remaining_months": self.remaining_months,
            "monthly_tds": str(self.monthly_tds),
        }


# ===== Payslip calculation =====


@dataclass(frozen=True)
class PeriodContext:
    """Period being processed, detached from the ORM session."""

    payroll_period_id: UUID
    tenant_id: UUID
    month: int
    year: int
    period_start: date
    period_end: date
    default_state: str | None = None


@dataclass(frozen=True)
class EmployeeProfile:
    """Employee attributes the calculation needs."""

    employee_id: UUID
    employee_code: str
    full_name: str
    date_of_joining: date
    gender: str | None = None
    state: str | None = None
    pf_contribution: bool = True


@dataclass(frozen=True)
class LoanRecovery:
    """Loan or advance amount recovered through a payslip."""

    loan_id: UUID
    loan_type: str
    amount: Decimal
    loan_emi_id: UUID | None = None


@dataclass
class PayslipCalculation:
    """Fully computed payslip for one employee, before persistence."""

    employee_id: UUID
    employee_code: str
    salary_structure_id: UUID | None
    attendance: AttendanceSummary
    earnings: Earnings
    deductions: Deductions
    employer_contributions: EmployerContributions
    statutory_details: dict[str, Any] = field(default_factory=dict)
    # Inputs consumed when the payslip is persisted
    loan_recoveries: list[LoanRecovery] = field(default_factory=list)
    supplementary_ids: list[UUID] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def gross(self) -> Decimal:
        return self.earnings.total()

    @property
    def total_deductions(self) -> Decimal:
        return self.deductions.total()

    @property
    def net(self) -> Decimal:
        return self.gross - self.total_deductions

    @property
    def is_negative_net(self) -> bool:
        return self.net < 0
