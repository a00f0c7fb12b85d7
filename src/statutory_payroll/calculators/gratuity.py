"""Gratuity calculation under the Payment of Gratuity Act formula."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.component_builder import ComponentBuilder
from statutory_payroll.calculators.rate_tables import GratuityRules
from statutory_payroll.calculators.structure_resolver import SalaryStructureResolver
from statutory_payroll.calculators.types import ZERO, Earnings
from statutory_payroll.config import Settings, get_settings
from statutory_payroll.errors import NotFoundError
from statutory_payroll.models import Employee, PayrollPeriod, Payslip
from statutory_payroll.services.state_machine import PayrollStatus

logger = logging.getLogger(__name__)

FINALIZED_STATUSES = (PayrollStatus.FINALIZED.value, PayrollStatus.PAID.value)


def finalized_period_clause():
    """SQL condition for periods whose payslips are final (incl. frozen ones)."""
    return or_(
        PayrollPeriod.status.in_(FINALIZED_STATUSES),
        and_(
            PayrollPeriod.status == PayrollStatus.LOCKED.value,
            PayrollPeriod.frozen_from_status.in_(FINALIZED_STATUSES),
        ),
    )


@dataclass
class GratuityResult:
    """Outcome of a gratuity calculation."""

    eligible: bool
    years_of_service: Decimal
    completed_years: int = 0
    last_drawn_salary: Decimal = ZERO
    gratuity_per_year: Decimal = ZERO
    gratuity_amount: Decimal = ZERO
    max_limit_applied: bool = False
    reason: str | None = None
    warning: str | None = None
    salary_source: str | None = None
    employee_id: UUID | None = None
    employee_code: str | None = None

    @property
    def calculation(self) -> dict[str, Any]:
        return {
            "formula": "(Last Drawn Salary × 15 / 26) × Completed Years of Service",
            "last_drawn_salary": str(self.last_drawn_salary),
            "multiplier": "15/26",
            "completed_years": self.completed_years,
            "gratuity_per_year": str(self.gratuity_per_year),
            "gratuity_amount": str(self.gratuity_amount),
            "max_limit_applied": self.max_limit_applied,
            "salary_source": self.salary_source,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id) if self.employee_id else None,
            "employee_code": self.employee_code,
            "eligible": self.eligible,
            "years_of_service": str(self.years_of_service),
            "gratuity_amount": str(self.gratuity_amount),
            "reason": self.reason,
            "warning": self.warning,
            "calculation": self.calculation,
        }


def compute_gratuity(
    date_of_joining: date,
    exit_date: date,
    last_drawn_salary: Decimal,
    rules: GratuityRules = GratuityRules(),
) -> GratuityResult:
    """Pure gratuity formula.

    years = days / 365.25; eligible from 5 years; amount is
    salary × 15/26 × floor(years), capped at the statutory maximum.
    """
    days = (exit_date - date_of_joining).days
    if days < 0:
        return GratuityResult(
            eligible=False,
            years_of_service=ZERO,
            reason="Exit date is before the date of joining",
        )

    years = Decimal(days) / rules.days_per_year
    years_display = years.quantize(Decimal("0.01"), rounding=ROUND_FLOOR)
    if years < rules.min_years:
        return GratuityResult(
            eligible=False,
            years_of_service=years_display,
            reason=f"Minimum {rules.min_years} years of service required for gratuity",
        )

    completed = int(years.to_integral_value(rounding=ROUND_FLOOR))
    if last_drawn_salary <= 0:
        return GratuityResult(
            eligible=True,
            years_of_service=years_display,
            completed_years=completed,
            warning="No last drawn salary found; gratuity computed as zero",
        )

    per_year = ComponentBuilder.round_money(last_drawn_salary * rules.multiplier_days / rules.wage_days)
    amount = ComponentBuilder.round_money(
        last_drawn_salary * rules.multiplier_days * completed / rules.wage_days
    )
    capped = amount > rules.max_amount
    return GratuityResult(
        eligible=True,
        years_of_service=years_display,
        completed_years=completed,
        last_drawn_salary=ComponentBuilder.round_money(last_drawn_salary),
        gratuity_per_year=per_year,
        gratuity_amount=rules.max_amount if capped else amount,
        max_limit_applied=capped,
    )


class GratuityCalculator:
    """Loads tenure and last drawn salary and applies the gratuity formula.

    Last drawn salary is basic + dearness allowance from the most recent
    finalized payslip, else from the active salary structure.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        settings = settings or get_settings()
        self.rules = GratuityRules(max_amount=settings.gratuity_max_amount)
        self.structures = SalaryStructureResolver(session)

    async def calculate(
        self,
        employee_id: UUID,
        exit_date: date,
        tenant_id: UUID | None = None,
    ) -> GratuityResult:
        """Calculate gratuity for one employee as of an exit date."""
        query = select(Employee).where(Employee.employee_id == employee_id)
        if tenant_id is not None:
            query = query.where(Employee.tenant_id == tenant_id)
        employee = (await self.session.execute(query)).scalar_one_or_none()
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return await self._calculate_for(employee, exit_date)

    async def calculate_bulk(self, tenant_id: UUID, as_of: date) -> list[GratuityResult]:
        """Gratuity liability for every active employee as of a date."""
        result = await self.session.execute(
            select(Employee)
            .where(Employee.tenant_id == tenant_id, Employee.status == "active")
            .order_by(Employee.employee_code)
        )
        return [await self._calculate_for(employee, as_of) for employee in result.scalars().all()]

    async def last_drawn_salary(self, employee_id: UUID, as_of: date) -> tuple[Decimal, str | None]:
        """Basic + DA and where it came from ('payslip', 'salary_structure' or None)."""
        result = await self.session.execute(
            select(Payslip)
            .join(PayrollPeriod, PayrollPeriod.payroll_period_id == Payslip.payroll_period_id)
            .where(
                Payslip.employee_id == employee_id,
                Payslip.is_voided.is_(False),
                finalized_period_clause(),
            )
            .order_by(Payslip.year.desc(), Payslip.month.desc())
            .limit(1)
        )
        payslip = result.scalar_one_or_none()
        if payslip is not None:
            earnings = Earnings.from_json(payslip.earnings, payslip.payslip_id)
            amount = earnings.basic + earnings.dearness_allowance
            if amount > 0:
                return amount, "payslip"

        structure = await self.structures.find(employee_id, as_of)
        if structure is not None:
            amount = structure.basic + (structure.dearness_allowance or ZERO)
            if amount > 0:
                return amount, "salary_structure"

        return ZERO, None

    async def _calculate_for(self, employee: Employee, exit_date: date) -> GratuityResult:
        salary, source = await self.last_drawn_salary(employee.employee_id, exit_date)
        result = compute_gratuity(employee.date_of_joining, exit_date, salary, self.rules)
        result.employee_id = employee.employee_id
        result.employee_code = employee.employee_code
        result.salary_source = source if result.eligible else None
        if result.warning:
            logger.warning("Gratuity for emp %s: %s", employee.employee_code, result.warning)
        return result
