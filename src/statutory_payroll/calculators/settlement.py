"""Full and final settlement figures."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.component_builder import ComponentBuilder
from statutory_payroll.calculators.gratuity import GratuityCalculator, GratuityResult
from statutory_payroll.calculators.rate_tables import ENCASHABLE_LEAVE_CODES, SETTLEMENT_DAYS_PER_MONTH
from statutory_payroll.calculators.types import ZERO
from statutory_payroll.config import Settings
from statutory_payroll.models import FullAndFinalSettlement, LeaveBalance, LeaveType, Loan, Reimbursement

logger = logging.getLogger(__name__)

OUTSTANDING_LOAN_STATUSES = ("approved", "active")
PENDING_REIMBURSEMENT_STATUSES = ("pending", "approved")


def days_to_amount(days: Decimal, monthly_salary: Decimal) -> Decimal:
    """Convert days to money at monthly_salary / 30 per day."""
    if days <= 0 or monthly_salary <= 0:
        return ZERO
    return ComponentBuilder.round_money(days * monthly_salary / SETTLEMENT_DAYS_PER_MONTH)


def apply_totals(settlement: FullAndFinalSettlement) -> FullAndFinalSettlement:
    """Recompute gross, deductions and net from the line items."""
    settlement.gross_amount = (
        settlement.notice_period_amount
        + settlement.earned_leave_amount
        + settlement.gratuity_amount
        + settlement.bonus_amount
        + settlement.other_payments
    )
    settlement.total_deductions = (
        settlement.unpaid_leave_deduction
        + settlement.outstanding_loans
        + settlement.outstanding_advances
        + settlement.other_deductions
    )
    settlement.net_amount = settlement.gross_amount - settlement.total_deductions
    return settlement


@dataclass
class SettlementFigures:
    """System-derived settlement inputs for one employee."""

    last_drawn_salary: Decimal = ZERO
    outstanding_loans: Decimal = ZERO
    outstanding_advances: Decimal = ZERO
    pending_reimbursements: Decimal = ZERO
    earned_leave_days: Decimal = ZERO
    earned_leave_amount: Decimal = ZERO
    gratuity: GratuityResult | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def gratuity_amount(self) -> Decimal:
        return self.gratuity.gratuity_amount if self.gratuity else ZERO


class SettlementCalculator:
    """Gathers loans, reimbursements, leave balance and gratuity at exit."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.gratuity = GratuityCalculator(session, settings)

    async def gather(self, employee_id: UUID, tenant_id: UUID, last_working_date: date) -> SettlementFigures:
        figures = SettlementFigures()
        figures.last_drawn_salary, _ = await self.gratuity.last_drawn_salary(employee_id, last_working_date)

        figures.outstanding_loans, figures.outstanding_advances = await self._outstanding_loans(employee_id)
        figures.pending_reimbursements = await self._pending_reimbursements(employee_id)

        figures.earned_leave_days = await self._earned_leave_balance(
            employee_id, tenant_id, last_working_date.year
        )
        figures.earned_leave_amount = days_to_amount(figures.earned_leave_days, figures.last_drawn_salary)

        figures.gratuity = await self.gratuity.calculate(employee_id, last_working_date, tenant_id)
        if figures.gratuity.warning:
            figures.warnings.append(figures.gratuity.warning)
        if figures.last_drawn_salary <= 0:
            figures.warnings.append("No last drawn salary found; leave encashment computed as zero")

        return figures

    async def _outstanding_loans(self, employee_id: UUID) -> tuple[Decimal, Decimal]:
        """Outstanding (loans, advances) in approved/active status."""
        result = await self.session.execute(
            select(Loan.loan_type, func.coalesce(func.sum(Loan.outstanding_amount), 0))
            .where(
                Loan.employee_id == employee_id,
                Loan.status.in_(OUTSTANDING_LOAN_STATUSES),
                Loan.outstanding_amount > 0,
            )
            .group_by(Loan.loan_type)
        )
        totals = {loan_type: Decimal(str(amount)) for loan_type, amount in result.all()}
        return (
            ComponentBuilder.round_money(totals.get("loan", ZERO)),
            ComponentBuilder.round_money(totals.get("advance", ZERO)),
        )

    async def _pending_reimbursements(self, employee_id: UUID) -> Decimal:
        total = await self.session.scalar(
            select(func.coalesce(func.sum(Reimbursement.amount), 0)).where(
                Reimbursement.employee_id == employee_id,
                Reimbursement.status.in_(PENDING_REIMBURSEMENT_STATUSES),
            )
        )
        return ComponentBuilder.round_money(Decimal(str(total or 0)))

    async def _earned_leave_balance(self, employee_id: UUID, tenant_id: UUID, year: int) -> Decimal:
        total = await self.session.scalar(
            select(func.coalesce(func.sum(LeaveBalance.balance), 0))
            .join(LeaveType, LeaveType.leave_type_id == LeaveBalance.leave_type_id)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == year,
                LeaveType.tenant_id == tenant_id,
                LeaveType.code.in_(ENCASHABLE_LEAVE_CODES),
            )
        )
        return max(Decimal(str(total or 0)), ZERO)
