"""Per-employee payslip calculation."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.attendance import AttendanceAggregator
from statutory_payroll.calculators.component_builder import ComponentBuilder
from statutory_payroll.calculators.rate_resolver import StatutoryRateResolver
from statutory_payroll.calculators.rate_tables import financial_year, fy_months_before
from statutory_payroll.calculators.statutory import (
    calculate_esi,
    calculate_lwf,
    calculate_pf,
    calculate_pt,
    calculate_tds,
)
from statutory_payroll.calculators.structure_resolver import (
    SalaryStructureResolver,
    fixed_monthly_gross,
    sum_named_amounts,
)
from statutory_payroll.calculators.types import (
    ZERO,
    Deductions,
    Earnings,
    EmployeeProfile,
    EmployerContributions,
    LoanRecovery,
    PayslipCalculation,
    PeriodContext,
)
from statutory_payroll.config import Settings, get_settings
from statutory_payroll.errors import MalformedRecordError
from statutory_payroll.models import (
    ITDeclaration,
    Loan,
    LoanEMI,
    Payslip,
    SalaryStructure,
    SupplementaryPay,
)

logger = logging.getLogger(__name__)

SUPPLEMENTARY_COMPONENTS = {
    "arrears": "arrears",
    "incentive": "incentive",
    "bonus": "bonus",
    "other": "other_allowances",
}

DUE_EMI_STATUSES = ("pending", "partial", "overdue")
COUNTED_DECLARATION_STATUSES = ("submitted", "under_review", "approved")


class PayslipCalculator:
    """Computes one employee's payslip for a period.

    Calculation pipeline (stable order):
    1) Resolve salary structure and attendance aggregate
    2) Scale fixed earnings by payable days
    3) Add approved, unprocessed supplementary pay
    4) PF and ESI on the scaled basic/gross
    5) PT and LWF from the employee's state slabs
    6) TDS from the annual projection
    7) Due loan/advance EMIs and fixed other deductions
    8) Validate invariants

    Nothing is written here; the result is persisted by the commit service.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.rates = StatutoryRateResolver(session)
        self.structures = SalaryStructureResolver(session)
        self.attendance = AttendanceAggregator(session, pay_holidays=self.settings.pay_holidays)

    async def calculate(self, ctx: PeriodContext, employee: EmployeeProfile) -> PayslipCalculation:
        """Calculate a payslip.

        Raises:
            SalaryStructureNotFoundError: If the employee has no active structure
            SlabNotFoundError: If an enabled deduction has no slabs
            MalformedRecordError: If the salary structure cannot be read
        """
        structure = await self.structures.resolve(
            employee.employee_id, employee.employee_code, ctx.period_end
        )
        attendance = await self.attendance.aggregate(
            employee.employee_id, ctx.period_start, ctx.period_end
        )

        earnings = self._scaled_earnings(structure, attendance.payable_days, attendance.denominator_days)
        supplementary_ids = await self._apply_supplementary(ctx, employee, earnings)
        gross = earnings.total()

        deductions = Deductions()
        employer = EmployerContributions()
        details: dict[str, object] = {}

        # PF / ESI
        pf_config = await self.rates.get_pf_config(ctx.tenant_id, ctx.period_end)
        if pf_config is not None:
            if structure.pf_base is not None:
                pf_base = ComponentBuilder.prorate(
                    structure.pf_base, attendance.payable_days, attendance.denominator_days
                )
            else:
                pf_base = earnings.basic + earnings.dearness_allowance
            pf = calculate_pf(pf_base, pf_config, employee.pf_contribution)
            deductions.add("pf", pf.employee)
            employer.add("pf_provident", pf.employer_provident)
            employer.add("pf_pension", pf.employer_pension)
            details["pf"] = {"base": str(pf.base), "wages": str(pf.wages)}

        esi_config = await self.rates.get_esi_config(ctx.tenant_id, ctx.period_end)
        if esi_config is not None:
            esi_base = None
            if structure.esi_base is not None:
                esi_base = ComponentBuilder.prorate(
                    structure.esi_base, attendance.payable_days, attendance.denominator_days
                )
            esi = calculate_esi(gross, esi_config, esi_base)
            deductions.add("esi", esi.employee)
            employer.add("esi", esi.employer)
            details["esi"] = {"base": str(esi.base), "applicable": esi.applicable}

        # State levies
        state = employee.state or ctx.default_state
        fy = financial_year(ctx.month, ctx.year)
        if state and await self.rates.is_enabled(ctx.tenant_id, "PT", ctx.period_end, state):
            slabs = await self.rates.get_pt_slabs(ctx.tenant_id, state, fy)
            pt_amount, _ = calculate_pt(gross, slabs, ctx.month, employee.gender)
            deductions.add("pt", pt_amount)
            details["pt"] = {"state": state}

        if state and await self.rates.is_enabled(ctx.tenant_id, "LWF", ctx.period_end, state):
            row = await self.rates.get_lwf_row(ctx.tenant_id, state, fy)
            lwf = calculate_lwf(row, ctx.month)
            deductions.add("lwf", lwf.employee)
            employer.add("lwf", lwf.employer)

        # Income tax
        tds_config = await self.rates.get_tds_config(ctx.tenant_id, ctx.period_end)
        if tds_config is not None:
            slabs = await self.rates.get_income_tax_slabs(ctx.tenant_id, tds_config.regime, fy)
            ytd_gross, ytd_tds = await self._year_to_date(ctx, employee)
            tds = calculate_tds(
                month=ctx.month,
                current_gross=gross,
                projected_monthly_gross=fixed_monthly_gross(structure),
                slabs=slabs,
                config=tds_config,
                declared=await self._declared_exemptions(employee, fy),
                ytd_gross=ytd_gross,
                ytd_tds=ytd_tds,
            )
            deductions.add("tds", tds.monthly_tds)
            details["tds"] = tds.to_json()

        # Loans, advances and fixed deductions
        recoveries = await self._loan_recoveries(ctx, employee)
        for recovery in recoveries:
            deductions.add("advance" if recovery.loan_type == "advance" else "loan", recovery.amount)
        deductions.add(
            "other_deductions",
            ComponentBuilder.round_money(
                sum_named_amounts(structure.other_deductions, structure.salary_structure_id, "other_deductions")
            ),
        )

        calculation = PayslipCalculation(
            employee_id=employee.employee_id,
            employee_code=employee.employee_code,
            salary_structure_id=structure.salary_structure_id,
            attendance=attendance,
            earnings=earnings,
            deductions=deductions,
            employer_contributions=employer,
            statutory_details=details,
            loan_recoveries=recoveries,
            supplementary_ids=supplementary_ids,
        )

        violations = ComponentBuilder.validate(calculation)
        if violations:
            raise MalformedRecordError("payslip calculation", employee.employee_code, "; ".join(violations))

        if calculation.is_negative_net:
            message = (
                f"Net pay for emp {employee.employee_code} is negative "
                f"({calculation.net}); payslip flagged as negative-net exception"
            )
            logger.warning(message)
            calculation.warnings.append(message)

        return calculation

    def _scaled_earnings(
        self,
        structure: SalaryStructure,
        payable_days: Decimal,
        denominator_days: int,
    ) -> Earnings:
        """Fixed components scaled by payable days."""
        other = sum_named_amounts(
            structure.other_allowances, structure.salary_structure_id, "other_allowances"
        )
        return Earnings(
            basic=ComponentBuilder.prorate(structure.basic, payable_days, denominator_days),
            dearness_allowance=ComponentBuilder.prorate(
                structure.dearness_allowance, payable_days, denominator_days
            ),
            hra=ComponentBuilder.prorate(structure.hra, payable_days, denominator_days),
            special_allowance=ComponentBuilder.prorate(
                structure.special_allowance, payable_days, denominator_days
            ),
            other_allowances=ComponentBuilder.prorate(other, payable_days, denominator_days),
        )

    async def _apply_supplementary(
        self,
        ctx: PeriodContext,
        employee: EmployeeProfile,
        earnings: Earnings,
    ) -> list[UUID]:
        """Add approved, unprocessed supplementary pay up to this period."""
        period_index = ctx.year * 12 + ctx.month
        result = await self.session.execute(
            select(SupplementaryPay)
            .where(
                SupplementaryPay.employee_id == employee.employee_id,
                SupplementaryPay.status == "approved",
                SupplementaryPay.is_processed.is_(False),
                SupplementaryPay.year * 12 + SupplementaryPay.month <= period_index,
            )
            .order_by(SupplementaryPay.year, SupplementaryPay.month)
        )
        ids: list[UUID] = []
        for item in result.scalars().all():
            earnings.add(SUPPLEMENTARY_COMPONENTS[item.pay_type], ComponentBuilder.round_money(item.amount))
            ids.append(item.supplementary_pay_id)
        return ids

    async def _year_to_date(self, ctx: PeriodContext, employee: EmployeeProfile) -> tuple[Decimal, Decimal]:
        """Gross and TDS from earlier payslips in the same financial year."""
        earlier = fy_months_before(ctx.month, ctx.year)
        if not earlier:
            return ZERO, ZERO

        first_month, first_year = earlier[0]
        result = await self.session.execute(
            select(Payslip).where(
                Payslip.tenant_id == ctx.tenant_id,
                Payslip.employee_id == employee.employee_id,
                Payslip.is_voided.is_(False),
                Payslip.year * 12 + Payslip.month >= first_year * 12 + first_month,
                Payslip.year * 12 + Payslip.month < ctx.year * 12 + ctx.month,
            )
        )
        ytd_gross = ZERO
        ytd_tds = ZERO
        for payslip in result.scalars().all():
            ytd_gross += payslip.gross_salary
            ytd_tds += Deductions.from_json(payslip.deductions, payslip.payslip_id).tds
        return ytd_gross, ytd_tds

    async def _declared_exemptions(self, employee: EmployeeProfile, fy: int) -> dict[str, Decimal]:
        result = await self.session.execute(
            select(ITDeclaration).where(
                ITDeclaration.employee_id == employee.employee_id,
                ITDeclaration.financial_year == fy,
                ITDeclaration.status.in_(COUNTED_DECLARATION_STATUSES),
            )
        )
        declaration = result.scalar_one_or_none()
        return declaration.section_amounts() if declaration else {}

    async def _loan_recoveries(self, ctx: PeriodContext, employee: EmployeeProfile) -> list[LoanRecovery]:
        """EMIs due by period end, plus the EMI of active loans without a schedule."""
        recoveries: list[LoanRecovery] = []

        result = await self.session.execute(
            select(LoanEMI, Loan)
            .join(Loan, Loan.loan_id == LoanEMI.loan_id)
            .where(
                Loan.employee_id == employee.employee_id,
                Loan.status == "active",
                Loan.auto_deduct.is_(True),
                LoanEMI.status.in_(DUE_EMI_STATUSES),
                LoanEMI.due_date <= ctx.period_end,
            )
            .order_by(LoanEMI.due_date, LoanEMI.emi_number)
        )
        for emi, loan in result.all():
            amount = ComponentBuilder.round_money(emi.remaining_amount)
            if amount > 0:
                recoveries.append(
                    LoanRecovery(
                        loan_id=loan.loan_id,
                        loan_type=loan.loan_type,
                        amount=amount,
                        loan_emi_id=emi.loan_emi_id,
                    )
                )

        result = await self.session.execute(
            select(Loan).where(
                Loan.employee_id == employee.employee_id,
                Loan.status == "active",
                Loan.auto_deduct.is_(True),
                Loan.outstanding_amount > 0,
                ~Loan.emis.any(),
            )
        )
        for loan in result.scalars().all():
            amount = ComponentBuilder.round_money(min(loan.emi_amount, loan.outstanding_amount))
            if amount > 0:
                recoveries.append(LoanRecovery(loan_id=loan.loan_id, loan_type=loan.loan_type, amount=amount))

        return recoveries

