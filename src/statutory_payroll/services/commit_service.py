"""Idempotent payslip persistence."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.component_builder import ComponentBuilder
from statutory_payroll.calculators.types import ZERO, PayslipCalculation, PeriodContext
from statutory_payroll.config import get_settings
from statutory_payroll.database import insert_if_absent
from statutory_payroll.models import Loan, LoanEMI, Payslip, SupplementaryPay
from statutory_payroll.models.payroll import ACTIVE_PAYSLIP_PREDICATE

logger = logging.getLogger(__name__)


class PayslipCommitService:
    """Persists computed payslips exactly once per (period, employee).

    Key invariants:
    1. One non-voided payslip per period and employee (partial unique index)
    2. Retries are safe: an existing payslip is left untouched by
       ON CONFLICT DO NOTHING and its inputs are not consumed twice
    3. Supplementary pay and loan EMIs are consumed in the same transaction
       as the payslip insert
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.engine_version = get_settings().engine_version

    async def commit_payslip(self, ctx: PeriodContext, calculation: PayslipCalculation) -> UUID | None:
        """Insert a payslip and consume its inputs.

        Returns the new payslip id, or None if one already existed.
        """
        payslip_id = uuid4()
        attendance = calculation.attendance
        created = await insert_if_absent(
            self.session,
            Payslip,
            {
                "payslip_id": payslip_id,
                "payroll_period_id": ctx.payroll_period_id,
                "tenant_id": ctx.tenant_id,
                "employee_id": calculation.employee_id,
                "salary_structure_id": calculation.salary_structure_id,
                "month": ctx.month,
                "year": ctx.year,
                "earnings": calculation.earnings.to_json(),
                "deductions": calculation.deductions.to_json(),
                "employer_contributions": calculation.employer_contributions.to_json(),
                "statutory_details": self._details(calculation),
                "gross_salary": calculation.gross,
                "total_deductions": calculation.total_deductions,
                "net_salary": calculation.net,
                "total_employer_contributions": calculation.employer_contributions.total(),
                "days_in_period": attendance.days_in_period,
                "payable_days": attendance.payable_days,
                "days_worked": attendance.working_days,
                "days_present": attendance.present_days,
                "days_absent": attendance.absent_days,
                "half_days": attendance.half_days,
                "pro_ration_factor": attendance.pro_ration_factor,
                "is_negative_net": calculation.is_negative_net,
                "is_voided": False,
                "is_distributed": False,
                "calculation_hash": ComponentBuilder.compute_calculation_hash(calculation),
                "engine_version": self.engine_version,
            },
            index_elements=["payroll_period_id", "employee_id"],
            index_where=ACTIVE_PAYSLIP_PREDICATE,
        )
        if not created:
            logger.info(
                "Payslip for emp %s in period %s already exists; skipping",
                calculation.employee_code,
                ctx.payroll_period_id,
            )
            return None

        await self._consume_supplementary(ctx, calculation)
        await self._recover_loans(ctx, calculation, payslip_id)
        return payslip_id

    @staticmethod
    def _details(calculation: PayslipCalculation) -> dict[str, Any]:
        """Statutory details plus the inputs consumed, so a void can restore them."""
        details = dict(calculation.statutory_details)
        if calculation.loan_recoveries:
            details["loan_recoveries"] = [
                {
                    "loan_id": str(r.loan_id),
                    "loan_emi_id": str(r.loan_emi_id) if r.loan_emi_id else None,
                    "amount": str(r.amount),
                }
                for r in calculation.loan_recoveries
            ]
        if calculation.supplementary_ids:
            details["supplementary_pay_ids"] = [str(i) for i in calculation.supplementary_ids]
        return details

    async def _consume_supplementary(self, ctx: PeriodContext, calculation: PayslipCalculation) -> None:
        if not calculation.supplementary_ids:
            return
        result = await self.session.execute(
            select(SupplementaryPay).where(
                SupplementaryPay.supplementary_pay_id.in_(calculation.supplementary_ids)
            )
        )
        for item in result.scalars().all():
            item.is_processed = True
            item.processed_period_id = ctx.payroll_period_id

    async def _recover_loans(
        self,
        ctx: PeriodContext,
        calculation: PayslipCalculation,
        payslip_id: UUID,
    ) -> None:
        """Mark EMIs paid and reduce loan outstanding; close loans at zero."""
        if not calculation.loan_recoveries:
            return

        loan_ids = {r.loan_id for r in calculation.loan_recoveries}
        emi_ids = [r.loan_emi_id for r in calculation.loan_recoveries if r.loan_emi_id]
        loans = {
            loan.loan_id: loan
            for loan in (
                await self.session.execute(select(Loan).where(Loan.loan_id.in_(loan_ids)))
            ).scalars()
        }
        emis = {
            emi.loan_emi_id: emi
            for emi in (
                await self.session.execute(select(LoanEMI).where(LoanEMI.loan_emi_id.in_(emi_ids)))
            ).scalars()
        }

        for recovery in calculation.loan_recoveries:
            if recovery.loan_emi_id is not None:
                emi = emis[recovery.loan_emi_id]
                emi.paid_amount = emi.paid_amount + recovery.amount
                emi.status = "paid" if emi.paid_amount >= emi.total_amount else "partial"
                emi.paid_on = ctx.period_end
                emi.payslip_id = payslip_id

            loan = loans[recovery.loan_id]
            loan.outstanding_amount = max(loan.outstanding_amount - recovery.amount, ZERO)
            if loan.outstanding_amount == 0:
                loan.status = "closed"
                logger.info("Loan %s fully recovered and closed", loan.loan_id)
