"""Payroll service - main orchestrator for the monthly payroll lifecycle."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.attendance import ABSENT, period_bounds
from statutory_payroll.calculators.component_builder import ComponentBuilder
from statutory_payroll.calculators.types import ZERO, EmployeeProfile, PeriodContext
from statutory_payroll.config import Settings, get_settings
from statutory_payroll.database import insert_if_absent
from statutory_payroll.errors import ImmutableRecordError, InvalidTransitionError, NotFoundError
from statutory_payroll.models import (
    AttendanceRecord,
    AuditEvent,
    Employee,
    LeaveRequest,
    Loan,
    LoanEMI,
    PayrollPeriod,
    PayrollPreCheck,
    Payslip,
    Reimbursement,
    SalaryStructure,
    SupplementaryPay,
    Tenant,
)
from statutory_payroll.models.base import utcnow
from statutory_payroll.services.locking_service import AttendanceLockService
from statutory_payroll.services.payslip_generator import BatchResult, PayslipGenerator
from statutory_payroll.services.state_machine import PayrollStateMachine, PayrollStatus

logger = logging.getLogger(__name__)

OPEN_CHECK_STATUSES = ("pending", "warning", "error")
CLOSED_CHECK_STATUSES = ("resolved", "ignored")
DUE_EMI_STATUSES = ("pending", "partial", "overdue")
PRE_CHECK_ACTIONS = {"resolve": "resolved", "ignore": "ignored"}


class PayrollService:
    """Service for managing the payroll period lifecycle.

    Operations:
    - initiate_payroll: Create the period for (tenant, month, year) if absent
    - run_pre_checks / resolve_pre_check: Surface and clear pre-run issues
    - lock_attendance / unlock_attendance: Gate generation on frozen attendance
    - apply_earnings_deductions: Stage supplementary pay and due EMIs
    - generate_payroll: Batch payslip generation, resumable and idempotent
    - finalize_payroll / mark_paid: Close the period
    - freeze / unfreeze: Block and restore a period
    - distribute_payslips / void_payslip: Payslip-level operations

    State errors abort the single operation before any mutation. Nothing
    here commits except generate_payroll, which owns its per-employee
    transactions; callers commit the rest.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.locking_service = AttendanceLockService(session)

    # ===== Lookup =====

    async def initiate_payroll(
        self,
        tenant_id: UUID,
        month: int,
        year: int,
        actor_user_id: UUID | None = None,
    ) -> PayrollPeriod:
        """Return the period for (tenant, month, year), creating it as draft if absent."""
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month {month}")

        tenant = await self.session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)

        payroll_period_id = uuid4()
        created = await insert_if_absent(
            self.session,
            PayrollPeriod,
            {
                "payroll_period_id": payroll_period_id,
                "tenant_id": tenant_id,
                "month": month,
                "year": year,
                "status": PayrollStatus.DRAFT.value,
                "created_by": actor_user_id,
            },
            index_elements=["tenant_id", "month", "year"],
        )
        period = await self.get_period_for_month(tenant_id, month, year)
        if period is None:
            raise NotFoundError("PayrollPeriod", f"{month}/{year}")

        if created:
            logger.info("Initiated payroll %s for tenant %s", period.label, tenant_id)
            await self._record_audit(period, "created", actor_user_id)
        return period

    async def get_period(self, payroll_period_id: UUID, tenant_id: UUID) -> PayrollPeriod:
        """Load a period within the tenant or raise NotFoundError."""
        result = await self.session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.payroll_period_id == payroll_period_id,
                PayrollPeriod.tenant_id == tenant_id,
            )
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise NotFoundError("PayrollPeriod", payroll_period_id)
        return period

    async def get_period_for_month(self, tenant_id: UUID, month: int, year: int) -> PayrollPeriod | None:
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.tenant_id == tenant_id,
                PayrollPeriod.month == month,
                PayrollPeriod.year == year,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_periods(self, tenant_id: UUID) -> list[PayrollPeriod]:
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(PayrollPeriod.tenant_id == tenant_id)
            .order_by(PayrollPeriod.year.desc(), PayrollPeriod.month.desc())
        )
        return list(result.scalars().all())

    async def list_payslips(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        include_voided: bool = False,
    ) -> list[Payslip]:
        """Payslips of a period in employee-code order."""
        period = await self.get_period(payroll_period_id, tenant_id)
        query = (
            select(Payslip)
            .join(Employee, Employee.employee_id == Payslip.employee_id)
            .where(Payslip.payroll_period_id == period.payroll_period_id)
            .order_by(Employee.employee_code, Payslip.created_at)
        )
        if not include_voided:
            query = query.where(Payslip.is_voided.is_(False))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ===== Transitions =====

    async def transition_status(
        self,
        period: PayrollPeriod,
        to_status: str,
        actor_user_id: UUID | None = None,
        override_pre_check: bool = False,
        details: dict[str, Any] | None = None,
    ) -> PayrollPeriod:
        """Transition a period to a new status.

        Handles the side effects of each transition:
        - processing: stamp processed_by/processed_at
        - finalized: stamp finalized_by/finalized_at
        - paid: stamp paid_at
        - locked: remember the status to restore
        - unfreeze: clear the remembered status

        Raises InvalidTransitionError if the transition is not allowed.
        """
        from_status = period.status
        errors = PayrollStateMachine.validate_period_for_transition(
            period, to_status, override_pre_check=override_pre_check
        )
        if errors:
            raise InvalidTransitionError(from_status, to_status, "; ".join(errors))

        now = utcnow()
        if to_status == PayrollStatus.LOCKED:
            period.frozen_from_status = from_status
        elif from_status == PayrollStatus.LOCKED:
            period.frozen_from_status = None
        elif to_status == PayrollStatus.PROCESSING:
            period.processed_by = actor_user_id
            period.processed_at = now
        elif to_status == PayrollStatus.FINALIZED:
            period.finalized_by = actor_user_id
            period.finalized_at = now
        elif to_status == PayrollStatus.PAID:
            period.paid_at = now

        period.status = PayrollStatus(to_status).value

        details = dict(details or {})
        if override_pre_check:
            details["override_pre_check"] = True
        await self._record_audit(
            period,
            f"status_change:{from_status}:{period.status}",
            actor_user_id,
            details or None,
        )
        logger.info("Payroll %s: %s -> %s", period.label, from_status, period.status)
        return period

    async def finalize_payroll(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
        override_pre_check: bool = False,
    ) -> PayrollPeriod:
        """Finalize a processing period after recomputing its totals.

        Without override_pre_check, every eligible employee must have a
        payslip and no pre-check may remain open.
        """
        period = await self.get_period(payroll_period_id, tenant_id)
        if period.status == PayrollStatus.PROCESSING:
            await self.recompute_totals(period)
            period.payslips_generated = await self._all_eligible_have_payslips(period)
        return await self.transition_status(
            period,
            PayrollStatus.FINALIZED,
            actor_user_id,
            override_pre_check=override_pre_check,
        )

    async def mark_paid(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        payment_reference: str | None = None,
        actor_user_id: UUID | None = None,
    ) -> PayrollPeriod:
        """Record disbursement of a finalized period."""
        period = await self.get_period(payroll_period_id, tenant_id)
        period = await self.transition_status(
            period, PayrollStatus.PAID, actor_user_id, details={"payment_reference": payment_reference}
        )
        period.payment_reference = payment_reference
        return period

    async def freeze(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
        reason: str | None = None,
    ) -> PayrollPeriod:
        """Move a period to locked, blocking generation and financial changes."""
        period = await self.get_period(payroll_period_id, tenant_id)
        return await self.transition_status(
            period, PayrollStatus.LOCKED, actor_user_id, details={"reason": reason} if reason else None
        )

    async def unfreeze(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> PayrollPeriod:
        """Restore a locked period to the status it was frozen from."""
        period = await self.get_period(payroll_period_id, tenant_id)
        if period.status != PayrollStatus.LOCKED or period.frozen_from_status is None:
            raise InvalidTransitionError(period.status, "unfrozen", "Period is not frozen")
        return await self.transition_status(period, period.frozen_from_status, actor_user_id)

    # ===== Attendance =====

    async def lock_attendance(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> PayrollPeriod:
        """Lock the period's attendance; required before generation."""
        period = await self.get_period(payroll_period_id, tenant_id)
        self._ensure_mutable(period)
        if period.attendance_locked:
            return period

        count = await self.locking_service.lock(period)
        await self._record_audit(period, "attendance_locked", actor_user_id, {"records": count})
        return period

    async def unlock_attendance(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> PayrollPeriod:
        """Unlock attendance; only allowed while the period is still draft."""
        period = await self.get_period(payroll_period_id, tenant_id)
        if period.status != PayrollStatus.DRAFT:
            raise ImmutableRecordError("PayrollPeriod", period.payroll_period_id, period.status)

        count = await self.locking_service.unlock(period)
        await self._record_audit(period, "attendance_unlocked", actor_user_id, {"records": count})
        return period

    async def ensure_attendance_editable(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        attendance_date: date,
    ) -> None:
        """Raise AttendanceLockedError if the day's attendance is locked."""
        await self.locking_service.ensure_editable(tenant_id, employee_id, attendance_date)

    # ===== Pre-checks =====

    async def run_pre_checks(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> list[PayrollPreCheck]:
        """Replace the period's open pre-checks with a fresh scan.

        Checks already resolved or ignored are kept and not raised again.
        """
        period = await self.get_period(payroll_period_id, tenant_id)
        self._ensure_mutable(period)
        start, end = period_bounds(period.month, period.year)

        existing = (
            await self.session.execute(
                select(PayrollPreCheck).where(PayrollPreCheck.payroll_period_id == period.payroll_period_id)
            )
        ).scalars().all()
        closed = {
            (c.check_type, c.employee_id, c.reference_id)
            for c in existing
            if c.check_status in CLOSED_CHECK_STATUSES
        }
        for check in existing:
            if check.check_status in OPEN_CHECK_STATUSES:
                await self.session.delete(check)

        employees = await self._eligible_employees(tenant_id, start, end)
        employee_ids = [e.employee_id for e in employees]
        found: list[PayrollPreCheck] = []

        def add(check_type: str, status: str, message: str, employee_id=None, reference_id=None, details=None):
            if (check_type, employee_id, reference_id) in closed:
                return
            check = PayrollPreCheck(
                payroll_period_id=period.payroll_period_id,
                employee_id=employee_id,
                check_type=check_type,
                check_status=status,
                message=message,
                reference_id=reference_id,
                details=details,
            )
            self.session.add(check)
            found.append(check)

        if employee_ids:
            # Absences
            absences = await self.session.execute(
                select(AttendanceRecord.employee_id, func.count())
                .where(
                    AttendanceRecord.employee_id.in_(employee_ids),
                    AttendanceRecord.attendance_date >= start,
                    AttendanceRecord.attendance_date <= end,
                    AttendanceRecord.status == ABSENT,
                )
                .group_by(AttendanceRecord.employee_id)
            )
            codes = {e.employee_id: e.employee_code for e in employees}
            for employee_id, days in absences.all():
                add(
                    "absence",
                    "warning",
                    f"Employee {codes[employee_id]} has {days} absent day(s)",
                    employee_id=employee_id,
                    details={"absent_days": days},
                )

            # Unapproved leave overlapping the period
            leaves = await self.session.execute(
                select(LeaveRequest).where(
                    LeaveRequest.employee_id.in_(employee_ids),
                    LeaveRequest.status == "pending",
                    LeaveRequest.start_date <= end,
                    LeaveRequest.end_date >= start,
                )
            )
            for leave in leaves.scalars().all():
                add(
                    "leave",
                    "warning",
                    f"Pending leave request {leave.start_date} to {leave.end_date} for employee "
                    f"{codes[leave.employee_id]}",
                    employee_id=leave.employee_id,
                    reference_id=leave.leave_request_id,
                    details={"days": str(leave.days)},
                )

            # EMIs falling due in the period
            emis = await self.session.execute(
                select(LoanEMI, Loan)
                .join(Loan, Loan.loan_id == LoanEMI.loan_id)
                .where(
                    Loan.employee_id.in_(employee_ids),
                    Loan.status.in_(("approved", "active")),
                    LoanEMI.status.in_(DUE_EMI_STATUSES),
                    LoanEMI.due_date <= end,
                )
            )
            for emi, loan in emis.all():
                add(
                    loan.loan_type,
                    "pending",
                    f"{loan.loan_type.capitalize()} EMI #{emi.emi_number} of {emi.remaining_amount} due "
                    f"{emi.due_date} for employee {codes[loan.employee_id]}",
                    employee_id=loan.employee_id,
                    reference_id=emi.loan_emi_id,
                    details={"loan_id": str(loan.loan_id), "amount": str(emi.remaining_amount)},
                )

            # Pending reimbursements
            claims = await self.session.execute(
                select(Reimbursement).where(
                    Reimbursement.employee_id.in_(employee_ids),
                    Reimbursement.status == "pending",
                )
            )
            for claim in claims.scalars().all():
                add(
                    "reimbursement",
                    "warning",
                    f"Pending {claim.category} reimbursement of {claim.amount} for employee "
                    f"{codes[claim.employee_id]}",
                    employee_id=claim.employee_id,
                    reference_id=claim.reimbursement_id,
                )

            # Missing salary structures
            with_structure = set(
                (
                    await self.session.execute(
                        select(SalaryStructure.employee_id).where(
                            SalaryStructure.employee_id.in_(employee_ids),
                            SalaryStructure.is_active.is_(True),
                            SalaryStructure.effective_date <= end,
                        )
                    )
                ).scalars()
            )
            for employee in employees:
                if employee.employee_id not in with_structure:
                    add(
                        "salary_structure",
                        "error",
                        f"no salary structure for emp {employee.employee_code} as of {end}",
                        employee_id=employee.employee_id,
                    )

        period.pre_check_completed = not found
        await self.session.flush()
        await self._record_audit(
            period,
            "pre_checks_run",
            actor_user_id,
            {"open": len(found), "completed": period.pre_check_completed},
        )
        logger.info("Pre-checks for payroll %s: %d open item(s)", period.label, len(found))
        return found

    async def list_pre_checks(self, payroll_period_id: UUID, tenant_id: UUID) -> list[PayrollPreCheck]:
        period = await self.get_period(payroll_period_id, tenant_id)
        result = await self.session.execute(
            select(PayrollPreCheck)
            .where(PayrollPreCheck.payroll_period_id == period.payroll_period_id)
            .order_by(PayrollPreCheck.check_type, PayrollPreCheck.created_at)
        )
        return list(result.scalars().all())

    async def resolve_pre_check(
        self,
        pre_check_id: UUID,
        tenant_id: UUID,
        action: str,
        actor_user_id: UUID | None = None,
        remarks: str | None = None,
    ) -> PayrollPreCheck:
        """Resolve or ignore a pre-check and recompute the period's gate."""
        if action not in PRE_CHECK_ACTIONS:
            raise ValueError(f"Unknown pre-check action '{action}'")

        result = await self.session.execute(
            select(PayrollPreCheck, PayrollPeriod)
            .join(PayrollPeriod, PayrollPeriod.payroll_period_id == PayrollPreCheck.payroll_period_id)
            .where(
                PayrollPreCheck.pre_check_id == pre_check_id,
                PayrollPeriod.tenant_id == tenant_id,
            )
        )
        row = result.first()
        if row is None:
            raise NotFoundError("PayrollPreCheck", pre_check_id)
        check, period = row
        self._ensure_mutable(period)

        check.check_status = PRE_CHECK_ACTIONS[action]
        check.resolved_by = actor_user_id
        check.resolved_at = utcnow()
        check.remarks = remarks
        await self.session.flush()

        open_count = await self.session.scalar(
            select(func.count()).where(
                PayrollPreCheck.payroll_period_id == period.payroll_period_id,
                PayrollPreCheck.check_status.in_(OPEN_CHECK_STATUSES),
            )
        )
        period.pre_check_completed = open_count == 0
        return check

    # ===== Staging =====

    async def apply_earnings_deductions(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> dict[str, int]:
        """Stage supplementary pay and due EMIs for the next generation run.

        Items are only counted here; they are consumed with the payslip that
        includes them.
        """
        period = await self.get_period(payroll_period_id, tenant_id)
        if not PayrollStateMachine.can_generate(period.status):
            raise ImmutableRecordError("PayrollPeriod", period.payroll_period_id, period.status)
        if not period.attendance_locked:
            raise InvalidTransitionError(
                period.status, period.status, "Attendance must be locked before applying earnings"
            )

        _, end = period_bounds(period.month, period.year)
        tenant_employees = select(Employee.employee_id).where(Employee.tenant_id == tenant_id)

        supplementary = await self.session.scalar(
            select(func.count()).where(
                SupplementaryPay.employee_id.in_(tenant_employees),
                SupplementaryPay.status == "approved",
                SupplementaryPay.is_processed.is_(False),
                SupplementaryPay.year * 12 + SupplementaryPay.month <= period.year * 12 + period.month,
            )
        )
        emis = await self.session.scalar(
            select(func.count())
            .select_from(LoanEMI)
            .join(Loan, Loan.loan_id == LoanEMI.loan_id)
            .where(
                Loan.employee_id.in_(tenant_employees),
                Loan.status == "active",
                Loan.auto_deduct.is_(True),
                LoanEMI.status.in_(DUE_EMI_STATUSES),
                LoanEMI.due_date <= end,
            )
        )

        period.earnings_applied = True
        period.deductions_applied = True
        counts = {"supplementary_items": supplementary or 0, "due_emis": emis or 0}
        await self._record_audit(period, "earnings_deductions_applied", actor_user_id, counts)
        return counts

    # ===== Generation =====

    async def generate_payroll(
        self,
        tenant_id: UUID,
        month: int,
        year: int,
        actor_user_id: UUID | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Generate payslips for every eligible employee of the period.

        Idempotent: employees that already have a payslip are skipped, so a
        re-run resumes an interrupted batch and a re-run of a complete one
        creates nothing. A finalized or paid period is returned unchanged.

        Raises:
            InvalidTransitionError: If attendance is not locked or the period is frozen
        """
        period = await self.initiate_payroll(tenant_id, month, year, actor_user_id)
        await self.session.commit()

        if period.status == PayrollStatus.LOCKED:
            raise InvalidTransitionError(
                period.status, PayrollStatus.PROCESSING.value, "Period is frozen; unfreeze it first"
            )

        start, end = period_bounds(month, year)
        employees = await self._eligible_employees(tenant_id, start, end)

        if PayrollStateMachine.are_results_immutable(period.status):
            logger.info("Payroll %s is %s; nothing to generate", period.label, period.status)
            return BatchResult(
                payroll_period_id=period.payroll_period_id,
                status=period.status,
                skipped=[e.employee_code for e in employees],
            )

        if period.status == PayrollStatus.DRAFT:
            await self.transition_status(period, PayrollStatus.PROCESSING, actor_user_id)
            await self.session.commit()

        tenant = await self.session.get(Tenant, tenant_id)
        ctx = PeriodContext(
            payroll_period_id=period.payroll_period_id,
            tenant_id=tenant_id,
            month=month,
            year=year,
            period_start=start,
            period_end=end,
            default_state=tenant.state if tenant else None,
        )
        generator = PayslipGenerator(self.session, self.settings)
        result = await generator.generate(ctx, employees, period.status, cancel_event)

        await self.session.refresh(period)
        await self.recompute_totals(period)
        period.payslips_generated = await self._all_eligible_have_payslips(period, employees)
        await self._record_audit(period, "generated", actor_user_id, result.to_dict())
        await self.session.commit()

        result.status = period.status
        return result

    async def recompute_totals(self, period: PayrollPeriod) -> PayrollPeriod:
        """Set the period's aggregates to the sums over its non-voided payslips."""
        result = await self.session.execute(
            select(
                func.count(Payslip.payslip_id),
                func.coalesce(func.sum(Payslip.gross_salary), 0),
                func.coalesce(func.sum(Payslip.total_deductions), 0),
                func.coalesce(func.sum(Payslip.net_salary), 0),
                func.coalesce(func.sum(Payslip.total_employer_contributions), 0),
            ).where(
                Payslip.payroll_period_id == period.payroll_period_id,
                Payslip.is_voided.is_(False),
            )
        )
        count, gross, deductions, net, employer = result.one()
        period.employee_count = count
        period.total_gross = _money(gross)
        period.total_deductions = _money(deductions)
        period.total_net = _money(net)
        period.total_employer_contributions = _money(employer)
        return period

    # ===== Payslips =====

    async def distribute_payslips(
        self,
        payroll_period_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> int:
        """Flag every payslip of a finalized or paid period as distributed."""
        period = await self.get_period(payroll_period_id, tenant_id)
        if period.status not in PayrollStateMachine.REPORTABLE:
            raise InvalidTransitionError(
                period.status, period.status, "Payslips can only be distributed once finalized"
            )

        now = utcnow()
        payslips = await self.list_payslips(payroll_period_id, tenant_id)
        for payslip in payslips:
            if not payslip.is_distributed:
                payslip.is_distributed = True
                payslip.distributed_at = now
        period.payslips_distributed = True
        await self._record_audit(period, "payslips_distributed", actor_user_id, {"count": len(payslips)})
        return len(payslips)

    async def void_payslip(
        self,
        payslip_id: UUID,
        tenant_id: UUID,
        reason: str,
        actor_user_id: UUID | None = None,
    ) -> Payslip:
        """Void a payslip of a processing period and restore what it consumed."""
        result = await self.session.execute(
            select(Payslip).where(Payslip.payslip_id == payslip_id, Payslip.tenant_id == tenant_id)
        )
        payslip = result.scalar_one_or_none()
        if payslip is None:
            raise NotFoundError("Payslip", payslip_id)
        period = await self.get_period(payslip.payroll_period_id, tenant_id)

        if period.status != PayrollStatus.PROCESSING:
            raise ImmutableRecordError("Payslip", payslip_id, period.status)
        if payslip.is_voided:
            raise InvalidTransitionError("voided", "voided", "Payslip is already voided")
        if not reason:
            raise InvalidTransitionError("active", "voided", "Void requires a reason")

        payslip.is_voided = True
        payslip.void_reason = reason
        payslip.voided_by = actor_user_id
        payslip.voided_at = utcnow()
        await self._restore_consumed_inputs(payslip)
        await self.session.flush()

        await self.recompute_totals(period)
        period.payslips_generated = False
        await self._record_audit(
            period,
            "payslip_voided",
            actor_user_id,
            {"payslip_id": str(payslip_id), "employee_id": str(payslip.employee_id), "reason": reason},
        )
        return payslip

    async def _restore_consumed_inputs(self, payslip: Payslip) -> None:
        """Reverse the supplementary pay and loan recoveries a payslip consumed."""
        details = payslip.statutory_details or {}

        supplementary_ids = [UUID(i) for i in details.get("supplementary_pay_ids", [])]
        if supplementary_ids:
            items = await self.session.execute(
                select(SupplementaryPay).where(SupplementaryPay.supplementary_pay_id.in_(supplementary_ids))
            )
            for item in items.scalars().all():
                item.is_processed = False
                item.processed_period_id = None

        for recovery in details.get("loan_recoveries", []):
            amount = Decimal(recovery["amount"])
            if recovery.get("loan_emi_id"):
                emi = await self.session.get(LoanEMI, UUID(recovery["loan_emi_id"]))
                if emi is not None:
                    emi.paid_amount = max(emi.paid_amount - amount, ZERO)
                    emi.status = "partial" if emi.paid_amount > 0 else "pending"
                    emi.paid_on = None
                    emi.payslip_id = None
            loan = await self.session.get(Loan, UUID(recovery["loan_id"]))
            if loan is not None:
                loan.outstanding_amount = loan.outstanding_amount + amount
                if loan.status == "closed":
                    loan.status = "active"

    # ===== Helpers =====

    async def _eligible_employees(self, tenant_id: UUID, start: date, end: date) -> list[EmployeeProfile]:
        """Employees employed at any point of the period, as detached snapshots."""
        result = await self.session.execute(
            select(Employee)
            .where(
                Employee.tenant_id == tenant_id,
                Employee.status != "inactive",
                Employee.date_of_joining <= end,
                or_(Employee.exit_date.is_(None), Employee.exit_date >= start),
            )
            .order_by(Employee.employee_code)
        )
        return [
            EmployeeProfile(
                employee_id=e.employee_id,
                employee_code=e.employee_code,
                full_name=e.full_name,
                date_of_joining=e.date_of_joining,
                gender=e.gender,
                state=e.state,
                pf_contribution=e.pf_contribution,
            )
            for e in result.scalars().all()
        ]

    async def _all_eligible_have_payslips(
        self,
        period: PayrollPeriod,
        employees: list[EmployeeProfile] | None = None,
    ) -> bool:
        if employees is None:
            start, end = period_bounds(period.month, period.year)
            employees = await self._eligible_employees(period.tenant_id, start, end)
        if not employees:
            return False
        result = await self.session.execute(
            select(Payslip.employee_id).where(
                Payslip.payroll_period_id == period.payroll_period_id,
                Payslip.is_voided.is_(False),
            )
        )
        with_payslip = set(result.scalars().all())
        return all(e.employee_id in with_payslip for e in employees)

    @staticmethod
    def _ensure_mutable(period: PayrollPeriod) -> None:
        if PayrollStateMachine.are_results_immutable(period.status):
            raise ImmutableRecordError("PayrollPeriod", period.payroll_period_id, period.status)

    async def _record_audit(
        self,
        period: PayrollPeriod,
        action: str,
        actor_user_id: UUID | None = None,
        details: dict | None = None,
    ) -> None:
        """Record an audit event for a payroll action."""
        event = AuditEvent(
            tenant_id=period.tenant_id,
            actor_user_id=actor_user_id,
            entity_type="payroll_period",
            entity_id=period.payroll_period_id,
            action=action,
            after_json=details,
        )
        self.session.add(event)


def _money(value: Any) -> Decimal:
    return ComponentBuilder.round_money(Decimal(str(value)))
