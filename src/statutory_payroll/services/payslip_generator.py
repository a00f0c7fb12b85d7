"""Batch payslip generation with per-employee failure isolation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.engine import PayslipCalculator
from statutory_payroll.calculators.types import EmployeeProfile, PeriodContext
from statutory_payroll.config import Settings, get_settings
from statutory_payroll.errors import ConfigurationError, DataError
from statutory_payroll.models import Payslip
from statutory_payroll.services.commit_service import PayslipCommitService

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of a payroll generation run.

    skipped holds employees without a new payslip: those that already had
    one and those that failed (each failure also has an entry in errors).
    """

    payroll_period_id: UUID
    status: str
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "payroll_period_id": str(self.payroll_period_id),
            "status": self.status,
            "created_count": self.created_count,
            "skipped_count": self.skipped_count,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "cancelled": self.cancelled,
        }


class PayslipGenerator:
    """Generates payslips one employee at a time.

    Each employee is its own transaction: compute, insert, commit. A
    configuration or data error skips the employee, any other failure
    rolls back only that employee, and the batch always continues.
    Employees that already have a payslip are skipped, which makes an
    interrupted run resumable.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.calculator = PayslipCalculator(session, self.settings)
        self.commit_service = PayslipCommitService(session)

    async def generate(
        self,
        ctx: PeriodContext,
        employees: list[EmployeeProfile],
        status: str,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Generate payslips for employees in deterministic employee-code order."""
        result = BatchResult(payroll_period_id=ctx.payroll_period_id, status=status)
        existing = await self._employees_with_payslips(ctx.payroll_period_id)

        logger.info(
            "Generating payroll %s/%s for tenant %s: %d employees, %d already processed",
            ctx.month,
            ctx.year,
            ctx.tenant_id,
            len(employees),
            len(existing),
        )

        for employee in sorted(employees, key=lambda e: e.employee_code):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.info("Payroll %s/%s cancelled before emp %s", ctx.month, ctx.year, employee.employee_code)
                break

            if employee.employee_id in existing:
                result.skipped.append(employee.employee_code)
                continue

            await self._process_employee(ctx, employee, result)

        logger.info(
            "Payroll %s/%s for tenant %s: created=%d skipped=%d errors=%d",
            ctx.month,
            ctx.year,
            ctx.tenant_id,
            result.created_count,
            result.skipped_count,
            len(result.errors),
        )
        return result

    async def _process_employee(
        self,
        ctx: PeriodContext,
        employee: EmployeeProfile,
        result: BatchResult,
    ) -> None:
        try:
            calculation = await self.calculator.calculate(ctx, employee)
        except (ConfigurationError, DataError) as exc:
            logger.warning("Skipping emp %s: %s", employee.employee_code, exc)
            result.errors.append(str(exc))
            result.skipped.append(employee.employee_code)
            return
        except Exception as exc:
            logger.exception("Failed to calculate payslip for emp %s", employee.employee_code)
            await self._abandon(
                employee, result, f"Failed to calculate payslip for emp {employee.employee_code}: {exc}"
            )
            return
        finally:
            result.errors.extend(self.calculator.rates.drain_errors())

        result.errors.extend(calculation.attendance.errors)
        result.warnings.extend(calculation.warnings)

        try:
            payslip_id = await self.commit_service.commit_payslip(ctx, calculation)
            await self.session.commit()
        except Exception as exc:
            logger.exception("Failed to persist payslip for emp %s", employee.employee_code)
            await self._abandon(
                employee, result, f"Failed to persist payslip for emp {employee.employee_code}: {exc}"
            )
            return

        if payslip_id is None:
            result.skipped.append(employee.employee_code)
        else:
            result.created.append(employee.employee_code)

    async def _abandon(self, employee: EmployeeProfile, result: BatchResult, message: str) -> None:
        """Roll back one employee's work and record it as skipped."""
        await self.session.rollback()
        result.errors.extend(self.calculator.rates.drain_errors())
        # Rollback expires every loaded row, including cached rate configuration
        self.calculator = PayslipCalculator(self.session, self.settings)
        result.errors.append(message)
        result.skipped.append(employee.employee_code)

    async def _employees_with_payslips(self, payroll_period_id: UUID) -> set[UUID]:
        rows = await self.session.execute(
            select(Payslip.employee_id).where(
                Payslip.payroll_period_id == payroll_period_id,
                Payslip.is_voided.is_(False),
            )
        )
        return set(rows.scalars().all())
