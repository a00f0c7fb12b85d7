"""Attendance locking for payroll periods."""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.attendance import period_bounds
from statutory_payroll.errors import AttendanceLockedError
from statutory_payroll.models import AttendanceRecord, Employee, PayrollPeriod

logger = logging.getLogger(__name__)


class AttendanceLockService:
    """Locks and unlocks a period's attendance records.

    While a period's attendance is locked:
    1. Every attendance row of the tenant inside the period is flagged is_locked
    2. Edits to those days are rejected with AttendanceLockedError

    This prevents silent drift between the attendance the payslips were
    computed from and what is stored.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock(self, period: PayrollPeriod) -> int:
        """Lock attendance for a period. Returns count of locked records."""
        start, end = period_bounds(period.month, period.year)
        result = await self.session.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id.in_(self._tenant_employees(period.tenant_id)),
                AttendanceRecord.attendance_date >= start,
                AttendanceRecord.attendance_date <= end,
                AttendanceRecord.is_locked.is_(False),
            )
            .values(is_locked=True)
            .execution_options(synchronize_session=False)
        )
        period.attendance_locked = True
        locked = result.rowcount or 0
        logger.info("Locked %d attendance records for period %s", locked, period.label)
        return locked

    async def unlock(self, period: PayrollPeriod) -> int:
        """Unlock attendance for a period. Returns count of unlocked records."""
        start, end = period_bounds(period.month, period.year)
        result = await self.session.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id.in_(self._tenant_employees(period.tenant_id)),
                AttendanceRecord.attendance_date >= start,
                AttendanceRecord.attendance_date <= end,
                AttendanceRecord.is_locked.is_(True),
            )
            .values(is_locked=False)
            .execution_options(synchronize_session=False)
        )
        period.attendance_locked = False
        unlocked = result.rowcount or 0
        logger.info("Unlocked %d attendance records for period %s", unlocked, period.label)
        return unlocked

    async def ensure_editable(self, tenant_id: UUID, employee_id: UUID, attendance_date: date) -> None:
        """Raise AttendanceLockedError if the day falls in a locked period."""
        result = await self.session.execute(
            select(PayrollPeriod.month, PayrollPeriod.year).where(
                PayrollPeriod.tenant_id == tenant_id,
                PayrollPeriod.month == attendance_date.month,
                PayrollPeriod.year == attendance_date.year,
                PayrollPeriod.attendance_locked.is_(True),
            )
        )
        row = result.first()
        if row is not None:
            raise AttendanceLockedError(
                f"Attendance for {row.month}/{row.year} is locked; "
                f"cannot edit {attendance_date.isoformat()} for employee {employee_id}"
            )

        record = await self.session.execute(
            select(AttendanceRecord.is_locked).where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.attendance_date == attendance_date,
            )
        )
        if record.scalar_one_or_none():
            raise AttendanceLockedError(
                f"Attendance record {attendance_date.isoformat()} for employee {employee_id} is locked"
            )

    @staticmethod
    def _tenant_employees(tenant_id: UUID):
        return select(Employee.employee_id).where(Employee.tenant_id == tenant_id)
