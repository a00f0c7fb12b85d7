"""Attendance aggregation and pro-ration."""

from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.types import AttendanceSummary
from statutory_payroll.models import AttendanceRecord

logger = logging.getLogger(__name__)

PRESENT = "present"
ABSENT = "absent"
HALF_DAY = "half-day"
HOLIDAY = "holiday"
WEEKEND = "weekend"
ATTENDANCE_STATUSES = (PRESENT, ABSENT, HALF_DAY, HOLIDAY, WEEKEND)


def period_bounds(month: int, year: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


class AttendanceAggregator:
    """Derives day counts and the pro-ration ratio for a period.

    Policy:
    - half-days count 0.5 toward worked days
    - holidays and weekends leave the denominator unless pay_holidays is
      set, in which case they are payable and stay in both numerator and
      denominator
    - days without a record count as unpaid
    - records with an unknown status are skipped and reported
    """

    def __init__(self, session: AsyncSession | None = None, pay_holidays: bool = False):
        self.session = session
        self.pay_holidays = pay_holidays

    async def aggregate(self, employee_id: UUID, start: date, end: date) -> AttendanceSummary:
        """Load the employee's records for the period and summarize them."""
        result = await self.session.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.attendance_date >= start,
                AttendanceRecord.attendance_date <= end,
            )
            .order_by(AttendanceRecord.attendance_date)
        )
        return self.summarize(result.scalars().all(), start, end)

    def summarize(
        self,
        records: Iterable[AttendanceRecord],
        start: date,
        end: date,
    ) -> AttendanceSummary:
        """Summarize already-loaded attendance records."""
        summary = AttendanceSummary(days_in_period=(end - start).days + 1)
        counts = dict.fromkeys(ATTENDANCE_STATUSES, 0)
        seen: set[date] = set()

        for record in records:
            if record.attendance_date < start or record.attendance_date > end:
                continue
            if record.attendance_date in seen:
                message = f"Duplicate attendance for employee {record.employee_id} on {record.attendance_date}"
                logger.warning(message)
                summary.errors.append(message)
                continue
            status = (record.status or "").strip().lower()
            if status not in counts:
                message = (
                    f"Skipping attendance {record.attendance_id} for employee {record.employee_id} "
                    f"on {record.attendance_date}: unknown status {record.status!r}"
                )
                logger.warning(message)
                summary.errors.append(message)
                continue
            seen.add(record.attendance_date)
            counts[status] += 1

        summary.present_days = counts[PRESENT]
        summary.half_days = counts[HALF_DAY]
        summary.absent_days = counts[ABSENT]
        summary.holiday_days = counts[HOLIDAY]
        summary.weekend_days = counts[WEEKEND]
        summary.unmarked_days = summary.days_in_period - len(seen)

        non_working = summary.holiday_days + summary.weekend_days
        if self.pay_holidays:
            summary.payable_days = summary.working_days + Decimal(non_working)
            summary.denominator_days = summary.days_in_period
        else:
            summary.payable_days = summary.working_days
            summary.denominator_days = summary.days_in_period - non_working

        if summary.denominator_days <= 0:
            summary.payable_days = Decimal("0")
            summary.denominator_days = 0
        return summary
