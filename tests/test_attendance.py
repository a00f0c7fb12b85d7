"""Tests for attendance aggregation and locking."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from statutory_payroll.calculators.attendance import AttendanceAggregator, period_bounds
from statutory_payroll.errors import AttendanceLockedError, ImmutableRecordError, InvalidTransitionError
from statutory_payroll.models import AttendanceRecord
from statutory_payroll.services.payroll_service import PayrollService

from .conftest import mark_month

EMPLOYEE_ID = uuid4()


def _records(statuses: dict[int, str], year: int = 2025, month: int = 6) -> list[AttendanceRecord]:
    return [
        AttendanceRecord(
            attendance_id=uuid4(),
            employee_id=EMPLOYEE_ID,
            attendance_date=date(year, month, day),
            status=status,
        )
        for day, status in statuses.items()
    ]


class TestAttendanceAggregator:
    """Test day counting and pro-ration."""

    def test_period_bounds(self):
        assert period_bounds(2, 2024) == (date(2024, 2, 1), date(2024, 2, 29))
        assert period_bounds(5, 2025) == (date(2025, 5, 1), date(2025, 5, 31))

    def test_full_attendance(self):
        start, end = period_bounds(6, 2025)
        summary = AttendanceAggregator().summarize(
            _records({d: "present" for d in range(1, 31)}), start, end
        )

        assert summary.days_in_period == 30
        assert summary.present_days == 30
        assert summary.payable_days == Decimal("30")
        assert summary.pro_ration_factor == Decimal("1.000000")

    def test_half_days_and_absences(self):
        start, end = period_bounds(6, 2025)
        statuses = {d: "present" for d in range(1, 31)}
        statuses.update({3: "half-day", 4: "half-day", 10: "absent"})
        summary = AttendanceAggregator().summarize(_records(statuses), start, end)

        assert summary.half_days == 2
        assert summary.absent_days == 1
        assert summary.payable_days == Decimal("28")
        assert summary.denominator_days == 30

    def test_weekends_leave_denominator(self):
        start, end = period_bounds(6, 2025)
        statuses = {d: "present" for d in range(1, 31)}
        statuses.update({1: "weekend", 7: "weekend", 8: "weekend", 16: "holiday"})
        summary = AttendanceAggregator().summarize(_records(statuses), start, end)

        assert summary.denominator_days == 26
        assert summary.payable_days == Decimal("26")
        assert summary.pro_ration_factor == Decimal("1.000000")

    def test_paid_holidays_stay_payable(self):
        start, end = period_bounds(6, 2025)
        statuses = {d: "present" for d in range(1, 31)}
        statuses.update({1: "weekend", 16: "holiday", 20: "absent"})
        summary = AttendanceAggregator(pay_holidays=True).summarize(_records(statuses), start, end)

        assert summary.denominator_days == 30
        assert summary.payable_days == Decimal("29")

    def test_unmarked_days_are_unpaid(self):
        start, end = period_bounds(6, 2025)
        summary = AttendanceAggregator().summarize(
            _records({d: "present" for d in range(1, 16)}), start, end
        )

        assert summary.unmarked_days == 15
        assert summary.payable_days == Decimal("15")
        assert summary.pro_ration_factor == Decimal("0.500000")

    def test_unknown_status_is_reported(self):
        start, end = period_bounds(6, 2025)
        summary = AttendanceAggregator().summarize(
            _records({1: "present", 2: "on-duty"}), start, end
        )

        assert summary.present_days == 1
        assert len(summary.errors) == 1
        assert "on-duty" in summary.errors[0]

    def test_no_working_days(self):
        start, end = period_bounds(6, 2025)
        summary = AttendanceAggregator().summarize(
            _records({d: "holiday" for d in range(1, 31)}), start, end
        )

        assert summary.denominator_days == 0
        assert summary.payable_days == 0
        assert summary.pro_ration_factor == 0

    def test_records_outside_period_ignored(self):
        start, end = period_bounds(6, 2025)
        records = _records({1: "present"}) + _records({31: "present"}, month=5)
        summary = AttendanceAggregator().summarize(records, start, end)

        assert summary.present_days == 1


class TestAttendanceLocking:
    """Test the attendance lock gate on a payroll period."""

    async def test_lock_flags_records(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        service = PayrollService(session)
        period = await service.initiate_payroll(tenant_id, 5, 2025, actor_id)

        period = await service.lock_attendance(period.payroll_period_id, tenant_id, actor_id)
        await session.commit()

        assert period.attendance_locked is True
        with pytest.raises(AttendanceLockedError):
            await service.ensure_attendance_editable(
                tenant_id, may_attendance["E001"].employee_id, date(2025, 5, 10)
            )

        # Other months stay editable
        await service.ensure_attendance_editable(
            tenant_id, may_attendance["E001"].employee_id, date(2025, 6, 1)
        )

    async def test_unlock_while_draft(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        service = PayrollService(session)
        period = await service.initiate_payroll(tenant_id, 5, 2025, actor_id)
        await service.lock_attendance(period.payroll_period_id, tenant_id, actor_id)

        period = await service.unlock_attendance(period.payroll_period_id, tenant_id, actor_id)
        await session.commit()

        assert period.attendance_locked is False
        await service.ensure_attendance_editable(
            tenant_id, may_attendance["E001"].employee_id, date(2025, 5, 10)
        )

    async def test_unlock_rejected_after_generation(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        service = PayrollService(session)
        period = await service.initiate_payroll(tenant_id, 5, 2025, actor_id)
        await service.lock_attendance(period.payroll_period_id, tenant_id, actor_id)
        await session.commit()
        await service.generate_payroll(tenant_id, 5, 2025, actor_id)

        with pytest.raises(ImmutableRecordError):
            await service.unlock_attendance(period.payroll_period_id, tenant_id, actor_id)

    async def test_generation_requires_lock(self, session, employees, actor_id):
        tenant_id = employees["E001"].tenant_id
        start = date(2025, 5, 1)
        for offset in range(3):
            session.add(
                AttendanceRecord(
                    employee_id=employees["E001"].employee_id,
                    attendance_date=start + timedelta(days=offset),
                    status="present",
                )
            )
        await session.commit()

        with pytest.raises(InvalidTransitionError, match="Attendance must be locked"):
            await PayrollService(session).generate_payroll(tenant_id, 5, 2025, actor_id)

    async def test_lock_blocks_days_without_records(self, session, employees, actor_id):
        tenant_id = employees["E001"].tenant_id
        await mark_month(session, employees["E001"], 5, 2025)
        service = PayrollService(session)
        period = await service.initiate_payroll(tenant_id, 5, 2025, actor_id)
        await service.lock_attendance(period.payroll_period_id, tenant_id, actor_id)
        await session.commit()

        with pytest.raises(AttendanceLockedError):
            await service.ensure_attendance_editable(
                tenant_id, employees["E002"].employee_id, date(2025, 5, 3)
            )
