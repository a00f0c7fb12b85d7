"""Tests for payroll period and settlement state machines."""

from types import SimpleNamespace

import pytest

from statutory_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollStateMachine,
    PayrollStatus,
    SettlementStateMachine,
    SettlementStatus,
)


def _period(status="processing", **overrides):
    values = dict(
        status=status,
        frozen_from_status=None,
        attendance_locked=True,
        payslips_generated=True,
        pre_check_completed=True,
        employee_count=3,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestPayrollStateMachine:
    """Test payroll period transitions."""

    def test_valid_transitions(self):
        # draft → processing
        assert PayrollStateMachine.can_transition("draft", "processing") is True

        # processing → finalized
        assert PayrollStateMachine.can_transition("processing", "finalized") is True

        # finalized → paid
        assert PayrollStateMachine.can_transition("finalized", "paid") is True

        # any state → locked
        for status in ("draft", "processing", "finalized", "paid"):
            assert PayrollStateMachine.can_transition(status, "locked") is True

    def test_invalid_transitions(self):
        # Can't skip processing
        assert PayrollStateMachine.can_transition("draft", "finalized") is False

        # Can't go backwards
        assert PayrollStateMachine.can_transition("processing", "draft") is False
        assert PayrollStateMachine.can_transition("finalized", "processing") is False
        assert PayrollStateMachine.can_transition("paid", "finalized") is False

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.validate_transition("draft", "paid")

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == "paid"

    def test_generation_and_immutability(self):
        assert PayrollStateMachine.can_generate(PayrollStatus.DRAFT) is True
        assert PayrollStateMachine.can_generate(PayrollStatus.PROCESSING) is True
        assert PayrollStateMachine.can_generate(PayrollStatus.FINALIZED) is False
        assert PayrollStateMachine.can_generate(PayrollStatus.LOCKED) is False

        assert PayrollStateMachine.are_results_immutable("finalized") is True
        assert PayrollStateMachine.are_results_immutable("paid") is True
        assert PayrollStateMachine.are_results_immutable("processing") is False

    def test_processing_requires_attendance_lock(self):
        errors = PayrollStateMachine.validate_period_for_transition(
            _period("draft", attendance_locked=False), "processing"
        )
        assert errors == ["Attendance must be locked before generating payslips"]

    def test_finalize_gates(self):
        period = _period(payslips_generated=False, pre_check_completed=False)
        errors = PayrollStateMachine.validate_period_for_transition(period, "finalized")

        assert "Not every eligible employee has a payslip" in errors
        assert "Pre-checks have unresolved items" in errors

        # Override skips the payslip and pre-check gates
        assert PayrollStateMachine.validate_period_for_transition(
            period, "finalized", override_pre_check=True
        ) == []

    def test_finalize_never_without_payslips(self):
        period = _period(employee_count=0)
        errors = PayrollStateMachine.validate_period_for_transition(
            period, "finalized", override_pre_check=True
        )
        assert errors == ["Payroll has no payslips"]

    def test_unfreeze_returns_to_prior_status(self):
        frozen = _period("locked", frozen_from_status="finalized")

        assert PayrollStateMachine.validate_period_for_transition(frozen, "finalized") == []
        errors = PayrollStateMachine.validate_period_for_transition(frozen, "draft")
        assert errors == ["A frozen period can only return to 'finalized'"]

    def test_reportable(self):
        assert PayrollStateMachine.is_reportable(_period("finalized")) is True
        assert PayrollStateMachine.is_reportable(_period("paid")) is True
        assert PayrollStateMachine.is_reportable(_period("processing")) is False
        assert PayrollStateMachine.is_reportable(_period("locked", frozen_from_status="paid")) is True
        assert PayrollStateMachine.is_reportable(_period("locked", frozen_from_status="draft")) is False


class TestSettlementStateMachine:
    """Test settlement transitions."""

    def test_happy_path(self):
        assert SettlementStateMachine.can_transition("draft", "pending") is True
        assert SettlementStateMachine.can_transition("pending", "approved") is True
        assert SettlementStateMachine.can_transition("approved", "paid") is True
        assert SettlementStateMachine.can_transition("draft", "approved") is True

    def test_terminal_states(self):
        for terminal in (SettlementStatus.PAID, SettlementStatus.CANCELLED):
            settlement = SimpleNamespace(status=terminal.value)
            with pytest.raises(InvalidTransitionError, match=f"settlement is {terminal.value}"):
                SettlementStateMachine.validate_transition(settlement, SettlementStatus.CANCELLED)

    def test_cannot_pay_unapproved(self):
        with pytest.raises(InvalidTransitionError):
            SettlementStateMachine.validate_transition(SimpleNamespace(status="pending"), "paid")

    def test_editable_states(self):
        assert SettlementStateMachine.can_edit("draft") is True
        assert SettlementStateMachine.can_edit("pending") is True
        assert SettlementStateMachine.can_edit("approved") is False
        assert SettlementStateMachine.can_edit("paid") is False
