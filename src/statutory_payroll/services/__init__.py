"""Payroll lifecycle, settlement and reporting services."""

from statutory_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollStateMachine,
    PayrollStatus,
    SettlementStateMachine,
    SettlementStatus,
)

__all__ = [
    "InvalidTransitionError",
    "PayrollStateMachine",
    "PayrollStatus",
    "SettlementStateMachine",
    "SettlementStatus",
]
