"""Exception hierarchy for the payroll core.

Three families matter to callers:

- ConfigurationError: missing salary structure or statutory slab. Batch runs
  skip the affected employee and continue.
- StateError: an operation is not allowed in the record's current state.
  Always rejected synchronously, nothing is mutated.
- DataError: a malformed stored record. Skipped per record and reported.
"""

from __future__ import annotations

from uuid import UUID


class PayrollError(Exception):
    """Base class for all payroll core errors."""


class NotFoundError(PayrollError):
    """Raised when an entity does not exist (or is outside the tenant)."""

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


# ===== Configuration errors =====


class ConfigurationError(PayrollError):
    """Raised when required payroll configuration is missing."""


class SalaryStructureNotFoundError(ConfigurationError):
    """Raised when an employee has no active salary structure."""

    def __init__(self, employee_code: str, as_of: object):
        self.employee_code = employee_code
        self.as_of = as_of
        super().__init__(f"no salary structure for emp {employee_code} as of {as_of}")


class SlabNotFoundError(ConfigurationError):
    """Raised when a statutory slab table is enabled but empty for a jurisdiction/year."""

    def __init__(self, statutory_type: str, state: str | None, financial_year: str):
        self.statutory_type = statutory_type
        self.state = state
        self.financial_year = financial_year
        where = f" in state {state}" if state else ""
        super().__init__(
            f"No {statutory_type} slabs configured{where} for financial year {financial_year}"
        )


# ===== State errors =====


class StateError(PayrollError):
    """Raised when an operation is not permitted in the current state."""


class InvalidTransitionError(StateError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ImmutableRecordError(StateError):
    """Raised when mutating a record whose status forbids changes."""

    def __init__(self, entity_type: str, entity_id: UUID, status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        super().__init__(f"{entity_type} {entity_id} is '{status}' and cannot be modified")


class AttendanceLockedError(StateError):
    """Raised when attendance is edited while its payroll period is locked."""


class ReportNotAvailableError(StateError):
    """Raised when reporting on a period that is not finalized."""

    def __init__(self, month: int, year: int, status: str | None = None):
        self.month = month
        self.year = year
        self.status = status
        msg = f"No finalized payroll found for {month}/{year}"
        if status:
            msg += f" (current status: {status})"
        super().__init__(msg)


# ===== Data errors =====


class DataError(PayrollError):
    """Raised for malformed stored records."""


class MalformedRecordError(DataError):
    """Raised when a stored row cannot be interpreted."""

    def __init__(self, record_type: str, record_id: UUID | str, detail: str):
        self.record_type = record_type
        self.record_id = record_id
        self.detail = detail
        super().__init__(f"Malformed {record_type} {record_id}: {detail}")
