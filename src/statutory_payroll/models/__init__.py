"""ORM models."""

from statutory_payroll.models.base import Base, TimestampMixin
from statutory_payroll.models.company import Tenant
from statutory_payroll.models.employee import (
    AttendanceRecord,
    Employee,
    ITDeclaration,
    LeaveBalance,
    LeaveRequest,
    LeaveType,
    SalaryStructure,
)
from statutory_payroll.models.payroll import (
    AuditEvent,
    Loan,
    LoanEMI,
    PayrollPeriod,
    PayrollPreCheck,
    Payslip,
    Reimbursement,
    SupplementaryPay,
)
from statutory_payroll.models.settlement import FullAndFinalSettlement
from statutory_payroll.models.statutory import (
    ALL_STATES,
    IncomeTaxSlab,
    LabourWelfareFundSlab,
    ProfessionalTaxSlab,
    StatutoryConfig,
)

__all__ = [
    "ALL_STATES",
    "AttendanceRecord",
    "AuditEvent",
    "Base",
    "Employee",
    "FullAndFinalSettlement",
    "ITDeclaration",
    "IncomeTaxSlab",
    "LabourWelfareFundSlab",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveType",
    "Loan",
    "LoanEMI",
    "PayrollPeriod",
    "PayrollPreCheck",
    "Payslip",
    "Reimbursement",
    "SalaryStructure",
    "StatutoryConfig",
    "SupplementaryPay",
    "Tenant",
    "TimestampMixin",
]
