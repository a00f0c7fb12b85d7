"""API routes."""

from statutory_payroll.api.routes.gratuity import router as gratuity_router
from statutory_payroll.api.routes.health import router as health_router
from statutory_payroll.api.routes.payrolls import router as payrolls_router
from statutory_payroll.api.routes.reports import router as reports_router
from statutory_payroll.api.routes.settlements import router as settlements_router

__all__ = [
    "gratuity_router",
    "health_router",
    "payrolls_router",
    "reports_router",
    "settlements_router",
]
