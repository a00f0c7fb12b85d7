"""Pytest fixtures for statutory payroll tests."""

from __future__ import annotations

import calendar
from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from statutory_payroll.calculators.rate_tables import MONTH_KEYS
from statutory_payroll.models import (
    AttendanceRecord,
    Base,
    Employee,
    IncomeTaxSlab,
    LabourWelfareFundSlab,
    ProfessionalTaxSlab,
    SalaryStructure,
    StatutoryConfig,
    Tenant,
)

# In-memory SQLite shared by every connection of the test engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def every_month(amount: int) -> dict[str, int]:
    return {key: amount for key in MONTH_KEYS}


async def mark_month(
    session: AsyncSession,
    employee: Employee,
    month: int,
    year: int,
    overrides: dict[int, str] | None = None,
) -> None:
    """Mark every day of a month present, with per-day status overrides."""
    days = calendar.monthrange(year, month)[1]
    for day in range(1, days + 1):
        session.add(
            AttendanceRecord(
                employee_id=employee.employee_id,
                attendance_date=date(year, month, day),
                status=(overrides or {}).get(day, "present"),
            )
        )
    await session.flush()


@pytest_asyncio.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test.

    Generation commits per employee, so tests get a plain session rather
    than one wrapped in an outer transaction.
    """
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def tenant(session: AsyncSession) -> Tenant:
    """Create a Maharashtra tenant."""
    tenant = Tenant(
        tenant_id=uuid4(),
        name="Acme Industries Pvt Ltd",
        status="active",
        state="MH",
        pf_establishment_code="MHBAN0012345000",
    )
    session.add(tenant)
    await session.flush()
    return tenant


@pytest_asyncio.fixture
async def statutory_setup(session: AsyncSession, tenant: Tenant) -> Tenant:
    """Enable PF, ESI, PT, LWF and TDS with FY 2024 slabs onwards."""
    effective = date(2024, 4, 1)
    session.add_all(
        [
            StatutoryConfig(
                tenant_id=tenant.tenant_id,
                statutory_type="PF",
                effective_from=effective,
                configuration={"employee_rate": 12, "employer_rate": 12, "wage_limit": 15000},
            ),
            StatutoryConfig(
                tenant_id=tenant.tenant_id,
                statutory_type="ESI",
                effective_from=effective,
                configuration={"wage_ceiling": 21000},
            ),
            StatutoryConfig(
                tenant_id=tenant.tenant_id,
                statutory_type="PT",
                state="MH",
                effective_from=effective,
            ),
            StatutoryConfig(
                tenant_id=tenant.tenant_id,
                statutory_type="LWF",
                state="MH",
                effective_from=effective,
            ),
            StatutoryConfig(
                tenant_id=tenant.tenant_id,
                statutory_type="TDS",
                effective_from=effective,
                tax_regime="new",
            ),
        ]
    )

    top = {**every_month(200), "feb": 300}
    for person_type, low, high, amounts in (
        ("male", "0", "7500", every_month(0)),
        ("male", "7500.01", "10000", every_month(175)),
        ("male", "10000.01", None, top),
        ("female", "0", "25000", every_month(0)),
        ("female", "25000.01", None, top),
        ("all", "0", "10000", every_month(0)),
        ("all", "10000.01", None, top),
    ):
        session.add(
            ProfessionalTaxSlab(
                tenant_id=tenant.tenant_id,
                state="MH",
                person_type=person_type,
                min_amount=Decimal(low),
                max_amount=Decimal(high) if high else None,
                monthly_amounts=amounts,
                start_fy=2024,
            )
        )

    session.add(
        LabourWelfareFundSlab(
            tenant_id=tenant.tenant_id,
            state="MH",
            employee_monthly_amounts={"jun": 25, "dec": 25},
            employer_monthly_amounts={"jun": 75, "dec": 75},
            start_fy=2024,
        )
    )

    for serial, (lower, upper, percent) in enumerate(
        [
            (0, 300000, 0),
            (300000, 700000, 5),
            (700000, 1000000, 10),
            (1000000, 1200000, 15),
            (1200000, 1500000, 20),
            (1500000, None, 30),
        ],
        start=1,
    ):
        session.add(
            IncomeTaxSlab(
                tenant_id=tenant.tenant_id,
                tax_regime="new",
                serial_number=serial,
                lower_limit=Decimal(lower),
                upper_limit=Decimal(upper) if upper is not None else None,
                tax_percent=Decimal(percent),
                start_fy=2024,
            )
        )

    await session.flush()
    return tenant


@pytest_asyncio.fixture
async def employees(session: AsyncSession, statutory_setup: Tenant) -> dict[str, Employee]:
    """E001 and E002 with salary structures, E003 without one."""
    tenant_id = statutory_setup.tenant_id
    e001 = Employee(
        tenant_id=tenant_id,
        employee_code="E001",
        first_name="Arjun",
        last_name="Mehta",
        gender="male",
        state="MH",
        date_of_joining=date(2021, 6, 1),
        uan="100200300400",
        pan="ABCPM1234K",
        bank_name="HDFC Bank",
        bank_account_number="50100012345678",
        bank_ifsc="HDFC0000123",
    )
    e002 = Employee(
        tenant_id=tenant_id,
        employee_code="E002",
        first_name="Priya",
        last_name="Nair",
        gender="female",
        state="MH",
        date_of_joining=date(2023, 1, 16),
        uan="100200300500",
        esi_number="3100123456",
    )
    e003 = Employee(
        tenant_id=tenant_id,
        employee_code="E003",
        first_name="Rahul",
        last_name="Verma",
        gender="male",
        state="MH",
        date_of_joining=date(2024, 11, 1),
    )
    session.add_all([e001, e002, e003])
    await session.flush()

    session.add_all(
        [
            SalaryStructure(
                employee_id=e001.employee_id,
                effective_date=date(2024, 4, 1),
                basic=Decimal("20000"),
                hra=Decimal("8000"),
                special_allowance=Decimal("2000"),
            ),
            SalaryStructure(
                employee_id=e002.employee_id,
                effective_date=date(2024, 4, 1),
                basic=Decimal("10000"),
                hra=Decimal("4000"),
                special_allowance=Decimal("2000"),
            ),
        ]
    )
    await session.flush()
    return {"E001": e001, "E002": e002, "E003": e003}


@pytest_asyncio.fixture
async def may_attendance(session: AsyncSession, employees: dict[str, Employee]) -> dict[str, Employee]:
    """Full attendance for May 2025 for every employee."""
    for employee in employees.values():
        await mark_month(session, employee, 5, 2025)
    await session.commit()
    return employees


@pytest.fixture
def actor_id():
    return uuid4()
