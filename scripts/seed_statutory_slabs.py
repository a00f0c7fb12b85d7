"""Seed script for a tenant's statutory configuration and slab tables.

Run with:
    python scripts/seed_statutory_slabs.py <tenant_id> [financial_year]

This creates PF, ESI, PT, LWF and TDS configuration rows plus the
Maharashtra professional tax and labour welfare slabs and both income
tax regimes, starting from the given financial year (default 2024).
"""

from __future__ import annotations

import asyncio
import sys
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.rate_tables import MONTH_KEYS
from statutory_payroll.database import get_session
from statutory_payroll.models import (
    IncomeTaxSlab,
    LabourWelfareFundSlab,
    ProfessionalTaxSlab,
    StatutoryConfig,
    Tenant,
)

STATE = "MH"


def _every_month(amount: int) -> dict[str, int]:
    return {key: amount for key in MONTH_KEYS}


async def seed_configs(session: AsyncSession, tenant_id: UUID, fy: int) -> None:
    """Create one configuration row per statutory type."""
    effective_from = date(fy, 4, 1)
    rows = [
        ("PF", "ALL", {"employee_rate": 12, "employer_rate": 12, "wage_limit": 15000, "cap_wages": True}),
        ("ESI", "ALL", {"employee_rate": 0.75, "employer_rate": 3.25, "wage_ceiling": 21000}),
        ("PT", STATE, {}),
        ("LWF", STATE, {}),
        ("TDS", "ALL", {"standard_deduction": 75000, "cess_rate": 4}),
    ]
    for statutory_type, state, configuration in rows:
        result = await session.execute(
            select(StatutoryConfig).where(
                StatutoryConfig.tenant_id == tenant_id,
                StatutoryConfig.statutory_type == statutory_type,
                StatutoryConfig.state == state,
                StatutoryConfig.effective_from == effective_from,
            )
        )
        if result.scalar_one_or_none():
            print(f"{statutory_type} configuration already exists, skipping...")
            continue

        session.add(
            StatutoryConfig(
                tenant_id=tenant_id,
                statutory_type=statutory_type,
                state=state,
                is_enabled=True,
                effective_from=effective_from,
                configuration=configuration,
                tax_regime="new" if statutory_type == "TDS" else None,
            )
        )
        print(f"Created {statutory_type} configuration ({state})")

    await session.flush()


async def seed_professional_tax(session: AsyncSession, tenant_id: UUID, fy: int) -> None:
    """Maharashtra professional tax: 200 a month above 10,000 with 300 in February."""
    result = await session.execute(
        select(ProfessionalTaxSlab).where(
            ProfessionalTaxSlab.tenant_id == tenant_id,
            ProfessionalTaxSlab.state == STATE,
            ProfessionalTaxSlab.start_fy == fy,
        )
    )
    if result.scalars().first():
        print("Professional tax slabs already exist, skipping...")
        return

    top_slab = {**_every_month(200), "feb": 300}
    slabs = [
        ("male", Decimal("0"), Decimal("7500"), _every_month(0)),
        ("male", Decimal("7500.01"), Decimal("10000"), _every_month(175)),
        ("male", Decimal("10000.01"), None, top_slab),
        ("female", Decimal("0"), Decimal("25000"), _every_month(0)),
        ("female", Decimal("25000.01"), None, top_slab),
        ("all", Decimal("0"), Decimal("7500"), _every_month(0)),
        ("all", Decimal("7500.01"), Decimal("10000"), _every_month(175)),
        ("all", Decimal("10000.01"), None, top_slab),
    ]
    for person_type, min_amount, max_amount, amounts in slabs:
        session.add(
            ProfessionalTaxSlab(
                tenant_id=tenant_id,
                state=STATE,
                person_type=person_type,
                min_amount=min_amount,
                max_amount=max_amount,
                monthly_amounts=amounts,
                start_fy=fy,
            )
        )
    print(f"Created {len(slabs)} professional tax slabs for {STATE}")
    await session.flush()


async def seed_labour_welfare(session: AsyncSession, tenant_id: UUID, fy: int) -> None:
    """Maharashtra LWF, deducted in June and December."""
    result = await session.execute(
        select(LabourWelfareFundSlab).where(
            LabourWelfareFundSlab.tenant_id == tenant_id,
            LabourWelfareFundSlab.state == STATE,
            LabourWelfareFundSlab.start_fy == fy,
        )
    )
    if result.scalar_one_or_none():
        print("Labour welfare slab already exists, skipping...")
        return

    session.add(
        LabourWelfareFundSlab(
            tenant_id=tenant_id,
            state=STATE,
            employee_monthly_amounts={**_every_month(0), "jun": 25, "dec": 25},
            employer_monthly_amounts={**_every_month(0), "jun": 75, "dec": 75},
            start_fy=fy,
        )
    )
    print(f"Created labour welfare slab for {STATE}")
    await session.flush()


async def seed_income_tax(session: AsyncSession, tenant_id: UUID, fy: int) -> None:
    """Old and new regime income tax slabs."""
    regimes = {
        "old": [
            (0, 250000, 0),
            (250000, 500000, 5),
            (500000, 1000000, 20),
            (1000000, None, 30),
        ],
        "new": [
            (0, 300000, 0),
            (300000, 700000, 5),
            (700000, 1000000, 10),
            (1000000, 1200000, 15),
            (1200000, 1500000, 20),
            (1500000, None, 30),
        ],
    }
    for regime, brackets in regimes.items():
        result = await session.execute(
            select(IncomeTaxSlab).where(
                IncomeTaxSlab.tenant_id == tenant_id,
                IncomeTaxSlab.tax_regime == regime,
                IncomeTaxSlab.start_fy == fy,
            )
        )
        if result.scalars().first():
            print(f"Income tax slabs ({regime} regime) already exist, skipping...")
            continue

        for serial, (lower, upper, percent) in enumerate(brackets, start=1):
            session.add(
                IncomeTaxSlab(
                    tenant_id=tenant_id,
                    tax_regime=regime,
                    serial_number=serial,
                    lower_limit=Decimal(lower),
                    upper_limit=None if upper is None else Decimal(upper),
                    tax_percent=Decimal(percent),
                    start_fy=fy,
                )
            )
        print(f"Created {len(brackets)} income tax slabs ({regime} regime)")

    await session.flush()


async def main() -> None:
    """Run all seed functions."""
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    tenant_id = UUID(sys.argv[1])
    fy = int(sys.argv[2]) if len(sys.argv) > 2 else 2024

    print("Seeding statutory slabs...")

    async with get_session() as session:
        tenant = await session.get(Tenant, tenant_id)
        if tenant is None:
            print(f"Tenant {tenant_id} not found")
            sys.exit(1)

        await seed_configs(session, tenant_id, fy)
        await seed_professional_tax(session, tenant_id, fy)
        await seed_labour_welfare(session, tenant_id, fy)
        await seed_income_tax(session, tenant_id, fy)

    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
