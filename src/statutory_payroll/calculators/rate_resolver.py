"""Statutory configuration and slab resolution by tenant, state and year."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.rate_tables import (
    MONTH_KEYS,
    ESIConfig,
    PFConfig,
    TDSConfig,
    financial_year_label,
)
from statutory_payroll.calculators.types import LabourWelfareRow, ProfessionalTaxRow, TaxSlabRow
from statutory_payroll.errors import MalformedRecordError, SlabNotFoundError
from statutory_payroll.models import (
    ALL_STATES,
    IncomeTaxSlab,
    LabourWelfareFundSlab,
    ProfessionalTaxSlab,
    StatutoryConfig,
)

logger = logging.getLogger(__name__)


def _parse_monthly_amounts(raw: Any, record_type: str, record_id: UUID) -> dict[str, Decimal]:
    """Validate an Apr..Mar amount table."""
    if not isinstance(raw, dict):
        raise MalformedRecordError(record_type, record_id, "monthly amounts must be an object")
    amounts: dict[str, Decimal] = {}
    for key, value in raw.items():
        if key not in MONTH_KEYS:
            raise MalformedRecordError(record_type, record_id, f"unknown month key '{key}'")
        try:
            amount = Decimal(str(value))
        except InvalidOperation as exc:
            raise MalformedRecordError(
                record_type, record_id, f"amount for '{key}' is not a number: {value!r}"
            ) from exc
        if not amount.is_finite() or amount < 0:
            raise MalformedRecordError(record_type, record_id, f"amount for '{key}' is invalid")
        amounts[key] = amount
    return amounts


def _parse_config(config: StatutoryConfig, parse: Callable[..., Any], *args: Any) -> Any:
    """Build a rate dataclass from a configuration row, reporting bad values as malformed."""
    try:
        return parse(config.configuration, *args)
    except ValueError as exc:
        raise MalformedRecordError(
            f"{config.statutory_type} configuration", config.statutory_config_id, str(exc)
        ) from exc


class StatutoryRateResolver:
    """Resolves statutory configuration and slab tables.

    Resolution rules:
    - Configuration: latest enabled-or-disabled row with effective_from on or
      before the as-of date; a state-specific row wins over the 'ALL' row
    - Slabs: rows whose [start_fy, end_fy] range covers the financial year
    - An enabled deduction with no slab rows is a configuration error
    - Malformed slab rows are skipped and reported through data_errors

    Lookups are read-only and cached for the lifetime of the resolver, so
    one resolver serves a whole batch.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.data_errors: list[str] = []
        self._config_cache: dict[tuple[UUID, str, str, date], StatutoryConfig | None] = {}
        self._pt_cache: dict[tuple[UUID, str, int], list[ProfessionalTaxRow]] = {}
        self._lwf_cache: dict[tuple[UUID, str, int], LabourWelfareRow | None] = {}
        self._it_cache: dict[tuple[UUID, str, int], list[TaxSlabRow]] = {}

    def drain_errors(self) -> list[str]:
        """Return and clear collected data errors."""
        errors, self.data_errors = self.data_errors, []
        return errors

    async def get_config(
        self,
        tenant_id: UUID,
        statutory_type: str,
        as_of: date,
        state: str | None = None,
    ) -> StatutoryConfig | None:
        """Most recent configuration effective on as_of."""
        key = (tenant_id, statutory_type, state or ALL_STATES, as_of)
        if key in self._config_cache:
            return self._config_cache[key]

        states = [ALL_STATES] if not state else [state, ALL_STATES]
        result = await self.session.execute(
            select(StatutoryConfig)
            .where(
                StatutoryConfig.tenant_id == tenant_id,
                StatutoryConfig.statutory_type == statutory_type,
                StatutoryConfig.state.in_(states),
                StatutoryConfig.effective_from <= as_of,
            )
            .order_by(StatutoryConfig.effective_from.desc())
        )
        rows = list(result.scalars().all())
        specific = [r for r in rows if r.state != ALL_STATES]
        config = (specific or rows or [None])[0]

        self._config_cache[key] = config
        return config

    async def is_enabled(
        self,
        tenant_id: UUID,
        statutory_type: str,
        as_of: date,
        state: str | None = None,
    ) -> bool:
        config = await self.get_config(tenant_id, statutory_type, as_of, state)
        return config is not None and config.is_enabled

    async def get_pf_config(self, tenant_id: UUID, as_of: date) -> PFConfig | None:
        """PF parameters, or None when PF is not enabled for the tenant."""
        config = await self.get_config(tenant_id, "PF", as_of)
        if config is None or not config.is_enabled:
            return None
        return _parse_config(config, PFConfig.from_config)

    async def get_esi_config(self, tenant_id: UUID, as_of: date) -> ESIConfig | None:
        """ESI parameters, or None when ESI is not enabled for the tenant."""
        config = await self.get_config(tenant_id, "ESI", as_of)
        if config is None or not config.is_enabled:
            return None
        return _parse_config(config, ESIConfig.from_config)

    async def get_tds_config(self, tenant_id: UUID, as_of: date) -> TDSConfig | None:
        """TDS parameters including the tenant's regime, or None when disabled."""
        config = await self.get_config(tenant_id, "TDS", as_of)
        if config is None or not config.is_enabled:
            return None
        return _parse_config(config, TDSConfig.from_config, config.tax_regime)

    async def get_pt_slabs(
        self,
        tenant_id: UUID,
        state: str,
        fy: int,
    ) -> list[ProfessionalTaxRow]:
        """Professional tax slabs for a state and financial year.

        Raises:
            SlabNotFoundError: If no valid slab rows exist
        """
        key = (tenant_id, state, fy)
        if key not in self._pt_cache:
            result = await self.session.execute(
                select(ProfessionalTaxSlab)
                .where(
                    ProfessionalTaxSlab.tenant_id == tenant_id,
                    ProfessionalTaxSlab.state == state,
                    ProfessionalTaxSlab.start_fy <= fy,
                    or_(ProfessionalTaxSlab.end_fy.is_(None), ProfessionalTaxSlab.end_fy >= fy),
                )
                .order_by(ProfessionalTaxSlab.min_amount)
            )
            rows: list[ProfessionalTaxRow] = []
            for slab in result.scalars().all():
                try:
                    rows.append(
                        ProfessionalTaxRow(
                            min_amount=slab.min_amount,
                            max_amount=slab.max_amount,
                            monthly_amounts=_parse_monthly_amounts(
                                slab.monthly_amounts, "professional tax slab", slab.pt_slab_id
                            ),
                            person_type=slab.person_type,
                            slab_id=slab.pt_slab_id,
                        )
                    )
                except MalformedRecordError as exc:
                    logger.warning("Skipping slab: %s", exc)
                    self.data_errors.append(str(exc))
            self._pt_cache[key] = rows

        rows = self._pt_cache[key]
        if not rows:
            raise SlabNotFoundError("PT", state, financial_year_label(fy))
        return rows

    async def get_lwf_row(self, tenant_id: UUID, state: str, fy: int) -> LabourWelfareRow:
        """Labour welfare fund amounts for a state and financial year.

        Raises:
            SlabNotFoundError: If no valid row exists
        """
        key = (tenant_id, state, fy)
        if key not in self._lwf_cache:
            result = await self.session.execute(
                select(LabourWelfareFundSlab)
                .where(
                    LabourWelfareFundSlab.tenant_id == tenant_id,
                    LabourWelfareFundSlab.state == state,
                    LabourWelfareFundSlab.start_fy <= fy,
                    or_(LabourWelfareFundSlab.end_fy.is_(None), LabourWelfareFundSlab.end_fy >= fy),
                )
                .order_by(LabourWelfareFundSlab.start_fy.desc())
            )
            row: LabourWelfareRow | None = None
            for slab in result.scalars().all():
                try:
                    row = LabourWelfareRow(
                        employee_amounts=_parse_monthly_amounts(
                            slab.employee_monthly_amounts, "labour welfare slab", slab.lwf_slab_id
                        ),
                        employer_amounts=_parse_monthly_amounts(
                            slab.employer_monthly_amounts, "labour welfare slab", slab.lwf_slab_id
                        ),
                        slab_id=slab.lwf_slab_id,
                    )
                    break
                except MalformedRecordError as exc:
                    logger.warning("Skipping slab: %s", exc)
                    self.data_errors.append(str(exc))
            self._lwf_cache[key] = row

        row = self._lwf_cache[key]
        if row is None:
            raise SlabNotFoundError("LWF", state, financial_year_label(fy))
        return row

    async def get_income_tax_slabs(self, tenant_id: UUID, regime: str, fy: int) -> list[TaxSlabRow]:
        """Income tax slabs for a regime and financial year.

        Raises:
            SlabNotFoundError: If no slab rows exist
        """
        key = (tenant_id, regime, fy)
        if key not in self._it_cache:
            result = await self.session.execute(
                select(IncomeTaxSlab)
                .where(
                    IncomeTaxSlab.tenant_id == tenant_id,
                    IncomeTaxSlab.tax_regime == regime,
                    IncomeTaxSlab.start_fy <= fy,
                    or_(IncomeTaxSlab.end_fy.is_(None), IncomeTaxSlab.end_fy >= fy),
                )
                .order_by(IncomeTaxSlab.start_fy.desc(), IncomeTaxSlab.serial_number)
            )
            slabs = list(result.scalars().all())
            # Only the newest version applies when several overlap
            if slabs:
                newest = slabs[0].start_fy
                slabs = [s for s in slabs if s.start_fy == newest]
            self._it_cache[key] = [
                TaxSlabRow(lower=s.lower_limit, upper=s.upper_limit, percent=s.tax_percent)
                for s in slabs
            ]

        slabs = self._it_cache[key]
        if not slabs:
            raise SlabNotFoundError(f"income tax ({regime} regime)", None, financial_year_label(fy))
        return slabs
