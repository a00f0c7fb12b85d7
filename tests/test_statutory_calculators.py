"""Tests for PF, ESI, PT, LWF and TDS calculators."""

from decimal import Decimal

import pytest

from statutory_payroll.calculators.rate_tables import (
    ESIConfig,
    PFConfig,
    TDSConfig,
    financial_year,
    fy_months_before,
    remaining_fy_months,
)
from statutory_payroll.calculators.statutory import (
    allowed_exemptions,
    calculate_esi,
    calculate_lwf,
    calculate_pf,
    calculate_pt,
    calculate_tds,
    progressive_tax,
)
from statutory_payroll.calculators.types import LabourWelfareRow, ProfessionalTaxRow, TaxSlabRow

NEW_REGIME = [
    TaxSlabRow(Decimal("0"), Decimal("300000"), Decimal("0")),
    TaxSlabRow(Decimal("300000"), Decimal("700000"), Decimal("5")),
    TaxSlabRow(Decimal("700000"), Decimal("1000000"), Decimal("10")),
    TaxSlabRow(Decimal("1000000"), Decimal("1200000"), Decimal("15")),
    TaxSlabRow(Decimal("1200000"), Decimal("1500000"), Decimal("20")),
    TaxSlabRow(Decimal("1500000"), None, Decimal("30")),
]


def _amounts(value: str, **overrides: str) -> dict[str, Decimal]:
    months = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
    amounts = {key: Decimal(value) for key in months}
    amounts.update({key: Decimal(v) for key, v in overrides.items()})
    return amounts


MH_SLABS = [
    ProfessionalTaxRow(Decimal("0"), Decimal("7500"), _amounts("0"), "male"),
    ProfessionalTaxRow(Decimal("7500.01"), Decimal("10000"), _amounts("175"), "male"),
    ProfessionalTaxRow(Decimal("10000.01"), None, _amounts("200", feb="300"), "male"),
    ProfessionalTaxRow(Decimal("0"), Decimal("25000"), _amounts("0"), "female"),
    ProfessionalTaxRow(Decimal("25000.01"), None, _amounts("200", feb="300"), "female"),
    ProfessionalTaxRow(Decimal("0"), Decimal("10000"), _amounts("0"), "all"),
    ProfessionalTaxRow(Decimal("10000.01"), None, _amounts("200"), "all"),
]


class TestProvidentFund:
    """Test PF calculation."""

    def test_capped_at_wage_limit(self):
        result = calculate_pf(Decimal("20000"), PFConfig())

        assert result.wages == Decimal("15000")
        assert result.employee == Decimal("1800.00")
        assert result.employer == Decimal("1800.00")
        assert result.employer_pension == Decimal("1249.50")
        assert result.employer_provident == Decimal("550.50")

    def test_uncapped_uses_full_base(self):
        config = PFConfig.from_config({"cap_wages": False})
        result = calculate_pf(Decimal("20000"), config)

        assert result.employee == Decimal("2400.00")
        # Pension stays on the pension wage limit
        assert result.employer_pension == Decimal("1249.50")
        assert result.employer == Decimal("2400.00")

    def test_below_limit(self):
        result = calculate_pf(Decimal("10000"), PFConfig())

        assert result.employee == Decimal("1200.00")
        assert result.employer_pension == Decimal("833.00")
        assert result.employer_provident == Decimal("367.00")

    def test_opted_out_or_zero_base(self):
        assert calculate_pf(Decimal("20000"), PFConfig(), opted_in=False).employee == 0
        assert calculate_pf(Decimal("0"), PFConfig()).employee == 0
        assert calculate_pf(None, PFConfig()).employer == 0

    def test_config_overrides_parse_strings(self):
        config = PFConfig.from_config({"employee_rate": "10", "cap_wages": "false"})

        assert config.employee_rate == Decimal("10")
        assert config.cap_wages is False
        assert config.wage_limit == Decimal("15000")

    def test_config_rejects_unusable_values(self):
        with pytest.raises(ValueError, match="employee_rate is not a number: 'twelve'"):
            PFConfig.from_config({"employee_rate": "twelve"})
        with pytest.raises(ValueError, match="wage_ceiling is invalid"):
            ESIConfig.from_config({"wage_ceiling": "-21000"})
        with pytest.raises(ValueError, match="section_caps must be an object"):
            TDSConfig.from_config({"section_caps": 150000})
        with pytest.raises(ValueError, match="configuration must be an object"):
            PFConfig.from_config(["employee_rate", 12])


class TestEmployeeStateInsurance:
    """Test ESI calculation."""

    def test_applies_up_to_ceiling(self):
        result = calculate_esi(Decimal("21000"), ESIConfig())

        assert result.applicable is True
        assert result.employee == Decimal("157.50")
        assert result.employer == Decimal("682.50")

    def test_above_ceiling_is_zero(self):
        result = calculate_esi(Decimal("21000.01"), ESIConfig())

        assert result.applicable is False
        assert result.employee == 0
        assert result.employer == 0

    def test_explicit_base_overrides_gross(self):
        result = calculate_esi(Decimal("30000"), ESIConfig(), esi_base=Decimal("16000"))

        assert result.applicable is True
        assert result.employee == Decimal("120.00")
        assert result.employer == Decimal("520.00")

    def test_zero_gross(self):
        assert calculate_esi(Decimal("0"), ESIConfig()).employee == 0
        assert calculate_esi(None, ESIConfig()).employer == 0


class TestProfessionalTax:
    """Test PT slab lookup."""

    def test_male_top_slab(self):
        amount, slab = calculate_pt(Decimal("30000"), MH_SLABS, 5, "male")

        assert amount == Decimal("200.00")
        assert slab.min_amount == Decimal("10000.01")

    def test_february_amount(self):
        amount, _ = calculate_pt(Decimal("30000"), MH_SLABS, 2, "male")
        assert amount == Decimal("300.00")

    def test_middle_slab(self):
        amount, _ = calculate_pt(Decimal("9000"), MH_SLABS, 5, "male")
        assert amount == Decimal("175.00")

    def test_female_exemption(self):
        amount, _ = calculate_pt(Decimal("24000"), MH_SLABS, 5, "female")
        assert amount == 0

    def test_gender_falls_back_to_all(self):
        amount, slab = calculate_pt(Decimal("15000"), MH_SLABS, 5, None)

        assert amount == Decimal("200.00")
        assert slab.person_type == "all"

    def test_no_gross_no_tax(self):
        amount, slab = calculate_pt(Decimal("0"), MH_SLABS, 5, "male")

        assert amount == 0
        assert slab is None


class TestLabourWelfareFund:
    """Test LWF month lookup."""

    def test_deduction_months(self):
        row = LabourWelfareRow(
            employee_amounts={"jun": Decimal("25"), "dec": Decimal("25")},
            employer_amounts={"jun": Decimal("75"), "dec": Decimal("75")},
        )

        june = calculate_lwf(row, 6)
        assert june.employee == Decimal("25.00")
        assert june.employer == Decimal("75.00")

        may = calculate_lwf(row, 5)
        assert may.employee == 0
        assert may.employer == 0

    def test_missing_row(self):
        result = calculate_lwf(None, 6)
        assert result.employee == 0


class TestIncomeTax:
    """Test TDS projection."""

    def test_progressive_tax(self):
        assert progressive_tax(Decimal("1150000"), NEW_REGIME) == Decimal("72500.00")
        assert progressive_tax(Decimal("300000"), NEW_REGIME) == 0
        assert progressive_tax(Decimal("-5"), NEW_REGIME) == 0

    def test_april_projection(self):
        result = calculate_tds(
            month=4,
            current_gross=Decimal("100000"),
            projected_monthly_gross=Decimal("100000"),
            slabs=NEW_REGIME,
            config=TDSConfig(),
        )

        assert result.remaining_months == 12
        assert result.annual_income == Decimal("1200000.00")
        assert result.annual_taxable_income == Decimal("1150000.00")
        # 72500 tax + 4% cess
        assert result.annual_tax == Decimal("75400.00")
        assert result.monthly_tds == Decimal("6283.33")

    def test_march_collects_balance(self):
        result = calculate_tds(
            month=3,
            current_gross=Decimal("100000"),
            projected_monthly_gross=Decimal("100000"),
            slabs=NEW_REGIME,
            config=TDSConfig(),
            ytd_gross=Decimal("1100000"),
            ytd_tds=Decimal("69116.63"),
        )

        assert result.remaining_months == 1
        assert result.monthly_tds == Decimal("6283.37")

    def test_over_deducted_never_negative(self):
        result = calculate_tds(
            month=10,
            current_gross=Decimal("20000"),
            projected_monthly_gross=Decimal("20000"),
            slabs=NEW_REGIME,
            config=TDSConfig(),
            ytd_tds=Decimal("50000"),
        )

        assert result.monthly_tds == 0

    def test_exemptions_capped_per_section(self):
        config = TDSConfig()
        declared = {"80C": Decimal("200000"), "80D": Decimal("25000"), "80G": Decimal("5000")}

        # 80C capped at 150000; 80G has no cap
        assert allowed_exemptions(declared, config) == Decimal("180000")
        assert allowed_exemptions(None, config) == 0

    def test_declarations_reduce_tax(self):
        base = dict(
            month=4,
            current_gross=Decimal("100000"),
            projected_monthly_gross=Decimal("100000"),
            slabs=NEW_REGIME,
            config=TDSConfig(),
        )
        plain = calculate_tds(**base)
        declared = calculate_tds(**base, declared={"80C": Decimal("150000")})

        assert declared.exemptions == Decimal("150000.00")
        assert declared.monthly_tds < plain.monthly_tds


class TestFinancialYear:
    """Test financial year helpers."""

    def test_financial_year(self):
        assert financial_year(4, 2025) == 2025
        assert financial_year(3, 2025) == 2024
        assert financial_year(12, 2024) == 2024

    def test_remaining_months(self):
        assert remaining_fy_months(4) == 12
        assert remaining_fy_months(5) == 11
        assert remaining_fy_months(1) == 3
        assert remaining_fy_months(3) == 1

    def test_months_before(self):
        assert fy_months_before(4, 2025) == []
        assert fy_months_before(6, 2025) == [(4, 2025), (5, 2025)]
        assert fy_months_before(2, 2026)[-2:] == [(12, 2025), (1, 2026)]
        assert len(fy_months_before(3, 2026)) == 11
