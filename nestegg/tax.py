"""Federal/state income tax, payroll tax and Social Security taxability."""

from __future__ import annotations

from dataclasses import dataclass

from .schema import IrmaaTable, ProvisionalIncomeBracket
from .tax_data import ADDITIONAL_MEDICARE_THRESHOLDS, BASE_TAX_YEAR, PAYROLL_TAX_RATES
from .tax_policy import ResolvedStatePolicy, ResolvedTaxPolicy


@dataclass(slots=True)
class TaxableSocialSecurity:
    taxable_benefits: float
    provisional_income: float


@dataclass(slots=True)
class TaxResult:
    ordinary_tax: float
    capital_gains_tax: float
    state_tax: float
    tax_owed: float
    magi: float
    taxable_ordinary_income: float
    taxable_capital_gains: float
    taxable_social_security: float
    standard_deduction_applied: float


def compute_taxable_social_security(
    *,
    benefits: float,
    ordinary_income: float,
    capital_gains: float,
    tax_exempt_income: float,
    bracket: ProvisionalIncomeBracket,
) -> TaxableSocialSecurity:
    """Two-tier provisional-income rule for the taxable share of benefits.

    Pure: the result depends only on the five arguments and always lies in
    ``[0, benefits]``.
    """
    if benefits <= 0:
        return TaxableSocialSecurity(taxable_benefits=0.0, provisional_income=0.0)

    provisional = max(0.0, ordinary_income) + max(0.0, capital_gains) + max(0.0, tax_exempt_income) + 0.5 * benefits
    base = bracket.base_amount
    adjusted = bracket.adjusted_base_amount
    tier1 = bracket.tier1_rate
    tier2 = bracket.tier2_rate

    if base == 0 and adjusted == 0:
        # Married filing separately while living together: no threshold at all.
        taxable = tier2 * benefits
    elif provisional <= base:
        taxable = 0.0
    elif provisional <= adjusted:
        taxable = min(tier1 * benefits, tier1 * (provisional - base))
    else:
        first_tier = tier1 * min(benefits, adjusted - base)
        taxable = min(tier2 * benefits, first_tier + tier2 * (provisional - adjusted))

    return TaxableSocialSecurity(
        taxable_benefits=min(benefits, max(0.0, taxable)),
        provisional_income=provisional,
    )


def progressive_tax(amount: float, brackets: list[tuple[float | None, float]]) -> float:
    if amount <= 0:
        return 0.0

    remaining = amount
    lower = 0.0
    tax = 0.0
    for upper, rate in brackets:
        if remaining <= 0:
            break
        if upper is None:
            taxable_at_rate = remaining
        else:
            span = max(0.0, upper - lower)
            taxable_at_rate = min(remaining, span)
        tax += taxable_at_rate * rate
        remaining -= taxable_at_rate
        if upper is None:
            break
        lower = upper
    return max(0.0, tax)


def stacked_capital_gains_tax(
    gains: float,
    ordinary_taxable_income: float,
    brackets: list[tuple[float | None, float]],
) -> float:
    """Tax gains as if they sit on top of ordinary taxable income."""
    if gains <= 0:
        return 0.0
    floor = max(0.0, ordinary_taxable_income)
    return max(0.0, progressive_tax(floor + gains, brackets) - progressive_tax(floor, brackets))


def compute_state_tax(
    taxable_income: float,
    policy: ResolvedStatePolicy,
    *,
    use_standard_deduction: bool = True,
) -> float:
    deduction = policy.standard_deduction if use_standard_deduction else 0.0
    return progressive_tax(max(0.0, taxable_income - deduction), policy.brackets)


@dataclass(slots=True)
class PayrollTax:
    social_security_tax: float
    medicare_tax: float

    @property
    def total(self) -> float:
        return self.social_security_tax + self.medicare_tax


def compute_payroll_tax(
    earned_income: float,
    *,
    filing_status: str,
    year: int,
    inflation_rate: float,
) -> PayrollTax:
    """Employee FICA on a year of wages.

    The Social Security wage base is indexed from the base tax year; the
    additional Medicare thresholds are not.
    """
    if earned_income <= 0:
        return PayrollTax(social_security_tax=0.0, medicare_tax=0.0)

    rates = PAYROLL_TAX_RATES
    wage_base = rates["social_security_wage_base"] * (1.0 + inflation_rate) ** (year - BASE_TAX_YEAR)
    social_security = min(earned_income, wage_base) * rates["social_security_rate"]
    threshold = ADDITIONAL_MEDICARE_THRESHOLDS.get(filing_status, ADDITIONAL_MEDICARE_THRESHOLDS["single"])
    medicare = earned_income * rates["medicare_rate"]
    medicare += max(0.0, earned_income - threshold) * rates["additional_medicare_rate"]
    return PayrollTax(social_security_tax=social_security, medicare_tax=medicare)


def compute_tax(
    *,
    ordinary_income: float,
    capital_gains: float,
    deductions: float,
    tax_exempt_income: float,
    social_security_benefits: float,
    provisional_bracket: ProvisionalIncomeBracket | None,
    policy: ResolvedTaxPolicy,
    state_tax_rate: float,
    use_standard_deduction: bool = True,
    apply_capital_gains_rates: bool = True,
    state_policy: ResolvedStatePolicy | None = None,
) -> TaxResult:
    """Income tax for one year.

    With ``state_policy`` the state brackets replace the flat
    ``state_tax_rate``; both apply to federal taxable income.
    """
    standard_deduction = policy.standard_deduction if use_standard_deduction else 0.0

    taxable_ss = 0.0
    if social_security_benefits > 0 and provisional_bracket is not None:
        taxable_ss = compute_taxable_social_security(
            benefits=social_security_benefits,
            ordinary_income=ordinary_income,
            capital_gains=capital_gains,
            tax_exempt_income=tax_exempt_income,
            bracket=provisional_bracket,
        ).taxable_benefits

    taxable_ordinary = max(0.0, ordinary_income + taxable_ss - deductions - standard_deduction)
    taxable_gains = max(0.0, capital_gains)

    ordinary_tax = progressive_tax(taxable_ordinary, policy.ordinary_brackets)
    if apply_capital_gains_rates:
        gains_tax = stacked_capital_gains_tax(taxable_gains, taxable_ordinary, policy.capital_gains_brackets)
    else:
        gains_tax = stacked_capital_gains_tax(taxable_gains, taxable_ordinary, policy.ordinary_brackets)
    if state_policy is not None:
        state_tax = compute_state_tax(
            taxable_ordinary + taxable_gains,
            state_policy,
            use_standard_deduction=use_standard_deduction,
        )
    else:
        state_tax = max(0.0, state_tax_rate) * (taxable_ordinary + taxable_gains)

    return TaxResult(
        ordinary_tax=ordinary_tax,
        capital_gains_tax=gains_tax,
        state_tax=state_tax,
        tax_owed=ordinary_tax + gains_tax + state_tax,
        magi=ordinary_income + taxable_ss + capital_gains + tax_exempt_income,
        taxable_ordinary_income=taxable_ordinary,
        taxable_capital_gains=taxable_gains,
        taxable_social_security=taxable_ss,
        standard_deduction_applied=standard_deduction,
    )


def irmaa_surcharge(table: IrmaaTable | None, magi: float) -> tuple[float, float]:
    """Return the monthly (Part B, Part D) surcharge for ``magi``."""
    if table is None:
        return 0.0, 0.0
    for tier in table.tiers:
        if tier.max_magi is None or magi <= tier.max_magi:
            return tier.part_b_monthly, tier.part_d_monthly
    return 0.0, 0.0
