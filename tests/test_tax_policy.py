import pytest

from nestegg.schema import InputError, StateTaxPolicy, TaxBracket, TaxPolicy
from nestegg.tax_policy import (
    TaxPolicyNotFound,
    bracket_ceiling,
    resolve_state_tax_policy,
    resolve_tax_policy,
    select_by_year,
)


def _policy(year: int, deduction: float, filing_status: str = "single") -> TaxPolicy:
    return TaxPolicy(
        year=year,
        filing_status=filing_status,
        standard_deduction=deduction,
        ordinary_brackets=[TaxBracket(up_to=10_000, rate=0.1), TaxBracket(up_to=None, rate=0.2)],
        capital_gains_brackets=[TaxBracket(up_to=40_000, rate=0.0), TaxBracket(up_to=None, rate=0.15)],
    )


POLICIES = [_policy(2024, 14_000), _policy(2026, 15_000), _policy(2026, 30_000, "married_joint")]


def test_select_latest_policy_at_or_before_year():
    assert select_by_year(POLICIES, year=2025, filing_status="single").year == 2024
    assert select_by_year(POLICIES, year=2040, filing_status="single").year == 2026
    assert select_by_year(POLICIES, year=2023, filing_status="single") is None


def test_exact_year_is_not_scaled():
    policy = resolve_tax_policy(POLICIES, year=2026, filing_status="single", inflation_rate=0.03)
    assert policy.source_year == 2026
    assert policy.standard_deduction == pytest.approx(15_000)
    assert policy.ordinary_brackets[0] == (pytest.approx(10_000), 0.1)


def test_later_year_scales_thresholds_by_inflation():
    policy = resolve_tax_policy(POLICIES, year=2028, filing_status="single", inflation_rate=0.03)
    factor = 1.03**2
    assert policy.year == 2028
    assert policy.source_year == 2026
    assert policy.standard_deduction == pytest.approx(15_000 * factor)
    assert policy.ordinary_brackets[0][0] == pytest.approx(10_000 * factor)
    assert policy.ordinary_brackets[-1][0] is None
    assert policy.capital_gains_brackets[0][0] == pytest.approx(40_000 * factor)


def test_year_before_every_policy_raises():
    with pytest.raises(TaxPolicyNotFound):
        resolve_tax_policy(POLICIES, year=2020, filing_status="single", inflation_rate=0.03)


def test_missing_filing_status_raises_input_error():
    with pytest.raises(InputError, match="head_of_household"):
        resolve_tax_policy(POLICIES, year=2026, filing_status="head_of_household", inflation_rate=0.0)


def test_bracket_ceiling():
    policy = resolve_tax_policy(POLICIES, year=2026, filing_status="single", inflation_rate=0.0)
    assert bracket_ceiling(policy, 0.1) == pytest.approx(10_000)
    assert bracket_ceiling(policy, 0.2) is None
    assert bracket_ceiling(policy, 0.35) is None


def _state_policy(year: int, rate: float) -> StateTaxPolicy:
    return StateTaxPolicy(
        state_code="ok",
        year=year,
        filing_status="single",
        standard_deduction=6_350,
        brackets=[TaxBracket(up_to=None, rate=rate)],
    )


def test_no_state_selected():
    assert resolve_state_tax_policy([], state_code="none", year=2026, filing_status="single") is None


def test_builtin_state_brackets_are_not_indexed():
    resolved = resolve_state_tax_policy([], state_code="nj", year=2040, filing_status="single")
    assert resolved.source_year == 2024
    assert resolved.brackets[0] == (20_000, 0.014)
    assert resolved.brackets[-1] == (None, 0.1075)


def test_snapshot_state_policy_wins_and_falls_back_to_earliest():
    policies = [_state_policy(2030, 0.05), _state_policy(2032, 0.04)]

    early = resolve_state_tax_policy(policies, state_code="ok", year=2026, filing_status="single")
    late = resolve_state_tax_policy(policies, state_code="ok", year=2035, filing_status="single")

    assert (early.source_year, early.brackets) == (2030, [(None, 0.05)])
    assert (late.source_year, late.brackets) == (2032, [(None, 0.04)])
    assert late.standard_deduction == 6_350


def test_unknown_state_code_raises():
    with pytest.raises(TaxPolicyNotFound):
        resolve_state_tax_policy([], state_code="zz", year=2026, filing_status="single")
