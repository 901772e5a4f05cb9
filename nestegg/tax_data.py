"""Statutory reference tables used as snapshot defaults."""

from __future__ import annotations

from typing import Any, Final

BASE_TAX_YEAR: Final[int] = 2026

FILING_STATUSES: Final[set[str]] = {
    "single",
    "married_joint",
    "married_separate",
    "head_of_household",
}

# Brackets are (upper_bound, marginal_rate). Upper bound None means infinity.
FEDERAL_BRACKETS: Final[dict[str, list[tuple[float | None, float]]]] = {
    "single": [
        (12_400.0, 0.10),
        (50_400.0, 0.12),
        (105_700.0, 0.22),
        (201_775.0, 0.24),
        (256_225.0, 0.32),
        (640_600.0, 0.35),
        (None, 0.37),
    ],
    "married_joint": [
        (24_800.0, 0.10),
        (100_800.0, 0.12),
        (211_400.0, 0.22),
        (403_550.0, 0.24),
        (512_450.0, 0.32),
        (768_700.0, 0.35),
        (None, 0.37),
    ],
    "married_separate": [
        (12_400.0, 0.10),
        (50_400.0, 0.12),
        (105_700.0, 0.22),
        (201_775.0, 0.24),
        (256_225.0, 0.32),
        (384_350.0, 0.35),
        (None, 0.37),
    ],
    "head_of_household": [
        (17_700.0, 0.10),
        (67_450.0, 0.12),
        (105_700.0, 0.22),
        (201_750.0, 0.24),
        (256_200.0, 0.32),
        (640_600.0, 0.35),
        (None, 0.37),
    ],
}

# Long-term capital gains brackets, stacked on top of ordinary income.
CAPITAL_GAINS_BRACKETS: Final[dict[str, list[tuple[float | None, float]]]] = {
    "single": [(50_800.0, 0.00), (557_000.0, 0.15), (None, 0.20)],
    "married_joint": [(101_600.0, 0.00), (626_350.0, 0.15), (None, 0.20)],
    "married_separate": [(50_800.0, 0.00), (313_175.0, 0.15), (None, 0.20)],
    "head_of_household": [(68_050.0, 0.00), (595_350.0, 0.15), (None, 0.20)],
}

STANDARD_DEDUCTIONS: Final[dict[str, float]] = {
    "single": 16_100.0,
    "married_joint": 32_200.0,
    "married_separate": 16_100.0,
    "head_of_household": 24_150.0,
}

# Provisional-income thresholds (base, adjusted base); statutory, not indexed.
SS_PROVISIONAL_THRESHOLDS: Final[dict[str, tuple[float, float]]] = {
    "single": (25_000.0, 34_000.0),
    "married_joint": (32_000.0, 44_000.0),
    "married_separate": (0.0, 0.0),
    "head_of_household": (25_000.0, 34_000.0),
}

# Tiers are (max_magi, (part_b_surcharge, part_d_surcharge)).
IRMAA_BRACKETS: Final[dict[str, list[tuple[float | None, tuple[float, float]]]]] = {
    "single": [
        (106_000.0, (0.0, 0.0)),
        (133_000.0, (74.0, 13.0)),
        (167_000.0, (185.0, 33.0)),
        (200_000.0, (296.0, 52.0)),
        (500_000.0, (407.0, 71.0)),
        (None, (444.0, 82.0)),
    ],
    "married_joint": [
        (212_000.0, (0.0, 0.0)),
        (266_000.0, (74.0, 13.0)),
        (334_000.0, (185.0, 33.0)),
        (400_000.0, (296.0, 52.0)),
        (750_000.0, (407.0, 71.0)),
        (None, (444.0, 82.0)),
    ],
    "married_separate": [
        (106_000.0, (0.0, 0.0)),
        (394_000.0, (407.0, 71.0)),
        (None, (444.0, 82.0)),
    ],
    "head_of_household": [
        (106_000.0, (0.0, 0.0)),
        (133_000.0, (74.0, 13.0)),
        (167_000.0, (185.0, 33.0)),
        (200_000.0, (296.0, 52.0)),
        (500_000.0, (407.0, 71.0)),
        (None, (444.0, 82.0)),
    ],
}
IRMAA_LOOKBACK_YEARS: Final[int] = 2

# IRS Uniform Lifetime Table.
UNIFORM_LIFETIME_DIVISORS: Final[dict[int, float]] = {
    72: 27.4,
    73: 26.5,
    74: 25.5,
    75: 24.6,
    76: 23.7,
    77: 22.9,
    78: 22.0,
    79: 21.1,
    80: 20.2,
    81: 19.4,
    82: 18.5,
    83: 17.7,
    84: 16.8,
    85: 16.0,
    86: 15.2,
    87: 14.4,
    88: 13.7,
    89: 12.9,
    90: 12.2,
    91: 11.5,
    92: 10.8,
    93: 10.1,
    94: 9.5,
    95: 8.9,
    96: 8.4,
    97: 7.8,
    98: 7.3,
    99: 6.8,
    100: 6.4,
    101: 6.0,
    102: 5.6,
    103: 5.2,
    104: 4.9,
    105: 4.6,
    106: 4.3,
    107: 4.1,
    108: 3.9,
    109: 3.7,
    110: 3.5,
    111: 3.4,
    112: 3.3,
    113: 3.1,
    114: 3.0,
    115: 2.9,
    116: 2.8,
    117: 2.7,
    118: 2.5,
    119: 2.3,
    120: 2.0,
}

# SSA national average wage index.
AVERAGE_WAGE_INDEX: Final[dict[int, float]] = {
    2010: 41_673.83,
    2011: 42_979.61,
    2012: 44_321.67,
    2013: 44_888.16,
    2014: 46_481.52,
    2015: 48_098.63,
    2016: 48_642.15,
    2017: 50_321.89,
    2018: 52_145.80,
    2019: 54_099.99,
    2020: 55_628.60,
    2021: 60_575.07,
    2022: 63_795.13,
    2023: 66_621.80,
}

# PIA bend points by year of eligibility.
PIA_BEND_POINTS: Final[dict[int, tuple[float, float]]] = {
    2023: (1_115.0, 6_721.0),
    2024: (1_174.0, 7_078.0),
    2025: (1_226.0, 7_391.0),
}

# (birth_year_start, birth_year_end, normal_retirement_age_months, delayed_credit_per_year)
RETIREMENT_ADJUSTMENTS: Final[list[tuple[int, int, int, float]]] = [
    (1943, 1954, 792, 0.08),
    (1955, 1955, 794, 0.08),
    (1956, 1956, 796, 0.08),
    (1957, 1957, 798, 0.08),
    (1958, 1958, 800, 0.08),
    (1959, 1959, 802, 0.08),
    (1960, 2100, 804, 0.08),
]

STATE_TAX_YEAR: Final[int] = 2024

_OKLAHOMA: Final[list[tuple[float | None, float]]] = [
    (1_000.0, 0.0025),
    (2_500.0, 0.0075),
    (3_750.0, 0.0175),
    (4_900.0, 0.0275),
    (7_200.0, 0.0375),
    (None, 0.0475),
]

_NEW_JERSEY: Final[list[tuple[float | None, float]]] = [
    (20_000.0, 0.014),
    (35_000.0, 0.0175),
    (40_000.0, 0.035),
    (75_000.0, 0.05525),
    (500_000.0, 0.0637),
    (1_000_000.0, 0.0897),
    (None, 0.1075),
]


def _doubled(rows: list[tuple[float | None, float]]) -> list[tuple[float | None, float]]:
    return [(None if upper is None else upper * 2.0, rate) for upper, rate in rows]


# (state_code, filing_status) -> brackets on income after the state deduction.
STATE_BRACKETS: Final[dict[tuple[str, str], list[tuple[float | None, float]]]] = {
    **{("ok", status): list(_OKLAHOMA) for status in ("single", "married_separate", "head_of_household")},
    ("ok", "married_joint"): _doubled(_OKLAHOMA),
    **{("tx", status): [(None, 0.0)] for status in sorted(FILING_STATUSES)},
    **{("nj", status): list(_NEW_JERSEY) for status in sorted(FILING_STATUSES)},
}

STATE_CODES: Final[set[str]] = {code for code, _ in STATE_BRACKETS}

PAYROLL_TAX_RATES: Final[dict[str, float]] = {
    "social_security_rate": 0.062,
    "social_security_wage_base": 184_500.0,
    "medicare_rate": 0.0145,
    "additional_medicare_rate": 0.009,
}

# Statutory, not indexed for inflation.
ADDITIONAL_MEDICARE_THRESHOLDS: Final[dict[str, float]] = {
    "single": 200_000.0,
    "married_joint": 250_000.0,
    "married_separate": 125_000.0,
    "head_of_household": 200_000.0,
}

DEFAULT_INFLATION: Final[dict[str, float]] = {
    "cpi": 0.025,
    "medical": 0.05,
    "housing": 0.03,
    "education": 0.05,
}


def _brackets(rows: list[tuple[float | None, float]]) -> list[dict[str, Any]]:
    return [{"up_to": upper, "rate": rate} for upper, rate in rows]


def default_reference_tables() -> dict[str, list[dict[str, Any]]]:
    """Return the reference tables in snapshot JSON shape."""
    return {
        "tax_policies": [
            {
                "year": BASE_TAX_YEAR,
                "filing_status": status,
                "standard_deduction": STANDARD_DEDUCTIONS[status],
                "ordinary_brackets": _brackets(FEDERAL_BRACKETS[status]),
                "capital_gains_brackets": _brackets(CAPITAL_GAINS_BRACKETS[status]),
            }
            for status in sorted(FILING_STATUSES)
        ],
        "social_security_provisional_brackets": [
            {
                "year": BASE_TAX_YEAR,
                "filing_status": status,
                "base_amount": base,
                "adjusted_base_amount": adjusted,
                "tier1_rate": 0.5,
                "tier2_rate": 0.85,
            }
            for status, (base, adjusted) in sorted(SS_PROVISIONAL_THRESHOLDS.items())
        ],
        "irmaa_tables": [
            {
                "year": BASE_TAX_YEAR,
                "filing_status": status,
                "lookback_years": IRMAA_LOOKBACK_YEARS,
                "tiers": [
                    {"max_magi": upper, "part_b_monthly": part_b, "part_d_monthly": part_d}
                    for upper, (part_b, part_d) in tiers
                ],
            }
            for status, tiers in sorted(IRMAA_BRACKETS.items())
        ],
        "rmd_table": [{"age": age, "divisor": divisor} for age, divisor in sorted(UNIFORM_LIFETIME_DIVISORS.items())],
        "ssa_wage_index": [{"year": year, "index": index} for year, index in sorted(AVERAGE_WAGE_INDEX.items())],
        "ssa_bend_points": [
            {"year": year, "first": first, "second": second} for year, (first, second) in sorted(PIA_BEND_POINTS.items())
        ],
        "ssa_retirement_adjustments": [
            {
                "birth_year_start": start,
                "birth_year_end": end,
                "normal_retirement_age_months": nra,
                "delayed_retirement_credit_per_year": credit,
            }
            for start, end, nra, credit in RETIREMENT_ADJUSTMENTS
        ],
        "inflation_defaults": [{"type": name, "rate": rate} for name, rate in sorted(DEFAULT_INFLATION.items())],
        "state_tax_policies": [
            {
                "state_code": code,
                "year": STATE_TAX_YEAR,
                "filing_status": status,
                "standard_deduction": 0.0,
                "brackets": _brackets(rows),
            }
            for (code, status), rows in sorted(STATE_BRACKETS.items())
        ],
    }

# Long-run (return_rate, return_std_dev) assumptions by holding type.
HOLDING_TYPE_RETURNS: Final[dict[str, tuple[float, float]]] = {
    "bonds": (0.04, 0.06),
    "sp500": (0.10, 0.16),
    "nasdaq": (0.12, 0.22),
    "dow": (0.08, 0.14),
    "non_us_developed": (0.08, 0.17),
    "emerging_markets": (0.10, 0.22),
    "real_estate": (0.07, 0.15),
    "cash": (0.02, 0.01),
    "other": (0.0, 0.0),
}
