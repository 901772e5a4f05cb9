"""Historical annual return dataset.

Values are annual decimal returns for each asset class keyed by year.
This bundled dataset is deterministic and covers 1926-2024. Snapshots may
supply their own ``historical_returns`` rows instead.
"""

from __future__ import annotations

import math
from typing import Final

from .schema import HistoricalReturn

FIRST_YEAR: Final[int] = 1926
LAST_YEAR: Final[int] = 2024


def _series_value(year: int, *, center: float, amplitude: float, period: int) -> float:
    phase = (year - FIRST_YEAR) % period
    x = (phase / period) * 6.283185307179586
    return center + amplitude * (0.65 * math.sin(x) + 0.35 * math.sin(2.0 * x + 0.7))


def _build_dataset() -> dict[int, dict[str, float]]:
    out: dict[int, dict[str, float]] = {}
    for year in range(FIRST_YEAR, LAST_YEAR + 1):
        out[year] = {
            "equity": max(-0.45, _series_value(year, center=0.10, amplitude=0.22, period=17)),
            "bonds": max(-0.20, _series_value(year, center=0.04, amplitude=0.10, period=11)),
            "real_estate": max(-0.35, _series_value(year, center=0.07, amplitude=0.15, period=13)),
        }
    return out


HISTORICAL_ANNUAL_RETURNS: Final[dict[int, dict[str, float]]] = _build_dataset()


def annual_returns(rows: list[HistoricalReturn]) -> dict[int, dict[str, float]]:
    """Snapshot rows keyed by year, or the bundled dataset when there are none."""
    if not rows:
        return HISTORICAL_ANNUAL_RETURNS
    out: dict[int, dict[str, float]] = {}
    for row in rows:
        values = {"equity": row.equity, "bonds": row.bonds, "real_estate": row.real_estate}
        if row.other is not None:
            values["other"] = float(row.other)
        out[row.year] = values
    return out


def dataset_year(dataset: dict[int, dict[str, float]], start_year: int | None, year_index: int) -> int:
    """Map a projection year onto the dataset, holding at the last year once it runs out."""
    available = sorted(dataset)
    if not available:
        raise ValueError("historical dataset is empty")
    start = available[0] if start_year is None else start_year
    candidates = [year for year in available if year >= start]
    if not candidates:
        raise ValueError(f"historical dataset has no years at or after {start}")
    return candidates[min(year_index, len(candidates) - 1)]
