from datetime import date

import pytest

from nestegg.cost_basis import CostBasisTracker, LotBasisTracker
from nestegg.dates import add_months, age_at, is_within_range, months_between
from nestegg.inflation import inflate, to_monthly_rate
from nestegg.ledger import LedgerState
from nestegg.schema import Snapshot
from tests.helpers import make_state

START = date(2026, 1, 1)


def test_from_snapshot_builds_basis(sample_snapshot_dict):
    state = LedgerState.from_snapshot(Snapshot.from_dict(sample_snapshot_dict), START)
    assert state.total_cash() == pytest.approx(60_000)
    assert state.total_investments() == pytest.approx(1_035_000)
    assert state.holding("h-brokerage-equity").cost_basis == pytest.approx(120_000)
    roth = state.holding("h-roth-equity").roth_basis()
    assert roth.seasoned(START) == pytest.approx(30_000)
    assert roth.unseasoned(START) == pytest.approx(14_000)
    assert state.prior_year_end_balances["h-401k-equity"] == 520_000


def test_pay_draws_accounts_in_order(sample_snapshot_dict):
    state = LedgerState.from_snapshot(Snapshot.from_dict(sample_snapshot_dict), START)
    assert state.pay(30_000) == pytest.approx(30_000)
    assert [account.balance for account in state.cash_accounts] == [0.0, pytest.approx(30_000)]
    assert state.pay(100_000) == pytest.approx(30_000)


def test_spend_defers_what_cash_cannot_cover():
    state = make_state(cash=100)
    assert state.spend(250) == 100
    assert state.deferred_shortfall == 150


def test_receive_requires_a_cash_account():
    state = LedgerState(cash_accounts=[], holdings=[])
    with pytest.raises(ValueError):
        state.receive(10)


def test_year_close_swaps_ledgers():
    state = make_state(cash=0)
    state.year_ledger.ordinary_income = 500
    closing = state.open_next_year()
    state.year_ledger.capital_gains = 20
    state.close_year(closing)
    assert state.closed_years[-1].ordinary_income == 500
    assert state.closed_years[-1].capital_gains == 0.0
    assert state.year_ledger.capital_gains == 20


def test_clone_is_independent():
    state = make_state(cash=100)
    copy = state.clone()
    copy.pay(100)
    assert state.total_cash() == 100


def test_date_helpers():
    assert add_months(date(2026, 11, 1), 3) == date(2027, 2, 1)
    assert months_between(date(2021, 1, 15), date(2026, 1, 1)) == 59
    assert months_between(date(2026, 1, 1), date(2025, 1, 1)) == 0
    assert age_at("1966-05-15", date(2026, 5, 1)) == 60.0
    assert is_within_range(date(2026, 3, 1), "2026-03-15", "2026-06-01")
    assert not is_within_range(date(2026, 6, 1), "2026-03-15", "2026-06-01")
    assert is_within_range(date(2026, 6, 1), "", None)


def test_inflation_helpers():
    assert (1 + to_monthly_rate(0.12)) ** 12 == pytest.approx(1.12)
    assert inflate(100, 0.03, date(2026, 1, 1), date(2028, 1, 1)) == pytest.approx(106.09)
    assert inflate(100, 0.0, date(2026, 1, 1), date(2028, 1, 1)) == 100


@pytest.mark.parametrize("method, tracker", [("average", CostBasisTracker), ("fifo", LotBasisTracker)])
def test_cost_basis_method_picks_taxable_tracker(sample_snapshot_dict, method, tracker):
    sample_snapshot_dict["scenario"]["strategies"]["taxable_lot"] = {"cost_basis_method": method}
    state = LedgerState.from_snapshot(Snapshot.from_dict(sample_snapshot_dict), START)

    brokerage = state.holding("h-brokerage-equity")
    assert isinstance(brokerage.basis, tracker)
    assert brokerage.cost_basis == pytest.approx(120_000)
    assert isinstance(state.holding("h-401k-equity").basis, CostBasisTracker)
