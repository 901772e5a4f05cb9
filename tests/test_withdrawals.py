from datetime import date

import pytest

from nestegg.schema import EarlyRetirementStrategy, ScenarioStrategies
from nestegg.withdrawals import cover_shortfall, estimate_traditional_share, harvest_preference, resolve_order
from tests.helpers import make_holding, make_state

AS_OF = date(2026, 6, 1)


def _state():
    return make_state(
        make_holding("brokerage", "taxable", 1_000, basis=1_000),
        make_holding("ira", "traditional", 1_000),
        make_holding("roth", "roth", 1_000),
    )


def _withdrawn(actions):
    return {action.source_holding_id: action.resolved_amount for action in actions}


def test_resolve_order():
    assert resolve_order("taxable_first", ["roth"]) == ["taxable", "traditional", "roth", "hsa"]
    assert resolve_order(None, ["roth", "taxable"]) == ["roth", "taxable"]
    assert resolve_order("pro_rata", []) == ["traditional", "roth", "taxable"]


def test_sources_drawn_in_order():
    state = _state()
    remaining, actions = cover_shortfall(
        shortfall=1_500,
        state=state,
        order=["taxable", "traditional", "roth"],
        as_of=AS_OF,
        age=65,
        early=EarlyRetirementStrategy(),
    )
    assert remaining == 0.0
    assert _withdrawn(actions) == {"brokerage": 1_000, "ira": 500}
    assert state.total_cash() == pytest.approx(1_500)


def test_penalized_sources_skipped_when_penalty_not_allowed():
    state = _state()
    remaining, actions = cover_shortfall(
        shortfall=1_500,
        state=state,
        order=["taxable", "traditional", "roth"],
        as_of=AS_OF,
        age=50,
        early=EarlyRetirementStrategy(penalty_rate=0.1, allow_penalty=False, use_roth_basis_first=False),
    )
    assert remaining == pytest.approx(500)
    assert _withdrawn(actions) == {"brokerage": 1_000}
    assert state.year_ledger.penalties == 0.0


def test_penalized_sources_used_as_last_resort():
    state = _state()
    remaining, actions = cover_shortfall(
        shortfall=1_500,
        state=state,
        order=["taxable", "traditional", "roth"],
        as_of=AS_OF,
        age=50,
        early=EarlyRetirementStrategy(penalty_rate=0.1, allow_penalty=True, use_roth_basis_first=False),
    )
    assert remaining == 0.0
    assert _withdrawn(actions) == {"brokerage": 1_000, "ira": 500}
    assert state.year_ledger.penalties == pytest.approx(50)


def test_seasoned_roth_basis_drawn_first_before_penalty_age():
    state = make_state(
        make_holding("ira", "traditional", 1_000),
        make_holding("roth", "roth", 1_000, basis=400),
    )
    remaining, actions = cover_shortfall(
        shortfall=300,
        state=state,
        order=["traditional", "roth"],
        as_of=AS_OF,
        age=50,
        early=EarlyRetirementStrategy(penalty_rate=0.1, allow_penalty=False, use_roth_basis_first=True),
    )
    assert remaining == 0.0
    assert _withdrawn(actions) == {"roth": 300}
    assert state.year_ledger.penalties == 0.0
    assert state.year_ledger.ordinary_income == 0.0


def test_pro_rata_splits_by_balance():
    state = make_state(
        make_holding("brokerage", "taxable", 1_000, basis=1_000),
        make_holding("ira", "traditional", 3_000),
    )
    remaining, actions = cover_shortfall(
        shortfall=400,
        state=state,
        order=["taxable", "traditional"],
        as_of=AS_OF,
        age=65,
        early=EarlyRetirementStrategy(),
        pro_rata=True,
    )
    assert remaining == pytest.approx(0.0)
    withdrawn = _withdrawn(actions)
    assert withdrawn["brokerage"] == pytest.approx(100)
    assert withdrawn["ira"] == pytest.approx(300)


def test_nothing_to_cover():
    remaining, actions = cover_shortfall(
        shortfall=0.0,
        state=_state(),
        order=["taxable"],
        as_of=AS_OF,
        age=65,
        early=EarlyRetirementStrategy(),
    )
    assert remaining == 0.0
    assert actions == []


def test_72t_traditional_withdrawals_skip_penalty():
    state = _state()
    remaining, actions = cover_shortfall(
        shortfall=1_500,
        state=state,
        order=["taxable", "traditional", "roth"],
        as_of=AS_OF,
        age=50,
        early=EarlyRetirementStrategy(penalty_rate=0.1, allow_penalty=False, use_roth_basis_first=False, use_72t=True),
    )
    assert remaining == 0.0
    assert _withdrawn(actions) == {"brokerage": 1_000, "ira": 500}
    assert state.year_ledger.penalties == 0.0
    assert state.year_ledger.ordinary_income == pytest.approx(500)


def _harvest_state():
    return make_state(
        make_holding("loser", "taxable", 1_000, basis=1_500),
        make_holding("winner", "taxable", 1_000, basis=200),
        make_holding("ira", "traditional", 1_000),
    )


def test_gain_target_moves_taxable_first():
    strategies = ScenarioStrategies.from_dict({"taxable_lot": {"gain_realization_target": 5_000}})
    state = _harvest_state()

    order, preference = harvest_preference(state, ["traditional", "taxable"], strategies)
    assert order == ["taxable", "traditional"]
    assert preference == "gains_first"

    remaining, actions = cover_shortfall(
        shortfall=500,
        state=state,
        order=order,
        as_of=AS_OF,
        age=65,
        early=EarlyRetirementStrategy(),
        taxable_preference=preference,
    )
    assert remaining == 0.0
    assert _withdrawn(actions) == {"winner": 500}
    assert state.year_ledger.capital_gains == pytest.approx(400)


def test_loss_harvesting_sells_losses_first():
    strategies = ScenarioStrategies.from_dict({"taxable_lot": {"harvest_losses": True}})
    state = _harvest_state()

    order, preference = harvest_preference(state, ["taxable", "traditional"], strategies)
    assert (order, preference) == (["taxable", "traditional"], "losses_first")

    _, actions = cover_shortfall(
        shortfall=500,
        state=state,
        order=order,
        as_of=AS_OF,
        age=65,
        early=EarlyRetirementStrategy(),
        taxable_preference=preference,
    )
    assert _withdrawn(actions) == {"loser": 500}
    assert state.year_ledger.capital_gains == pytest.approx(-250)


def test_no_harvest_preference_once_target_met():
    strategies = ScenarioStrategies.from_dict({"withdrawal": {"taxable_gain_harvest_target": 1_000}})
    state = _harvest_state()
    state.year_ledger.capital_gains = 1_000
    assert harvest_preference(state, ["traditional", "taxable"], strategies) == (["traditional", "taxable"], None)


def test_traditional_share_estimate_moves_no_money():
    state = _state()
    share = estimate_traditional_share(
        1_500,
        state=state,
        order=["taxable", "traditional", "roth"],
        as_of=AS_OF,
        age=65,
        early=EarlyRetirementStrategy(),
    )
    assert share == pytest.approx(500)
    assert state.total_investments() == pytest.approx(3_000)
    empty = estimate_traditional_share(
        0.0, state=state, order=["traditional"], as_of=AS_OF, age=65, early=EarlyRetirementStrategy()
    )
    assert empty == 0.0
