import pytest

from nestegg.engine import (
    MODULES,
    EngineState,
    EngineStateError,
    ModuleError,
    RunCancelled,
    SimulationEngine,
    run_simulation,
)
from nestegg.modules.spending import SpendingModule
from nestegg.schema import Snapshot, UnresolvedReferenceError
from nestegg.tax_policy import TaxPolicyNotFound
from nestegg.templates import build_sample_snapshot
from tests.helpers import clone_snapshot

EXPECTED_ORDER = [
    "work",
    "pensions",
    "events",
    "healthcare",
    "charitable",
    "social-security",
    "spending",
    "cash-buffer",
    "rebalancing",
    "conversions",
    "rmd",
    "market-returns",
    "taxes",
]


def _snapshot(sample: dict, years: int | None = None) -> Snapshot:
    data = clone_snapshot(sample)
    if years is not None:
        data["scenario"]["years"] = years
    return Snapshot.from_dict(data)


@pytest.fixture(scope="module")
def sample_result():
    return run_simulation(Snapshot.from_dict(build_sample_snapshot()))


def test_module_order_is_fixed():
    assert [module.module_id for module in MODULES] == EXPECTED_ORDER


def test_zero_years_produces_empty_result(sample_snapshot_dict):
    result = run_simulation(_snapshot(sample_snapshot_dict, years=0))
    assert result.timeline == []
    assert result.monthly_timeline == []
    assert result.explanations == []
    assert result.summary.ending_balance == 0.0


def test_output_lengths_and_indices(sample_result):
    assert len(sample_result.timeline) == 30
    assert len(sample_result.monthly_timeline) == 360
    assert [item.month_index for item in sample_result.explanations] == list(range(360))
    assert [point.year_index for point in sample_result.timeline] == list(range(30))
    assert sample_result.timeline[0].date == "2026-12-01"


def test_every_module_reports_every_month(sample_result):
    for explanation in sample_result.explanations:
        assert [module.module_id for module in explanation.modules] == EXPECTED_ORDER


def test_cash_is_conserved_each_month(sample_snapshot_dict, sample_result):
    previous = sum(account["balance"] for account in sample_snapshot_dict["non_investment_accounts"])
    for explanation, point in zip(sample_result.explanations, sample_result.monthly_timeline):
        moved = sum(
            sum(flow.cash for flow in module.cashflows) + sum(action.cash_delta for action in module.actions)
            for module in explanation.modules
        )
        assert point.cash_balance - previous == pytest.approx(moved, abs=1e-6)
        previous = point.cash_balance


def test_cost_basis_never_negative(sample_result):
    for explanation in sample_result.explanations:
        for account in explanation.accounts:
            assert account.balance >= -1e-9
            if account.cost_basis is not None:
                assert account.cost_basis >= -1e-9


def test_roth_basis_never_exceeds_balance(sample_result):
    for explanation in sample_result.explanations:
        for account in explanation.accounts:
            if account.tax_type == "roth":
                assert account.cost_basis <= account.balance + 1e-6


def test_no_rmd_before_start_age(sample_result):
    rmd_ages = []
    for explanation in sample_result.explanations:
        rmd = next(module for module in explanation.modules if module.module_id == "rmd")
        if rmd.actions:
            rmd_ages.append(explanation.age)
    assert all(age >= 73 for age in rmd_ages)


def test_taxes_settled_each_year(sample_result):
    for point in sample_result.timeline:
        assert point.year_ledger.tax_paid >= 0
    assert any(point.taxes > 0 for point in sample_result.timeline)


def test_runs_are_deterministic(sample_snapshot_dict):
    first = run_simulation(_snapshot(sample_snapshot_dict, years=3)).to_dict()
    second = run_simulation(_snapshot(sample_snapshot_dict, years=3)).to_dict()
    assert first == second


def test_stochastic_runs_repeat_with_seed(sample_snapshot_dict):
    data = clone_snapshot(sample_snapshot_dict)
    data["scenario"]["years"] = 3
    data["scenario"]["strategies"]["return_model"] = {"mode": "stochastic"}
    snapshot = Snapshot.from_dict(data)

    first = run_simulation(snapshot, seed=11)
    second = run_simulation(snapshot, seed=11)
    other = run_simulation(snapshot, seed=12)

    assert first.to_dict() == second.to_dict()
    assert first.summary.ending_balance != other.summary.ending_balance


def test_unresolved_reference_fails_before_month_zero(sample_snapshot_dict):
    data = clone_snapshot(sample_snapshot_dict)
    data["scenario"]["person_strategy_ids"] = ["ps-missing"]
    engine = SimulationEngine(Snapshot.from_dict(data))
    with pytest.raises(UnresolvedReferenceError, match="ps-missing"):
        engine.run()
    assert engine.state is EngineState.FAILED


def test_missing_tax_policy_fails_before_month_zero(sample_snapshot_dict):
    data = clone_snapshot(sample_snapshot_dict)
    for policy in data["tax_policies"]:
        policy["year"] = 2030
    calls = []
    engine = SimulationEngine(Snapshot.from_dict(data), should_cancel=lambda: calls.append(1) or False)
    with pytest.raises(TaxPolicyNotFound):
        engine.run()
    assert calls == []


def test_engine_runs_once(sample_snapshot_dict):
    engine = SimulationEngine(_snapshot(sample_snapshot_dict, years=1))
    engine.run()
    assert engine.state is EngineState.COMPLETED
    with pytest.raises(EngineStateError):
        engine.run()


def test_cancellation_between_months(sample_snapshot_dict):
    polls = []

    def should_cancel():
        polls.append(1)
        return len(polls) > 5

    engine = SimulationEngine(_snapshot(sample_snapshot_dict, years=2), should_cancel=should_cancel)
    with pytest.raises(RunCancelled):
        engine.run()
    assert engine.state is EngineState.CANCELLED
    assert len(polls) == 6


def test_module_failure_is_wrapped(sample_snapshot_dict, monkeypatch):
    def explode(self, context, state):
        raise RuntimeError("boom")

    monkeypatch.setattr(SpendingModule, "apply", explode)
    engine = SimulationEngine(_snapshot(sample_snapshot_dict, years=1))
    with pytest.raises(ModuleError) as excinfo:
        engine.run()
    assert excinfo.value.module_id == "spending"
    assert excinfo.value.month_index == 0
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert engine.state is EngineState.FAILED
