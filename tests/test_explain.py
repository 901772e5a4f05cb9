import pytest

from nestegg.explain import (
    ExplainTracker,
    ModuleExplanation,
    MonthExplanation,
    MonthlyTimelinePoint,
    ResultRecorder,
    TimelinePoint,
)
from nestegg.ledger import YearLedger
from nestegg.records import Action, Cashflow


def _month(index: int, total: float = 100.0) -> tuple[MonthExplanation, MonthlyTimelinePoint]:
    explanation = MonthExplanation(
        month_index=index,
        date="2026-01-01",
        age=60.0,
        modules=[],
        accounts=[],
        contributions_by_tax_type={},
        unmet_spending=0.0,
    )
    point = MonthlyTimelinePoint(
        month_index=index,
        date="2026-01-01",
        age=60.0,
        cash_balance=total,
        investment_balance=0.0,
        total_balance=total,
        income=0.0,
        spending=0.0,
        contributions=0.0,
        withdrawals=0.0,
        taxes=0.0,
        ordinary_income=0.0,
        capital_gains=0.0,
        deductions=0.0,
    )
    return explanation, point


def _year(index: int) -> TimelinePoint:
    return TimelinePoint(
        year_index=index,
        age=60.0,
        date="2026-12-01",
        balance=0.0,
        contribution=0.0,
        spending=0.0,
        income=0.0,
        withdrawals=0.0,
        taxes=0.0,
        cash_balance=0.0,
        investment_balance=0.0,
        year_ledger=YearLedger(),
    )


def test_months_must_be_recorded_in_order():
    recorder = ResultRecorder()
    recorder.record_month(*_month(0))
    with pytest.raises(ValueError, match="out of order"):
        recorder.record_month(*_month(2))


def test_years_must_be_recorded_in_order():
    recorder = ResultRecorder()
    with pytest.raises(ValueError, match="out of order"):
        recorder.record_year(_year(1), 0.0)


def test_summary_tracks_balances_and_unmet_spending():
    recorder = ResultRecorder()
    for index, total in enumerate([100.0, 40.0, 70.0]):
        recorder.record_month(*_month(index, total))
    recorder.record_year(_year(0), 25.0)
    result = recorder.finish()
    assert result.summary.ending_balance == 70.0
    assert result.summary.min_balance == 40.0
    assert result.summary.max_balance == 100.0
    assert result.summary.unmet_spending == 25.0


def test_module_totals():
    tracker = ExplainTracker()
    tracker.add_input("Rate", 0.1)
    tracker.add_checkpoint("Paid", 50.0)
    output = tracker.output(
        cashflows=[Cashflow(label="Salary", category="work", cash=100.0, ordinary_income=100.0)],
        actions=[
            Action(kind="withdraw", amount=30.0, resolved_amount=30.0, label="Sell", capital_gains=5.0),
            Action(kind="deposit", amount=20.0, resolved_amount=20.0, label="Buy", from_cash=True),
        ],
    )
    explanation = ModuleExplanation.from_output("work", output)
    assert explanation.inputs == [("Rate", 0.1)]
    assert explanation.totals.cash == 100.0
    assert explanation.totals.ordinary_income == 100.0
    assert explanation.totals.capital_gains == 5.0
    assert explanation.totals.withdraw == 30.0
    assert explanation.totals.deposit == 20.0
    assert output.cash_delta() == 110.0


def test_unknown_record_kinds_rejected():
    with pytest.raises(ValueError):
        Cashflow(label="x", category="salary", cash=1.0)
    with pytest.raises(ValueError):
        Action(kind="sell", amount=1.0, resolved_amount=1.0, label="x")
