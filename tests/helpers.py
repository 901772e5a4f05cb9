import copy
from datetime import date
import json
from pathlib import Path

from nestegg.cost_basis import CostBasisTracker, RothBasisTracker
from nestegg.inflation import rates_by_type
from nestegg.ledger import CashAccountState, HoldingState, LedgerState
from nestegg.modules.base import MonthContext
from nestegg.schema import Snapshot


def write_snapshot(tmp_path: Path, data: dict, filename: str = "snapshot.json") -> Path:
    path = tmp_path / filename
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def clone_snapshot(data: dict) -> dict:
    return copy.deepcopy(data)


def make_holding(
    holding_id: str,
    tax_type: str,
    balance: float,
    basis: float = 0.0,
    *,
    holding_type: str = "sp500",
    account_id: str = "acct",
    basis_date: date = date(2015, 1, 1),
    return_rate: float = 0.0,
) -> HoldingState:
    tracker: CostBasisTracker | RothBasisTracker
    if tax_type == "roth":
        tracker = RothBasisTracker()
        tracker.add_basis(basis, basis_date)
    else:
        tracker = CostBasisTracker(total_basis=basis)
    return HoldingState(
        id=holding_id,
        name=holding_id,
        investment_account_id=account_id,
        tax_type=tax_type,
        holding_type=holding_type,
        balance=balance,
        return_rate=return_rate,
        return_std_dev=0.0,
        basis=tracker,
    )


def make_state(*holdings: HoldingState, cash: float = 0.0, interest_rate: float = 0.0) -> LedgerState:
    state = LedgerState(
        cash_accounts=[CashAccountState(id="cash", name="Cash", balance=cash, interest_rate=interest_rate)],
        holdings=list(holdings),
    )
    state.prior_year_end_balances = {holding.id: holding.balance for holding in holdings}
    return state


def make_context(snapshot: Snapshot, current: date, month_index: int = 0) -> MonthContext:
    return MonthContext(
        snapshot=snapshot,
        start_date=date(2026, 1, 1),
        current=current,
        month_index=month_index,
        inflation=rates_by_type(snapshot.inflation_defaults),
        people={person.id: person for person in snapshot.people},
    )
