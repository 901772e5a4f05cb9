from datetime import date

import pytest

from nestegg.cost_basis import CostBasisTracker, LotBasisTracker, RothBasisTracker

AS_OF = date(2026, 1, 1)


def _roth() -> RothBasisTracker:
    tracker = RothBasisTracker()
    tracker.add_basis(1_000, date(2018, 1, 1))
    tracker.add_basis(500, date(2024, 1, 1))
    return tracker


def test_average_cost_withdrawal():
    tracker = CostBasisTracker(total_basis=60)
    gain = tracker.withdraw(50, balance_before=100)
    assert gain == pytest.approx(20)
    assert tracker.total_basis == pytest.approx(30)


def test_average_cost_loss_is_negative_gain():
    tracker = CostBasisTracker(total_basis=200)
    assert tracker.withdraw(50, balance_before=100) == pytest.approx(-50)
    assert tracker.total_basis == pytest.approx(100)


def test_roth_seasoning_after_sixty_months():
    tracker = _roth()
    assert tracker.seasoned(AS_OF) == pytest.approx(1_000)
    assert tracker.unseasoned(AS_OF) == pytest.approx(500)
    assert tracker.seasoned(date(2029, 1, 1)) == pytest.approx(1_500)


def test_roth_withdrawal_consumes_oldest_lots_first():
    tracker = _roth()
    split = tracker.withdraw(1_200, AS_OF)
    assert split.seasoned_basis == pytest.approx(1_000)
    assert split.unseasoned_basis == pytest.approx(200)
    assert split.earnings == 0.0
    assert tracker.total_basis == pytest.approx(300)


def test_roth_withdrawal_beyond_basis_is_earnings():
    tracker = _roth()
    split = tracker.withdraw(2_000, AS_OF)
    assert split.earnings == pytest.approx(500)
    assert tracker.lots == []


def test_cap_to_balance_trims_unseasoned_first():
    tracker = _roth()
    tracker.cap_to_balance(1_200, AS_OF)
    assert tracker.seasoned(AS_OF) == pytest.approx(1_000)
    assert tracker.unseasoned(AS_OF) == pytest.approx(200)

    tracker.cap_to_balance(400, AS_OF)
    assert tracker.unseasoned(AS_OF) == 0.0
    assert tracker.seasoned(AS_OF) == pytest.approx(400)


def test_take_keeps_lot_dates():
    tracker = _roth()
    taken = tracker.take(1_100)
    assert [(lot.opened, lot.amount) for lot in taken] == [(date(2018, 1, 1), 1_000), (date(2024, 1, 1), 100)]


def _two_lots(method: str) -> LotBasisTracker:
    tracker = LotBasisTracker(method=method)
    tracker.add_basis(1_000, balance_before=0, opened=date(2018, 1, 1))
    # The first lot doubles before the second purchase.
    tracker.add_basis(2_000, balance_before=2_000, opened=date(2024, 1, 1))
    return tracker


@pytest.mark.parametrize("method, gain, basis_left", [("fifo", 1_000, 2_000), ("lifo", 0, 1_000)])
def test_lot_order_decides_realized_gain(method, gain, basis_left):
    tracker = _two_lots(method)
    assert tracker.total_units == pytest.approx(2_000)

    assert tracker.withdraw(2_000, balance_before=4_000) == pytest.approx(gain)
    assert tracker.total_basis == pytest.approx(basis_left)
    assert tracker.total_units == pytest.approx(1_000)


def test_seeded_lots_without_basis_hold_full_gain():
    tracker = LotBasisTracker.seeded("fifo", [], 5_000, AS_OF)
    assert tracker.total_basis == 0.0
    assert tracker.withdraw(1_000, balance_before=5_000) == pytest.approx(1_000)
