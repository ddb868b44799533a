# tests/test_stock_ledger.py

from datetime import timedelta

import pytest

from conftest import at
from dosetrack.core.exceptions import NotFoundError, ValidationError
from dosetrack.models.stock import ConsumptionReason
from dosetrack.services.stock_ledger import StockLedger, compute_projection
from dosetrack.utils.timezone import to_utc_aware


@pytest.fixture
def item(factory):
    return factory.item(factory.user())


@pytest.fixture
def ledger(db):
    return StockLedger(db)


def _taken_doses(factory, item, count, end):
    """`count` taken doses spread over the 7 days before `end`."""
    for i in range(count):
        taken_at = end - timedelta(hours=11 * (i + 1))
        factory.dose(item, taken_at, status="taken", taken_at=taken_at)


def test_projection_formula_ten_units_at_two_per_day() -> None:
    daily_rate, days_remaining, projected = compute_projection(10, 14, at(12))

    assert daily_rate == pytest.approx(2.0)
    assert days_remaining == pytest.approx(5.0)
    assert projected == at(12) + timedelta(days=5)


def test_projection_rate_is_floored_without_history() -> None:
    daily_rate, days_remaining, _ = compute_projection(1, 0, at(12))

    assert daily_rate == pytest.approx(0.1)
    assert days_remaining == pytest.approx(10.0)


def test_projection_of_empty_stock_is_now() -> None:
    _, days_remaining, projected = compute_projection(0, 5, at(12))

    assert days_remaining == 0
    assert projected == at(12)


def test_projection_from_trailing_taken_doses(factory, item, ledger) -> None:
    factory.stock(item, units_left=10)
    now = at(12, day=10)
    _taken_doses(factory, item, 14, now)
    # outside the 7 day window, must not count
    old = now - timedelta(days=8)
    factory.dose(item, old, status="taken", taken_at=old)

    projection = ledger.projection(item.id, now)

    assert projection.taken_count == 14
    assert projection.daily_rate == pytest.approx(2.0)
    assert projection.days_remaining == pytest.approx(5.0)
    assert abs((projection.projected_end_at - (now + timedelta(days=5))).total_seconds()) < 1


def test_deduct_never_goes_below_zero(db, factory, item, ledger) -> None:
    factory.stock(item, units_left=2)

    for minute in range(5):
        stock = ledger.deduct(item.id, 1, at(8, minute))

    assert stock.units_left == 0
    assert len(stock.consumption_history) == 5


def test_deduct_to_zero_projects_end_at_deduction_time(factory, item, ledger) -> None:
    factory.stock(item, units_left=1)

    stock = ledger.deduct(item.id, 1, at(9, 30))

    assert stock.units_left == 0
    assert to_utc_aware(stock.projected_end_at) == at(9, 30)


def test_deduct_appends_history_and_projects(factory, item, ledger) -> None:
    factory.stock(item, units_left=10)

    stock = ledger.deduct(item.id, 1, at(8))

    assert stock.units_left == 9
    entry = stock.consumption_history[-1]
    assert entry == {"date": at(8).isoformat(), "amount": 1, "reason": "taken"}
    # no taken doses in the window: rate floors at 0.1/day
    assert to_utc_aware(stock.projected_end_at) == at(8) + timedelta(days=90)


def test_deduct_without_stock_is_noop(item, ledger) -> None:
    assert ledger.deduct(item.id, 1, at(8)) is None


def test_refill_raises_units_and_total(factory, item, ledger) -> None:
    factory.stock(item, units_left=2, units_total=30)

    stock = ledger.refill(item.id, 40, at(10))

    assert stock.units_left == 42
    assert stock.units_total == 42
    assert to_utc_aware(stock.last_refill_at) == at(10)
    assert stock.consumption_history[-1]["reason"] == "refill"
    assert stock.consumption_history[-1]["amount"] == 40


def test_adjust_records_lost_units(factory, item, ledger) -> None:
    factory.stock(item, units_left=20)

    stock = ledger.adjust(item.id, 15, ConsumptionReason.LOST, at(10))

    assert stock.units_left == 15
    assert stock.consumption_history[-1] == {"date": at(10).isoformat(), "amount": 5.0, "reason": "lost"}


def test_adjust_to_zero_projects_now(factory, item, ledger) -> None:
    factory.stock(item, units_left=3)

    stock = ledger.adjust(item.id, 0, at=at(11))

    assert stock.units_left == 0
    assert to_utc_aware(stock.projected_end_at) == at(11)


def test_non_positive_amounts_are_rejected_before_any_change(db, factory, item, ledger) -> None:
    stock = factory.stock(item, units_left=5)

    with pytest.raises(ValidationError):
        ledger.deduct(item.id, 0, at(8))
    with pytest.raises(ValidationError):
        ledger.refill(item.id, -3, at(8))

    db.refresh(stock)
    assert stock.units_left == 5
    assert stock.consumption_history == []


def test_missing_stock_raises_not_found(item, ledger) -> None:
    with pytest.raises(NotFoundError):
        ledger.refill(item.id, 10)
    with pytest.raises(NotFoundError):
        ledger.adjust(item.id, 10)
    with pytest.raises(NotFoundError):
        ledger.projection(item.id)
