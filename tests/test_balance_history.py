from datetime import date, timedelta

import pytest

from moneyapp.balance_history import (
    TREND_DOWN, TREND_FLAT, TREND_UP, BalanceHistoryCache, daily_net, reconstruct, trend_color,
)
from moneyapp.models import BalancePoint

TODAY = date(2024, 6, 15)


def _days(n):
    return TODAY - timedelta(days=n)


def test_single_expense_on_most_recent_day(make_tx):
    txs = [make_tx(TODAY, 50.00)]
    series = reconstruct(1000.00, txs, _days(1), TODAY, today=TODAY)
    assert [p.to_dict() for p in series] == [
        {"date": _days(1).isoformat(), "balance": 1050.00},
        {"date": TODAY.isoformat(), "balance": 1000.00},
    ]


def test_today_equals_current_and_each_step_undoes_next_day(make_tx):
    txs = [
        make_tx(_days(0), 12.5),
        make_tx(_days(1), -200.0),
        make_tx(_days(1), 30.25),
        make_tx(_days(4), 99.99),
        make_tx(_days(9), -1500.0),
    ]
    net = daily_net(txs)
    series = reconstruct(2500.0, txs, _days(10), TODAY, today=TODAY)

    assert series[-1].date == TODAY
    assert series[-1].balance == 2500.0
    for prev, nxt in zip(series, series[1:]):
        assert prev.balance == pytest.approx(nxt.balance + net.get(nxt.date, 0.0))


def test_window_is_contiguous_and_bounded(make_tx):
    txs = [make_tx(_days(3), 10.0), make_tx(_days(20), 5.0)]
    start, end = _days(30), _days(2)
    series = reconstruct(100.0, txs, start, end, today=TODAY)

    dates = [p.date for p in series]
    assert dates[0] == start and dates[-1] == end
    assert len(dates) == (end - start).days + 1
    assert all((b - a).days == 1 for a, b in zip(dates, dates[1:]))


def test_boundary_inside_window_starts_series_at_boundary(make_tx):
    boundary = _days(5)
    txs = [make_tx(_days(5), 40.0), make_tx(_days(2), 10.0)]
    series = reconstruct(500.0, txs, _days(30), TODAY, boundary=boundary, today=TODAY)

    assert series[0].date == boundary
    assert len(series) == 6
    assert series[0].balance == 510.0


def test_no_transactions_is_flat_line():
    series = reconstruct(321.0, [], _days(6), TODAY, today=TODAY)
    assert len(series) == 7
    assert {p.balance for p in series} == {321.0}


def test_end_before_today_still_undoes_later_activity(make_tx):
    txs = [make_tx(TODAY, 100.0), make_tx(_days(1), -50.0)]
    series = reconstruct(1000.0, txs, _days(4), _days(2), today=TODAY)

    assert [p.date for p in series] == [_days(4), _days(3), _days(2)]
    # today +100 back, yesterday -50 back
    assert series[-1].balance == 1050.0


def test_same_day_transactions_are_netted(make_tx):
    txs = [make_tx(TODAY, 20.0), make_tx(TODAY, 30.0), make_tx(TODAY, -5.0)]
    series = reconstruct(0.0, txs, _days(1), TODAY, today=TODAY)
    assert series[0].balance == 45.0
    assert len(series) == 2


def test_iteration_cap_limits_walk():
    series = reconstruct(10.0, [], _days(20), TODAY, today=TODAY, max_days=5)
    assert [p.date for p in series] == [_days(n) for n in range(4, -1, -1)]


def test_same_inputs_give_identical_output(make_tx):
    txs = [make_tx(_days(n), 3.33 * n) for n in range(15)]
    first = reconstruct(777.77, txs, _days(14), TODAY, boundary=_days(10), today=TODAY)
    second = reconstruct(777.77, txs, _days(14), TODAY, boundary=_days(10), today=TODAY)
    assert first == second


def test_trend_color():
    up = [BalancePoint(_days(1), 1.0), BalancePoint(TODAY, 2.0)]
    down = [BalancePoint(_days(1), 2.0), BalancePoint(TODAY, 1.0)]
    assert trend_color(up) == TREND_UP
    assert trend_color(down) == TREND_DOWN
    assert trend_color(up[:1]) == TREND_FLAT
    assert trend_color([BalancePoint(_days(1), 5.0), BalancePoint(TODAY, 5.0)]) == TREND_FLAT


def test_cache_reuses_until_inputs_change(make_tx):
    cache = BalanceHistoryCache()
    txs = [make_tx(TODAY, 10.0)]
    a = cache.get("acc-1", 100.0, txs, _days(3), TODAY, today=TODAY)
    b = cache.get("acc-1", 100.0, list(txs), _days(3), TODAY, today=TODAY)
    assert a is b

    c = cache.get("acc-1", 90.0, txs, _days(3), TODAY, today=TODAY)
    assert c is not a
    assert c[-1].balance == 90.0

    cache.invalidate("acc-1")
    assert "acc-1" not in cache
