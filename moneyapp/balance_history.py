"""
Day-by-day balance reconstruction.

Only today's balance is known. Walking backward one day at a time, each
day's net amount is added back (positive amounts are money out), giving the
previous day's end-of-day balance:

    S[today] = current balance
    S[d]     = S[d + 1] + net(d + 1)

Points are emitted only for days inside the display window and on or after
the history boundary, then put back in chronological order.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from moneyapp import config
from moneyapp.models import BalancePoint, Transaction

TREND_UP = "#22c55e"
TREND_DOWN = "#ef4444"
TREND_FLAT = "#9ca3af"


def daily_net(transactions: Iterable[Transaction]) -> Dict[date, float]:
    net: Dict[date, float] = defaultdict(float)
    for tx in transactions:
        if tx.date is not None:
            net[tx.date] += float(tx.amount)
    return dict(net)


def reconstruct(current_balance: float, transactions: Iterable[Transaction], start: date, end: date,
                boundary: Optional[date] = None, today: Optional[date] = None,
                max_days: int = config.MAX_HISTORY_DAYS) -> List[BalancePoint]:
    """
    One point per day for [start, end] ∩ [boundary, today], oldest first.
    Same-day transactions are netted; no transactions gives a flat line.
    """
    today = today or date.today()
    net = daily_net(transactions)

    running = float(current_balance)
    points: List[BalancePoint] = []
    day = today
    steps = 0

    while day >= start and steps < max_days:
        if boundary is not None and day < boundary:
            break
        if day <= end:
            points.append(BalancePoint(day, round(running, 2)))
        running += net.get(day, 0.0)
        day -= timedelta(days=1)
        steps += 1

    points.reverse()
    return points


def trend_color(points: List[BalancePoint]) -> str:
    if len(points) < 2:
        return TREND_FLAT
    first, last = points[0].balance, points[-1].balance
    if last > first:
        return TREND_UP
    if last < first:
        return TREND_DOWN
    return TREND_FLAT


def _fingerprint(transactions: Iterable[Transaction]) -> Tuple:
    return tuple(sorted((t.transaction_id, t.date, round(float(t.amount), 2)) for t in transactions if t.date))


class BalanceHistoryCache:
    """Last series per account; any change in inputs forces a rebuild."""

    def __init__(self):
        self._entries: Dict[str, Tuple[Tuple, List[BalancePoint]]] = {}

    def get(self, account_id: str, current_balance: float, transactions: List[Transaction], start: date,
            end: date, boundary: Optional[date] = None, today: Optional[date] = None) -> List[BalancePoint]:
        today = today or date.today()
        key = (float(current_balance), _fingerprint(transactions), start, end, boundary, today)
        hit = self._entries.get(account_id)
        if hit is not None and hit[0] == key:
            return hit[1]
        points = reconstruct(current_balance, transactions, start, end, boundary, today)
        self._entries[account_id] = (key, points)
        return points

    def invalidate(self, account_id: Optional[str] = None) -> None:
        if account_id is None:
            self._entries.clear()
        else:
            self._entries.pop(account_id, None)

    def __contains__(self, account_id: str) -> bool:
        return account_id in self._entries
