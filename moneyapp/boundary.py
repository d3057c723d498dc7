from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional

from moneyapp.date_ranges import BOUNDARY_GATED_RANGES, DateWindow, resolve_range
from moneyapp.models import Transaction


@dataclass(frozen=True)
class BoundaryUpdate:
    boundary: Optional[date]
    changed: bool


class HistoryBoundaryEstimator:
    """
    Tracks, per account, the earliest date below which history is known to be empty.

    The estimate only ever moves later. Short windows cannot tell "no history"
    apart from "no activity", so only large windows are allowed to promote it.
    """

    def __init__(self, boundary: Optional[date] = None):
        self._boundary = boundary

    @property
    def boundary(self) -> Optional[date]:
        return self._boundary

    def _tighten(self, candidate: Optional[date]) -> BoundaryUpdate:
        if candidate is None or (self._boundary is not None and candidate <= self._boundary):
            return BoundaryUpdate(self._boundary, False)
        logging.info(f"History boundary moved {self._boundary} -> {candidate}")
        self._boundary = candidate
        return BoundaryUpdate(candidate, True)

    def observe(self, window: DateWindow, transactions: Iterable[Transaction],
                total_available: int) -> BoundaryUpdate:
        """Call after every fetch; only complete, large-window results can move the boundary."""
        txs = [t for t in transactions if t.date is not None]
        if not window.is_large or not txs or len(txs) < total_available:
            return BoundaryUpdate(self._boundary, False)

        oldest = min(t.date for t in txs)
        if oldest > window.start + timedelta(days=1):
            return self._tighten(oldest)
        return BoundaryUpdate(self._boundary, False)

    def observe_earliest(self, earliest: Optional[date]) -> BoundaryUpdate:
        """Seed from the upstream oldest-transaction probe."""
        return self._tighten(earliest)

    def disabled_ranges(self, today: Optional[date] = None) -> List[str]:
        if self._boundary is None:
            return []
        today = today or date.today()
        return [r for r in BOUNDARY_GATED_RANGES if resolve_range(r, today).start < self._boundary]

    def custom_start_warning(self, custom_start: Optional[date]) -> Optional[str]:
        if self._boundary is None or custom_start is None or custom_start >= self._boundary:
            return None
        b = self._boundary
        return f"Transactions only available starting from {b:%B} {b.day}, {b.year}"
