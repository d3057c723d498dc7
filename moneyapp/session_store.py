from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from time import time
from pathlib import Path
from typing import Dict, List, Optional

from moneyapp import config
from moneyapp.balance_history import BalanceHistoryCache
from moneyapp.boundary import HistoryBoundaryEstimator
from moneyapp.importer import ImportedStatement
from moneyapp.models import Account, Transaction

TOKENS_FILE = "access_tokens.json"

SPENDING_ACCOUNT_TYPES = ("depository", "credit", "imported")


# ---------- durable credential list ----------
class TokenVault:
    """JSON array of access tokens on disk; the only state that survives a restart."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else config.config_dir() / TOKENS_FILE
        self._lock = threading.Lock()

    def load(self) -> List[str]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"Could not read {self.path}: {e}")
            return []
        return [t for t in data if isinstance(t, str) and t] if isinstance(data, list) else []

    def _save(self, tokens: List[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(tokens, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def add(self, token: str) -> List[str]:
        with self._lock:
            tokens = self.load()
            if token not in tokens:
                tokens.append(token)
                self._save(tokens)
            return tokens

    def remove(self, token: str) -> List[str]:
        with self._lock:
            tokens = [t for t in self.load() if t != token]
            self._save(tokens)
            return tokens


# ---------- per-session derived state ----------
class SessionStore:
    """
    Everything derived from upstream for one browser session: institutions,
    logos, accounts, imported statements, boundary estimates, cached balance
    series and request sequence numbers. All access goes through one lock.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.institutions: Dict[str, dict] = {}      # token -> institution
        self.logos: Dict[str, Optional[str]] = {}    # account_id -> logo
        self.accounts: Dict[str, Account] = {}
        self.imported_transactions: List[Transaction] = []
        self.boundaries: Dict[str, HistoryBoundaryEstimator] = {}
        self.history_cache = BalanceHistoryCache()
        self._seq: Dict[str, int] = {}

    # --- balances / institutions ---
    def record_balances(self, token: str, accounts: List[Account], institution: Optional[dict]) -> None:
        with self._lock:
            if institution:
                self.institutions[token] = institution
            for acct in accounts:
                self.accounts[acct.account_id] = acct
                self.logos[acct.account_id] = (institution or {}).get("logo")
                self.history_cache.invalidate(acct.account_id)

    def remove_token(self, token: str) -> List[str]:
        """Drop an institution and everything sourced from it; returns removed account ids."""
        with self._lock:
            removed = [aid for aid, a in self.accounts.items() if a.access_token == token]
            for aid in removed:
                self.accounts.pop(aid, None)
                self.logos.pop(aid, None)
                self.boundaries.pop(aid, None)
                self.history_cache.invalidate(aid)
            self.institutions.pop(token, None)
            return removed

    def institution_name(self, token: str) -> str:
        with self._lock:
            return (self.institutions.get(token) or {}).get("name") or ""

    # --- imported statements ---
    def add_import(self, stmt: ImportedStatement) -> None:
        with self._lock:
            self.accounts[stmt.account.account_id] = stmt.account
            self.imported_transactions.extend(stmt.transactions)

    def imported_for(self, account_ids) -> List[Transaction]:
        ids = set(account_ids)
        with self._lock:
            return [t for t in self.imported_transactions if t.account_id in ids]

    # --- lookups ---
    def account(self, account_id: str) -> Optional[Account]:
        with self._lock:
            return self.accounts.get(account_id)

    def accounts_snapshot(self) -> Dict[str, Account]:
        with self._lock:
            return dict(self.accounts)

    def spending_accounts(self) -> List[Account]:
        with self._lock:
            return [a for a in self.accounts.values() if a.type in SPENDING_ACCOUNT_TYPES]

    def boundary_for(self, account_id: str) -> HistoryBoundaryEstimator:
        with self._lock:
            est = self.boundaries.get(account_id)
            if est is None:
                est = self.boundaries[account_id] = HistoryBoundaryEstimator()
            return est

    # --- request sequencing ---
    def begin_request(self, view: str) -> int:
        with self._lock:
            seq = self._seq.get(view, 0) + 1
            self._seq[view] = seq
            return seq

    def note_request(self, view: str, seq: int) -> None:
        """Record a client-issued sequence number (never moves backwards)."""
        with self._lock:
            if seq > self._seq.get(view, 0):
                self._seq[view] = seq

    def is_current(self, view: str, seq: int) -> bool:
        with self._lock:
            return seq >= self._seq.get(view, 0)


# session id -> (last used, store); least recently used first
_STORES: OrderedDict[str, tuple[float, SessionStore]] = OrderedDict()
_STORES_LOCK = threading.Lock()


def _evict(now: float, max_sessions: int, idle_seconds: int) -> None:
    while _STORES:
        sid, (last_used, _) = next(iter(_STORES.items()))
        if len(_STORES) <= max_sessions and now - last_used <= idle_seconds:
            break
        _STORES.popitem(last=False)
        logging.info(f"Dropped session store {sid[:8]}")


def get_store(session_id: str, now: Optional[float] = None, max_sessions: Optional[int] = None,
              idle_seconds: Optional[int] = None) -> SessionStore:
    """
    Store for one browser session. Stores idle longer than SESSION_IDLE_SECONDS
    are dropped, and at most MAX_SESSIONS are kept.
    """
    now = time() if now is None else now
    max_sessions = config.MAX_SESSIONS if max_sessions is None else max_sessions
    idle_seconds = config.SESSION_IDLE_SECONDS if idle_seconds is None else idle_seconds
    with _STORES_LOCK:
        entry = _STORES.pop(session_id, None)
        store = entry[1] if entry is not None and now - entry[0] <= idle_seconds else SessionStore()
        _STORES[session_id] = (now, store)
        _evict(now, max_sessions, idle_seconds)
        return store


def session_count() -> int:
    with _STORES_LOCK:
        return len(_STORES)
