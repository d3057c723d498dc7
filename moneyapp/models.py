from __future__ import annotations

from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser


# Upstream convention, kept end to end: amount > 0 is money out (expense),
# amount < 0 is money in. Display/export layers invert at the edge.


def parse_day(value: Any) -> Optional[date]:
    """Coerce a date/datetime/ISO-ish string to a calendar day (no time component)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y"):
        try:
            return datetime.strptime(s[:10] if fmt == "%Y-%m-%d" else s, fmt).date()
        except ValueError:
            pass
    try:
        return date_parser.parse(s).date()
    except (ValueError, OverflowError):
        return None


@dataclass
class Account:
    account_id: str
    name: str
    type: str = "other"
    subtype: str = ""
    official_name: Optional[str] = None
    mask: Optional[str] = None
    current: float = 0.0
    available: Optional[float] = None
    limit: Optional[float] = None
    iso_currency_code: str = "USD"
    institution_id: Optional[str] = None
    institution_name: str = ""
    access_token: Optional[str] = None
    is_imported: bool = False

    @property
    def is_credit_card(self) -> bool:
        return self.type.lower() == "credit" or "credit card" in (self.subtype or "").lower()

    @classmethod
    def from_plaid(cls, raw: Dict[str, Any], institution: Optional[Dict[str, Any]] = None,
                   access_token: Optional[str] = None) -> "Account":
        balances = raw.get("balances") or {}
        institution = institution or {}
        return cls(
            account_id=str(raw.get("account_id") or ""),
            name=raw.get("name") or raw.get("official_name") or "",
            type=str(raw.get("type") or "other"),
            subtype=str(raw.get("subtype") or ""),
            official_name=raw.get("official_name"),
            mask=raw.get("mask"),
            current=float(balances.get("current") or 0.0),
            available=balances.get("available"),
            limit=balances.get("limit"),
            iso_currency_code=balances.get("iso_currency_code") or "USD",
            institution_id=institution.get("institution_id"),
            institution_name=institution.get("name") or "",
            access_token=access_token,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d.pop("access_token", None)
        return d


@dataclass
class Transaction:
    transaction_id: str
    account_id: str
    date: date
    name: str
    amount: float
    iso_currency_code: Optional[str] = None
    category: List[str] = field(default_factory=list)
    personal_finance_category: Optional[Dict[str, str]] = None
    pending: bool = False
    merchant_name: Optional[str] = None
    is_imported: bool = False

    @property
    def display_amount(self) -> float:
        """Money-in positive, money-out negative."""
        return -self.amount + 0.0

    @classmethod
    def from_plaid(cls, raw: Dict[str, Any]) -> "Transaction":
        pfc = raw.get("personal_finance_category") or None
        if pfc is not None:
            pfc = {
                "primary": str(pfc.get("primary") or ""),
                "detailed": str(pfc.get("detailed") or ""),
            }
        return cls(
            transaction_id=str(raw.get("transaction_id") or ""),
            account_id=str(raw.get("account_id") or ""),
            date=parse_day(raw.get("date")),
            name=raw.get("name") or raw.get("merchant_name") or "",
            amount=float(raw.get("amount") or 0.0),
            iso_currency_code=raw.get("iso_currency_code"),
            category=list(raw.get("category") or []),
            personal_finance_category=pfc,
            pending=bool(raw.get("pending", False)),
            merchant_name=raw.get("merchant_name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["date"] = self.date.isoformat() if self.date else None
        return d


@dataclass(frozen=True)
class BalancePoint:
    date: date
    balance: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "balance": self.balance}


def _is_card_payment(tx: Transaction) -> bool:
    name = (tx.name or "").lower()
    return (tx.amount > 0 and "automatic payment" in name) or "payment - thank" in name


def normalize_transactions(raw_list: List[Any], account: Optional[Account] = None) -> List[Transaction]:
    """
    Single ingestion point for upstream transactions.

    Converts raw dicts to Transaction and applies the one known re-sign rule:
    on credit cards, card payments ("automatic payment", "payment - thank")
    come back as money out and are flipped to money in.
    """
    out: List[Transaction] = []
    for raw in raw_list or []:
        tx = raw if isinstance(raw, Transaction) else Transaction.from_plaid(raw)
        if tx.date is None:
            continue
        if account is not None and account.is_credit_card and _is_card_payment(tx):
            tx = replace(tx, amount=-tx.amount)
        out.append(tx)
    return out
