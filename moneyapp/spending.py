from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from moneyapp.date_ranges import DateWindow
from moneyapp.errors import ValidationError
from moneyapp.models import Account, Transaction

PERIODS = ("day", "week", "month")
GROUP_BYS = ("category", "account", "institution")

# --------------------------
# Detailed-category overrides (first substring match wins)
# --------------------------
DISPLAY_CATEGORY_OVERRIDES = [
    ("GROCERIES", "Groceries"),
    ("RESTAURANT", "Restaurant"),
    ("FAST_FOOD", "Fast Food"),
    ("COFFEE", "Coffee"),
    ("BEER_WINE_AND_LIQUOR", "Alcohol"),
    ("TRANSPORTATION_GAS", "Gas"),
    ("TRANSPORTATION_PARKING", "Parking"),
    ("TRANSPORTATION_PUBLIC_TRANSIT", "Public Transit"),
    ("TRANSPORTATION_TOLLS", "Tolls"),
    ("INTERNET_AND_CABLE", "Internet & Cable"),
    ("GAS_AND_ELECTRICITY", "Gas & Electricity"),
    ("RENT_AND_UTILITIES_WATER", "Water"),
    ("RENT_AND_UTILITIES_TELEPHONE", "Phone"),
    ("HOME_IMPROVEMENT_HARDWARE", "Hardware"),
]

UNCATEGORIZED = "Uncategorized"
UNKNOWN = "Unknown"
OTHER = "Other"
PIE_TOP_N = 5


def display_category(tx: Transaction) -> Optional[str]:
    pfc = tx.personal_finance_category
    if not pfc:
        return None
    detailed = pfc.get("detailed") or ""
    for needle, label in DISPLAY_CATEGORY_OVERRIDES:
        if needle in detailed:
            return label
    return " ".join(w.capitalize() for w in (pfc.get("primary") or "").split("_"))


def category_label(tx: Transaction) -> str:
    return display_category(tx) or (tx.category[0] if tx.category else UNCATEGORIZED)


def week_start(day: date) -> date:
    """Weeks start on Sunday."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def bucket_key(day: date, period: str) -> str:
    if period == "day":
        return day.isoformat()
    if period == "week":
        return week_start(day).isoformat()
    if period == "month":
        return f"{day.year:04d}-{day.month:02d}"
    raise ValidationError(f"Unknown period: {period}")


def period_label(key: str, period: str) -> str:
    if period == "month":
        y, m = key.split("-")
        return date(int(y), int(m), 1).strftime("%b %y")
    d = date.fromisoformat(key)
    short = f"{d:%b} {d.day}"
    return f"Week of {short}" if period == "week" else short


def group_key(tx: Transaction, group_by: str, accounts: Dict[str, Account]) -> str:
    if group_by == "category":
        return category_label(tx)
    acct = accounts.get(tx.account_id)
    if group_by == "account":
        return f"{acct.institution_name} - {acct.name}" if acct else UNKNOWN
    if group_by == "institution":
        return acct.institution_name if acct else UNKNOWN
    raise ValidationError(f"Unknown grouping: {group_by}")


def spending_transactions(transactions: Iterable[Transaction], accounts: Dict[str, Account]) -> List[Transaction]:
    """Drop money coming into checking/savings; everything else counts toward spending."""
    out = []
    for tx in transactions:
        acct = accounts.get(tx.account_id)
        if acct is not None and acct.type == "depository" and tx.amount < 0:
            continue
        out.append(tx)
    return out


def chart_rows(transactions: Iterable[Transaction], accounts: Dict[str, Account],
               period: str = "week", group_by: str = "category") -> Dict[str, Any]:
    """
    Stacked-chart table: one row per period (chronological), each row holding
    a value for every group seen anywhere in the set, zero-filled.
    """
    if period not in PERIODS:
        raise ValidationError(f"Unknown period: {period}")
    if group_by not in GROUP_BYS:
        raise ValidationError(f"Unknown grouping: {group_by}")

    table: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    keys = set()
    for tx in transactions:
        if tx.date is None:
            continue
        g = group_key(tx, group_by, accounts)
        keys.add(g)
        table[bucket_key(tx.date, period)][g] += float(tx.amount)

    ordered_keys = sorted(keys)
    rows = []
    for pk in sorted(table.keys()):
        groups = table[pk]
        rows.append({
            "period": pk,
            "periodLabel": period_label(pk, period),
            "values": {k: round(groups.get(k, 0.0), 2) for k in ordered_keys},
        })
    return {"period": period, "group_by": group_by, "keys": ordered_keys, "rows": rows}


def pie_summary(transactions: Iterable[Transaction], window: Optional[DateWindow] = None,
                top_n: int = PIE_TOP_N) -> Dict[str, Any]:
    """Expenses only, by category; top N kept and the rest folded into Other."""
    totals: Dict[str, float] = defaultdict(float)
    for tx in transactions:
        if tx.date is None or tx.amount <= 0:
            continue
        if window is not None and not window.contains(tx.date):
            continue
        totals[category_label(tx)] += float(tx.amount)

    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    slices = [{"name": n, "value": round(v, 2)} for n, v in ranked[:top_n]]
    rest = sum(v for _, v in ranked[top_n:])
    if rest > 0:
        slices.append({"name": OTHER, "value": round(rest, 2)})
    return {"slices": slices, "total": round(sum(s["value"] for s in slices), 2)}
