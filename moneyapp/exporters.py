"""
CSV and OFX 1.0.2 (SGML) statement exports.

Both flip the upstream sign so money out is negative, the way statements
show it. OFX leaf elements are left unterminated, as 1.0.2 SGML readers
(older Money/Quicken builds) expect.
"""
from __future__ import annotations

import csv
import io
import re
from datetime import date, datetime
from typing import Iterable, List, Optional

from moneyapp.date_ranges import DateWindow
from moneyapp.models import Account, Transaction
from moneyapp.spending import display_category

CSV_HEADER = ["Date", "Name", "Category", "Amount", "Currency"]

OFX_ACCTID_MAX = 22
OFX_NAME_MAX = 32
OFX_MEMO_MAX = 255

OFX_HEADER = "\n".join([
    "OFXHEADER:100",
    "DATA:OFXSGML",
    "VERSION:102",
    "SECURITY:NONE",
    "ENCODING:USASCII",
    "CHARSET:1252",
    "COMPRESSION:NONE",
    "OLDFILEUID:NONE",
    "NEWFILEUID:NONE",
])


def export_filename(window: DateWindow, ext: str) -> str:
    return f"transactions_{window.start.isoformat()}_{window.end.isoformat()}.{ext}"


def in_window(transactions: Iterable[Transaction], window: DateWindow) -> List[Transaction]:
    """Window filter, newest first."""
    rows = [t for t in transactions if t.date is not None and window.contains(t.date)]
    rows.sort(key=lambda t: t.date, reverse=True)
    return rows


def _fmt_amount(value: float) -> str:
    return f"{round(value, 2) + 0.0:.2f}"


# --------------------
# CSV
# --------------------
def _csv_category(tx: Transaction) -> str:
    return display_category(tx) or ";".join(tx.category or [])


def to_csv(transactions: Iterable[Transaction], window: DateWindow, currency: Optional[str] = None) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for tx in in_window(transactions, window):
        writer.writerow([
            tx.date.isoformat(),
            tx.name,
            _csv_category(tx),
            _fmt_amount(tx.display_amount),
            currency or tx.iso_currency_code or "USD",
        ])
    return buf.getvalue()


# --------------------
# OFX 1.0.2
# --------------------
def _ofx_text(s: str, max_len: int) -> str:
    s = (s or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return s[:max_len]


def _ofx_date(d: date) -> str:
    return d.strftime("%Y%m%d") + "000000"


def ofx_account_id(account_id: str) -> str:
    """Upstream ids run 37+ chars; legacy readers cap ACCTID at 22."""
    return re.sub(r"^accessToken-", "", account_id or "")[-OFX_ACCTID_MAX:]


def ofx_account_type(account: Account) -> str:
    subtype = (account.subtype or "").lower()
    if "savings" in subtype:
        return "SAVINGS"
    if "money market" in subtype:
        return "MONEYMRKT"
    if account.is_credit_card:
        return "CREDITCARD"
    return "CHECKING"


def _stmttrn(tx: Transaction, pad: str) -> List[str]:
    amount = _fmt_amount(tx.display_amount)
    lines = [
        f"{pad}<STMTTRN>",
        f"{pad}    <TRNTYPE>{'DEBIT' if float(amount) < 0 else 'CREDIT'}",
        f"{pad}    <DTPOSTED>{_ofx_date(tx.date)}",
        f"{pad}    <TRNAMT>{amount}",
        f"{pad}    <FITID>{tx.transaction_id}",
        f"{pad}    <NAME>{_ofx_text(tx.name, OFX_NAME_MAX)}",
    ]
    if tx.category:
        lines.append(f"{pad}    <MEMO>{_ofx_text('; '.join(tx.category), OFX_MEMO_MAX)}")
    lines.append(f"{pad}</STMTTRN>")
    return lines


def _status(pad: str) -> List[str]:
    return [
        f"{pad}<STATUS>",
        f"{pad}    <CODE>0",
        f"{pad}    <SEVERITY>INFO",
        f"{pad}</STATUS>",
    ]


def to_ofx(transactions: Iterable[Transaction], account: Account, window: DateWindow,
           now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    server_date = now.strftime("%Y%m%d%H%M%S")
    currency = account.iso_currency_code or "USD"
    acct_id = ofx_account_id(account.account_id)
    credit = account.is_credit_card

    body_pad = " " * 20
    tranlist = [
        f"{body_pad}<BANKTRANLIST>",
        f"{body_pad}    <DTSTART>{_ofx_date(window.start)}",
        f"{body_pad}    <DTEND>{_ofx_date(window.end)}",
    ]
    for tx in in_window(transactions, window):
        tranlist.extend(_stmttrn(tx, body_pad + "    "))
    tranlist.append(f"{body_pad}</BANKTRANLIST>")

    # upstream balance, not inverted
    ledger = [
        f"{body_pad}<LEDGERBAL>",
        f"{body_pad}    <BALAMT>{_fmt_amount(account.current)}",
        f"{body_pad}    <DTASOF>{server_date}",
        f"{body_pad}</LEDGERBAL>",
    ]

    if credit:
        msgset = [
            "    <CREDITCARDMSGSRSV1>",
            "        <CCSTMTTRNRS>",
            "            <TRNUID>1",
            *_status(" " * 12),
            "            <CCSTMTRS>",
            f"                <CURDEF>{currency}",
            "                <CCACCTFROM>",
            f"                    <ACCTID>{acct_id}",
            "                </CCACCTFROM>",
            *tranlist,
            *ledger,
            "            </CCSTMTRS>",
            "        </CCSTMTTRNRS>",
            "    </CREDITCARDMSGSRSV1>",
        ]
    else:
        msgset = [
            "    <BANKMSGSRSV1>",
            "        <STMTTRNRS>",
            "            <TRNUID>1",
            *_status(" " * 12),
            "            <STMTRS>",
            f"                <CURDEF>{currency}",
            "                <BANKACCTFROM>",
            "                    <BANKID>000000000",
            f"                    <ACCTID>{acct_id}",
            f"                    <ACCTTYPE>{ofx_account_type(account)}",
            "                </BANKACCTFROM>",
            *tranlist,
            *ledger,
            "            </STMTRS>",
            "        </STMTTRNRS>",
            "    </BANKMSGSRSV1>",
        ]

    doc = [
        OFX_HEADER,
        "",
        "<OFX>",
        "    <SIGNONMSGSRSV1>",
        "        <SONRS>",
        *_status(" " * 12),
        f"            <DTSERVER>{server_date}",
        "            <LANGUAGE>ENG",
        "        </SONRS>",
        "    </SIGNONMSGSRSV1>",
        *msgset,
        "</OFX>",
    ]
    return "\n".join(doc) + "\n"
