from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from time import time
from typing import Any, Dict, List, Optional, Tuple

from openpyxl import load_workbook

from moneyapp.errors import ImportParseError, ValidationError
from moneyapp.models import Account, Transaction, parse_day

REQUIRED_COLUMNS = ["date", "name", "category", "amount", "currency"]
ALLOWED_EXTENSIONS = (".csv", ".xlsx", ".xls")


@dataclass
class ImportedStatement:
    account: Account
    transactions: List[Transaction]


def _read_csv(data: bytes) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Returns (header names, data rows)."""
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImportParseError(f"CSV parsing error: {e}")
    try:
        reader = csv.DictReader(io.StringIO(text))
        if reader.fieldnames is None:
            return [], []
        reader.fieldnames = [(f or "").strip() for f in reader.fieldnames]
        rows = [r for r in reader if any((v or "").strip() for v in r.values() if isinstance(v, str))]
    except csv.Error as e:
        raise ImportParseError(f"CSV parsing error: {e}")
    return list(reader.fieldnames), rows


def _read_xlsx(data: bytes) -> Tuple[List[str], List[Dict[str, Any]]]:
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        logging.warning(f"XLSX load failed: {e}")
        raise ImportParseError("Failed to parse XLSX file")
    try:
        ws = wb.worksheets[0]
        it = ws.iter_rows(values_only=True)
        header = next(it, None)
        if not header or all(h is None for h in header):
            return [], []
        names = [str(h).strip() if h is not None else "" for h in header]
        rows = []
        for values in it:
            if values is None or all(v is None or str(v).strip() == "" for v in values):
                continue
            rows.append({names[i]: v for i, v in enumerate(values) if i < len(names) and names[i]})
        return names, rows
    finally:
        wb.close()


def _cell(row: Dict[str, Any], col: str) -> str:
    v = row.get(col)
    return "" if v is None else str(v).strip()


def validate_rows(columns: List[str], rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Check columns and every row; the first bad row aborts the whole import."""
    present = {str(c).strip().lower() for c in columns if str(c).strip()}
    if not present:
        raise ImportParseError("File is empty")

    missing = [c for c in REQUIRED_COLUMNS if c not in present]
    if missing:
        raise ImportParseError(f"Missing required columns: {', '.join(missing)}")
    if not rows:
        raise ImportParseError("No valid transactions found in file")

    out = []
    for index, raw in enumerate(rows):
        row_no = index + 2
        row = {str(k).strip().lower(): v for k, v in raw.items()}
        values = {c: _cell(row, c) for c in REQUIRED_COLUMNS}
        if not all(values.values()):
            raise ImportParseError(f"Row {row_no}: Missing required data")

        try:
            amount = float(values["amount"].replace(",", "").replace("$", ""))
        except ValueError:
            raise ImportParseError(f"Row {row_no}: Invalid amount value")

        day = parse_day(row.get("date"))
        if day is None:
            raise ImportParseError(f"Row {row_no}: Invalid date format")

        out.append({
            "date": day,
            "name": values["name"],
            "category": values["category"],
            "amount": amount,
            "currency": values["currency"],
        })
    return out


def parse_file(filename: str, data: bytes) -> List[Dict[str, Any]]:
    lower = (filename or "").lower()
    if not lower.endswith(ALLOWED_EXTENSIONS):
        raise ValidationError("Please select a CSV or XLSX file")
    columns, rows = _read_csv(data) if lower.endswith(".csv") else _read_xlsx(data)
    return validate_rows(columns, rows)


def build_statement(account_name: str, institution_name: str, rows: List[Dict[str, Any]],
                    account_id: Optional[str] = None) -> ImportedStatement:
    if not rows:
        raise ImportParseError("No valid transactions found in file")
    account_id = account_id or f"imported_{int(time() * 1000)}"
    account = Account(
        account_id=account_id,
        name=account_name,
        type="imported",
        institution_name=institution_name,
        is_imported=True,
    )
    txs = [
        Transaction(
            transaction_id=f"{account_id}_{i}",
            account_id=account_id,
            date=r["date"],
            name=r["name"],
            amount=r["amount"],
            iso_currency_code=r["currency"],
            category=[r["category"]],
            pending=False,
            is_imported=True,
        )
        for i, r in enumerate(rows)
    ]
    return ImportedStatement(account, txs)


def import_statement(account_name: str, institution_name: str, filename: str, data: bytes) -> ImportedStatement:
    if not (account_name or "").strip():
        raise ValidationError("Please enter an account name")
    if not (institution_name or "").strip():
        raise ValidationError("Please enter an institution name")
    if not data:
        raise ValidationError("Please select a file")
    rows = parse_file(filename, data)
    stmt = build_statement(account_name.strip(), institution_name.strip(), rows)
    logging.info(f"Imported {len(stmt.transactions)} transactions into {stmt.account.account_id}")
    return stmt
