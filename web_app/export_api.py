# web_app/export_api.py
from __future__ import annotations

from flask import Blueprint, Response, current_app

from moneyapp.fetcher import get_account_details
from moneyapp.errors import ValidationError
from moneyapp.exporters import export_filename, in_window, to_csv, to_ofx
from web_app import context as ctx

export_bp = Blueprint("export_api", __name__, url_prefix="/api/export")

MIME = {
    "csv": "text/csv; charset=utf-8",
    "ofx": "application/x-ofx",
}


def _account_and_transactions(account_id: str, window):
    store = ctx.current_store()
    known = store.account(account_id)
    if known is not None and known.is_imported:
        return known, store.imported_for([account_id])
    details = get_account_details(
        ctx.token_vault().load(), account_id, window.start, window.end, today=ctx.today()
    )
    return details["account"], details["transactions"]


@export_bp.get("/<account_id>.<any(csv, ofx):fmt>")
def export_transactions(account_id: str, fmt: str):
    window = ctx.window_from_args()
    account, txs = _account_and_transactions(account_id, window)
    if not in_window(txs, window):
        raise ValidationError("No transactions to export")

    if fmt == "csv":
        body = to_csv(txs, window, account.iso_currency_code)
    else:
        body = to_ofx(txs, account, window)

    filename = export_filename(window, fmt)
    current_app.logger.info("Exporting %s for %s", filename, account_id)
    return Response(
        body,
        content_type=MIME[fmt],
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )
