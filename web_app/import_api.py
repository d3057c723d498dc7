# web_app/import_api.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from werkzeug.utils import secure_filename

from moneyapp.importer import import_statement
from web_app import context as ctx

import_bp = Blueprint("import_api", __name__, url_prefix="/api/import")


@import_bp.post("")
def import_transactions():
    upload = request.files.get("file")
    stmt = import_statement(
        request.form.get("account_name", ""),
        request.form.get("institution_name", ""),
        secure_filename(upload.filename or "") if upload else "",
        upload.read() if upload else b"",
    )
    ctx.current_store().add_import(stmt)
    return jsonify({
        "ok": True,
        "account": stmt.account.to_dict(),
        "imported": len(stmt.transactions),
    }), 201
