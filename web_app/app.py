# web_app/app.py
import os
from datetime import date

from flask import Flask, Response, jsonify, request

from moneyapp import config, plaid_client
from moneyapp.errors import MoneyAppError, UpstreamError, ValidationError
from moneyapp.fetcher import fetch_many, fetch_token_transactions, get_account_details, group_by_token
from moneyapp.models import normalize_transactions
from moneyapp.balance_history import trend_color
from moneyapp.session_store import session_count
from moneyapp.spending import chart_rows, pie_summary, spending_transactions
from web_app import context as ctx

config.setup_logging()

# ---- Flask app ----
app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev")  # signs the session id cookie

# --- Auth exemptions (must be defined before password_gate) ---
EXEMPT_PATHS = {
    "/healthz",
}
EXEMPT_PREFIXES = ("/static/",)

SORT_KEYS = ("date", "name", "amount", "account")


@app.before_request
def password_gate():
    required = os.environ.get("APP_PASSWORD")
    if not required:
        return  # gate disabled when no password configured
    p = request.path
    if request.method == "HEAD" or p in EXEMPT_PATHS or p.startswith(EXEMPT_PREFIXES):
        return
    auth = request.authorization
    expected_user = os.environ.get("APP_USER")  # optional
    if auth and ((expected_user is None or auth.username == expected_user) and auth.password == required):
        return
    return Response(
        "Authentication required", 401, {"WWW-Authenticate": 'Basic realm="Money App"'}
    )


app.logger.info("[Config] Using CONFIG_DIR=%s", os.environ.get("CONFIG_DIR"))


# ------------------ MIDDLEWARE ------------------
@app.after_request
def add_no_cache_headers(resp):
    resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp


@app.errorhandler(MoneyAppError)
def handle_app_error(e: MoneyAppError):
    if e.status >= 500:
        app.logger.error("%s: %s", e.__class__.__name__, e.message)
    return jsonify(e.to_dict()), e.status


# ------------------ UPSTREAM PROXY ROUTES ------------------
@app.post("/api/create_link_token")
def api_create_link_token():
    return jsonify(plaid_client.create_link_token())


@app.post("/api/exchange_public_token")
def api_exchange_public_token():
    public_token = (ctx.json_body().get("public_token") or "").strip()
    if not public_token:
        raise ValidationError("Missing public_token")
    access_token, item_id = plaid_client.exchange_public_token(public_token)
    ctx.token_vault().add(access_token)
    return jsonify({"access_token": access_token, "item_id": item_id})


@app.post("/api/get_balances")
def api_get_balances():
    access_token = (ctx.json_body().get("access_token") or "").strip()
    if not access_token:
        raise ValidationError("Missing access_token")
    res = plaid_client.get_balances(access_token)
    ctx.current_store().record_balances(access_token, res["accounts"], res["institution"])
    return jsonify({
        "accounts": [a.to_dict() for a in res["accounts"]],
        "institution": res["institution"],
    })


@app.post("/api/get_transactions")
def api_get_transactions():
    body = ctx.json_body()
    access_token = body.get("access_token")
    account_ids = body.get("account_ids")
    if not access_token or not isinstance(account_ids, list):
        raise ValidationError("Missing access_token or account_ids")
    start = ctx.optional_day(body.get("startDate"))
    end = ctx.optional_day(body.get("endDate"))
    if start is None or end is None:
        raise ValidationError("Missing startDate or endDate")

    accounts = ctx.current_store().accounts_snapshot()
    raw, partial = fetch_token_transactions(access_token, account_ids, start, end)
    txs = []
    for r in raw:
        txs.extend(normalize_transactions([r], accounts.get(str(r.get("account_id") or ""))))
    return jsonify({"transactions": [t.to_dict() for t in txs], "partial": partial})


@app.post("/api/get_account_details")
def api_get_account_details():
    body = ctx.json_body()
    tokens = body.get("access_tokens")
    account_id = body.get("account_id")
    if not tokens or not isinstance(tokens, list) or not account_id:
        raise ValidationError("Missing access_tokens or account_id")
    details = get_account_details(
        tokens,
        account_id,
        ctx.optional_day(body.get("startDate")),
        ctx.optional_day(body.get("endDate")),
        include_earliest_date=bool(body.get("include_earliest_date")),
        today=ctx.today(),
    )
    earliest = details["earliest_transaction_date"]
    return jsonify({
        "account": details["account"].to_dict(),
        "transactions": [t.to_dict() for t in details["transactions"]],
        "total_transactions": details["total_transactions"],
        "partial": details["partial"],
        "earliest_transaction_date": earliest.isoformat() if earliest else None,
    })


@app.post("/api/remove_institution")
def api_remove_institution():
    access_token = (ctx.json_body().get("access_token") or "").strip()
    if not access_token:
        raise ValidationError("Missing access_token")
    request_id = plaid_client.remove_item(access_token)
    ctx.token_vault().remove(access_token)
    removed = ctx.current_store().remove_token(access_token)
    app.logger.info("Removed institution with %d account(s)", len(removed))
    return jsonify({"success": True, "request_id": request_id, "removed_accounts": removed})


# ------------------ DASHBOARD ROUTES ------------------
@app.get("/api/tokens")
def api_tokens():
    return jsonify({"access_tokens": ctx.token_vault().load()})


@app.get("/api/accounts")
def api_accounts():
    """Balances for every linked institution; one failing institution doesn't hide the rest."""
    store = ctx.current_store()
    accounts, institutions, errors = [], [], []
    for token in ctx.token_vault().load():
        try:
            res = plaid_client.get_balances(token)
        except UpstreamError as e:
            app.logger.warning("get_balances failed for one institution: %s", e.message)
            errors.append({"institution": store.institution_name(token) or None, "error": e.message})
            continue
        store.record_balances(token, res["accounts"], res["institution"])
        institutions.append(res["institution"])
        accounts.extend(a.to_dict() for a in res["accounts"])
    imported = [a.to_dict() for a in store.accounts_snapshot().values() if a.is_imported]
    return jsonify({"accounts": accounts + imported, "institutions": institutions, "errors": errors})


@app.get("/api/accounts/<account_id>/history")
def api_account_history(account_id: str):
    store = ctx.current_store()
    window = ctx.window_from_args()
    view = f"account:{account_id}"
    seq = ctx.seq_from_args(store, view)
    today = ctx.today()

    known = store.account(account_id)
    if known is not None and known.is_imported:
        raise ValidationError("Imported accounts have no balance history")

    estimator = store.boundary_for(account_id)
    details = get_account_details(
        ctx.token_vault().load(),
        account_id,
        window.start,
        window.end,
        include_earliest_date=estimator.boundary is None,
        today=today,
    )
    account, txs = details["account"], details["transactions"]
    if known is not None:
        account.institution_name = known.institution_name
        account.institution_id = known.institution_id

    estimator.observe_earliest(details["earliest_transaction_date"])
    estimator.observe(window, txs, details["total_transactions"])

    if not store.is_current(view, seq):
        return jsonify({"stale": True, "seq": seq}), 409

    points = store.history_cache.get(account_id, account.current, txs, window.start, window.end,
                                     estimator.boundary, today)
    boundary = estimator.boundary
    return jsonify({
        "seq": seq,
        "account": account.to_dict(),
        "logo": store.logos.get(account_id),
        "window": window.to_dict(),
        "history": [p.to_dict() for p in points],
        "trend_color": trend_color(points),
        "boundary": boundary.isoformat() if boundary else None,
        "disabled_ranges": estimator.disabled_ranges(today),
        "warning": estimator.custom_start_warning(window.start) if window.range_key == "CUSTOM" else None,
        "spending": pie_summary(txs, window),
        "transactions": [t.to_dict() for t in txs if window.contains(t.date)],
        "total_transactions": details["total_transactions"],
        "partial": details["partial"],
    })


def _sort_transactions(txs, accounts, key: str, direction: str):
    if key not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key: {key}")
    reverse = direction != "asc"
    if key == "account":
        def k(t):
            a = accounts.get(t.account_id)
            return ((a.institution_name + a.name) if a else "").lower()
    else:
        def k(t):
            return getattr(t, key)
    return sorted(txs, key=k, reverse=reverse)


@app.get("/api/spending")
def api_spending():
    store = ctx.current_store()
    window = ctx.window_from_args()
    account_ids = ctx.list_arg("accounts")
    if not account_ids:
        raise ValidationError("Select at least one account")

    accounts = store.accounts_snapshot()
    unknown = [a for a in account_ids if a not in accounts]
    if unknown:
        raise ValidationError(f"Unknown account(s): {', '.join(unknown)}")
    eligible = {a.account_id for a in store.spending_accounts()}
    ineligible = [a for a in account_ids if a not in eligible]
    if ineligible:
        raise ValidationError(f"Not available for spending analysis: {', '.join(ineligible)}")

    seq = ctx.seq_from_args(store, "spending")
    by_token = group_by_token(account_ids, accounts)
    result = fetch_many(by_token, window.start, window.end, accounts)
    imported = [t for t in store.imported_for(account_ids) if window.contains(t.date)]
    if by_token and len(result.errors) == len(by_token) and not imported:
        raise UpstreamError("Failed to fetch transactions")

    if not store.is_current("spending", seq):
        return jsonify({"stale": True, "seq": seq}), 409

    txs = spending_transactions(result.transactions + imported, accounts)
    txs = _sort_transactions(txs, accounts, request.args.get("sort", "date"),
                             request.args.get("direction", "desc"))
    return jsonify({
        "seq": seq,
        "window": window.to_dict(),
        "transactions": [t.to_dict() for t in txs],
        "chart": chart_rows(txs, accounts, request.args.get("period", "week"),
                            request.args.get("group_by", "category")),
        "summary": pie_summary(txs, window),
        "partial": result.partial,
        "errors": [
            {"institution": store.institution_name(tok) or None, "error": msg}
            for tok, msg in result.errors.items()
        ],
    })


@app.get("/healthz")
def healthz():
    return jsonify(ok=True, today=date.today().isoformat(), sessions=session_count()), 200


# ---- Blueprints (exports + statement import) ----
from web_app.export_api import export_bp  # noqa: E402
from web_app.import_api import import_bp  # noqa: E402
app.register_blueprint(export_bp)
app.register_blueprint(import_bp)


if __name__ == "__main__":
    app.run(debug=os.environ.get("FLASK_DEBUG") == "1")
