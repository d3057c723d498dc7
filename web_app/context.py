# web_app/context.py
from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from flask import request, session

from moneyapp.date_ranges import DateWindow, resolve_range
from moneyapp.errors import ValidationError
from moneyapp.models import parse_day
from moneyapp.session_store import SessionStore, TokenVault, get_store


def current_store() -> SessionStore:
    sid = session.get("sid")
    if not sid:
        sid = session["sid"] = uuid.uuid4().hex
    return get_store(sid)


def token_vault() -> TokenVault:
    # path resolved per call so CONFIG_DIR changes are honoured
    return TokenVault()


def today() -> date:
    return date.today()


def window_from_args(args=None) -> DateWindow:
    args = args if args is not None else request.args
    return resolve_range(args.get("range"), today(), args.get("start"), args.get("end"))


def seq_from_args(store: SessionStore, view: str, args=None) -> int:
    """Client-supplied ?seq= wins; otherwise the server hands out the next number."""
    args = args if args is not None else request.args
    raw = (args.get("seq") or "").strip()
    if not raw:
        return store.begin_request(view)
    try:
        seq = int(raw)
    except ValueError:
        raise ValidationError("seq must be an integer")
    store.note_request(view, seq)
    return seq


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def list_arg(name: str, args=None) -> list[str]:
    args = args if args is not None else request.args
    out: list[str] = []
    for raw in args.getlist(name):
        out.extend(p.strip() for p in raw.split(",") if p.strip())
    return out


def optional_day(value) -> Optional[date]:
    if value in (None, ""):
        return None
    d = parse_day(value)
    if d is None:
        raise ValidationError(f"Invalid date: {value}")
    return d
