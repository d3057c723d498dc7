from datetime import date
from types import SimpleNamespace

import pytest
from plaid.exceptions import ApiException

from moneyapp import plaid_client
from moneyapp.models import Transaction

TODAY = date(2024, 6, 15)


class FakePlaid:
    """
    In-memory stand-in for plaid_api.PlaidApi. Items are keyed by access
    token; each holds accounts, an institution and raw transaction dicts.
    """

    def __init__(self):
        self.items = {}
        self.calls = []
        self.fail_offsets = set()
        self.fail_institution = False

    def add_item(self, token, institution, accounts, transactions=()):
        self.items[token] = {
            "institution": institution,
            "accounts": list(accounts),
            "transactions": sorted(transactions, key=lambda t: t["date"], reverse=True),
        }

    # --- plaid_api surface ---
    def link_token_create(self, request):
        self.calls.append(("link_token_create", request))
        return SimpleNamespace(link_token="link-sandbox-123", expiration="2024-06-15T04:00:00Z")

    def item_public_token_exchange(self, request):
        self.calls.append(("item_public_token_exchange", request.public_token))
        return SimpleNamespace(access_token=f"access-{request.public_token}", item_id="item-1")

    def item_remove(self, request):
        self.calls.append(("item_remove", request.access_token))
        self.items.pop(request.access_token, None)
        return SimpleNamespace(request_id="req-remove")

    def accounts_balance_get(self, request):
        self.calls.append(("accounts_balance_get", request.access_token))
        item = self._item(request.access_token)
        return SimpleNamespace(
            accounts=item["accounts"],
            item={"institution_id": item["institution"]["institution_id"]},
        )

    def institutions_get_by_id(self, request):
        self.calls.append(("institutions_get_by_id", request.institution_id))
        if self.fail_institution:
            raise ApiException(status=500, reason="institution lookup failed")
        for item in self.items.values():
            if item["institution"]["institution_id"] == request.institution_id:
                return SimpleNamespace(institution=item["institution"])
        raise ApiException(status=404, reason="not found")

    def accounts_get(self, request):
        self.calls.append(("accounts_get", request.access_token))
        item = self._item(request.access_token)
        wanted = set(request.options.account_ids)
        return SimpleNamespace(accounts=[a for a in item["accounts"] if a["account_id"] in wanted])

    def transactions_get(self, request):
        opts = request.options
        self.calls.append(("transactions_get", request.access_token, opts.count, opts.offset))
        if opts.offset in self.fail_offsets:
            raise ApiException(status=500, reason="page failed")
        item = self._item(request.access_token)
        ids = set(opts.account_ids)
        rows = [
            t for t in item["transactions"]
            if t["account_id"] in ids and request.start_date <= date.fromisoformat(t["date"]) <= request.end_date
        ]
        return SimpleNamespace(
            transactions=rows[opts.offset:opts.offset + opts.count],
            total_transactions=len(rows),
        )

    def _item(self, token):
        if token not in self.items:
            raise ApiException(status=400, reason="INVALID_ACCESS_TOKEN")
        return self.items[token]


def raw_account(account_id, name="Checking", type_="depository", subtype="checking", current=1000.0):
    return {
        "account_id": account_id,
        "name": name,
        "official_name": None,
        "type": type_,
        "subtype": subtype,
        "mask": "0000",
        "balances": {"current": current, "available": current, "limit": None, "iso_currency_code": "USD"},
    }


def raw_tx(tx_id, account_id, day, amount, name="Coffee Shop", primary="FOOD_AND_DRINK",
           detailed="FOOD_AND_DRINK_COFFEE", category=("Food and Drink",)):
    return {
        "transaction_id": tx_id,
        "account_id": account_id,
        "date": day,
        "name": name,
        "amount": amount,
        "iso_currency_code": "USD",
        "category": list(category),
        "personal_finance_category": {"primary": primary, "detailed": detailed} if primary else None,
        "pending": False,
    }


@pytest.fixture
def fake_plaid():
    fake = FakePlaid()
    plaid_client.set_client(fake)
    yield fake
    plaid_client.set_client(None)


@pytest.fixture
def make_tx():
    counter = {"n": 0}

    def _make(day, amount, account_id="acc-1", name="Purchase", category=None, pfc=None):
        counter["n"] += 1
        if isinstance(day, str):
            day = date.fromisoformat(day)
        return Transaction(
            transaction_id=f"tx-{counter['n']}",
            account_id=account_id,
            date=day,
            name=name,
            amount=amount,
            iso_currency_code="USD",
            category=list(category or []),
            personal_finance_category=pfc,
        )

    return _make
