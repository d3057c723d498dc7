import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from plaid.api import plaid_api
from plaid.configuration import Configuration
from plaid.api_client import ApiClient
from plaid.exceptions import ApiException

from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.accounts_balance_get_request import AccountsBalanceGetRequest
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.accounts_get_request_options import AccountsGetRequestOptions
from plaid.model.institutions_get_by_id_request import InstitutionsGetByIdRequest
from plaid.model.institutions_get_by_id_request_options import InstitutionsGetByIdRequestOptions
from plaid.model.country_code import CountryCode
from plaid.model.products import Products

from moneyapp import config
from moneyapp.errors import AccountNotFoundError, ConfigError, UpstreamError
from moneyapp.models import Account, parse_day

_client = None


# --------------------
# Client construction
# --------------------
def build_client() -> plaid_api.PlaidApi:
    creds = config.plaid_credentials()
    if not all([creds["client_id"], creds["secret"], creds["env"]]):
        raise ConfigError("One or more Plaid env vars are missing (PLAID_CLIENT_ID / PLAID_SECRET / PLAID_ENV).")
    if creds["env"] not in config.PLAID_ENV_HOSTS:
        raise ConfigError(f"Invalid PLAID_ENV: {creds['env']}")

    configuration = Configuration(
        host=config.PLAID_ENV_HOSTS[creds["env"]],
        api_key={"clientId": creds["client_id"], "secret": creds["secret"]},
    )
    return plaid_api.PlaidApi(ApiClient(configuration))


def get_client():
    global _client
    if _client is None:
        _client = build_client()
    return _client


def set_client(client) -> None:
    """Swap the upstream client (None resets to lazy construction)."""
    global _client
    _client = client


# --------------------
# Small helpers
# --------------------
def _as_dict(obj) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _upstream_error(what: str, e: ApiException) -> UpstreamError:
    body = getattr(e, "body", None) or str(e)
    logging.error(f"Plaid {what} failed: {body}")
    return UpstreamError(f"{what} failed: {getattr(e, 'reason', None) or e}")


# --------------------
# Link + token exchange
# --------------------
def create_link_token(client=None) -> Dict[str, Any]:
    client = client or get_client()
    products, optional = config.plaid_products()
    kwargs = dict(
        products=[Products(p) for p in products],
        client_name=config.CLIENT_NAME,
        country_codes=[CountryCode(c) for c in config.plaid_country_codes()],
        language="en",
        user=LinkTokenCreateRequestUser(client_user_id=config.CLIENT_USER_ID),
    )
    if optional:
        kwargs["required_if_supported_products"] = [Products(p) for p in optional]
    try:
        response = client.link_token_create(LinkTokenCreateRequest(**kwargs))
    except ApiException as e:
        raise _upstream_error("link_token_create", e)
    return {"link_token": response.link_token, "expiration": str(getattr(response, "expiration", "") or "")}


def exchange_public_token(public_token: str, client=None) -> Tuple[str, str]:
    client = client or get_client()
    try:
        resp = client.item_public_token_exchange(
            ItemPublicTokenExchangeRequest(public_token=public_token)
        )
    except ApiException as e:
        raise _upstream_error("item_public_token_exchange", e)
    logging.info(f"Exchanged public token for item {resp.item_id}")
    return resp.access_token, resp.item_id


def remove_item(access_token: str, client=None) -> str:
    client = client or get_client()
    try:
        resp = client.item_remove(ItemRemoveRequest(access_token=access_token))
    except ApiException as e:
        raise _upstream_error("item_remove", e)
    return getattr(resp, "request_id", "") or ""


# --------------------
# Balances + institution
# --------------------
def _institution(client, institution_id: str) -> Optional[Dict[str, Any]]:
    try:
        resp = client.institutions_get_by_id(
            InstitutionsGetByIdRequest(
                institution_id=institution_id,
                country_codes=[CountryCode("US")],
                options=InstitutionsGetByIdRequestOptions(include_optional_metadata=True),
            )
        )
    except ApiException as e:
        # balances are still useful without the name/logo
        logging.warning(f"Error fetching institution {institution_id}: {e}")
        return None
    inst = _as_dict(resp.institution)
    return {
        "institution_id": inst.get("institution_id") or institution_id,
        "name": inst.get("name") or "",
        "logo": inst.get("logo"),
        "url": inst.get("url"),
        "primary_color": inst.get("primary_color"),
    }


def get_balances(access_token: str, client=None) -> Dict[str, Any]:
    """Returns {"accounts": [Account], "institution": dict | None}."""
    client = client or get_client()
    try:
        resp = client.accounts_balance_get(AccountsBalanceGetRequest(access_token=access_token))
    except ApiException as e:
        raise _upstream_error("accounts_balance_get", e)

    item = _as_dict(getattr(resp, "item", None))
    institution_id = item.get("institution_id")
    institution = _institution(client, institution_id) if institution_id else None

    accounts = [Account.from_plaid(_as_dict(a), institution, access_token) for a in resp.accounts]
    return {"accounts": accounts, "institution": institution}


# --------------------
# Transactions
# --------------------
def get_transactions_page(access_token: str, account_ids: List[str], start_date: date, end_date: date,
                          count: int, offset: int = 0, client=None) -> Tuple[List[Dict[str, Any]], int]:
    """One page of /transactions/get; returns (raw transactions, total_transactions)."""
    client = client or get_client()
    options = TransactionsGetRequestOptions(account_ids=list(account_ids), count=count, offset=offset)
    request = TransactionsGetRequest(
        access_token=access_token,
        start_date=start_date,
        end_date=end_date,
        options=options,
    )
    try:
        response = client.transactions_get(request)
    except ApiException as e:
        raise _upstream_error("transactions_get", e)
    return [_as_dict(t) for t in response.transactions], int(response.total_transactions or 0)


def find_account_owner(access_tokens: List[str], account_id: str, client=None) -> Tuple[str, Dict[str, Any]]:
    """First token whose item holds account_id; tokens that error are skipped."""
    client = client or get_client()
    for token in access_tokens:
        try:
            resp = client.accounts_get(
                AccountsGetRequest(
                    access_token=token,
                    options=AccountsGetRequestOptions(account_ids=[account_id]),
                )
            )
        except ApiException:
            continue
        if resp.accounts:
            return token, _as_dict(resp.accounts[0])
    raise AccountNotFoundError("Account not found in provided access tokens")


def probe_earliest_date(access_token: str, account_id: str, today: Optional[date] = None,
                        client=None) -> Optional[date]:
    """
    Date of the oldest transaction on record (ten-year lookback): a count
    query, then a single item at offset total-1. Failures yield None.
    """
    client = client or get_client()
    today = today or date.today()
    since = today - relativedelta(years=10)
    try:
        _, total = get_transactions_page(access_token, [account_id], since, today, 1, 0, client=client)
        if total <= 0:
            return None
        oldest, _ = get_transactions_page(access_token, [account_id], since, today, 1, max(0, total - 1), client=client)
    except UpstreamError as e:
        logging.warning(f"Failed to fetch oldest transaction for {account_id}: {e}")
        return None
    return parse_day(oldest[0].get("date")) if oldest else None
