"""
Transaction fetching across pages and credential tokens.

One token is paged with a fixed page size until a short page comes back or
the safety cap is reached. Several tokens are fetched concurrently and the
results concatenated; order is only meaningful within one token's pages.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from moneyapp import config
from moneyapp import plaid_client
from moneyapp.errors import UpstreamError
from moneyapp.models import Account, Transaction, normalize_transactions

PageFn = Callable[..., tuple]


@dataclass
class FetchResult:
    transactions: List[Transaction] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)  # token -> message
    partial: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors


def fetch_token_transactions(access_token: str, account_ids: List[str], start_date: date, end_date: date,
                             page_fn: Optional[PageFn] = None, page_size: int = config.PAGE_SIZE,
                             max_items: int = config.MAX_TRANSACTIONS) -> tuple[List[dict], bool]:
    """
    Page through one token's transactions. Returns (raw transactions, partial).

    A failure on the first page propagates. A failure on a later page stops
    paging and keeps what was already fetched (partial=True).
    """
    page_fn = page_fn or plaid_client.get_transactions_page
    fetched: List[dict] = []
    offset, pages, partial = 0, 0, False

    while True:
        try:
            batch, _total = page_fn(access_token, account_ids, start_date, end_date, page_size, offset)
        except UpstreamError as e:
            if pages == 0:
                raise
            logging.warning(f"Transaction page at offset {offset} failed; keeping {len(fetched)} fetched: {e}")
            partial = True
            break

        pages += 1
        fetched.extend(batch)

        if len(batch) < page_size:
            break
        offset += page_size
        if len(fetched) >= max_items:
            logging.warning(f"Stopped paging at safety cap ({max_items} transactions)")
            break

    return fetched, partial


def group_by_token(account_ids: Iterable[str], accounts: Dict[str, Account]) -> Dict[str, List[str]]:
    """token -> account ids; imported accounts and unknown ids have no token and are skipped."""
    out: Dict[str, List[str]] = {}
    for aid in account_ids:
        acct = accounts.get(aid)
        if acct is None or acct.is_imported or not acct.access_token:
            continue
        out.setdefault(acct.access_token, []).append(aid)
    return out


def _normalize(raw: List[dict], accounts: Dict[str, Account]) -> List[Transaction]:
    out: List[Transaction] = []
    for r in raw:
        out.extend(normalize_transactions([r], accounts.get(str(r.get("account_id") or ""))))
    return out


async def _fetch_all(by_token: Dict[str, List[str]], start_date: date, end_date: date,
                     page_fn: Optional[PageFn], page_size: int, max_items: int):
    jobs = [
        asyncio.to_thread(fetch_token_transactions, token, ids, start_date, end_date,
                          page_fn, page_size, max_items)
        for token, ids in by_token.items()
    ]
    return await asyncio.gather(*jobs, return_exceptions=True)


def fetch_many(by_token: Dict[str, List[str]], start_date: date, end_date: date,
               accounts: Optional[Dict[str, Account]] = None, page_fn: Optional[PageFn] = None,
               page_size: int = config.PAGE_SIZE, max_items: int = config.MAX_TRANSACTIONS) -> FetchResult:
    """
    Fan out one fetch per token and join. Every fetch runs to completion or
    failure before results are combined; failed tokens land in ``errors``.
    """
    accounts = accounts or {}
    result = FetchResult()
    if not by_token:
        return result

    outcomes = asyncio.run(_fetch_all(by_token, start_date, end_date, page_fn, page_size, max_items))

    for token, outcome in zip(by_token.keys(), outcomes):
        if isinstance(outcome, UpstreamError):
            result.errors[token] = outcome.message or str(outcome)
            continue
        if isinstance(outcome, BaseException):
            raise outcome
        raw, partial = outcome
        result.partial = result.partial or partial
        result.transactions.extend(_normalize(raw, accounts))

    logging.info(f"Fetched {len(result.transactions)} transactions from {len(by_token)} token(s)")
    return result


def get_account_details(access_tokens: List[str], account_id: str, start_date: Optional[date] = None,
                        end_date: Optional[date] = None, include_earliest_date: bool = False,
                        today: Optional[date] = None, client=None) -> Dict[str, Any]:
    """
    Resolve the owning token, then page through the account's window. The
    fetch always runs up to today so the series can be walked back from the
    live balance. ``total_transactions`` is the upstream count from the first page.
    """
    client = client or plaid_client.get_client()
    today = today or date.today()
    token, raw_account = plaid_client.find_account_owner(access_tokens, account_id, client=client)
    account = Account.from_plaid(raw_account, access_token=token)

    requested_end = end_date or today
    start = start_date or (requested_end - timedelta(days=30))

    earliest = None
    if include_earliest_date:
        earliest = plaid_client.probe_earliest_date(token, account_id, today, client=client)

    totals: List[int] = []

    def page(access_token, ids, window_start, window_end, count, offset):
        batch, total = plaid_client.get_transactions_page(access_token, ids, window_start, window_end,
                                                          count, offset, client=client)
        totals.append(total)
        return batch, total

    raw, partial = fetch_token_transactions(token, [account_id], start, today, page_fn=page,
                                            page_size=config.DETAILS_PAGE_SIZE)
    return {
        "account": account,
        "transactions": normalize_transactions(raw, account),
        "total_transactions": totals[0] if totals else 0,
        "earliest_transaction_date": earliest,
        "partial": partial,
    }
