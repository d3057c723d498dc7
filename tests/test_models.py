from datetime import date, datetime

from conftest import raw_account, raw_tx

from moneyapp.models import Account, Transaction, normalize_transactions, parse_day


def test_parse_day_variants():
    assert parse_day("2024-01-05") == date(2024, 1, 5)
    assert parse_day("2024-01-05T13:00:00Z") == date(2024, 1, 5)
    assert parse_day("01/05/2024") == date(2024, 1, 5)
    assert parse_day(datetime(2024, 1, 5, 23, 59)) == date(2024, 1, 5)
    assert parse_day("") is None
    assert parse_day("nope") is None


def test_account_from_plaid_hides_token():
    acct = Account.from_plaid(
        raw_account("a1", current=12.34),
        institution={"institution_id": "ins_1", "name": "First Bank"},
        access_token="access-secret",
    )
    assert acct.current == 12.34
    assert acct.institution_name == "First Bank"
    assert acct.access_token == "access-secret"
    assert "access_token" not in acct.to_dict()


def test_credit_card_detection():
    assert Account("c", "Card", type="credit").is_credit_card
    assert Account("c", "Card", type="other", subtype="Credit Card").is_credit_card
    assert not Account("d", "Checking", type="depository", subtype="checking").is_credit_card


def test_transaction_from_plaid():
    tx = Transaction.from_plaid(raw_tx("t1", "a1", "2024-03-01", 4.25))
    assert tx.date == date(2024, 3, 1)
    assert tx.display_amount == -4.25
    assert tx.personal_finance_category == {"primary": "FOOD_AND_DRINK", "detailed": "FOOD_AND_DRINK_COFFEE"}
    assert tx.to_dict()["date"] == "2024-03-01"


def test_card_payment_resign_only_on_credit_cards():
    rows = [
        raw_tx("p1", "c", "2024-03-01", 300.0, name="AUTOMATIC PAYMENT - THANK YOU"),
        raw_tx("p2", "c", "2024-03-02", 50.0, name="Payment - Thank You"),
        raw_tx("s1", "c", "2024-03-03", 12.0, name="Bookstore"),
    ]
    card = Account("c", "Visa", type="credit")
    checking = Account("c", "Checking", type="depository")

    on_card = {t.transaction_id: t.amount for t in normalize_transactions(rows, card)}
    assert on_card == {"p1": -300.0, "p2": -50.0, "s1": 12.0}

    on_checking = {t.transaction_id: t.amount for t in normalize_transactions(rows, checking)}
    assert on_checking == {"p1": 300.0, "p2": 50.0, "s1": 12.0}


def test_normalize_leaves_input_untouched_and_drops_undated(make_tx):
    tx = make_tx("2024-03-01", 80.0, name="AUTOMATIC PAYMENT")
    out = normalize_transactions([tx, {"transaction_id": "x", "amount": 1.0}], Account("acc-1", "Card", type="credit"))
    assert [t.amount for t in out] == [-80.0]
    assert tx.amount == 80.0
