import csv
import io
from datetime import date, datetime

from moneyapp.date_ranges import DateWindow
from moneyapp.exporters import export_filename, ofx_account_id, to_csv, to_ofx
from moneyapp.models import Account

WINDOW = DateWindow(date(2024, 1, 1), date(2024, 1, 31), "CUSTOM")
NOW = datetime(2024, 2, 1, 9, 30, 5)


def _csv_rows(text):
    return list(csv.reader(io.StringIO(text)))


def test_csv_inverts_amounts(make_tx):
    txs = [make_tx("2024-01-05", 20.00, name="Lunch"), make_tx("2024-01-06", -15.00, name="Refund")]
    rows = _csv_rows(to_csv(txs, WINDOW, "USD"))

    assert rows[0] == ["Date", "Name", "Category", "Amount", "Currency"]
    by_date = {r[0]: r for r in rows[1:]}
    assert by_date["2024-01-05"][3] == "-20.00"
    assert by_date["2024-01-06"][3] == "15.00"
    # newest first
    assert [r[0] for r in rows[1:]] == ["2024-01-06", "2024-01-05"]


def test_csv_quotes_free_text_and_uses_display_category(make_tx):
    tx = make_tx("2024-01-10", 4.5, name='Joe\'s "Best", Coffee',
                 pfc={"primary": "FOOD_AND_DRINK", "detailed": "FOOD_AND_DRINK_COFFEE"})
    legacy = make_tx("2024-01-11", 1.0, category=["Shops", "Hardware"])
    text = to_csv([tx, legacy], WINDOW, "CAD")

    assert '"Joe\'s ""Best"", Coffee"' in text
    rows = _csv_rows(text)
    assert rows[2][1:] == ['Joe\'s "Best", Coffee', "Coffee", "-4.50", "CAD"]
    assert rows[1][2] == "Shops;Hardware"


def test_csv_drops_rows_outside_window(make_tx):
    txs = [make_tx("2023-12-31", 1.0), make_tx("2024-01-31", 2.0), make_tx("2024-02-01", 3.0)]
    rows = _csv_rows(to_csv(txs, WINDOW))
    assert [r[0] for r in rows[1:]] == ["2024-01-31"]


def test_export_filename():
    assert export_filename(WINDOW, "ofx") == "transactions_2024-01-01_2024-01-31.ofx"


def test_ofx_bank_statement_layout(make_tx):
    acct = Account("acc-savings-1", "Savings", type="depository", subtype="savings", current=1234.5)
    txs = [
        make_tx("2024-01-05", 20.0, name="Grocer & Co <Main>", category=["Food", "Groceries"]),
        make_tx("2024-01-06", -100.0, name="Payroll"),
    ]
    doc = to_ofx(txs, acct, WINDOW, now=NOW)
    lines = [l.strip() for l in doc.splitlines()]

    assert lines[:9] == [
        "OFXHEADER:100", "DATA:OFXSGML", "VERSION:102", "SECURITY:NONE", "ENCODING:USASCII",
        "CHARSET:1252", "COMPRESSION:NONE", "OLDFILEUID:NONE", "NEWFILEUID:NONE",
    ]
    assert lines[9] == ""
    assert "<DTSERVER>20240201093005" in lines
    assert "<BANKID>000000000" in lines
    assert "<ACCTTYPE>SAVINGS" in lines
    assert "<CCACCTFROM>" not in lines

    order = ["<OFX>", "<SIGNONMSGSRSV1>", "<SONRS>", "</SIGNONMSGSRSV1>", "<BANKMSGSRSV1>", "<STMTTRNRS>",
             "<TRNUID>1", "<STMTRS>", "<CURDEF>USD", "<BANKACCTFROM>", "</BANKACCTFROM>", "<BANKTRANLIST>",
             "<DTSTART>20240101000000", "<DTEND>20240131000000", "</BANKTRANLIST>", "<LEDGERBAL>",
             "<BALAMT>1234.50", "</LEDGERBAL>", "</STMTRS>", "</STMTTRNRS>", "</BANKMSGSRSV1>", "</OFX>"]
    positions = [lines.index(tag) for tag in order]
    assert positions == sorted(positions)

    # leaf elements stay unterminated
    assert "</TRNAMT>" not in doc and "</NAME>" not in doc and "</CODE>" not in doc

    assert "<TRNTYPE>DEBIT" in lines and "<TRNAMT>-20.00" in lines
    assert "<TRNTYPE>CREDIT" in lines and "<TRNAMT>100.00" in lines
    assert "<NAME>Grocer &amp; Co &lt;Main&gt;" in lines
    assert "<MEMO>Food; Groceries" in lines
    assert "<DTPOSTED>20240105000000" in lines


def test_ofx_stmttrn_tag_order(make_tx):
    acct = Account("acc-1", "Checking", type="depository", subtype="checking")
    doc = to_ofx([make_tx("2024-01-05", 9.99, category=["X"])], acct, WINDOW, now=NOW)
    lines = [l.strip() for l in doc.splitlines()]
    start = lines.index("<STMTTRN>")
    tags = [l.split(">")[0] + ">" for l in lines[start:start + 8]]
    assert tags == ["<STMTTRN>", "<TRNTYPE>", "<DTPOSTED>", "<TRNAMT>", "<FITID>", "<NAME>", "<MEMO>", "</STMTTRN>"]
    assert "<ACCTTYPE>CHECKING" in lines


def test_ofx_credit_card_statement(make_tx):
    long_id = "accessToken-" + "x" * 10 + "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    acct = Account(long_id, "Visa", type="credit", subtype="credit card", current=250.0)
    doc = to_ofx([make_tx("2024-01-05", 40.0, name="N" * 50)], acct, WINDOW, now=NOW)
    lines = [l.strip() for l in doc.splitlines()]

    assert "<CREDITCARDMSGSRSV1>" in lines and "<CCSTMTRS>" in lines
    assert "<BANKACCTFROM>" not in lines and "<BANKID>000000000" not in lines
    assert f"<ACCTID>{'EFGHIJKLMNOPQRSTUVWXYZ'}" in lines
    assert "<BALAMT>250.00" in lines
    assert "<NAME>" + "N" * 32 in lines


def test_ofx_account_id_truncation():
    assert ofx_account_id("short") == "short"
    assert len(ofx_account_id("a" * 40)) == 22
    assert ofx_account_id("accessToken-abc") == "abc"
