import os
import logging
from pathlib import Path

from dotenv import load_dotenv


# --------------------
# Env & configuration
# --------------------
load_dotenv()

PLAID_ENV_HOSTS = {
    "sandbox":     "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production":  "https://production.plaid.com",
}

PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Pagination / walk limits
PAGE_SIZE = 500
MAX_TRANSACTIONS = 10000
DETAILS_PAGE_SIZE = 500
MAX_HISTORY_DAYS = 365 * 10

# Per-session derived state
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "200"))
SESSION_IDLE_SECONDS = int(os.getenv("SESSION_IDLE_SECONDS", str(12 * 3600)))

CLIENT_NAME = "Money App"
CLIENT_USER_ID = "money-app-user-unique-id"


def plaid_credentials() -> dict:
    """Read the Plaid env vars at call time so tests and .env edits are picked up."""
    return {
        "client_id": os.getenv("PLAID_CLIENT_ID"),
        "secret":    os.getenv("PLAID_SECRET"),
        "env":       os.getenv("PLAID_ENV"),
    }


def plaid_products() -> tuple[list[str], list[str]]:
    """
    Returns (products, optional_products).
    'balance' is never requested as a Link product; 'transactions' is the
    required one whenever it is configured.
    """
    raw = [p.strip() for p in (os.getenv("PLAID_PRODUCTS") or "transactions").split(",")]
    raw = [p for p in raw if p and p != "balance"]
    products = ["transactions"] if "transactions" in raw else [raw[0] if raw else "transactions"]
    optional = [p for p in raw if p not in products]
    return products, optional


def plaid_country_codes() -> list[str]:
    raw = (os.getenv("PLAID_COUNTRY_CODES") or "US,CA").split(",")
    return [c.strip() for c in raw if c.strip()]


def config_dir() -> Path:
    p = Path(os.environ.get("CONFIG_DIR", "config"))
    p.mkdir(parents=True, exist_ok=True)
    return p


def logs_dir() -> Path:
    p = Path(os.environ.get("LOGS_DIR") or (PROJECT_ROOT / "logs"))
    p.mkdir(parents=True, exist_ok=True)
    return p


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        filename=logs_dir() / "moneyapp.log",
        level=level,
        format="%(asctime)s %(levelname)s: %(message)s",
    )
