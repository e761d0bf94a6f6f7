"""Configuration and logging setup for BuyFresh."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# App directories
APP_NAME = "buyfresh"
CONFIG_DIR = Path(os.getenv("BUYFRESH_CONFIG_DIR", str(Path.home() / f".{APP_NAME}")))
CACHE_DB_FILE = CONFIG_DIR / "cache.db"

# Storefront (session-gated search)
STOREFRONT_BASE_URL = "https://shop.wegmans.com"
STOREFRONT_API_VERSION = "2024-01-30"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# Physical stores the storefront session can be bound to
STORES: dict[str, int] = {
    "Astor Pl": 115,
}
DEFAULT_STORE_ID = 115
DEFAULT_STORE_NAME = os.getenv("BUYFRESH_STORE_NAME", "Astor Pl")

# Session cookie cache: Wegmans sessions last about 24 hours, keep 23
SESSION_CACHE_KEY = "wegmans_cookie"
SESSION_TTL_SECONDS = 82800
SESSION_COOKIE_NAME = "session-prd-weg"

# Hosted product index (Algolia)
ALGOLIA_APP_ID = os.getenv("BUYFRESH_ALGOLIA_APP_ID", "QGPPR19V8V")
ALGOLIA_API_KEY = os.getenv("BUYFRESH_ALGOLIA_API_KEY", "9a10b1401634e9a6e55161c3a60c200d")
ALGOLIA_INDEX = "products"
ALGOLIA_AGENT = "Algolia for JavaScript (5.37.0); Search (5.37.0); Browser"
DEFAULT_STORE_NUMBER = os.getenv("BUYFRESH_STORE_NUMBER", "156")
DEFAULT_USER_TOKEN = os.getenv(
    "BUYFRESH_USER_TOKEN", "anonymous-49b3eb1a-89cb-4cca-80ac-1d2ccee8c1dc"
)
PRODUCT_BASE_URL = "https://www.wegmans.com/shop/product"

# HTTP
HTTP_TIMEOUT = float(os.getenv("BUYFRESH_HTTP_TIMEOUT", "30.0"))

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def algolia_queries_url() -> str:
    """Build the multi-query endpoint URL for the configured Algolia app."""
    return f"https://{ALGOLIA_APP_ID.lower()}-dsn.algolia.net/1/indexes/*/queries"


def get_store_id(store_name: str | None) -> int:
    """Resolve a store name to its id, falling back to the default store."""
    if store_name and store_name in STORES:
        return STORES[store_name]
    return DEFAULT_STORE_ID


def ensure_config_dir() -> Path:
    """Create the config directory if needed and return it."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR


def configure_logging(level: str | None = None) -> None:
    """Configure root logging; module loggers inherit this."""
    level_name = (level or os.getenv("BUYFRESH_LOG_LEVEL", "WARNING")).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT)
