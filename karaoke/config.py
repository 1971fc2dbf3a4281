"""Config & Constants"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (one level up from karaoke/)
_ROOT = Path(__file__).parent.parent
load_dotenv(_ROOT / ".env")

# ─── Paths ────────────────────────────────────────────────────────────────────
ROOT_DIR = _ROOT
DATA_DIR = ROOT_DIR / os.getenv("KARAOKE_DATA_DIR", "data")
PUBLIC_DIR = ROOT_DIR / os.getenv("KARAOKE_PUBLIC_DIR", "public")
OUTPUT_DIR = ROOT_DIR / os.getenv("OUTPUT_DIR", "output")
ERRORS_LOG = OUTPUT_DIR / "errors.log"

# ─── Catalogue files (relative to DATA_DIR) ──────────────────────────────────
KARAFUN_CSV = "karafuncatalog.csv"
KARAFUN_SEPARATOR = ";"
KARAFUN_GENRES_JSON = "karafun-genres.json"
JK_CATALOGUE_JSON = "jkaraokecatalog.json"
JK_POPULAR_JSON = "jkaraoke-popular.json"
JK_ARTISTS_JSON = "jkaraoke-artists.json"

# ─── Search ──────────────────────────────────────────────────────────────────
SEARCH_LIMIT = 50
SEARCH_MIN_QUERY = 2

# ─── Scraper ─────────────────────────────────────────────────────────────────
JK_BASE_URL = os.getenv("JK_BASE_URL", "https://jkaraoke.com").rstrip("/")
SCRAPE_USER_AGENT = "Mozilla/5.0"
SCRAPE_TIMEOUT = 15            # seconds per request
SCRAPE_MAX_RETRIES = 3         # consecutive failures before giving up
SCRAPE_RETRY_DELAY = 2.0       # seconds, fixed
SCRAPE_PAGE_DELAY = 0.15       # seconds between successful pages
SCRAPE_CHECKPOINT_EVERY = 20   # pages
SCRAPE_JSON_PATH = Path(os.getenv("SCRAPE_JSON_PATH", str(DATA_DIR / JK_CATALOGUE_JSON)))
SCRAPE_CSV_PATH = Path(os.getenv("SCRAPE_CSV_PATH", str(DATA_DIR / "jkaraokecatalog.csv")))

APP_VERSION = "0.1.0"

# ─── Web server ──────────────────────────────────────────────────────────────
WEB_HOST = os.getenv("WEB_HOST", "0.0.0.0")
WEB_PORT = int(os.getenv("PORT", "3000"))

# Per-client broadcast buffer; older pushes are dropped first
CLIENT_QUEUE_SIZE = 50

# ─── Dev mode ─────────────────────────────────────────────────────────────────
DEV_MODE = os.getenv("DEV_MODE", "0").strip() in ("1", "true", "yes")
