import os

# --- Configuration ---
DATABASE = "sessions.db"
DEBUG_MODE = True  # Set to False in production

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".config", "linecalc")
RATES_CACHE_FILE = os.path.join(CONFIG_DIR, "rates.json")
HISTORY_FILE = os.path.join(os.path.expanduser("~"), ".linecalc_history")

EXCHANGE_RATE_CACHE_TTL = 3600  # Cache exchange rates for 1 hour
FIAT_RATES_URL = "https://open.er-api.com/v6/latest/USD"
CRYPTO_PRICES_URL = "https://api.coingecko.com/api/v3/simple/price"
REQUEST_TIMEOUT = 10  # seconds

SERVER_HOST = "0.0.0.0"
SERVER_PORT = 5200
# Sessions kept evaluated in memory; older ones are replayed from the database
MAX_LIVE_SESSIONS = 256

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Width of the input column in CLI output
OUTPUT_PAD = 40
