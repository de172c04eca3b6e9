# config.py
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Database ---

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./data.sqlite")
DB_ECHO: bool = os.getenv("DB_ECHO", "false").lower() == "true"

# --- Admin ---

# Shared secret for the admin routes. Unset means admin is blocked completely.
PROMO_ADMIN_TOKEN = os.getenv("PROMO_ADMIN_TOKEN")

# --- Codes ---

CODE_LENGTH: int = int(os.getenv("CODE_LENGTH", "8"))
MAX_ISSUE_COUNT: int = int(os.getenv("MAX_ISSUE_COUNT", "1000"))
ISSUE_MAX_ATTEMPTS: int = int(os.getenv("ISSUE_MAX_ATTEMPTS", "5"))
DEFAULT_LIST_LIMIT: int = int(os.getenv("DEFAULT_LIST_LIMIT", "1000"))

# --- Game ---

CHEST_COUNT: int = int(os.getenv("CHEST_COUNT", "6"))
MAX_PLAYER_LENGTH: int = int(os.getenv("MAX_PLAYER_LENGTH", "120"))
CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "R$")

# --- Logging ---

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
# Empty string disables the rotating file handler
LOG_DIR: str = os.getenv("LOG_DIR", "logs")

# --- API server ---

API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))
