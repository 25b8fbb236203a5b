"""
Central configuration for the GBP Dashboard
Handles environment variables, paths, API settings and logging
"""
import os
import logging
import logging.config
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# =========================
# Base Paths
# =========================
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DATA_DIR = Path(os.getenv("GBP_DATA_DIR", PROJECT_ROOT / "data"))
EXPORTS_DIR = DATA_DIR / "exports"
LOGS_DIR = PROJECT_ROOT / "logs"

DB_PATH = Path(os.getenv("GBP_DB_PATH", DATA_DIR / "gbp_dashboard.duckdb"))

# Ensure critical directories exist
for dir_path in [DATA_DIR, EXPORTS_DIR, LOGS_DIR]:
    dir_path.mkdir(parents=True, exist_ok=True)

# =========================
# API Credentials
# =========================
# Google OAuth client used to refresh account tokens
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

# OpenAI for review replies and post copy
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# Signed-in user for the CLI and the Streamlit app
DEFAULT_USER_ID = os.getenv("GBP_USER_ID")

# =========================
# Google Business Profile Settings
# =========================
GOOGLE_CONFIG = {
    "client_id": GOOGLE_CLIENT_ID,
    "client_secret": GOOGLE_CLIENT_SECRET,
    "token_url": "https://oauth2.googleapis.com/token",
    "v4_base": "https://mybusiness.googleapis.com/v4",
    "business_info_base": "https://mybusinessbusinessinformation.googleapis.com/v1",
    "performance_base": "https://businessprofileperformance.googleapis.com/v1",
    "qanda_base": "https://mybusinessqanda.googleapis.com/v1",
    "timeout": 30,
    "max_retries": 3,
    "retry_min_wait": 1,
    "retry_max_wait": 20,
    "token_refresh_buffer_seconds": 300,  # refresh 5 minutes before expiry
    "page_size": 50,
}

# =========================
# OpenAI Settings
# =========================
OPENAI_CONFIG = {
    "api_key": OPENAI_API_KEY,
    "model": os.getenv("OPENAI_MODEL", "gpt-4.1-mini"),
    "temperature": 0.7,
    "max_retries": 5,
    "retry_min_wait": 1,
    "retry_max_wait": 20,
}

# =========================
# Sync Settings
# =========================
SYNC_CONFIG = {
    "delay_between_locations": 1.0,  # seconds between locations in sync-all
    "stale_after_minutes": 60,
    "bulk_reply_delay": 0.5,
    "max_bulk_reviews": 50,
    "dashboard_stale_hours": 24,
}

# =========================
# Rate Limiting
# =========================
RATE_LIMIT_CONFIG = {
    "requests": 100,
    "window_seconds": 15 * 60,
}

# =========================
# Content Limits
# =========================
MAX_REPLY_LENGTH = 4096
MAX_ANSWER_LENGTH = 1500
MAX_POST_CONTENT_LENGTH = 1500
MAX_POST_TITLE_LENGTH = 200
MAX_RATING = 5
MIN_RATING = 1

# Where the auth-expired message sends the user
RECONNECT_LINK = "/settings"

# =========================
# Logging Configuration
# =========================
LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
        "file": {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": str(LOGS_DIR / "gbp_dashboard.log"),
            "mode": "a",
        },
    },
    "loggers": {
        "gbp_dashboard": {
            "level": "DEBUG",
            "handlers": ["console", "file"],
            "propagate": False,
        }
    },
    "root": {"level": "INFO", "handlers": ["console", "file"]},
}


def setup_logging(debug: bool = False):
    """Apply LOG_CONFIG, lowering the console level in debug mode"""
    log_config = dict(LOG_CONFIG)
    log_config["handlers"] = {k: dict(v) for k, v in LOG_CONFIG["handlers"].items()}
    if debug:
        log_config["handlers"]["console"]["level"] = "DEBUG"
    logging.config.dictConfig(log_config)


def get_export_path(user_id: str, account_id: str, output_dir: Optional[Path] = None) -> Path:
    """
    Get the JSON export path for a disconnected account

    Args:
        user_id: Owner of the account
        account_id: Local account id
        output_dir: Optional custom export directory

    Returns:
        Path object for the export file
    """
    if output_dir is None:
        output_dir = EXPORTS_DIR

    output_dir.mkdir(parents=True, exist_ok=True)
    safe_user = "".join(c for c in str(user_id) if c.isalnum() or c in "-_") or "user"
    return output_dir / f"gbp_export_{safe_user}_{account_id}.json"


# =========================
# Environment Info
# =========================
def print_config_summary():
    """Print configuration summary for debugging"""
    print("=" * 60)
    print("GBP Dashboard Configuration")
    print("=" * 60)
    print(f"Project Root: {PROJECT_ROOT}")
    print(f"Database: {DB_PATH}")
    print(f"Logs Directory: {LOGS_DIR}")
    print(f"\nGoogle OAuth: {'✓ Set' if GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET else '✗ Missing'}")
    print(f"OpenAI Key: {'✓ Set' if OPENAI_API_KEY else '✗ Missing'}")
    print(f"OpenAI Model: {OPENAI_CONFIG['model']}")
    print("\nSync:")
    print(f"  Delay Between Locations: {SYNC_CONFIG['delay_between_locations']}s")
    print(f"  Stale After: {SYNC_CONFIG['stale_after_minutes']} min")
    print(f"\nRate Limit: {RATE_LIMIT_CONFIG['requests']} req / {RATE_LIMIT_CONFIG['window_seconds']}s")
    print("=" * 60)


if __name__ == "__main__":
    print_config_summary()
