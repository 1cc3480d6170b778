"""Configuration settings for the Rust Insight Pairing Tool."""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv


APP_NAME = "Rust Insight Pairing"


def is_bundled() -> bool:
    """
    Check if the application is running from a PyInstaller bundle.

    Returns:
        True if running from a bundled executable, False otherwise.
    """
    return getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (paired servers, session).

    For development: BASE_DIR/data
    For bundled apps: a per-user folder that persists across updates.

    Returns:
        Path to the user data directory.
    """
    if not is_bundled():
        return Path(__file__).parent / "data"

    if sys.platform == 'darwin':
        # macOS: ~/Library/Application Support/RustInsightPairing
        return Path.home() / "Library" / "Application Support" / "RustInsightPairing"
    if sys.platform == 'win32':
        appdata = os.environ.get('APPDATA')
        if appdata:
            return Path(appdata) / "RustInsightPairing"
        return Path.home() / "AppData" / "Roaming" / "RustInsightPairing"
    # Linux: ~/.local/share/RustInsightPairing
    return Path.home() / ".local" / "share" / "RustInsightPairing"


def _env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean flag from the environment."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


# Load environment variables from .env file (only in development)
if not is_bundled():
    _env_path = Path(__file__).parent / ".env"
    load_dotenv(_env_path)

# User data directory (created lazily by the store on first write)
USER_DATA_DIR = get_user_data_dir()

# Durable key-value store holding servers, entities and cloudSession
STORE_FILE = USER_DATA_DIR / "rust-insight-pairing.json"

# --- Cloud backend ---
WEB_APP_URL = os.getenv("WEB_APP_URL", "https://www.rustinsight.net").rstrip("/")
AUTH_CALLBACK_PATH = "/auth/desktop-callback"
SYNC_ENDPOINT_PATH = "/api/sync/credentials"

# Supabase (token refresh only; login happens on the web app)
SUPABASE_URL = os.getenv("SUPABASE_URL", "https://your-project.supabase.co").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

# Origins whose cookies/site data are cleared before each login so a second
# login can switch accounts.
AUTH_CLEAR_ORIGINS = (
    "https://accounts.google.com",
    SUPABASE_URL,
    WEB_APP_URL,
)

# --- Token lifecycle ---
TOKEN_REFRESH_MARGIN_SECONDS = 300  # Refresh when fewer than 5 minutes remain
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600  # Used when the backend omits expires_in
HTTP_TIMEOUT_SECONDS = 30.0

# Only sync-time refresh is opt-in; the documented behaviour is fail-fast
SYNC_REFRESH_BEFORE_PUSH = _env_flag("SYNC_REFRESH_BEFORE_PUSH", False)

# --- Third-party token capture (Rust+ companion login via Steam) ---
STEAM_LOGIN_URL = os.getenv("STEAM_LOGIN_URL", "https://companion-rust.facepunch.com/login")
TOKEN_FIELD_ALIASES = ("token", "Token", "authToken", "AuthToken")
CAPTURE_TIMEOUT_SECONDS = 300  # Hard ceiling for the Steam login window
CAPTURE_SUCCESS_GRACE_SECONDS = 1.5  # Time the success page stays visible

# Capture / auth window geometry
SURFACE_WIDTH = 500
SURFACE_HEIGHT = 700

# --- Pairing engine ---
# Import path of the pairing engine factory, "package.module:attribute"
PAIRING_ENGINE = os.getenv("PAIRING_ENGINE", "")
PAIRING_EVENT_BUFFER = 256  # Bounded event channel between engine and orchestrator

# Default values applied to incomplete entity-paired events
DEFAULT_ENTITY_TYPE = "switch"
DEFAULT_SERVER_NAME = "Unknown Server"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
