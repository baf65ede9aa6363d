# Settings read from the environment (and a local .env file, if present).

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


DB_PATH = Path(os.getenv("BOOKING_DB_PATH", str(Path(__file__).parent / "booking.db")))
SQLITE_TIMEOUT_SECONDS = float(os.getenv("SQLITE_TIMEOUT_SECONDS", "30"))

# Timezone used when rendering class times for clients
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Asia/Kolkata")
# Timezone a naive datetime from a studio owner is assumed to be in
STUDIO_TIMEZONE = os.getenv("STUDIO_TIMEZONE", "Asia/Kolkata")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SEED_ON_STARTUP = _as_bool(os.getenv("SEED_ON_STARTUP", "false"))
# 0 disables the periodic cleanup of finished classes
CLEANUP_INTERVAL_HOURS = float(os.getenv("CLEANUP_INTERVAL_HOURS", "0"))

# Emails allowed to register themselves with a staff role (comma-separated)
ADMIN_EMAILS = {e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()}
