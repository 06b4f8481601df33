# config.py
from pathlib import Path
from typing import Dict, List
import logging
import os

APP_NAME: str = "Futsal Fantasy League"
APP_VERSION: str = "1.0.0"

# ====== Backend selection ======
# "supabase" talks to the hosted backend over HTTP; "sqlite" keeps everything
# in a local file (handy for development and for the test-suite).
BACKEND: str = os.environ.get("FUTSAL_BACKEND", "sqlite").lower()

SUPABASE_URL: str = os.environ.get("SUPABASE_URL", "")
# Use the service-role key for a server deployment: row filters are applied by
# this service, not by per-user policies.
SUPABASE_KEY: str = os.environ.get("SUPABASE_KEY", "")
HTTP_TIMEOUT: int = int(os.environ.get("FUTSAL_HTTP_TIMEOUT", "10"))

DB_PATH = Path(os.environ.get("FUTSAL_DB_PATH", "data/futsal.db"))

# ====== Sessions ======
SESSION_COOKIE: str = "futsal_session"
SESSION_SECRET: str = os.environ.get("FUTSAL_SESSION_SECRET", "dev-session-secret-change-me")
SESSION_TTL_DAYS: int = int(os.environ.get("SESSION_TTL_DAYS", "30"))

LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

# ====== Game rules ======
INITIAL_BALANCE: float = 100.00
DEFAULT_BUDGET_LIMIT: float = 40.00
PRICE_MIN: float = 0.50
PRICE_MAX: float = 10.00

POSITIONS: List[str] = ["GOL", "FIX", "ALA", "PIV"]
POSITION_NAMES: Dict[str, str] = {
    "GOL": "Goleiro",
    "FIX": "Fixo",
    "ALA": "Ala",
    "PIV": "Pivô",
}

# Starter slot -> position it accepts. ALA is the dual-slot role.
STARTER_SLOTS: Dict[str, str] = {
    "GOL": "GOL",
    "FIX": "FIX",
    "ALA1": "ALA",
    "ALA2": "ALA",
    "PIV": "PIV",
}
# Reserves take any position and do not count against the budget.
RESERVE_SLOTS: List[str] = ["RES1", "RES2", "RES3"]

RANKING_LIMIT: int = 20
TOP_SCOUTS_LIMIT: int = 10
DASHBOARD_WORKERS: int = 4


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
