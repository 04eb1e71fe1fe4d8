"""
Centralized configuration for the Job Tracker salary backend.

Single source of truth for:
  - Database path and connection management
  - External provider settings (FX, completion model, web search)
  - Cache lifetimes
  - Logging configuration

Values come from the environment; a local .env file is loaded first when present.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ─── Database ────────────────────────────────────────────────────────────────

DB_PATH = Path(os.getenv("JOBTRACKER_DB_PATH", Path(__file__).parent / "job_tracker.db"))


@contextmanager
def get_db():
    """
    Context-managed database connection.

    Usage:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT ...")

    Commits when the block exits cleanly, rolls back on error, and always closes.
    """
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


# ─── Providers ───────────────────────────────────────────────────────────────

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None

TAVILY_API_KEY = os.getenv("TAVILY_API_KEY", "")
TAVILY_SEARCH_URL = "https://api.tavily.com/search"

FX_PRIMARY_URL = "https://api.exchangerate-api.com/v4/latest/{base}"
FX_FALLBACK_URL = "https://api.frankfurter.app/latest"

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

# ─── Auth ────────────────────────────────────────────────────────────────────

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 24 * 7


# ─── Cache Lifetimes ─────────────────────────────────────────────────────────

FX_CACHE_TTL_SECONDS = 60 * 60
ANALYSIS_TTL_SECONDS = 24 * 60 * 60

# Completion budget for the net income call
NET_INCOME_MAX_TOKENS = 2500
NET_INCOME_TEMPERATURE = 0.1


# ─── Logging ─────────────────────────────────────────────────────────────────

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level=None):
    """Configure logging for the application."""
    logging.basicConfig(
        level=level or getattr(logging, LOG_LEVEL, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance."""
    return logging.getLogger(name)
