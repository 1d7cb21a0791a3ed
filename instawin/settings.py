"""Process-level configuration read from the environment (and ``.env``)."""

import os
from pathlib import Path

from dotenv import load_dotenv

from .db.utils import resolve_sqlite_url

load_dotenv()

# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[1]

DB_URL = resolve_sqlite_url(os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR)

# Bounded retry for plays that lose a write race at commit time.
PLAY_MAX_RETRIES = int(os.getenv("PLAY_MAX_RETRIES", "3"))
PLAY_RETRY_BACKOFF_MS = int(os.getenv("PLAY_RETRY_BACKOFF_MS", "25"))

# Seconds a SQLite writer waits on the database lock before giving up.
SQLITE_BUSY_TIMEOUT_S = float(os.getenv("SQLITE_BUSY_TIMEOUT_S", "30"))
