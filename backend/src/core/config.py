"""
Application configuration using python-dotenv.

Values are read once at import time from os.environ, after loading a .env
file when one is found. See backend/.env.example for the full list.
"""

import os
import pathlib
from dotenv import load_dotenv


# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

if not is_testing:
    _backend_dir = pathlib.Path(__file__).resolve().parent.parent.parent
    for env_path in (_backend_dir / ".env", _backend_dir.parent / ".env", pathlib.Path.cwd() / ".env"):
        if env_path.exists():
            load_dotenv(env_path)
            break


def _get_bool(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment ("1", "true", "yes", "on" are truthy)."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _get_int(name: str, default: int, minimum: int = 0) -> int:
    """Read a non-negative integer; malformed values raise at startup."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = int(raw)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://localhost/availability_engine_dev")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Zone given to providers created without one
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Australia/Sydney")

# Gap (ms) allowed between two free slots for them to be merged into one range.
AVAILABILITY_MERGE_TOLERANCE_MS = _get_int("AVAILABILITY_MERGE_TOLERANCE_MS", 60000)

# Free fragments shorter than this are dropped after subtraction.
AVAILABILITY_MIN_GRANULARITY_MINUTES = _get_int("AVAILABILITY_MIN_GRANULARITY_MINUTES", 1)

# Only merge slots sharing the same location|chair|day key.
AVAILABILITY_ENFORCE_GROUPING = _get_bool("AVAILABILITY_ENFORCE_GROUPING", True)

# Upper bound on the query range accepted by the suggestion endpoint.
SUGGESTION_MAX_RANGE_DAYS = _get_int("SUGGESTION_MAX_RANGE_DAYS", 31, minimum=1)
