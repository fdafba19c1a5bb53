"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_REASON_LENGTH = 500  # Maximum length for exception reasons

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite) - localhost
    FRONTEND_URL,  # Includes production URL if FRONTEND_URL is set accordingly
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Weekday keys, index 0 = Monday (matches date.weekday())
WEEKDAY_KEYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

# Provider defaults
DEFAULT_SLOT_MINUTES = 10  # Step between generated start times
DEFAULT_TREATMENT_MINUTES = 30  # Used when a skill has no duration override

# Suggestion score per classification (higher ranks first)
SCORE_FITS = 2.0
SCORE_PARTIAL = 1.0
SCORE_UNAVAILABLE = 0.0

# Booking assignment context written by the reservation guard
DEFAULT_BOOKING_CONTEXT = "booking"
