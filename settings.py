"""
Application settings

Everything is pass-through configuration read from environment variables
(and a .env file, if present).
"""

import os

from dotenv import load_dotenv

# Load environment variables from .env file (if present)
load_dotenv()


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 3000))

# Persistence
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
DATABASE_BACKEND = os.getenv("DATABASE_BACKEND", "disk").lower()  # disk | memory
FALLBACK_DATABASE_NAME = os.getenv("FALLBACK_DATABASE_NAME", "tech_mastery")

# Sessions
DEFAULT_SESSION_SECRET = "tech-mastery-dev-secret"
SESSION_SECRET = os.getenv("SESSION_SECRET", DEFAULT_SESSION_SECRET)
SESSION_HTTPS_ONLY = _flag("SESSION_HTTPS_ONLY", ENVIRONMENT == "production")

# OAuth
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_CALLBACK_URL = os.getenv("GOOGLE_CALLBACK_URL", "/auth/google/callback")

# Frontend origin, used for CORS and post-login redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "").rstrip("/")
CORS_ORIGINS = [FRONTEND_URL] if FRONTEND_URL else ["*"]

# Code execution
NODE_BINARY = os.getenv("NODE_BINARY", "node")
EXECUTION_TIMEOUT = float(os.getenv("EXECUTION_TIMEOUT", 5))
EXECUTION_OUTPUT_LIMIT = int(os.getenv("EXECUTION_OUTPUT_LIMIT", 64 * 1024))
EXECUTION_MEMORY_MB = int(os.getenv("EXECUTION_MEMORY_MB", 256))
