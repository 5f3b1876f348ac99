"""Runtime configuration.

Values come from the environment (a local ``.env`` file is loaded first) and
are read once at import time.
"""

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

# --- Database ---

DATABASE_URL: str = os.getenv("DATABASE_URL", "").strip()

# --- API server ---

API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))

_ALLOWED_ORIGINS_STR: str = os.getenv(
    "ALLOWED_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173"
)
ALLOWED_ORIGINS: List[str] = [
    o.strip() for o in _ALLOWED_ORIGINS_STR.split(",") if o.strip()
]

# --- Auth ---

# Audience of the Firebase ID tokens sent by the frontend
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# --- Logging ---

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
