"""Configuration loading from environment variables and defaults."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


# Database
DB_PATH = Path(_env("CRM_DB_PATH", "") or str(_PROJECT_ROOT / "data" / "notes.db"))

# Contacts whose e-mail domain equals this are classified internal.
# Deliberately no default: every deployment has its own domain.
INTERNAL_DOMAIN = _env("INTERNAL_DOMAIN").strip().lower()

# Web server
HOST = _env("CRM_HOST", "127.0.0.1")
PORT = int(_env("CRM_PORT", "8080"))
CORS_ORIGINS = [
    o.strip()
    for o in _env("CRM_CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if o.strip()
]

# File uploads (note attachments)
UPLOAD_DIR = Path(_env("CRM_UPLOAD_DIR", "") or str(_PROJECT_ROOT / "data" / "uploads"))
MAX_UPLOAD_SIZE_MB = int(_env("CRM_MAX_UPLOAD_SIZE_MB", "10"))
ALLOWED_UPLOAD_TYPES = {
    "image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain", "text/csv", "text/markdown",
    "application/octet-stream",
}

# Name of the catch-all account used by quick capture
UNASSIGNED_ACCOUNT_NAME = "Unassigned"
