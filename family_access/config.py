"""Environment-driven settings for the family access service."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

DB_PATH = Path(
    os.environ.get(
        "FAMILY_ACCESS_DB_PATH",
        Path(__file__).parent / "health_records" / "family_access.db",
    )
)

# Pending invitations older than this are moved to "expired" on next read
INVITE_EXPIRY_DAYS = int(os.environ.get("INVITE_EXPIRY_DAYS", "7"))

# Webhook that delivers invitation links (email/SMS gateway). Optional.
INVITE_WEBHOOK_URL = os.environ.get("INVITE_WEBHOOK_URL")
INVITE_BASE_URL = os.environ.get("INVITE_BASE_URL", "http://localhost:5173/accept-invitation")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
