"""Configuration for the framer client."""

import os

# Backend API URL (default: local development)
API_BASE_URL = os.environ.get(
    "FRAMER_API_URL",
    "http://localhost:8000",
)

# Request timeout in seconds
REQUEST_TIMEOUT = float(os.environ.get("FRAMER_REQUEST_TIMEOUT", "30"))

# Upload / artifact download timeout (longer for large files)
TRANSFER_TIMEOUT = float(os.environ.get("FRAMER_TRANSFER_TIMEOUT", "300"))

# Status polling: 1 s between polls, up to 300 polls (5 minutes)
POLL_INTERVAL = float(os.environ.get("FRAMER_POLL_INTERVAL", "1.0"))
POLL_MULTIPLIER = float(os.environ.get("FRAMER_POLL_MULTIPLIER", "1.0"))
POLL_MAX_INTERVAL = float(os.environ.get("FRAMER_POLL_MAX_INTERVAL", "5.0"))
POLL_MAX_ATTEMPTS = int(os.environ.get("FRAMER_POLL_MAX_ATTEMPTS", "300"))
POLL_TIMEOUT = float(os.environ.get("FRAMER_POLL_TIMEOUT", "300"))

# Upload limit enforced before sending (the server checks it too)
MAX_UPLOAD_SIZE_MB = int(os.environ.get("FRAMER_MAX_UPLOAD_SIZE_MB", "500"))

# How long after a user action the native share primitive stays callable
SHARE_GESTURE_WINDOW = float(os.environ.get("FRAMER_SHARE_GESTURE_WINDOW", "5.0"))
