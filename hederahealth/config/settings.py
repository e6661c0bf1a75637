"""
Configuration settings for the Hedera Health ID core.

Values can be overridden through environment variables where noted.
"""

import os

# ----------------------------------------------------------------------
# Security Settings
# ----------------------------------------------------------------------
QR_SECRET_ENV_VAR = "HEDERA_HEALTH_QR_KEY"  # hex key or passphrase, never committed
AES_GCM_KEY_SIZE = 32  # 256‑bit key
AES_GCM_NONCE_SIZE = 12
PBKDF2_ITERATIONS = 100_000
KEY_DERIVATION_SALT = b"hedera-health-id/qr/v1"

# ----------------------------------------------------------------------
# QR Codes
# ----------------------------------------------------------------------
QR_SCHEMA_VERSION = "1.0"
QR_MAX_AGE_SECONDS = 24 * 60 * 60  # scanned codes expire after a day
QR_DEFAULT_SIZE = 256  # pixels
QR_DEFAULT_MARGIN = 2  # quiet zone, in modules
QR_DEFAULT_ERROR_CORRECTION = "M"
QR_DEFAULT_DARK_COLOR = "#000000"
QR_DEFAULT_LIGHT_COLOR = "#FFFFFF"
QR_MULTIPLE_SIZES = {"small": 128, "medium": 256, "large": 512}

# ----------------------------------------------------------------------
# File Storage
# ----------------------------------------------------------------------
RECORDS_DATABASE_URL = os.getenv(
    "HEDERA_HEALTH_DATABASE_URL", "sqlite:///data/records/files.db"
)
MAX_UPLOAD_SIZE = int(os.getenv("HEDERA_HEALTH_MAX_FILE_SIZE", 5 * 1024 * 1024))  # 5 MiB
ALLOWED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
    }
)
FILE_RETENTION_DAYS = 30
FILE_URL_BASE = "https://storage.hedera-health.app/files"
UPLOAD_PROGRESS_STEP = 25.0  # percent per progress tick
UPLOAD_TICK_SECONDS = 0.0  # pause between ticks, 0 in tests and batch jobs

# ----------------------------------------------------------------------
# Ledger Network
# ----------------------------------------------------------------------
LEDGER_NETWORK = os.getenv("HEDERA_NETWORK", "testnet")
LEDGER_DEFAULT_GAS = 100_000

# ----------------------------------------------------------------------
# Miscellaneous
# ----------------------------------------------------------------------
DEBUG_MODE = os.getenv("HEDERA_HEALTH_DEBUG", "") == "1"
