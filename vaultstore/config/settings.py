"""
Configuration settings for the vaultstore persistence layer.
"""

from __future__ import annotations

import os

# ----------------------------------------------------------------------
# Environment variables
# ----------------------------------------------------------------------
CONNECTION_STRING_ENV_VAR = "VAULTSTORE_CONNECTION_STRING"
DATABASE_KIND_ENV_VAR = "VAULTSTORE_DATABASE_KIND"  # mssql | mysql | sqlite
PASSPHRASE_ENV_VAR = "VAULTSTORE_PASSPHRASE"
LOG_LEVEL_ENV_VAR = "VAULTSTORE_LOG_LEVEL"
SQL_ECHO_ENV_VAR = "VAULTSTORE_SQL_ECHO"

# ----------------------------------------------------------------------
# Store Settings
# ----------------------------------------------------------------------
DEFAULT_DATABASE_KIND = "mssql"  # Primary dialect when nothing is configured
SQL_ECHO = os.getenv(SQL_ECHO_ENV_VAR, "").lower() in ("1", "true", "yes")

# ----------------------------------------------------------------------
# Security Settings
# ----------------------------------------------------------------------
AES_GCM_KEY_SIZE = 32  # 256‑bit key
AES_GCM_NONCE_SIZE = 12
PBKDF2_SALT_SIZE = 16
PBKDF2_ITERATIONS = 100_000

# ----------------------------------------------------------------------
# Logging
# ----------------------------------------------------------------------
LOG_LEVEL = os.getenv(LOG_LEVEL_ENV_VAR, "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_setting(name: str, default: str | None = None) -> str | None:
    """Return the environment value for *name*, or *default* when unset or blank."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value
