# config.py
# Description: Configuration settings for the timetrack sync server.
#
# Imports
import os
from pathlib import Path
from typing import List
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Constants ---
DEFAULT_SINGLE_USER_API_KEY = "default-secret-key-for-single-user"
DEFAULT_JWT_SECRET_KEY = "a_very_insecure_default_secret_key_for_dev_only"
# Owner id used for every request in single-user mode
DEFAULT_SINGLE_USER_OWNER_ID = "00000000-0000-4000-8000-000000000001"

SYNC_PULL_MODES = ("full", "delta")


def _parse_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: '{raw}'. Falling back to {default}.")
        return default


def load_settings():
    """Loads all settings from environment variables or defaults into a dictionary."""

    # --- Application Mode ---
    app_mode_str = os.getenv("APP_MODE", "single").lower()
    single_user_mode = app_mode_str != "multi"

    # --- Single-User Settings ---
    single_user_api_key = os.getenv("API_KEY", DEFAULT_SINGLE_USER_API_KEY)
    single_user_owner_id = os.getenv("SINGLE_USER_OWNER_ID", DEFAULT_SINGLE_USER_OWNER_ID)

    # --- Multi-User Settings (JWT) ---
    jwt_secret_key = os.getenv("JWT_SECRET_KEY", DEFAULT_JWT_SECRET_KEY)
    jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes = _int_from_env("ACCESS_TOKEN_EXPIRE_MINUTES", 30)

    # --- Database Settings ---
    db_path = os.getenv("TIMETRACK_DB_PATH", str(Path("./timetrack_data/timetrack.sqlite")))

    # --- Sync Settings ---
    pull_mode = os.getenv("SYNC_PULL_MODE", "full").lower()
    if pull_mode not in SYNC_PULL_MODES:
        logger.warning(f"Unknown SYNC_PULL_MODE '{pull_mode}'. Falling back to 'full'.")
        pull_mode = "full"
    delta_overlap_ms = max(0, _int_from_env("SYNC_DELTA_OVERLAP_MS", 0))
    sync_timeout_seconds = _int_from_env("SYNC_TIMEOUT_SECONDS", 30)
    if sync_timeout_seconds <= 0:
        logger.warning(f"SYNC_TIMEOUT_SECONDS must be positive, got {sync_timeout_seconds}. Using 30.")
        sync_timeout_seconds = 30
    sync_rate_limit = os.getenv("SYNC_RATE_LIMIT", "120/minute")

    # --- Server ---
    allowed_origins = _parse_origins(os.getenv("ALLOWED_ORIGINS", ""))
    host = os.getenv("HOST", "0.0.0.0")
    port = _int_from_env("PORT", 8080)

    # --- Logging ---
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    # --- Build the Settings Dictionary ---
    config_dict = {
        # General App
        "APP_MODE_STR": app_mode_str,
        "SINGLE_USER_MODE": single_user_mode,
        "LOG_LEVEL": log_level,

        # Single User
        "SINGLE_USER_API_KEY": single_user_api_key,
        "SINGLE_USER_OWNER_ID": single_user_owner_id,

        # Multi User / Auth
        "JWT_SECRET_KEY": jwt_secret_key,
        "JWT_ALGORITHM": jwt_algorithm,
        "ACCESS_TOKEN_EXPIRE_MINUTES": access_token_expire_minutes,

        # Database
        "TIMETRACK_DB_PATH": db_path,

        # Sync
        "SYNC_PULL_MODE": pull_mode,
        "SYNC_DELTA_OVERLAP_MS": delta_overlap_ms,
        "SYNC_TIMEOUT_SECONDS": sync_timeout_seconds,
        "SYNC_RATE_LIMIT": sync_rate_limit,

        # Server
        "ALLOWED_ORIGINS": allowed_origins,
        "HOST": host,
        "PORT": port,
    }

    # --- Warnings ---
    if config_dict["SINGLE_USER_MODE"] and config_dict["SINGLE_USER_API_KEY"] == DEFAULT_SINGLE_USER_API_KEY:
        logger.warning("Using default API_KEY for single-user mode. Set the API_KEY environment variable for security.")
    if not config_dict["SINGLE_USER_MODE"] and config_dict["JWT_SECRET_KEY"] == DEFAULT_JWT_SECRET_KEY:
        logger.warning("SECURITY WARNING: Using default JWT_SECRET_KEY in multi-user mode. Set a strong JWT_SECRET_KEY!")

    return config_dict


# --- Global Settings Object ---
# Load the settings when the module is imported
settings = load_settings()

ALLOWED_ORIGINS = settings["ALLOWED_ORIGINS"]

#
# End of config.py
########################################################################################################################
