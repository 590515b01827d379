"""Application configuration. Loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file.

    A missing or unreadable file means no overrides.
    """
    if not _SETTINGS_FILE.exists():
        return {}
    try:
        return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [v.strip().upper() for v in raw.split(",") if v.strip()]


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "fieldcrm.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )

    # Order completion (settings.json overrides .env)
    AMEND_WINDOW_MINUTES: int = int(_runtime.get(
        "amend_window_minutes",
        os.getenv("AMEND_WINDOW_MINUTES", "15"),
    ))
    WORK_CODE_REQUIRED_TYPES: list = _runtime.get(
        "work_code_required_types",
        _env_list("WORK_CODE_REQUIRED_TYPES", "INSTALLATION"),
    )

    # Devices in this category may be bound by anyone
    CATCH_ALL_DEVICE_CATEGORY: str = _runtime.get(
        "catch_all_device_category",
        os.getenv("CATCH_ALL_DEVICE_CATEGORY", "OTHER"),
    )

    # Geocoding (Nominatim-compatible search endpoint)
    GEOCODING_DISABLED: bool = _runtime.get(
        "geocoding_disabled", _env_bool("GEOCODING_DISABLED")
    )
    GEOCODER_URL: str = _runtime.get(
        "geocoder_url",
        os.getenv(
            "GEOCODER_URL", "https://nominatim.openstreetmap.org/search"
        ),
    )
    GEOCODER_USER_AGENT: str = _runtime.get(
        "geocoder_user_agent",
        os.getenv("GEOCODER_USER_AGENT", "fieldcrm/1.0 (dispatch@fieldcrm.local)"),
    )
    GEOCODER_TIMEOUT: float = float(_runtime.get(
        "geocoder_timeout",
        os.getenv("GEOCODER_TIMEOUT", "10"),
    ))
    GEOCODER_MAX_RETRIES: int = int(_runtime.get(
        "geocoder_max_retries",
        os.getenv("GEOCODER_MAX_RETRIES", "3"),
    ))
    GEOCODER_COUNTRY_CODES: str = _runtime.get(
        "geocoder_country_codes",
        os.getenv("GEOCODER_COUNTRY_CODES", "pl"),
    )

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_amend_window(cls, minutes: int):
        """Update the technician amend window and persist to disk."""
        if minutes < 0:
            raise ValueError("Amend window cannot be negative")
        cls.AMEND_WINDOW_MINUTES = minutes

        settings = _load_settings()
        settings["amend_window_minutes"] = minutes
        _save_settings(settings)

    @classmethod
    def update_work_code_required_types(cls, order_types: list[str]):
        """Set which order types need at least one work code to complete."""
        from fieldcrm.utils.constants import ORDER_TYPES
        normalized = [t.strip().upper() for t in order_types]
        unknown = [t for t in normalized if t not in ORDER_TYPES]
        if unknown:
            raise ValueError(f"Unknown order types: {', '.join(unknown)}")
        cls.WORK_CODE_REQUIRED_TYPES = normalized

        settings = _load_settings()
        settings["work_code_required_types"] = normalized
        _save_settings(settings)

    @classmethod
    def update_geocoding_settings(cls, disabled: bool, url: str,
                                  timeout: float, max_retries: int):
        """Update geocoder settings and persist."""
        cls.GEOCODING_DISABLED = disabled
        cls.GEOCODER_URL = url
        cls.GEOCODER_TIMEOUT = timeout
        cls.GEOCODER_MAX_RETRIES = max_retries

        settings = _load_settings()
        settings["geocoding_disabled"] = disabled
        settings["geocoder_url"] = url
        settings["geocoder_timeout"] = timeout
        settings["geocoder_max_retries"] = max_retries
        _save_settings(settings)
