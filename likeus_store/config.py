import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_STORAGE_DIR = str(Path.home() / ".like-us")


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def _get_float(key: str, default: Optional[float]) -> Optional[float]:
    raw = _get_env(key)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    poll_interval: float = 5.0
    poll_overlap: float = 1.0
    storage_dir: str = DEFAULT_STORAGE_DIR
    request_timeout: Optional[float] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_url=(_get_env("API_URL", DEFAULT_API_URL) or DEFAULT_API_URL).rstrip("/"),
            poll_interval=_get_float("POLL_INTERVAL_SECONDS", 5.0),
            poll_overlap=_get_float("POLL_OVERLAP_SECONDS", 1.0),
            storage_dir=os.path.expanduser(
                _get_env("STORAGE_DIR", DEFAULT_STORAGE_DIR) or DEFAULT_STORAGE_DIR
            ),
            request_timeout=_get_float("REQUEST_TIMEOUT_SECONDS", None),
        )
