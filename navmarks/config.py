from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_str_first(names: tuple[str, ...], default: str) -> str:
    for name in names:
        v = os.getenv(name)
        if v is None or v == "":
            continue
        return v
    return default


@dataclass
class Settings:
    # Storage
    store_backend: str = "sqlite"  # sqlite | memory
    store_path: str = "navmarks.sqlite"
    collection_key: str = "all_sites"

    # Fetching (import from URL)
    fetch_timeout_s: int = 15
    fetch_user_agent: str = "navmarks/0.3 (+https://example.invalid)"
    fetch_max_bytes: int = 5_000_000
    # HTTP URL imports must resolve under this base; empty disables them.
    import_url_base: str = ""

    # Edit gate; empty means every caller may edit.
    edit_password: str = ""

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 8788

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False

    @property
    def categories_key(self) -> str:
        return f"{self.collection_key}:categories"

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.store_backend = _env_str("NAV_STORE_BACKEND", s.store_backend)
        s.store_path = _env_str("NAV_STORE_PATH", s.store_path)
        s.collection_key = _env_str("NAV_COLLECTION_KEY", s.collection_key)

        s.fetch_timeout_s = _env_int("NAV_FETCH_TIMEOUT_S", s.fetch_timeout_s)
        s.fetch_user_agent = _env_str("NAV_FETCH_UA", s.fetch_user_agent)
        s.fetch_max_bytes = _env_int("NAV_FETCH_MAX_BYTES", s.fetch_max_bytes)
        s.import_url_base = _env_str("NAV_IMPORT_URL_BASE", s.import_url_base)

        # Compat: the front end build reads VITE_PASSWORD; NAV_ variant wins when both are set.
        s.edit_password = _env_str_first(("NAV_EDIT_PASSWORD", "VITE_PASSWORD"), s.edit_password)

        s.host = _env_str("NAV_HOST", s.host)
        s.port = _env_int("NAV_PORT", s.port)

        s.log_level = _env_str("NAV_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("NAV_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if hasattr(s, k) and k != "categories_key":
                setattr(s, k, v)
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
