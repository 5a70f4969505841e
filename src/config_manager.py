"""
Config Manager - Loads service settings from settings.json and the environment
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import load_dotenv

from placeholder_stream import DEFAULT_PLACEHOLDER_URLS, PLACEHOLDER_MODES
from request_dispatcher import DEFAULT_DEDUP_TTL_SECONDS, DEFAULT_CLEANUP_INTERVAL_SECONDS, DEFAULT_MAX_WORKERS
from tmdb_client import TMDB_BASE_URL

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(__file__).parent.parent / "settings.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {
        "host": "0.0.0.0",
        "port": 7000,
        "public_url": ""
    },
    "dedup": {
        "ttl_minutes": DEFAULT_DEDUP_TTL_SECONDS / 60,
        "cleanup_interval_seconds": DEFAULT_CLEANUP_INTERVAL_SECONDS,
        "max_workers": DEFAULT_MAX_WORKERS
    },
    "timeouts": {
        "metadata_seconds": 10,
        "request_seconds": 15
    },
    "tmdb": {
        "base_url": TMDB_BASE_URL
    },
    "placeholder": {
        "mode": "redirect",
        "urls": list(DEFAULT_PLACEHOLDER_URLS),
        "file_path": "public/wait.mp4"
    },
    "logging": {
        "level": "INFO"
    }
}

# Environment variable -> (section, key, type)
ENV_OVERRIDES = {
    "HOST": ("server", "host", str),
    "PORT": ("server", "port", int),
    "PUBLIC_URL": ("server", "public_url", str),
    "DEDUP_TTL_MINUTES": ("dedup", "ttl_minutes", float),
    "CLEANUP_INTERVAL_SECONDS": ("dedup", "cleanup_interval_seconds", float),
    "DISPATCH_WORKERS": ("dedup", "max_workers", int),
    "METADATA_TIMEOUT": ("timeouts", "metadata_seconds", float),
    "REQUEST_TIMEOUT": ("timeouts", "request_seconds", float),
    "TMDB_BASE_URL": ("tmdb", "base_url", str),
    "PLACEHOLDER_MODE": ("placeholder", "mode", str),
    "PLACEHOLDER_FILE": ("placeholder", "file_path", str),
    "LOG_LEVEL": ("logging", "level", str),
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigManager:
    """Manages service configuration"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else DEFAULT_SETTINGS_PATH

    def load_config(self, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Load defaults, settings.json and environment overrides, in that order

        Raises:
            ValueError: if the resulting configuration is invalid
        """
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = json.load(f)
            except (OSError, ValueError) as e:
                raise ValueError(f"Could not read {self.config_path}: {str(e)}")
            self._merge(config, file_config)
            logger.debug(f"Loaded settings from {self.config_path}")
        else:
            logger.info(f"No settings file at {self.config_path}, using defaults")

        if environ is None:
            load_dotenv()
            environ = dict(os.environ)
        self._apply_env(config, environ)

        placeholder_urls = environ.get("PLACEHOLDER_URLS")
        if placeholder_urls:
            config["placeholder"]["urls"] = [u.strip() for u in placeholder_urls.split(",") if u.strip()]

        self._validate_config(config)
        return config

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            else:
                base[key] = value

    def _apply_env(self, config: Dict[str, Any], environ: Dict[str, str]) -> None:
        for name, (section, key, cast) in ENV_OVERRIDES.items():
            raw = environ.get(name)
            if raw is None or raw == "":
                continue
            try:
                config[section][key] = cast(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {name}: {raw}")

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate configuration values; sections that are absent are skipped"""
        server = config.get("server", {})
        if "port" in server:
            port = server["port"]
            if not isinstance(port, int) or not 0 < port < 65536:
                raise ValueError(f"Invalid port: {port}")
        public_url = server.get("public_url")
        if public_url and not public_url.startswith(("http://", "https://")):
            raise ValueError("server.public_url must start with http:// or https://")

        dedup = config.get("dedup", {})
        if "ttl_minutes" in dedup and not dedup["ttl_minutes"] > 0:
            raise ValueError("dedup.ttl_minutes must be greater than 0")
        if "cleanup_interval_seconds" in dedup and not dedup["cleanup_interval_seconds"] > 0:
            raise ValueError("dedup.cleanup_interval_seconds must be greater than 0")
        if "max_workers" in dedup and not dedup["max_workers"] >= 1:
            raise ValueError("dedup.max_workers must be at least 1")

        for key, value in config.get("timeouts", {}).items():
            if not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"timeouts.{key} must be greater than 0")

        base_url = config.get("tmdb", {}).get("base_url")
        if base_url is not None and not base_url.startswith(("http://", "https://")):
            raise ValueError("tmdb.base_url must start with http:// or https://")

        placeholder = config.get("placeholder", {})
        if "mode" in placeholder and placeholder["mode"] not in PLACEHOLDER_MODES:
            raise ValueError(f"placeholder.mode must be one of {', '.join(PLACEHOLDER_MODES)}")
        if "urls" in placeholder:
            urls = placeholder["urls"]
            if not urls or not all(str(u).startswith(("http://", "https://")) for u in urls):
                raise ValueError("placeholder.urls must be a non-empty list of http(s) URLs")

        level = config.get("logging", {}).get("level")
        if level is not None and str(level).upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {level}")
