# shield/config.py
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

# Packaged signature rules: shield/rules
RULE_DIR = Path(os.path.dirname(__file__)) / "rules"

# env var -> ShieldConfig field
ENV_FIELDS: Dict[str, str] = {
    "SHIELD_REFRESH_INTERVAL": "blocklist_refresh_interval",
    "SHIELD_REFRESH_BACKOFF": "refresh_retry_backoff",
    "SHIELD_BRUTE_FORCE_THRESHOLD": "brute_force_threshold",
    "SHIELD_BRUTE_FORCE_WINDOW": "brute_force_window",
    "SHIELD_RULE_DIR": "rule_dir",
}


class ConfigError(ValueError):
    """Invalid explicit configuration, raised at startup only."""


@dataclass(frozen=True)
class ShieldConfig:
    monitoring_url: str = ""
    blocklist_refresh_interval: float = 300.0
    refresh_retry_backoff: float = 0.0
    refresh_timeout: float = 2.0
    report_timeout: float = 2.0
    report_workers: int = 4
    brute_force_threshold: int = 5
    brute_force_window: float = 900.0
    destination_port: int = 443
    protocol: str = "TCP"
    rule_dir: Path = RULE_DIR

    def __post_init__(self) -> None:
        object.__setattr__(self, "monitoring_url", (self.monitoring_url or "").strip().rstrip("/"))
        object.__setattr__(self, "rule_dir", Path(self.rule_dir))

        for name in ("blocklist_refresh_interval", "refresh_retry_backoff",
                     "refresh_timeout", "report_timeout", "brute_force_window"):
            object.__setattr__(self, name, _as_number(name, getattr(self, name), float))
        for name in ("report_workers", "brute_force_threshold", "destination_port"):
            object.__setattr__(self, name, _as_number(name, getattr(self, name), int))

        if self.brute_force_threshold < 1:
            raise ConfigError("brute_force_threshold must be at least 1")
        if self.report_workers < 1:
            raise ConfigError("report_workers must be at least 1")
        if self.refresh_timeout <= 0 or self.report_timeout <= 0:
            raise ConfigError("timeouts must be positive")

    @property
    def enabled(self) -> bool:
        """Monitoring is on only for an http(s) base URL."""
        return bool(self.monitoring_url) and self.monitoring_url.startswith("http")

    @classmethod
    def from_yaml(cls, path) -> "ShieldConfig":
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must hold a mapping")

        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r in %s", key, path)
                continue
            values[key] = value
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ShieldConfig":
        """
        Build config from environment variables.

        SHIELD_CONFIG names an optional YAML file loaded first; the other
        SHIELD_* variables override it.
        """
        env = os.environ if environ is None else environ

        config_file = env.get("SHIELD_CONFIG")
        base = cls.from_yaml(config_file) if config_file else cls()

        overrides: Dict[str, Any] = {}
        url = env.get("SHIELD_MONITORING_URL")
        if url is not None:
            overrides["monitoring_url"] = url

        timeout = env.get("SHIELD_TIMEOUT")
        if timeout:
            overrides["refresh_timeout"] = timeout
            overrides["report_timeout"] = timeout

        for var, name in ENV_FIELDS.items():
            value = env.get(var)
            if value:
                overrides[name] = value

        return replace(base, **overrides) if overrides else base


def _as_number(name: str, value: Any, kind):
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
