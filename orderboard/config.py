# Order board — configuration
# Defaults below; override via config/orderboard.yaml, env vars or CLI args.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

from .schema import Status

CONFIG_PATH = Path(__file__).parent.parent / "config" / "orderboard.yaml"


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class BoardConfig:
    """Runtime configuration for the order board."""

    # Order service
    api_base_url: str = "http://localhost:3001/api"
    token_env: str = "ORDERBOARD_API_TOKEN"
    request_timeout: float = 10.0

    # Column titles by status value (only renames; every status keeps a column)
    column_titles: Dict[str, str] = field(default_factory=dict)

    # Board server
    host: str = "127.0.0.1"
    port: int = 3000
    api_secret_env: str = "ORDERBOARD_API_SECRET"

    log_level: str = "INFO"

    def resolve_env(self) -> None:
        """Apply environment overrides."""
        self.api_base_url = os.environ.get("ORDERBOARD_API_URL", self.api_base_url)

    @property
    def api_token(self) -> Optional[str]:
        return os.environ.get(self.token_env) or None

    @property
    def api_secret(self) -> str:
        return os.environ.get(self.api_secret_env, "")

    def titles(self) -> Dict[Status, str]:
        """Column title overrides keyed by Status. Unknown statuses raise ConfigError."""
        titles = {}
        for key, title in self.column_titles.items():
            try:
                titles[Status.parse(key)] = str(title)
            except ValueError:
                raise ConfigError(f"column_titles: unknown status '{key}'")
        return titles

    @classmethod
    def load(cls, path: Optional[str] = None) -> "BoardConfig":
        """Load config from YAML file, falling back to defaults if the file is absent."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {cfg_path}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        else:
            cfg = cls()
        cfg.resolve_env()
        return cfg
