"""
Central configuration for the Crush Quest session engine.
All values can be overridden via environment variables or a local config.json.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

_ROOT = Path(__file__).parent.parent
_CONFIG_FILE = _ROOT / "config.json"


@dataclass
class Config:
    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8766
    log_level: str = "info"

    # Remote backend (PostgREST + storage)
    backend_url: str = "http://127.0.0.1:54321"
    backend_api_key: str = ""
    backend_access_token: str = ""
    http_timeout_s: float = 10.0

    # Session engine
    tick_interval_ms: int = 1000             # how often the running timer is ticked
    upload_timeout_s: float = 30.0           # image upload watchdog
    chime_sound: str = ""                    # path to the whoosh sound; empty = silent

    # Storage
    data_dir: Path = field(default_factory=lambda: _ROOT / "data")
    storage_file: str = "local_storage.json"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def storage_path(self) -> Path:
        return self.data_dir / self.storage_file

    @classmethod
    def load(cls) -> "Config":
        cfg = cls()
        if _CONFIG_FILE.exists():
            overrides = json.loads(_CONFIG_FILE.read_text())
            for k, v in overrides.items():
                if hasattr(cfg, k):
                    setattr(cfg, k, v)
        # environment variable overrides (CQ_*)
        for k in cfg.__dataclass_fields__:  # type: ignore[attr-defined]
            env_key = f"CQ_{k.upper()}"
            if env_key in os.environ:
                setattr(cfg, k, type(getattr(cfg, k))(os.environ[env_key]))
        cfg.data_dir = Path(cfg.data_dir)
        return cfg


# Module-level singleton
config = Config.load()
