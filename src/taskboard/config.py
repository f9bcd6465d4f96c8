"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".taskboard" / "taskboard.db")
    sweep_interval: float = 3600.0
    host: str = "127.0.0.1"
    port: int = 8787
    log_level: str = "INFO"
    default_user: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("TB_DB_PATH"):
            config.db_path = Path(db)

        if interval := os.environ.get("TB_SWEEP_INTERVAL"):
            config.sweep_interval = float(interval)

        if host := os.environ.get("TB_HOST"):
            config.host = host

        if port := os.environ.get("TB_PORT"):
            config.port = int(port)

        if level := os.environ.get("TB_LOG_LEVEL"):
            config.log_level = level.upper()

        config.default_user = os.environ.get("TB_USER")

        return config


def get_config() -> Config:
    return Config.from_env()
