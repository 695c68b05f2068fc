"""Runtime configuration for bloomshop."""

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

# Can be overridden via BLOOMSHOP_DATA_DIR environment variable
_default_data_dir = Path("data")

DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
)

LOG_FORMAT = "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    value = os.environ.get(name)
    if not value:
        return default
    return tuple(v.strip() for v in value.split(",") if v.strip())


@dataclass(frozen=True)
class Settings:
    """Process settings, normally built once from the environment."""

    data_dir: Path = _default_data_dir
    environment: str = "development"
    log_level: str = "INFO"
    reject_unknown_discount_codes: bool = False
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    delivery_postal_prefixes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(os.environ.get("BLOOMSHOP_DATA_DIR", _default_data_dir)),
            environment=os.environ.get("BLOOMSHOP_ENV", "development"),
            log_level=os.environ.get("BLOOMSHOP_LOG_LEVEL", "INFO").upper(),
            reject_unknown_discount_codes=_env_flag(
                "BLOOMSHOP_REJECT_UNKNOWN_DISCOUNT_CODES"
            ),
            cors_origins=_env_list("BLOOMSHOP_CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            delivery_postal_prefixes=_env_list("BLOOMSHOP_DELIVERY_POSTAL_PREFIXES"),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler on the package logger (idempotent)."""
    log = logging.getLogger("bloomshop")
    log.setLevel(level)
    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log.addHandler(handler)
