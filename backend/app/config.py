import os
from functools import lru_cache

from pydantic import BaseModel, Field

DEFAULT_ALPACA_WSS_URL = "wss://stream.data.alpaca.markets/v2/iex"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    ALPACA_API_KEY: str = ""
    ALPACA_SECRET_KEY: str = ""
    ALPACA_WSS_URL: str = DEFAULT_ALPACA_WSS_URL
    RECONNECT_DELAY_SEC: float = Field(default=5.0, gt=0)
    # 0 retries forever
    RECONNECT_MAX_ATTEMPTS: int = Field(default=0, ge=0)
    FLUSH_INTERVAL_SEC: float = Field(default=5.0, gt=0)
    CLIENT_QUEUE_SIZE: int = Field(default=1000, ge=1)
    PORTFOLIO_DB_PATH: str = "portfolio.db"
    SIMULATOR_TICK_SEC: float = Field(default=0.5, gt=0)
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @property
    def use_simulator(self) -> bool:
        return not self.ALPACA_API_KEY.strip()

    @classmethod
    def from_env(cls) -> "Settings":
        raw = {
            "ALPACA_API_KEY": os.getenv("ALPACA_API_KEY", "").strip(),
            "ALPACA_SECRET_KEY": os.getenv("ALPACA_SECRET_KEY", "").strip(),
            "ALPACA_WSS_URL": os.getenv("ALPACA_WSS_URL", "").strip() or DEFAULT_ALPACA_WSS_URL,
            "RECONNECT_DELAY_SEC": os.getenv("RECONNECT_DELAY_SEC"),
            "RECONNECT_MAX_ATTEMPTS": os.getenv("RECONNECT_MAX_ATTEMPTS"),
            "FLUSH_INTERVAL_SEC": os.getenv("FLUSH_INTERVAL_SEC"),
            "CLIENT_QUEUE_SIZE": os.getenv("CLIENT_QUEUE_SIZE"),
            "PORTFOLIO_DB_PATH": os.getenv("PORTFOLIO_DB_PATH"),
            "SIMULATOR_TICK_SEC": os.getenv("SIMULATOR_TICK_SEC"),
            "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            "LOG_JSON": _env_bool("LOG_JSON"),
        }
        # Unset numeric vars fall back to the field defaults.
        return cls.model_validate({k: v for k, v in raw.items() if v is not None})


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
