"""Runtime configuration for the storefront (read from the environment, overridable in tests)."""
import os
from typing import NamedTuple


class Settings(NamedTuple):
    database_url: str
    jwt_secret: str
    jwt_exp_seconds: int
    log_level: str


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./storefront.db"),
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        jwt_exp_seconds=int(os.getenv("JWT_EXP_SECONDS", str(60 * 60 * 2))),  # 2 hours
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


state = load_settings()


def configure(**overrides) -> Settings:
    global state
    state = state._replace(**overrides)
    return state


def get_settings() -> Settings:
    return state
