"""Runtime configuration, built once from the environment and injected into routes."""
import os
from typing import NamedTuple


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default) in ("1", "true", "True", "yes", "on")


class Settings(NamedTuple):
    database_url: str
    jwt_secret: str
    upload_dir: str
    auth_enabled: bool
    search_creates_on_miss: bool
    log_level: str


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./app.db"),
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        upload_dir=os.getenv("UPLOAD_DIR", os.path.join("public", "uploads")),
        auth_enabled=_flag("AUTH_ENABLED", "1"),
        search_creates_on_miss=_flag("SEARCH_CREATES_ON_MISS", "1"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


state = load_settings()


def configure(**changes) -> Settings:
    global state
    state = state._replace(**changes)
    return state


def get_settings() -> Settings:
    return state
