import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def _bool_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid {name}: {raw}")


@dataclass
class AppSettings:
    database_url: Optional[str]
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    ranking_refresh_minutes: int = 0
    create_tables_on_startup: bool = True
    default_admin_email: Optional[str] = None
    default_admin_password: Optional[str] = None


def load_settings() -> AppSettings:
    return AppSettings(
        database_url=os.environ.get("DATABASE_URL"),
        cors_origins=[item.strip() for item in os.environ.get("CORS_ORIGINS", "*").split(",") if item.strip()],
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        ranking_refresh_minutes=max(_int_env("RANKING_REFRESH_MINUTES", 0), 0),
        create_tables_on_startup=_bool_env(os.environ.get("CREATE_TABLES_ON_STARTUP"), default=True),
        default_admin_email=os.environ.get("DEFAULT_ADMIN_EMAIL"),
        default_admin_password=os.environ.get("DEFAULT_ADMIN_PASSWORD"),
    )


settings = load_settings()
