import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR.parent / ".env"
load_dotenv(ENV_PATH)


@dataclass(frozen=True)
class Settings:
    locale: str = "en-GB"
    default_end_months: int = 3
    preview_count: int = 5
    prodid: str = "-//Recurrence Picker//EN"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def get_settings() -> Settings:
    return Settings(
        locale=os.getenv("RECURRENCE_LOCALE") or Settings.locale,
        default_end_months=_int_env("RECURRENCE_DEFAULT_END_MONTHS", Settings.default_end_months),
        preview_count=_int_env("RECURRENCE_PREVIEW_COUNT", Settings.preview_count),
        prodid=os.getenv("RECURRENCE_PRODID") or Settings.prodid,
        log_level=os.getenv("LOG_LEVEL") or "INFO",
    )
