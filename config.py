import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        data_dir: Path,
        backup_dir: Path,
        burn_rate_window_days: int,
        category_normalization: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.data_dir = data_dir
        self.backup_dir = backup_dir
        self.burn_rate_window_days = burn_rate_window_days
        self.category_normalization = category_normalization


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("HUB_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "hub.db"
    database_url = os.getenv("HUB_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("HUB_TIMEZONE", "Europe/Berlin")
    backup_dir = Path(os.getenv("HUB_BACKUP_DIR", str(data_dir / "backups"))).resolve()
    burn_rate_window_days = int(os.getenv("HUB_BURN_RATE_WINDOW_DAYS", "30"))
    category_normalization = os.getenv("HUB_CATEGORY_NORMALIZATION", "none").lower()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        data_dir=data_dir,
        backup_dir=backup_dir,
        burn_rate_window_days=burn_rate_window_days,
        category_normalization=category_normalization,
    )
