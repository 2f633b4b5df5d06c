from dataclasses import dataclass
import os
from pathlib import Path
from dotenv import load_dotenv


load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    data_dir: str = os.getenv("GRADESYNC_DATA_DIR", "data")
    shared_group_dir: str = os.getenv("GRADESYNC_SHARED_GROUP_DIR", os.path.join("data", "group"))

    widget_refresh_minutes: int = _int_env("GRADESYNC_WIDGET_REFRESH_MINUTES", 60)
    widget_poll_seconds: int = _int_env("GRADESYNC_WIDGET_POLL_SECONDS", 5)

    log_level: str = os.getenv("GRADESYNC_LOG_LEVEL", "INFO").upper()
    web_mode: bool = os.getenv("GRADESYNC_WEB", "0") == "1"
    port: int = _int_env("PORT", 8550)

    @property
    def database_path(self) -> str:
        return str(Path(self.data_dir) / "gradesync.db")

    @property
    def preferences_path(self) -> str:
        return str(Path(self.data_dir) / "preferences.db")


settings = Settings()
