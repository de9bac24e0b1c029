"""Application configuration loaded from .env and defaults."""
from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

class Settings(BaseSettings):
    db_path: Path = PROJECT_ROOT / "data" / "movieclub.db"
    log_path: Path = PROJECT_ROOT / "data" / "logs" / "app.log"
    log_level: str = "INFO"
    web_host: str = "127.0.0.1"
    web_port: int = 8787
    tmdb_api_key: str = ""
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    catalog_timeout_s: float = 10.0
    session_ttl_minutes: int = 30
    session_sweep_interval_s: int = 300
    rating_decimals: int = 2

    @property
    def session_ttl_s(self) -> int:
        return self.session_ttl_minutes * 60

    @property
    def catalog_enabled(self) -> bool:
        """True when a TMDB key is configured and remote lookups are possible."""
        return bool(self.tmdb_api_key)

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        env_file_encoding = "utf-8"

def get_settings() -> Settings:
    return Settings()
