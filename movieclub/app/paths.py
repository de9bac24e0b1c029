"""Path utilities for ensuring directories exist."""
from movieclub.app.config import Settings, get_settings

def ensure_dirs(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    for d in [
        settings.db_path.parent,
        settings.log_path.parent,
    ]:
        d.mkdir(parents=True, exist_ok=True)
