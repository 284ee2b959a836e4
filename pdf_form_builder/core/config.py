from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from pathlib import Path
from typing import List

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"

class Settings(BaseSettings):
    app_name: str = "PDF Form Builder"
    api_prefix: str = ""
    cors_origins: List[str] = []
    log_level: str = "INFO"
    max_upload_bytes: int = 25 * 1024 * 1024
    default_render_width: int = 800
    max_render_width: int = 4000
    static_dir: Path = STATIC_DIR

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding='utf-8', extra='ignore')

@lru_cache()
def get_settings() -> Settings:
    return Settings()
