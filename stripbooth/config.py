from pydantic_settings import BaseSettings
import os


class Settings(BaseSettings):
    app_name: str = "StripBooth"
    app_description: str = "A photobooth service that captures timed photo sequences and composes decorated photo strips"
    debug: bool = False

    host: str = "0.0.0.0"
    port: int = 8000

    camera_index: int = 0
    camera_width: int = 1280
    camera_height: int = 720
    camera_fps: int = 30
    preview_width: int = 640
    preview_quality: int = 60
    preview_fps: int = 15

    countdown_ticks: int = 3
    tick_interval: float = 1.0
    inter_shot_pause: float = 1.5
    flash_duration: float = 0.3

    default_layout: str = "classic"
    default_theme: str = "classic"

    output_format: str = "jpeg"
    photo_quality: int = 95
    locale: str = "en_US"
    download_prefix: str = "photobooth-strip"

    storage_backend: str = "file"
    strips_dir: str = "data/strips"

    log_level: str = "INFO"
    log_dir: str = ""

    class Config:
        env_file = ".env"
        env_prefix = "STRIPBOOTH_"


settings = Settings()
if settings.storage_backend == "file":
    os.makedirs(settings.strips_dir, exist_ok=True)
