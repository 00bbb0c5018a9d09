from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Config:
    store_backend: str = "json"
    database_url: str = ""
    data_dir: Path = Path("data")

    app_base_url: str = ""
    logo_path: str = "/static/cactus-logo.png"

    fonts_dir: Path = Path("static/fonts")
    font_family: str = "Inter"
    font_light: str = "Inter-Light.ttf"
    font_regular: str = "Inter-Regular.ttf"
    font_semibold: str = "Inter-SemiBold.ttf"
    pdf_chunk_size: int = 64 * 1024

    dashboard_token: str = ""
    dashboard_host: str = "127.0.0.1"
    dashboard_port: int = 5000
    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            store_backend=os.getenv("STORE_BACKEND", "json").strip().lower(),
            database_url=os.getenv("DATABASE_URL", "").strip(),
            data_dir=Path(os.getenv("DATA_DIR", "data").strip()),

            app_base_url=os.getenv("APP_BASE_URL", "").strip(),
            logo_path=os.getenv("LOGO_PATH", "/static/cactus-logo.png").strip(),

            fonts_dir=Path(os.getenv("FONTS_DIR", "static/fonts").strip()),
            font_family=os.getenv("FONT_FAMILY", "Inter").strip(),
            font_light=os.getenv("FONT_LIGHT", "Inter-Light.ttf").strip(),
            font_regular=os.getenv("FONT_REGULAR", "Inter-Regular.ttf").strip(),
            font_semibold=os.getenv("FONT_SEMIBOLD", "Inter-SemiBold.ttf").strip(),
            pdf_chunk_size=max(1024, _get_int("PDF_CHUNK_SIZE", 64 * 1024)),

            dashboard_token=os.getenv("DASHBOARD_TOKEN", "").strip(),
            dashboard_host=os.getenv("DASHBOARD_HOST", "127.0.0.1").strip(),
            dashboard_port=_get_int("DASHBOARD_PORT", 5000),
            debug=_get_bool("DASHBOARD_DEBUG", False),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        )


def validate_config(config: Config) -> list[str]:
    missing = []
    if config.store_backend not in ("json", "postgres"):
        missing.append("STORE_BACKEND (json|postgres)")
    if config.store_backend == "postgres" and not config.database_url:
        missing.append("DATABASE_URL")
    for name, filename in (
        ("FONT_LIGHT", config.font_light),
        ("FONT_REGULAR", config.font_regular),
        ("FONT_SEMIBOLD", config.font_semibold),
    ):
        if not (config.fonts_dir / filename).is_file():
            missing.append(f"{name} ({config.fonts_dir / filename})")
    return missing
