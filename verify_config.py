import os
from pathlib import Path
from unittest import mock

import reportlab

from config import Config, validate_config

VERA_DIR = Path(reportlab.__file__).parent / "fonts"


def test_from_env_reads_values() -> None:
    env = {
        "STORE_BACKEND": " Postgres ",
        "DATABASE_URL": "postgresql://localhost/orders",
        "APP_BASE_URL": "https://admin.example",
        "PDF_CHUNK_SIZE": "not-a-number",
        "DASHBOARD_PORT": "8080",
        "DASHBOARD_DEBUG": "yes",
        "LOG_LEVEL": "debug",
    }
    with mock.patch.dict(os.environ, env, clear=True):
        config = Config.from_env()
    assert config.store_backend == "postgres"
    assert config.database_url == "postgresql://localhost/orders"
    assert config.app_base_url == "https://admin.example"
    assert config.pdf_chunk_size == 64 * 1024
    assert config.dashboard_port == 8080
    assert config.debug is True
    assert config.log_level == "DEBUG"
    assert config.logo_path == "/static/cactus-logo.png"
    print("SUCCESS: configuration is read from the environment.")


def test_validate_config() -> None:
    good = Config(fonts_dir=VERA_DIR, font_light="Vera.ttf", font_regular="Vera.ttf", font_semibold="VeraBd.ttf")
    assert validate_config(good) == []

    bad = Config(store_backend="postgres", fonts_dir=Path("/nonexistent"))
    missing = validate_config(bad)
    assert "DATABASE_URL" in missing
    assert any(entry.startswith("FONT_SEMIBOLD") for entry in missing)
    print("SUCCESS: missing fonts and database settings are reported.")


if __name__ == "__main__":
    test_from_env_reads_values()
    test_validate_config()
