"""Unit tests for Settings and the YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from knowlex.config.loader import load_config
from knowlex.config.settings import Settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep a developer's .env out of the picture.
    monkeypatch.chdir(tmp_path)
    for key in ("KNOWLEX_CHUNK_SIZE", "KNOWLEX_MAX_FILE_SIZE", "KNOWLEX_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.max_files_per_project == 100
        assert settings.max_file_size == 50 * 1024 * 1024
        assert settings.max_total_size == 200 * 1024 * 1024
        assert settings.chunk_size == 1000
        assert settings.chunk_overlap == 200
        assert settings.queue_max_concurrent == 2
        assert settings.queue_max_retries == 3

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KNOWLEX_CHUNK_SIZE", "512")
        monkeypatch.setenv("KNOWLEX_MAX_FILE_SIZE", "1024")

        settings = Settings()

        assert settings.chunk_size == 512
        assert settings.max_file_size == 1024

    def test_dotenv_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("KNOWLEX_LOG_LEVEL=DEBUG\n")
        assert Settings().log_level == "DEBUG"


class TestLoadConfig:
    def test_missing_yaml_yields_settings_sections(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=Settings(chunk_size=300))

        assert config["chunking"] == {"chunk_size": 300, "chunk_overlap": 200}
        assert config["queue"]["max_concurrent"] == 2
        assert config["limits"]["max_files_per_project"] == 100

    def test_yaml_only_keys_pass_through(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "api:\n  cors_origins: [http://localhost:3000]\n"
            "parsers:\n  text_encodings: [utf-8]\n"
            "chunking:\n  chunk_size: 1\n  note: keep\n"
        )

        config = load_config(str(path), settings=Settings())

        assert config["api"]["cors_origins"] == ["http://localhost:3000"]
        assert config["parsers"]["text_encodings"] == ["utf-8"]
        # Settings-backed keys win; unrelated keys in the same section survive.
        assert config["chunking"]["chunk_size"] == 1000
        assert config["chunking"]["note"] == "keep"

    def test_repository_config_file_loads(self) -> None:
        repo_config = Path(__file__).resolve().parents[2] / "config" / "config.yaml"
        config = load_config(str(repo_config), settings=Settings())

        assert config["app"]["name"] == "knowlex-ingest"
        assert config["parsers"]["text_encodings"][0] == "utf-8"
