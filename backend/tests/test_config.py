"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

from knowledge_hub.core.config import Settings


def test_yaml_sections_map_to_settings(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("KBH_DB_PATH")
    monkeypatch.delenv("KBH_PUBLIC_BASE_URL")
    config = tmp_path / "config.yaml"
    config.write_text(
        """
storage:
  db_path: /tmp/kb-test.db
server:
  public_base_url: https://kb.example.com/
processing:
  webhook_url: https://processor.example.com/run
  webhook_timeout: 5
uploads:
  max_bytes: 1024
""",
        encoding="utf-8",
    )

    settings = Settings.from_yaml(config)

    assert settings.db_path == Path("/tmp/kb-test.db")
    assert settings.public_base_url == "https://kb.example.com"
    assert settings.webhook_url == "https://processor.example.com/run"
    assert settings.webhook_timeout == 5.0
    assert settings.max_upload_bytes == 1024
    assert settings.callback_url == "https://kb.example.com/callbacks/processing"


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("processing:\n  webhook_url: https://from-yaml\n", encoding="utf-8")
    monkeypatch.setenv("KBH_WEBHOOK_URL", "https://from-env")

    settings = Settings.from_yaml(config)

    assert settings.webhook_url == "https://from-env"
    assert settings.storage_root == tmp_path / "blobs"


def test_blob_url() -> None:
    settings = Settings(public_base_url="http://localhost:8000/")
    assert settings.blob_url("u1/f.pdf") == "http://localhost:8000/blobs/u1/f.pdf"
