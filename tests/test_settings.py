"""Tests for loading settings from TOML files and the environment."""

from pipeflow.settings import Settings


def test_toml_file_values_are_applied(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "settings.toml").write_text("port = 9999\npipeline_default_timeout_ms = 1234\n")

    loaded = Settings()

    assert loaded.port == 9999
    assert loaded.pipeline_default_timeout_ms == 1234


def test_custom_toml_overrides_base_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "settings.toml").write_text("port = 9999\n")
    (tmp_path / "settings.custom.toml").write_text("port = 7000\n")

    assert Settings().port == 7000


def test_environment_overrides_toml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "settings.toml").write_text("port = 9999\n")
    monkeypatch.setenv("PIPEFLOW_PORT", "8123")

    assert Settings().port == 8123


def test_defaults_without_config_files(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PIPEFLOW_PORT", raising=False)

    assert Settings().port == 8000
