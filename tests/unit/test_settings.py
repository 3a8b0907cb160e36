"""Unit tests for settings configuration."""

import json

import pytest

from rag_memory.config.settings import MemorySettings, load_settings
from rag_memory.errors import ConfigError


def test_default_settings():
    """Test that default settings are correctly configured."""
    settings = MemorySettings()
    assert settings.enabled is False
    assert settings.summarization_model == "gemini-2.0-flash-exp"
    assert settings.embedding_model == "voyage-4-large"
    assert settings.embedding_url == "https://api.voyageai.com/v1/embeddings"
    assert settings.top_k == 5
    assert settings.similarity_threshold == 0.7
    assert settings.injection_position == "afterScenario"
    assert settings.injection_depth == 0
    assert settings.language == "ko"
    assert settings.word_limit == 50
    assert settings.history_count == 3
    assert settings.raw_history_count == 5
    assert "{{memories}}" in settings.memory_template


@pytest.mark.parametrize(
    "field,value",
    [
        ("top_k", 0),
        ("similarity_threshold", 1.5),
        ("similarity_threshold", -0.1),
        ("injection_depth", -1),
        ("language", "fr"),
    ],
)
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValueError):
        MemorySettings(**{field: value})


def test_load_settings_defaults_without_file(monkeypatch):
    monkeypatch.delenv("SUMMARIZATION_API_KEY", raising=False)
    monkeypatch.delenv("VOYAGE_API_KEY", raising=False)

    settings = load_settings()

    assert settings == MemorySettings()


def test_load_settings_from_file(tmp_path, monkeypatch):
    monkeypatch.delenv("VOYAGE_API_KEY", raising=False)
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"enabled": True, "top_k": 8, "language": "en"}), encoding="utf-8")

    settings = load_settings(path)

    assert settings.enabled is True
    assert settings.top_k == 8
    assert settings.language == "en"
    assert settings.similarity_threshold == 0.7


def test_load_settings_env_keys(tmp_path, monkeypatch):
    monkeypatch.setenv("SUMMARIZATION_API_KEY", "sk-env")
    monkeypatch.setenv("VOYAGE_API_KEY", "voyage-env")
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"summarization_key": "sk-file"}), encoding="utf-8")

    settings = load_settings(path)

    assert settings.summarization_key == "sk-file"
    assert settings.embedding_api_key == "voyage-env"


def test_load_settings_missing_file_uses_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.json")
    assert settings.top_k == 5


def test_load_settings_bad_json(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{oops", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_settings(path)


def test_load_settings_invalid_value(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"top_k": 0}), encoding="utf-8")

    with pytest.raises(ConfigError):
        load_settings(path)
