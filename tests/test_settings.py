"""Tests for settings persistence and overrides."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentstream.services.settings import SecretVault, Settings, SettingsStore, redact_secret


def _store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json")


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    settings = _store(tmp_path).load()

    assert settings == Settings()


def test_save_encrypts_api_key_and_round_trips(tmp_path: Path) -> None:
    store = _store(tmp_path)
    settings = Settings(api_key="sk-secret-123", model="gpt-4o", tool_preferences={"web_search": False})

    path = store.save(settings)

    raw = path.read_text(encoding="utf-8")
    assert "sk-secret-123" not in raw
    payload = json.loads(raw)
    assert payload["api_key_ciphertext"].startswith("fernet:")
    assert payload["version"] == 1
    assert (tmp_path / "settings.key").exists()
    assert store.load() == settings


def test_legacy_plaintext_key_is_migrated(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"api_key": "sk-legacy", "model": "gpt-4o"}), encoding="utf-8")

    settings = SettingsStore(path).load()

    assert settings.api_key == "sk-legacy"
    migrated = json.loads(path.read_text(encoding="utf-8"))
    assert "api_key" not in migrated
    assert migrated["api_key_ciphertext"].startswith("fernet:")


def test_unknown_fields_and_invalid_json_are_tolerated(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"model": "m", "theme": "dark", "version": 1}), encoding="utf-8")
    assert SettingsStore(path).load().model == "m"

    path.write_text("{broken", encoding="utf-8")
    assert SettingsStore(path).load() == Settings()


def test_undecryptable_key_is_dropped(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"api_key_ciphertext": "fernet:garbage", "version": 1}), encoding="utf-8")

    assert SettingsStore(path).load().api_key == ""


def test_cli_overrides_merge_mappings(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(tool_preferences={"web_search": True, "get_current_datetime": True}))

    settings = store.load(
        overrides={"tool_preferences": {"web_search": False}, "max_steps": 5, "unknown": 1, "model": None}
    )

    assert settings.tool_preferences == {"web_search": False, "get_current_datetime": True}
    assert settings.max_steps == 5
    assert settings.model == Settings().model


def test_cli_override_can_clear_nullable_field(tmp_path: Path) -> None:
    settings = _store(tmp_path).load(overrides={"stream_idle_timeout": None})

    assert settings.stream_idle_timeout is None


def test_environment_overrides_win(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENTSTREAM_MODEL", "env-model")
    monkeypatch.setenv("AGENTSTREAM_ALLOW_PARALLEL_TOOLS", "yes")
    monkeypatch.setenv("AGENTSTREAM_MAX_STEPS", "12")
    monkeypatch.setenv("AGENTSTREAM_TEXT_CHUNK_DELAY", "0.05")
    monkeypatch.setenv("AGENTSTREAM_STREAM_IDLE_TIMEOUT", "off")
    monkeypatch.setenv("AGENTSTREAM_SERVER_PORT", "not-a-number")

    settings = _store(tmp_path).load(overrides={"model": "cli-model"})

    assert settings.model == "env-model"
    assert settings.allow_parallel_tools is True
    assert settings.max_steps == 12
    assert settings.text_chunk_delay == pytest.approx(0.05)
    assert settings.stream_idle_timeout is None
    assert settings.server_port == 8000


def test_agent_config_is_clamped() -> None:
    config = Settings(max_steps=0, tool_timeout=0.1, text_chunk_delay=-1).agent_config()

    assert config.max_steps == 1
    assert config.tool_timeout_seconds == 1.0
    assert config.text_chunk_delay == 0.0


def test_client_settings_carry_connection_fields() -> None:
    client = Settings(api_key="k", metadata={"team": 7}, default_headers={"X-Test": "1"}).client_settings()

    assert client.api_key == "k"
    assert client.metadata == {"team": "7"}
    assert client.default_headers == {"X-Test": "1"}


class TestSecretVault:
    def test_rejects_unknown_backend(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "k.key")

        with pytest.raises(ValueError, match="Unsupported"):
            vault.decrypt("dpapi:abc")

    def test_unprefixed_token_is_fernet(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "k.key")
        token = vault.encrypt("value").split(":", 1)[1]

        assert vault.decrypt(token) == "value"

    def test_empty_values_pass_through(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "k.key")

        assert vault.encrypt("") == ""
        assert vault.decrypt(None) == ""


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abc", "***"), ("sk-123456", "sk*****56")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected
