"""Persisted configuration for the stream server and the terminal client.

Values are resolved in three layers: the JSON file on disk, then CLI
overrides, then ``AGENTSTREAM_*`` environment variables. The API key never
touches disk in plaintext; it is stored as a Fernet token whose key lives
beside the settings file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..ai.ai_types import AgentConfig
from ..ai.client import ClientSettings
from ..utils.file_io import read_json, write_json

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

_SETTINGS_DIR = Path.home() / ".agentstream"
_SETTINGS_VERSION = 1
_CIPHERTEXT_KEY = "api_key_ciphertext"
_LEGACY_KEY = "api_key"
_MERGED_FIELDS = ("metadata", "tool_preferences", "default_headers")
# Fields where an explicit ``None`` override means "unset" rather than "ignore".
_NULLABLE_FIELDS = frozenset({"organization", "stream_idle_timeout", "conversations_dir"})


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on", "debug"}


def _parse_optional_float(raw: str) -> float | None:
    if raw.strip().lower() in {"", "none", "off", "disabled"}:
        return None
    return float(raw)


_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "AGENTSTREAM_API_KEY": ("api_key", str),
    "AGENTSTREAM_BASE_URL": ("base_url", str),
    "AGENTSTREAM_MODEL": ("model", str),
    "AGENTSTREAM_ORGANIZATION": ("organization", str),
    "AGENTSTREAM_SERVER_HOST": ("server_host", str),
    "AGENTSTREAM_SERVER_URL": ("server_url", str),
    "AGENTSTREAM_CONVERSATIONS_DIR": ("conversations_dir", str),
    "AGENTSTREAM_DEBUG_LOGGING": ("debug_logging", _parse_bool),
    "AGENTSTREAM_DEBUG_EVENT_LOGGING": ("debug_event_logging", _parse_bool),
    "AGENTSTREAM_ALLOW_PARALLEL_TOOLS": ("allow_parallel_tools", _parse_bool),
    "AGENTSTREAM_MAX_STEPS": ("max_steps", int),
    "AGENTSTREAM_SERVER_PORT": ("server_port", int),
    "AGENTSTREAM_MAX_RETRIES": ("max_retries", int),
    "AGENTSTREAM_REQUEST_TIMEOUT": ("request_timeout", float),
    "AGENTSTREAM_TEMPERATURE": ("temperature", float),
    "AGENTSTREAM_TOOL_TIMEOUT": ("tool_timeout", float),
    "AGENTSTREAM_TEXT_CHUNK_DELAY": ("text_chunk_delay", float),
    "AGENTSTREAM_STREAM_IDLE_TIMEOUT": ("stream_idle_timeout", _parse_optional_float),
}


@dataclass(slots=True)
class Settings:
    """User-configurable settings for the server and the terminal client."""

    # model connection
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    organization: str | None = None
    temperature: float = 0.2
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    # agent loop
    max_steps: int = 100
    allow_parallel_tools: bool = False
    tool_timeout: float = 35.0
    text_chunk_delay: float = 0.0
    tool_preferences: dict[str, bool] = field(default_factory=dict)
    # server and client endpoints
    server_host: str = "127.0.0.1"
    server_port: int = 8000
    server_url: str = "http://127.0.0.1:8000"
    stream_idle_timeout: float | None = 120.0
    conversations_dir: str | None = None
    debug_logging: bool = False
    debug_event_logging: bool = False

    def client_settings(self) -> ClientSettings:
        return ClientSettings(
            base_url=self.base_url,
            api_key=self.api_key,
            model=self.model,
            organization=self.organization,
            temperature=self.temperature,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            retry_min_seconds=self.retry_min_seconds,
            retry_max_seconds=self.retry_max_seconds,
            default_headers=dict(self.default_headers) or None,
            metadata={str(key): str(value) for key, value in self.metadata.items()} or None,
            debug_logging=self.debug_logging,
        )

    def agent_config(self) -> AgentConfig:
        return AgentConfig(
            max_steps=self.max_steps,
            allow_parallel_tools=self.allow_parallel_tools,
            tool_timeout_seconds=self.tool_timeout,
            text_chunk_delay=self.text_chunk_delay,
        ).clamp()


class SecretVault:
    """Fernet encryption for the API key.

    Tokens look like ``"fernet:<ciphertext>"``. A token with no prefix is
    read as bare Fernet ciphertext; any other prefix is rejected. The key
    file is created on first use with owner-only permissions.
    """

    strategy = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._cipher().encrypt(secret.encode("utf-8")).decode("ascii")
        return f"{self.strategy}:{token}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        backend, _, ciphertext = token.rpartition(":")
        if backend and backend != self.strategy:
            raise ValueError(f"Unsupported secret backend: {backend}")
        try:
            return self._cipher().decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("API key token could not be decrypted") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._read_or_create_key())
        return self._fernet

    def _read_or_create_key(self) -> bytes:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        staging = self._key_path.with_suffix(".tmp")
        staging.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(staging, 0o600)
        staging.replace(self._key_path)
        LOGGER.info("Created settings encryption key at %s", self._key_path)
        return key


class SettingsStore:
    """Reads and writes :class:`Settings` as versioned JSON."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self.path = path or (_SETTINGS_DIR / "settings.json")
        self.vault = vault or SecretVault(key_path=self.path.with_suffix(".key"))

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Build settings from disk, then CLI ``overrides``, then the environment.

        Files written by an older version, or holding a plaintext key, are
        rewritten in the current format.
        """
        payload = self._read()
        settings = Settings()
        if payload:
            api_key, rewrite = self._recover_api_key(payload)
            known = {item.name for item in fields(Settings)} - {"api_key"}
            settings = Settings(api_key=api_key, **{k: v for k, v in payload.items() if k in known})
            if rewrite or payload.get("version") != _SETTINGS_VERSION:
                try:
                    self.save(settings)
                except OSError as exc:
                    LOGGER.warning("Could not upgrade settings file %s: %s", self.path, exc)

        if overrides:
            settings = _merge(settings, overrides, source="CLI")
        env = _environment_overrides()
        return _merge(settings, env, source="environment") if env else settings

    def save(self, settings: Settings) -> Path:
        data = asdict(settings)
        api_key = data.pop("api_key", "")
        if api_key:
            data[_CIPHERTEXT_KEY] = self.vault.encrypt(api_key)
        data["version"] = _SETTINGS_VERSION
        data["secret_backend"] = self.vault.strategy
        write_json(self.path, dict(sorted(data.items())))
        LOGGER.debug("Settings saved to %s", self.path)
        return self.path

    def _read(self) -> Dict[str, Any]:
        try:
            payload = read_json(self.path)
        except FileNotFoundError:
            return {}
        except ValueError as exc:
            LOGGER.warning("Ignoring settings file: %s", exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self.path)
            return {}
        return payload

    def _recover_api_key(self, payload: Dict[str, Any]) -> tuple[str, bool]:
        """Return the plaintext key and whether the file must be rewritten."""
        ciphertext = payload.pop(_CIPHERTEXT_KEY, None)
        legacy = payload.pop(_LEGACY_KEY, None)
        if ciphertext:
            try:
                return self.vault.decrypt(ciphertext), False
            except ValueError as exc:
                LOGGER.warning("Dropping stored API key: %s", exc)
                return "", False
        if legacy:
            LOGGER.info("Encrypting plaintext API key found in %s", self.path)
            return str(legacy), True
        return "", False


def _merge(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    known = {item.name for item in fields(Settings)}
    changes: Dict[str, Any] = {
        key: value
        for key, value in overrides.items()
        if key in known and (value is not None or key in _NULLABLE_FIELDS)
    }
    for name in _MERGED_FIELDS:
        if isinstance(changes.get(name), Mapping):
            changes[name] = {**(getattr(settings, name) or {}), **changes[name]}
    if not changes:
        return settings
    LOGGER.debug("Applying %s overrides: %s", source, sorted(changes))
    return replace(settings, **changes)


def _environment_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, (field_name, parse) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            overrides[field_name] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: not a valid %s", env_name, raw, field_name)
    return overrides


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters."""
    secret = (value or "").strip()
    if len(secret) <= 4:
        return "*" * len(secret)
    return secret[:2] + "*" * (len(secret) - 4) + secret[-2:]
