"""Configuration values for refman operations.

Configuration is always passed explicitly. Long-running hosts keep the current
value in a :class:`ConfigStore` and register callbacks to be told when it
changes.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

import msgspec

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

AIProvider = Literal["anthropic", "groq"]

CONFIG_FILENAME = "refman.json"

# Directories never searched for .tex/.bib documents
DEFAULT_EXCLUDED_DIRS = frozenset({"node_modules", ".git", "out", "build"})

MIN_API_KEY_LENGTH = 20


class _AIConfigFile(msgspec.Struct, forbid_unknown_fields=True):
    """Schema of the JSON configuration file; every key is optional."""

    ai_provider: AIProvider = "groq"
    api_key: str = ""
    groq_api_key: str = ""
    max_retries: int = 3
    timeout: float = 30.0
    model: str = "claude-sonnet-4-20250514"
    groq_model: str = "llama-3.3-70b-versatile"


@dataclass(frozen=True)
class AIConfig:
    """Settings for the AI provider transport.

    ``timeout`` is in seconds; ``max_retries`` is the total number of attempts
    made for one request.
    """

    ai_provider: AIProvider = "groq"
    api_key: str = ""
    groq_api_key: str = ""
    max_retries: int = 3
    timeout: float = 30.0
    model: str = "claude-sonnet-4-20250514"
    groq_model: str = "llama-3.3-70b-versatile"

    @property
    def active_api_key(self) -> str:
        return self.groq_api_key if self.ai_provider == "groq" else self.api_key

    @property
    def active_model(self) -> str:
        return self.groq_model if self.ai_provider == "groq" else self.model

    def is_configured(self) -> bool:
        return validate_api_key(self.active_api_key)

    def merged(self, **overrides: Any) -> AIConfig:
        """Return a copy with the non-``None`` overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_file(cls, path: Path, base: AIConfig | None = None) -> AIConfig:
        """Load settings from a JSON file on top of ``base``.

        Args:
            path: Path to the JSON configuration file
            base: Settings to start from (defaults when ``None``)

        Returns:
            AIConfig with the keys present in the file applied

        Raises:
            ConfigurationError: If the file cannot be read or has invalid content
        """
        base = base or cls()
        try:
            raw = msgspec.json.decode(path.read_bytes())
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Expected a JSON object in {path}")
            validated = msgspec.convert(raw, type=_AIConfigFile)
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e

        logger.debug("Loaded configuration keys from %s: %s", path, ", ".join(sorted(raw)))
        return replace(base, **{name: getattr(validated, name) for name in raw})

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, base: AIConfig | None = None
    ) -> AIConfig:
        """Apply ``REFMAN_*`` environment variables on top of ``base``.

        ``ANTHROPIC_API_KEY`` and ``GROQ_API_KEY`` are accepted as fallbacks for
        the provider keys.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        config = base or cls()

        overrides: dict[str, Any] = {
            "ai_provider": env.get("REFMAN_AI_PROVIDER"),
            "api_key": env.get("REFMAN_API_KEY") or env.get("ANTHROPIC_API_KEY"),
            "groq_api_key": env.get("REFMAN_GROQ_API_KEY") or env.get("GROQ_API_KEY"),
            "model": env.get("REFMAN_MODEL"),
            "groq_model": env.get("REFMAN_GROQ_MODEL"),
        }

        try:
            if "REFMAN_MAX_RETRIES" in env:
                overrides["max_retries"] = int(env["REFMAN_MAX_RETRIES"])
            if "REFMAN_TIMEOUT" in env:
                overrides["timeout"] = float(env["REFMAN_TIMEOUT"])
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting in environment: {e}") from e

        provider = overrides["ai_provider"]
        if provider is not None and provider not in ("anthropic", "groq"):
            raise ConfigurationError(
                f"Unknown AI provider '{provider}' (expected 'anthropic' or 'groq')"
            )

        return config.merged(**overrides)


def validate_api_key(api_key: str) -> bool:
    """Check that an API key is present and plausibly long."""
    if not api_key or not api_key.strip():
        return False
    return len(api_key) >= MIN_API_KEY_LENGTH


def ensure_configured(config: AIConfig) -> None:
    """Raise if the selected provider has no usable API key.

    Raises:
        ConfigurationError: With a message naming the missing setting
    """
    if config.is_configured():
        return

    if config.ai_provider == "groq":
        setting = "groq_api_key (or REFMAN_GROQ_API_KEY)"
        provider_name = "Groq"
    else:
        setting = "api_key (or REFMAN_API_KEY)"
        provider_name = "Anthropic"

    raise ConfigurationError(
        f"No valid {provider_name} API key configured; set {setting} in {CONFIG_FILENAME}"
    )


ConfigCallback = Callable[[AIConfig], None]


class ConfigStore:
    """Holds the current :class:`AIConfig` and notifies subscribers on change."""

    def __init__(self, config: AIConfig) -> None:
        self._config = config
        self._callbacks: list[ConfigCallback] = []

    @property
    def current(self) -> AIConfig:
        return self._config

    def subscribe(self, callback: ConfigCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def update(self, config: AIConfig) -> None:
        """Replace the configuration and notify subscribers if it changed."""
        if config == self._config:
            return

        self._config = config
        logger.debug("Configuration updated, notifying %d subscribers", len(self._callbacks))
        for callback in list(self._callbacks):
            callback(config)


@dataclass
class WorkspaceConfig:
    """Configuration for workspace file discovery."""

    root: Path
    config_path: Path
    excluded_dirs: frozenset[str] = field(default=DEFAULT_EXCLUDED_DIRS)
    # set when config_path was named by the user and must exist
    explicit_config: bool = False

    @classmethod
    def from_workspace(cls, workspace: Path) -> WorkspaceConfig:
        """Create configuration from workspace root path.

        Args:
            workspace: Path to workspace root directory

        Returns:
            WorkspaceConfig with the standard configuration file location
        """
        return cls(root=workspace, config_path=workspace / CONFIG_FILENAME)

    def load_ai_config(self, environ: Mapping[str, str] | None = None) -> AIConfig:
        """Build the AI configuration: defaults, then the config file, then environment.

        The workspace config file is optional, an explicit one is not.

        Raises:
            ConfigurationError: If the file is invalid, or explicit and missing
        """
        config = AIConfig()
        if self.explicit_config or self.config_path.exists():
            config = AIConfig.from_file(self.config_path, base=config)
        return AIConfig.from_env(environ, base=config)
