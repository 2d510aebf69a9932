"""
Client configuration.

ClientConfiguration is immutable; the `with_*` modifiers return validated
copies. It can be built in code, from environment variables (with .env
support via python-dotenv) or from a YAML file.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

from .debug import DebugConfiguration
from .errors import ConfigLoadError, ConfigurationError
from .recovery import NetworkRecoveryConfig

lib_logger = logging.getLogger("spotify_library")

DEFAULT_API_BASE_URL = "https://api.spotify.com/v1"

PROTECTED_HEADERS = frozenset(
    {"authorization", "proxy-authorization", "cookie", "set-cookie", "host"}
)

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


@dataclass(frozen=True)
class ClientConfiguration:
    request_timeout: float = 30.0
    max_rate_limit_retries: int = 1
    network_recovery: NetworkRecoveryConfig = field(default_factory=NetworkRecoveryConfig.default)
    request_deduplication_enabled: bool = True
    custom_headers: Mapping[str, str] = field(default_factory=dict)
    debug: DebugConfiguration = field(default_factory=DebugConfiguration.disabled)
    api_base_url: str = DEFAULT_API_BASE_URL
    token_safety_margin: float = 60.0
    token_expiring_soon_window: float = 300.0
    event_buffer_size: int = 64

    def validate(self) -> "ClientConfiguration":
        """
        Check every setting.

        Returns:
            self, so calls can be chained

        Raises:
            ConfigurationError: On the first invalid setting
        """
        if not 0 < self.request_timeout <= 300:
            raise ConfigurationError(
                f"request_timeout must be in (0, 300] seconds, got {self.request_timeout}"
            )
        if not 0 <= self.max_rate_limit_retries <= 10:
            raise ConfigurationError(
                f"max_rate_limit_retries must be in [0, 10], got {self.max_rate_limit_retries}"
            )
        if self.token_safety_margin < 0:
            raise ConfigurationError("token_safety_margin must be >= 0")
        if self.event_buffer_size < 1:
            raise ConfigurationError("event_buffer_size must be >= 1")
        self.network_recovery.validate()

        for name in self.custom_headers:
            stripped = name.strip()
            if not stripped:
                raise ConfigurationError("custom header names must not be empty")
            if stripped.lower() in PROTECTED_HEADERS:
                raise ConfigurationError(
                    f"custom header '{name}' is managed by the client and cannot be overridden"
                )

        parsed = urlparse(self.api_base_url)
        if not parsed.scheme or not parsed.hostname:
            raise ConfigurationError(f"api_base_url is not a valid URL: {self.api_base_url}")
        if parsed.scheme != "https" and not (
            parsed.scheme == "http" and parsed.hostname in _LOCAL_HOSTS
        ):
            raise ConfigurationError(
                "api_base_url must use https (http is only allowed for localhost)"
            )
        return self

    # ------------------------------------------------------------------
    # Fluent modifiers
    # ------------------------------------------------------------------

    def _with(self, **changes: Any) -> "ClientConfiguration":
        return replace(self, **changes).validate()

    def with_request_timeout(self, seconds: float) -> "ClientConfiguration":
        return self._with(request_timeout=seconds)

    def with_max_rate_limit_retries(self, retries: int) -> "ClientConfiguration":
        return self._with(max_rate_limit_retries=retries)

    def with_network_recovery(self, recovery: NetworkRecoveryConfig) -> "ClientConfiguration":
        return self._with(network_recovery=recovery)

    def with_deduplication(self, enabled: bool) -> "ClientConfiguration":
        return self._with(request_deduplication_enabled=enabled)

    def with_custom_headers(self, headers: Mapping[str, str]) -> "ClientConfiguration":
        return self._with(custom_headers=dict(headers))

    def with_header(self, name: str, value: Optional[str]) -> "ClientConfiguration":
        """Set one custom header, or remove it when value is None."""
        headers = dict(self.custom_headers)
        if value is None:
            headers.pop(name, None)
        else:
            headers[name] = value
        return self._with(custom_headers=headers)

    def with_debug(self, debug: DebugConfiguration) -> "ClientConfiguration":
        return self._with(debug=debug)

    def with_api_base_url(self, url: str) -> "ClientConfiguration":
        return self._with(api_base_url=url.rstrip("/"))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ClientConfiguration":
        """
        Build a configuration from a flat mapping of lowercase keys.

        Unknown keys are ignored; values that cannot be converted fall back
        to the default with a warning.
        """
        defaults = cls()
        recovery_defaults = NetworkRecoveryConfig.default()

        recovery = NetworkRecoveryConfig(
            max_network_retries=_as_int(
                data, "max_network_retries", recovery_defaults.max_network_retries
            ),
            base_delay=_as_float(data, "retry_base_delay", recovery_defaults.base_delay),
            max_delay=_as_float(data, "retry_max_delay", recovery_defaults.max_delay),
        )

        headers = data.get("custom_headers") or {}
        if not isinstance(headers, Mapping):
            raise ConfigLoadError("custom_headers must be a mapping")

        config = cls(
            request_timeout=_as_float(data, "request_timeout", defaults.request_timeout),
            max_rate_limit_retries=_as_int(
                data, "max_rate_limit_retries", defaults.max_rate_limit_retries
            ),
            network_recovery=recovery,
            request_deduplication_enabled=_as_bool(
                data, "deduplication", defaults.request_deduplication_enabled
            ),
            custom_headers={str(k): str(v) for k, v in headers.items()},
            debug=_debug_preset(data.get("debug")),
            api_base_url=str(data.get("api_base_url") or defaults.api_base_url).rstrip("/"),
        )
        return config.validate()

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "ClientConfiguration":
        """
        Build a configuration from SPOTIFY_* environment variables.

        A .env file (the given one, or ./.env) is loaded first without
        overriding variables that are already set.
        """
        if env_file is not None:
            if not Path(env_file).exists():
                raise ConfigLoadError(f"Env file not found: {env_file}")
            load_dotenv(env_file, override=False)
        else:
            load_dotenv(override=False)

        keys = {
            "request_timeout": "SPOTIFY_REQUEST_TIMEOUT",
            "max_rate_limit_retries": "SPOTIFY_MAX_RATE_LIMIT_RETRIES",
            "max_network_retries": "SPOTIFY_MAX_NETWORK_RETRIES",
            "retry_base_delay": "SPOTIFY_RETRY_BASE_DELAY",
            "retry_max_delay": "SPOTIFY_RETRY_MAX_DELAY",
            "deduplication": "SPOTIFY_DEDUPLICATION",
            "api_base_url": "SPOTIFY_API_BASE_URL",
            "debug": "SPOTIFY_DEBUG",
        }
        data: Dict[str, Any] = {}
        for key, env_name in keys.items():
            value = os.getenv(env_name)
            if value is not None and value != "":
                data[key] = value
        return cls.from_mapping(data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ClientConfiguration":
        """
        Load a configuration from a YAML file.

        The file may hold the settings at the top level or under a `spotify` key.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigLoadError(f"Failed to load config from {path}: {e}") from e
        if not isinstance(data, Mapping):
            raise ConfigLoadError(f"Config file {path} must contain a mapping")
        section = data.get("spotify", data)
        if not isinstance(section, Mapping):
            raise ConfigLoadError(f"'spotify' section in {path} must be a mapping")
        lib_logger.info(f"Loaded client configuration from {path}")
        return cls.from_mapping(section)


def _as_float(data: Mapping[str, Any], key: str, default: float) -> float:
    value = data.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        lib_logger.warning(f"Invalid value for {key}: {value}. Using default: {default}")
        return default


def _as_int(data: Mapping[str, Any], key: str, default: int) -> int:
    value = data.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        lib_logger.warning(f"Invalid value for {key}: {value}. Using default: {default}")
        return default


def _as_bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    lib_logger.warning(f"Invalid value for {key}: {value}. Using default: {default}")
    return default


def _debug_preset(value: Any) -> DebugConfiguration:
    if value is None or value is False:
        return DebugConfiguration.disabled()
    if value is True:
        return DebugConfiguration.verbose()
    if isinstance(value, Mapping):
        allowed = DebugConfiguration.__dataclass_fields__.keys()
        return DebugConfiguration(**{k: bool(v) for k, v in value.items() if k in allowed})
    preset = str(value).strip().lower()
    if preset in ("off", "disabled", "false", "0", ""):
        return DebugConfiguration.disabled()
    if preset == "basic":
        return DebugConfiguration.basic()
    if preset in ("verbose", "on", "true", "1"):
        return DebugConfiguration.verbose()
    lib_logger.warning(f"Unknown debug preset '{value}'. Debug logging stays disabled")
    return DebugConfiguration.disabled()
