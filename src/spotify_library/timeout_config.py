# src/spotify_library/timeout_config.py
"""
Centralized timeout configuration for HTTP requests.

All values can be overridden via environment variables:
    SPOTIFY_TIMEOUT_CONNECT - Connection establishment timeout (default: 10s)
    SPOTIFY_TIMEOUT_WRITE - Request body send timeout (default: 30s)
    SPOTIFY_TIMEOUT_POOL - Connection pool acquisition timeout (default: 60s)
    SPOTIFY_TIMEOUT_READ - Read timeout (default: the client's request_timeout)
"""

import os
import logging
from typing import Optional

import httpx

lib_logger = logging.getLogger("spotify_library")


class TimeoutConfig:
    """
    Centralized timeout configuration for HTTP requests.

    All values can be overridden via environment variables.
    """

    _CONNECT = 10.0
    _WRITE = 30.0
    _POOL = 60.0
    _READ = 30.0

    @classmethod
    def _get_env_float(cls, key: str, default: float) -> float:
        """Get a float value from environment variable, or return default."""
        value = os.environ.get(key)
        if value is not None:
            try:
                return float(value)
            except ValueError:
                lib_logger.warning(
                    f"Invalid value for {key}: {value}. Using default: {default}"
                )
        return default

    @classmethod
    def connect(cls) -> float:
        """Connection establishment timeout."""
        return cls._get_env_float("SPOTIFY_TIMEOUT_CONNECT", cls._CONNECT)

    @classmethod
    def write(cls) -> float:
        """Request body send timeout."""
        return cls._get_env_float("SPOTIFY_TIMEOUT_WRITE", cls._WRITE)

    @classmethod
    def pool(cls) -> float:
        """Connection pool acquisition timeout."""
        return cls._get_env_float("SPOTIFY_TIMEOUT_POOL", cls._POOL)

    @classmethod
    def read(cls, default: Optional[float] = None) -> float:
        """Read timeout for a complete response."""
        return cls._get_env_float(
            "SPOTIFY_TIMEOUT_READ", default if default is not None else cls._READ
        )

    @classmethod
    def for_request_timeout(cls, request_timeout: Optional[float] = None) -> httpx.Timeout:
        """
        Timeout configuration for API calls.

        The read timeout follows the client's request_timeout unless
        SPOTIFY_TIMEOUT_READ overrides it. Connect never exceeds the read
        timeout so a short request_timeout is honored end to end.
        """
        read = cls.read(request_timeout)
        return httpx.Timeout(
            connect=min(cls.connect(), read),
            read=read,
            write=cls.write(),
            pool=cls.pool(),
        )
