# src/spotify_library/utils/paths.py
"""
Path management for files the library writes on its own behalf.

Supports two runtime modes:
1. Frozen executable -> files in the directory containing the executable
2. Script/Library    -> files in the current working directory (overridable)

Library users can override by passing an explicit directory to
FileCredentialStore or configure_failure_logger.
"""

import sys
from pathlib import Path
from typing import Optional, Union


def get_default_root() -> Path:
    """
    Get the default root directory for data files.

    Returns:
        Directory of the executable when frozen, otherwise the current working directory
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    return Path.cwd()


def get_logs_dir(root: Optional[Union[Path, str]] = None) -> Path:
    """
    Get the logs directory, creating it if needed.

    Args:
        root: Optional root directory. If None, uses get_default_root().

    Returns:
        Path to the logs directory
    """
    base = Path(root) if root else get_default_root()
    logs_dir = base / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_credentials_dir(root: Optional[Union[Path, str]] = None) -> Path:
    """Get the directory that holds persisted OAuth credentials, creating it if needed."""
    base = Path(root) if root else get_default_root()
    creds_dir = base / "spotify_creds"
    creds_dir.mkdir(parents=True, exist_ok=True)
    return creds_dir
