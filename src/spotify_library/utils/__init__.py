# src/spotify_library/utils/__init__.py

from .paths import get_default_root, get_logs_dir, get_credentials_dir
from .resilient_io import safe_write_json, safe_read_json, safe_delete

__all__ = [
    "get_default_root",
    "get_logs_dir",
    "get_credentials_dir",
    "safe_write_json",
    "safe_read_json",
    "safe_delete",
]
