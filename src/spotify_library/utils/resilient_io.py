# src/spotify_library/utils/resilient_io.py
"""
File I/O helpers for credential persistence.

Writes are atomic (tempfile in the target directory + move) so a crash or a
failed write leaves the previous file intact. Unlike log writes, credential
writes must not be silently dropped: failures are raised as StorageError.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..errors import StorageError


def safe_write_json(
    path: Union[str, Path],
    data: Dict[str, Any],
    logger: logging.Logger,
    indent: int = 2,
    secure_permissions: bool = False,
) -> None:
    """
    Atomically write JSON data to a file.

    Args:
        path: File path to write to
        data: JSON-serializable data
        logger: Logger for failure details
        indent: JSON indentation level (default: 2)
        secure_permissions: Set file permissions to 0o600 before the move

    Raises:
        StorageError: If the file could not be written; the previous file is untouched
    """
    path = Path(path)
    tmp_fd = None
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=indent)

        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=path.parent, prefix=".tmp_", suffix=".json", text=True
        )
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            tmp_fd = None
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        if secure_permissions:
            try:
                os.chmod(tmp_path, 0o600)
            except (OSError, AttributeError):
                # Windows may not support chmod
                pass

        shutil.move(tmp_path, path)
        tmp_path = None
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to write {path.name}: {e}")
        raise StorageError(f"Failed to write {path}: {e}") from e
    finally:
        if tmp_fd is not None:
            try:
                os.close(tmp_fd)
            except OSError:
                pass
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError:
                pass


def safe_read_json(
    path: Union[str, Path], logger: logging.Logger
) -> Optional[Dict[str, Any]]:
    """
    Read a JSON file.

    Returns:
        Parsed data, or None if the file does not exist

    Raises:
        StorageError: If the file exists but cannot be read or parsed
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read {path.name}: {e}")
        raise StorageError(f"Failed to read {path}: {e}") from e


def safe_delete(path: Union[str, Path], logger: logging.Logger) -> None:
    """
    Delete a file if it exists.

    Raises:
        StorageError: If the file exists and cannot be removed
    """
    path = Path(path)
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        logger.error(f"Failed to delete {path.name}: {e}")
        raise StorageError(f"Failed to delete {path}: {e}") from e
