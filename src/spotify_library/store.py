"""
Credential store contract and the two built-in implementations.

The engine only requires that `save` either fully succeeds or leaves the
previous value intact, and that any storage failure is raised (never
swallowed) so the refresh path can fail loudly.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from .credentials import Credential
from .errors import StorageError, UnexpectedResponseError
from .utils.paths import get_credentials_dir
from .utils.resilient_io import safe_delete, safe_read_json, safe_write_json

lib_logger = logging.getLogger("spotify_library")


class CredentialStore(ABC):
    """Persists, retrieves and clears a single Credential."""

    @abstractmethod
    async def load(self) -> Optional[Credential]:
        pass

    @abstractmethod
    async def save(self, credential: Credential) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class MemoryCredentialStore(CredentialStore):
    """Keeps the credential in process memory. Useful for app-only clients and tests."""

    def __init__(self, credential: Optional[Credential] = None):
        self._credential = credential

    async def load(self) -> Optional[Credential]:
        return self._credential

    async def save(self, credential: Credential) -> None:
        self._credential = credential

    async def clear(self) -> None:
        self._credential = None


class FileCredentialStore(CredentialStore):
    """
    Stores the credential as a JSON file with 0600 permissions.

    Writes go through an atomic temp-file replace, so an interrupted save
    leaves the previous credential readable.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        name: str = "spotify_oauth.json",
    ):
        self.path = Path(path) if path else get_credentials_dir() / name

    async def load(self) -> Optional[Credential]:
        data = safe_read_json(self.path, lib_logger)
        if data is None:
            return None
        try:
            return Credential.from_dict(data)
        except UnexpectedResponseError as e:
            raise StorageError(f"Stored credential at {self.path} is invalid: {e}") from e

    async def save(self, credential: Credential) -> None:
        safe_write_json(
            self.path, credential.to_dict(), lib_logger, secure_permissions=True
        )
        lib_logger.debug(f"Saved credential to '{self.path.name}'")

    async def clear(self) -> None:
        safe_delete(self.path, lib_logger)
        lib_logger.debug(f"Cleared credential file '{self.path.name}'")
