"""
Request descriptors.

A RequestDescriptor is an immutable description of one API call. Two
descriptors are identical for deduplication purposes when their method,
path, sorted query and canonical body bytes are equal.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from .errors import UnexpectedResponseError

R = TypeVar("R")

QueryInput = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]


class _NoContent:
    """Result shape for calls that return no payload (typically 204)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_CONTENT"


NO_CONTENT = _NoContent()


def _format_query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(_format_query_value(v) for v in value)
    return str(value)


def normalize_query(query: QueryInput) -> Tuple[Tuple[str, str], ...]:
    """Convert a mapping or pair list into string pairs, dropping None values and keeping order."""
    if not query:
        return ()
    pairs = query.items() if isinstance(query, Mapping) else query
    return tuple(
        (str(name), _format_query_value(value))
        for name, value in pairs
        if value is not None
    )


def encode_body(body: Any) -> Optional[bytes]:
    """Canonical body bytes: raw bytes pass through, anything else is compact sorted JSON."""
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class RequestDescriptor(Generic[R]):
    method: str
    path: str
    query: Tuple[Tuple[str, str], ...] = ()
    body: Any = None
    result: Any = None
    shareable: bool = False

    @classmethod
    def get(
        cls,
        path: str,
        query: QueryInput = None,
        result: Optional[Callable[[Any], R]] = None,
        shareable: bool = True,
    ) -> "RequestDescriptor[R]":
        return cls("GET", path, normalize_query(query), None, result, shareable)

    @classmethod
    def post(
        cls,
        path: str,
        body: Any = None,
        query: QueryInput = None,
        result: Any = None,
    ) -> "RequestDescriptor[R]":
        return cls("POST", path, normalize_query(query), body, result)

    @classmethod
    def put(
        cls,
        path: str,
        body: Any = None,
        query: QueryInput = None,
        result: Any = NO_CONTENT,
    ) -> "RequestDescriptor[R]":
        return cls("PUT", path, normalize_query(query), body, result)

    @classmethod
    def delete(
        cls,
        path: str,
        body: Any = None,
        query: QueryInput = None,
        result: Any = NO_CONTENT,
    ) -> "RequestDescriptor[R]":
        return cls("DELETE", path, normalize_query(query), body, result)

    @property
    def body_bytes(self) -> Optional[bytes]:
        return encode_body(self.body)

    @property
    def expects_no_content(self) -> bool:
        return self.result is NO_CONTENT

    def fingerprint(self) -> str:
        """
        Create a canonical hash of the call for deduplication.

        Query order does not matter; any differing name or value does.
        """
        key = json.dumps(
            [self.method.upper(), self.path, sorted(self.query)],
            separators=(",", ":"),
        )
        hasher = hashlib.sha256()
        hasher.update(key.encode("utf-8"))
        hasher.update(b"\n")
        hasher.update(self.body_bytes or b"")
        return hasher.hexdigest()

    def decode(self, body: bytes) -> Optional[R]:
        """
        Decode a successful response body into the declared result shape.

        Raises:
            UnexpectedResponseError: If the body is missing, not JSON, or rejected by the decoder
        """
        if self.expects_no_content:
            return None
        if not body or not body.strip():
            raise UnexpectedResponseError(
                f"empty body for {self.method} {self.path}", body
            )
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise UnexpectedResponseError(f"invalid JSON: {e}", body) from e
        if self.result is None:
            return payload
        try:
            return self.result(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise UnexpectedResponseError(
                f"could not decode {self.method} {self.path}: {e}", body
            ) from e
