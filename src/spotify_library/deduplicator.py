"""
Request Deduplication Module

Collapses identical concurrent calls into a single network round-trip by
sharing one in-flight task per request fingerprint. Every caller that joins
receives the same result or the same exception.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

lib_logger = logging.getLogger("spotify_library")


@dataclass
class InFlightEntry:
    """Tracks an in-flight attempt and the number of callers awaiting it."""

    fingerprint: str
    task: Optional["asyncio.Future"] = None
    waiters: int = 0


class DeduplicationRegistry:
    """
    Single-flight registry keyed by request fingerprint.

    The entry is removed by the shared task itself as its final step, so a
    finished fingerprint is never discoverable as in-flight and a new
    identical call can only start after the previous one has completed.

    A caller cancelling its own wait does not cancel the shared attempt;
    the attempt is cancelled only once every joined caller has cancelled.
    """

    def __init__(self):
        self._in_flight: Dict[str, InFlightEntry] = {}
        self._executions = 0
        self._joins = 0

    async def execute(
        self, fingerprint: str, attempt: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Run `attempt`, or join an identical attempt already in flight.

        Args:
            fingerprint: Canonical request fingerprint
            attempt: Async callable that performs the real call

        Returns:
            The shared result of the single underlying attempt
        """
        entry = self._in_flight.get(fingerprint)
        if entry is None:
            entry = InFlightEntry(fingerprint=fingerprint)
            entry.task = asyncio.ensure_future(self._run(entry, attempt))
            self._in_flight[fingerprint] = entry
            self._executions += 1
            lib_logger.debug(
                f"Request deduplication: primary request {fingerprint[:8]} executing..."
            )
        else:
            self._joins += 1
            lib_logger.info(
                f"Request deduplication: joining in-flight request {fingerprint[:8]} "
                f"({entry.waiters} waiting)"
            )

        entry.waiters += 1
        cancelled = False
        try:
            return await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            entry.waiters -= 1
            if cancelled and entry.waiters == 0 and not entry.task.done():
                lib_logger.debug(
                    f"Request deduplication: all callers of {fingerprint[:8]} cancelled, stopping attempt"
                )
                entry.task.cancel()

    async def _run(
        self, entry: InFlightEntry, attempt: Callable[[], Awaitable[Any]]
    ) -> Any:
        try:
            return await attempt()
        finally:
            if self._in_flight.get(entry.fingerprint) is entry:
                del self._in_flight[entry.fingerprint]

    def is_in_flight(self, fingerprint: str) -> bool:
        return fingerprint in self._in_flight

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, int]:
        return {
            "in_flight": len(self._in_flight),
            "executions": self._executions,
            "joins": self._joins,
        }
