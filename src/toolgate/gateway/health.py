"""Concurrent liveness monitoring for gateway-fronted servers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType, TracebackType
from typing import Protocol, Self

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 3.0
DEFAULT_INTERVAL_SECONDS = 120.0


class HealthProbe(Protocol):
    """Async probe protocol for one server liveness check."""

    async def __call__(self, server_key: str, credential: str) -> tuple[bool, str | None]:
        """Return (online, error_message)."""


@dataclass(slots=True, frozen=True)
class HealthRecord:
    """Outcome of one probe within a round."""

    server_key: str
    online: bool
    last_checked: datetime
    error: str | None = None


@dataclass(slots=True, frozen=True)
class HealthRound:
    """Result of one probe round and whether it became the current snapshot."""

    sequence: int
    records: Mapping[str, HealthRecord]
    completed_at: datetime
    skipped: bool = False
    applied: bool = False


@dataclass(slots=True)
class _Outcome:
    online: bool
    error: str | None = None


_EMPTY: Mapping[str, HealthRecord] = MappingProxyType({})


@dataclass(slots=True)
class _Watch:
    server_keys: frozenset[str] = frozenset()
    credential: str = ""
    pending: set[asyncio.Task[HealthRound]] = field(default_factory=set)


class HealthMonitor:
    """Probe servers in parallel and keep the latest completed round.

    The current snapshot is a read-only mapping swapped in whole. Each round
    takes a sequence number when it starts; a round that finishes after a
    later-started round has already been applied is discarded.
    """

    def __init__(
        self,
        probe: HealthProbe,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._probe = probe
        self._timeout_seconds = timeout_seconds
        self._interval_seconds = interval_seconds
        self._clock = clock or (lambda: datetime.now(UTC))
        self._snapshot: Mapping[str, HealthRecord] = _EMPTY
        self._started_sequence = 0
        self._applied_sequence = 0
        self._watch = _Watch()
        self._poller: asyncio.Task[None] | None = None

    @property
    def snapshot(self) -> Mapping[str, HealthRecord]:
        """Records from the most recently applied round."""
        return self._snapshot

    @property
    def applied_sequence(self) -> int:
        return self._applied_sequence

    @property
    def server_keys(self) -> frozenset[str]:
        return self._watch.server_keys

    @property
    def running(self) -> bool:
        return self._poller is not None and not self._poller.done()

    async def probe(self, server_keys: Iterable[str], credential: str) -> dict[str, HealthRecord]:
        """Probe every key once, in parallel. Does not touch the snapshot."""
        keys = sorted(set(server_keys))
        if not credential or not keys:
            return {}
        outcomes = await asyncio.gather(*(self._probe_one(key, credential) for key in keys))
        completed_at = self._clock()
        return {
            key: HealthRecord(
                server_key=key,
                online=outcome.online,
                last_checked=completed_at,
                error=outcome.error,
            )
            for key, outcome in zip(keys, outcomes, strict=True)
        }

    async def refresh(
        self,
        server_keys: Iterable[str] | None = None,
        credential: str | None = None,
    ) -> HealthRound:
        """Run one round and swap it in unless a newer round already landed."""
        keys = frozenset(server_keys) if server_keys is not None else self._watch.server_keys
        token = credential if credential is not None else self._watch.credential
        self._started_sequence += 1
        sequence = self._started_sequence

        if not token:
            logger.info("Skipping health round %d: no credential", sequence)
            return HealthRound(
                sequence=sequence,
                records=_EMPTY,
                completed_at=self._clock(),
                skipped=True,
            )

        records = await self.probe(keys, token)
        completed_at = self._clock()
        if sequence < self._applied_sequence:
            logger.warning(
                "Discarding stale health round %d (round %d already applied)",
                sequence,
                self._applied_sequence,
            )
            return HealthRound(sequence=sequence, records=records, completed_at=completed_at)

        self._snapshot = MappingProxyType(dict(records))
        self._applied_sequence = sequence
        online = sum(1 for record in records.values() if record.online)
        logger.info("Health round %d: %d/%d servers online", sequence, online, len(records))
        return HealthRound(
            sequence=sequence,
            records=self._snapshot,
            completed_at=completed_at,
            applied=True,
        )

    def watch(self, server_keys: Iterable[str], credential: str | None = None) -> None:
        """Replace the active key set; a running monitor re-checks immediately."""
        keys = frozenset(server_keys)
        changed = keys != self._watch.server_keys
        self._watch.server_keys = keys
        if credential is not None:
            self._watch.credential = credential
        if changed and self.running:
            task = asyncio.get_running_loop().create_task(self.refresh())
            self._watch.pending.add(task)
            task.add_done_callback(self._watch.pending.discard)

    def start(self, server_keys: Iterable[str], credential: str) -> None:
        """Start the polling task: one round now, then every interval."""
        self._watch.server_keys = frozenset(server_keys)
        self._watch.credential = credential
        if self.running:
            return
        self._poller = asyncio.get_running_loop().create_task(self._poll())

    async def stop(self) -> None:
        """Cancel the polling task and any in-flight watch refreshes."""
        tasks = [*self._watch.pending]
        if self._poller is not None:
            tasks.append(self._poller)
            self._poller = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._watch.pending.clear()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _poll(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception:  # noqa: BLE001
                logger.exception("Health round failed; polling continues")
            await asyncio.sleep(self._interval_seconds)

    async def _probe_one(self, server_key: str, credential: str) -> _Outcome:
        try:
            async with asyncio.timeout(self._timeout_seconds):
                online, error = await self._probe(server_key, credential)
        except (TimeoutError, httpx.TimeoutException):
            return _Outcome(online=False, error="Timeout")
        except Exception as exc:  # noqa: BLE001
            logger.debug("Probe for %s failed: %s", server_key, exc)
            return _Outcome(online=False, error=str(exc) or type(exc).__name__)
        if online:
            return _Outcome(online=True)
        return _Outcome(online=False, error=error or "Unknown error")


class HealthMonitorRegistry:
    """One long-lived monitor per owner, so snapshots outlast a single request."""

    def __init__(self) -> None:
        self._monitors: dict[str, HealthMonitor] = {}

    def __len__(self) -> int:
        return len(self._monitors)

    def get(self, owner: str) -> HealthMonitor | None:
        return self._monitors.get(owner)

    def monitor_for(self, owner: str, factory: Callable[[], HealthMonitor]) -> HealthMonitor:
        monitor = self._monitors.get(owner)
        if monitor is None:
            monitor = factory()
            self._monitors[owner] = monitor
            logger.debug("Created health monitor for %s", owner)
        return monitor

    async def stop_all(self) -> None:
        monitors = list(self._monitors.values())
        self._monitors.clear()
        await asyncio.gather(*(monitor.stop() for monitor in monitors))
