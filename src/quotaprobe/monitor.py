"""Concurrent, failure-isolated quota refreshes across providers."""

from __future__ import annotations

import asyncio
import inspect
import logging as py_logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import cast

from quotaprobe.errors import ProbeError
from quotaprobe.models import Quota, QuotaStatus, UsageSnapshot, utcnow, worst_status
from quotaprobe.providers.base import ProviderProbe

logger = py_logging.getLogger(__name__)

StatusListener = Callable[[str, QuotaStatus, QuotaStatus], Awaitable[None] | None]

DEFAULT_INTERVAL = 60.0


@dataclass
class ProviderState:
    is_syncing: bool = False
    last_snapshot: UsageSnapshot | None = None
    last_error: ProbeError | None = None
    last_status: QuotaStatus = QuotaStatus.HEALTHY
    last_refreshed_at: datetime | None = None
    enabled: bool = True


@dataclass(frozen=True)
class MonitoringEvent:
    cycle: int
    at: datetime
    kind: str = "refreshed"


_CLOSED = object()


class MonitoringStream:
    """Async iterator of monitoring events; ends once monitoring stops."""

    def __init__(self, monitor: QuotaMonitor) -> None:
        self._monitor = monitor
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, event: MonitoringEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> MonitoringStream:
        return self

    async def __anext__(self) -> MonitoringEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep later readers from blocking on an exhausted stream.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return cast(MonitoringEvent, item)

    async def aclose(self) -> None:
        self._monitor.stop_monitoring(self)


class QuotaMonitor:
    def __init__(
        self,
        probes: Iterable[ProviderProbe] = (),
        *,
        status_listener: StatusListener | None = None,
    ) -> None:
        self._probes: dict[str, ProviderProbe] = {}
        self._states: dict[str, ProviderState] = {}
        self.status_listener = status_listener
        self._task: asyncio.Task[None] | None = None
        self._stream: MonitoringStream | None = None
        for probe in probes:
            self.add_provider(probe)

    # Provider registry

    def add_provider(self, probe: ProviderProbe, *, enabled: bool = True) -> None:
        self._probes[probe.provider_id] = probe
        self._states.setdefault(probe.provider_id, ProviderState())
        self._states[probe.provider_id].enabled = enabled

    def remove_provider(self, provider_id: str) -> None:
        self._probes.pop(provider_id, None)
        self._states.pop(provider_id, None)

    def set_enabled(self, provider_id: str, enabled: bool) -> None:
        if provider_id in self._states:
            self._states[provider_id].enabled = enabled

    @property
    def provider_ids(self) -> list[str]:
        return list(self._probes)

    @property
    def enabled_provider_ids(self) -> list[str]:
        return [provider_id for provider_id, state in self._states.items() if state.enabled]

    # Queries

    def state(self, provider_id: str) -> ProviderState | None:
        state = self._states.get(provider_id)
        return replace(state) if state is not None else None

    def states(self) -> dict[str, ProviderState]:
        return {provider_id: replace(state) for provider_id, state in self._states.items()}

    @property
    def overall_status(self) -> QuotaStatus:
        return worst_status(
            state.last_snapshot.overall_status
            for state in self._states.values()
            if state.enabled and state.last_snapshot is not None
        )

    def lowest_quota(self) -> Quota | None:
        candidates = [
            state.last_snapshot.lowest_quota
            for state in self._states.values()
            if state.enabled and state.last_snapshot is not None
        ]
        quotas = [quota for quota in candidates if quota is not None]
        return min(quotas, key=lambda quota: quota.percent_remaining, default=None)

    @property
    def is_refreshing(self) -> bool:
        return any(state.is_syncing for state in self._states.values())

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    # Refresh

    async def refresh(self, provider_id: str) -> None:
        probe = self._probes.get(provider_id)
        state = self._states.get(provider_id)
        if probe is None or state is None:
            logger.warning("monitor-refresh unknown provider=%s", provider_id)
            return
        if state.is_syncing:
            logger.debug("monitor-refresh provider=%s already syncing, skipped", provider_id)
            return

        state.is_syncing = True
        try:
            if not await probe.is_available():
                state.last_error = ProbeError.cli_not_found(provider_id)
                return
            snapshot = await probe.probe()
        except ProbeError as exc:
            logger.warning("monitor-refresh provider=%s failed kind=%s detail=%s", provider_id, exc.kind.value, exc.detail)
            state.last_error = exc
            return
        except Exception as exc:
            logger.exception("monitor-refresh provider=%s raised unexpectedly", provider_id)
            state.last_error = ProbeError.execution_failed(str(exc) or type(exc).__name__)
            return
        finally:
            state.is_syncing = False

        state.last_snapshot = snapshot
        state.last_error = None
        state.last_refreshed_at = utcnow()
        await self._record_status(provider_id, state, snapshot.overall_status)

    async def refresh_all(self) -> None:
        await self._refresh_many(self.enabled_provider_ids)

    async def refresh_others(self, except_id: str) -> None:
        await self._refresh_many(pid for pid in self.enabled_provider_ids if pid != except_id)

    async def _refresh_many(self, provider_ids: Iterable[str]) -> None:
        results = await asyncio.gather(
            *(self.refresh(provider_id) for provider_id in provider_ids),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("monitor-refresh task error: %s", result)

    async def _record_status(self, provider_id: str, state: ProviderState, new_status: QuotaStatus) -> None:
        previous = state.last_status
        state.last_status = new_status
        if previous == new_status or self.status_listener is None:
            return
        logger.info("monitor-status provider=%s %s -> %s", provider_id, previous.value, new_status.value)
        try:
            result = self.status_listener(provider_id, previous, new_status)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("monitor-status listener failed provider=%s", provider_id)

    # Continuous monitoring

    def start_monitoring(self, interval: float = DEFAULT_INTERVAL) -> MonitoringStream:
        self.stop_monitoring()
        stream = MonitoringStream(self)
        self._stream = stream
        self._task = asyncio.create_task(self._monitor_loop(interval, stream), name="quota-monitor")
        logger.info("monitor-start interval=%.2fs providers=%s", interval, self.enabled_provider_ids)
        return stream

    def stop_monitoring(self, stream: MonitoringStream | None = None) -> None:
        if stream is not None and stream is not self._stream:
            stream._close()
            return
        task, self._task = self._task, None
        current, self._stream = self._stream, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("monitor-stop")
        if current is not None:
            current._close()

    async def _monitor_loop(self, interval: float, stream: MonitoringStream) -> None:
        cycle = 0
        try:
            while True:
                await self.refresh_all()
                cycle += 1
                stream._push(MonitoringEvent(cycle=cycle, at=utcnow()))
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.debug("monitor-loop cancelled after cycle=%s", cycle)
            raise
        finally:
            stream._close()

    async def aclose(self) -> None:
        task = self._task
        self.stop_monitoring()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        for probe in self._probes.values():
            closer = getattr(probe, "aclose", None)
            if closer is not None:
                await closer()
