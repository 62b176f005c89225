"""Windowed retrieval of downsampled ECG samples with caching and supersession.

Each logical view (``"main"``, a modal, a secondary plot...) owns a monotonically
increasing generation. A response only commits to its view when its generation is still
current; otherwise the awaiting caller gets :class:`RequestSuperseded` and view state is
left alone. Identical cache keys share one in-flight fetch task, which is cancelled
once no view is waiting for it.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Hashable, Mapping, Sequence

from holterview.core.cache import SampleCache
from holterview.core.diagnostics import DiagnosticsReport
from holterview.core.downsample import FactorPolicy, resolve_factor
from holterview.core.errors import (
    InvalidParametersError,
    LoaderError,
    RequestSuperseded,
    classify_exception,
)
from holterview.core.recorder import Outcome, QueryKind, QueryRecorder
from holterview.core.samples import SampleSet
from holterview.core.timebase import format_instant, parse_instant
from holterview.core.timeline import AggregateBucket
from holterview.core.transport import ServiceTransport
from holterview.core.window import WindowLimits, WindowRequest, validate_window

LOG = logging.getLogger(__name__)

__all__ = ["ViewStatus", "ViewState", "WindowedLoader", "DEFAULT_MAX_POINTS", "DEFAULT_VIEW"]

DEFAULT_MAX_POINTS = 2000
DEFAULT_VIEW = "main"


class ViewStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


@dataclass
class ViewState:
    generation: int = 0
    request: WindowRequest | None = None
    samples: SampleSet = field(default_factory=SampleSet.empty)
    status: ViewStatus = ViewStatus.IDLE
    error: LoaderError | None = None


@dataclass
class _InFlight:
    task: asyncio.Task
    views: set[str] = field(default_factory=set)


StateListener = Callable[[str, ViewState], None]


class WindowedLoader:
    def __init__(
        self,
        transport: ServiceTransport,
        *,
        limits: WindowLimits | None = None,
        factor_policy: FactorPolicy | None = None,
        cache: SampleCache | None = None,
        recorder: QueryRecorder | None = None,
        max_points: int = DEFAULT_MAX_POINTS,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.transport = transport
        self.limits = limits or WindowLimits()
        self.factor_policy = factor_policy or FactorPolicy()
        self.cache: SampleCache = cache if cache is not None else SampleCache()
        self._owns_recorder = recorder is None
        self.recorder = recorder if recorder is not None else QueryRecorder()
        self.max_points = int(max_points)
        self._clock = clock
        self._views: dict[str, ViewState] = {}
        self._inflight: dict[Hashable, _InFlight] = {}
        self._listeners: list[StateListener] = []
        self._closed = False

    # ------------------------------------------------------------------
    # requests

    def build_request(
        self,
        device_id: str,
        start: Any,
        end: Any,
        factor: int | None = None,
        max_points: int | None = None,
    ) -> WindowRequest:
        """Validate and resolve a request without touching the network."""
        device_id, start_ms, end_ms = validate_window(device_id, start, end, limits=self.limits)
        duration_s = (end_ms - start_ms) / 1000.0
        points = self.max_points if max_points is None else int(max_points)
        if points <= 0:
            raise InvalidParametersError("Maximum point count must be positive.")
        return WindowRequest(
            device_id=device_id,
            start_ms=start_ms,
            end_ms=end_ms,
            factor=resolve_factor(factor, duration_s, self.factor_policy),
            max_points=points,
        )

    async def load(
        self,
        device_id: str,
        start: Any,
        end: Any,
        *,
        factor: int | None = None,
        max_points: int | None = None,
        force_refresh: bool = False,
        view: str = DEFAULT_VIEW,
    ) -> SampleSet:
        self._ensure_open()
        try:
            request = self.build_request(device_id, start, end, factor, max_points)
        except InvalidParametersError as exc:
            state = self._state_for(view)
            state.generation += 1
            self._detach(view)
            self._commit_error(view, state.generation, exc)
            raise
        return await self.submit(request, force_refresh=force_refresh, view=view)

    async def submit(
        self,
        request: WindowRequest,
        *,
        force_refresh: bool = False,
        view: str = DEFAULT_VIEW,
    ) -> SampleSet:
        """Issue an already-built request for ``view``, superseding its previous one."""
        self._ensure_open()
        state = self._state_for(view)
        state.generation += 1
        generation = state.generation
        key = request.cache_key
        self._detach(view, keep=key)
        state.request = request
        state.status = ViewStatus.LOADING
        state.error = None
        self._emit(view, state)

        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                LOG.debug("Cache hit for %s %s..%s", request.device_id, request.time_start, request.time_end)
                self._record(request, points=len(cached), duration_ms=0.0, outcome=Outcome.CACHE_HIT)
                self._commit_samples(view, generation, cached)
                return cached

        inflight = self._join(request, view)
        try:
            samples = await asyncio.shield(inflight.task)
        except asyncio.CancelledError:
            if not self._is_current(view, generation):
                raise RequestSuperseded(view, generation) from None
            # The caller itself was cancelled.
            self._leave(inflight, view, key)
            raise
        except LoaderError as exc:
            if not self._is_current(view, generation):
                raise RequestSuperseded(view, generation) from exc
            self._commit_error(view, generation, exc)
            raise
        if not self._is_current(view, generation):
            LOG.debug("Dropping superseded response %d for view %s", generation, view)
            raise RequestSuperseded(view, generation)
        self._commit_samples(view, generation, samples)
        return samples

    async def retry(self, view: str = DEFAULT_VIEW) -> SampleSet:
        """Reissue the view's last request; a live cache entry may answer it."""
        return await self.submit(self._last_request(view), view=view)

    async def refresh(self, view: str = DEFAULT_VIEW) -> SampleSet:
        return await self.submit(self._last_request(view), force_refresh=True, view=view)

    def _last_request(self, view: str) -> WindowRequest:
        state = self._views.get(view)
        if state is None or state.request is None:
            raise InvalidParametersError("There is no previous request to retry.")
        return state.request

    # ------------------------------------------------------------------
    # side-panel data

    async def load_diagnostics(
        self,
        device_id: str,
        start: Any,
        end: Any,
        *,
        chunk_minutes: float | None = None,
    ) -> DiagnosticsReport:
        self._ensure_open()
        device_id, start_ms, end_ms = validate_window(device_id, start, end, limits=self.limits)
        started = self._clock()
        try:
            payload = await self.transport.fetch_diagnostics(
                device_id, start_ms, end_ms, chunk_minutes=chunk_minutes
            )
            report = DiagnosticsReport.from_payload(payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = classify_exception(exc)
            self._record_failure(device_id, start_ms, end_ms, None, started, error, QueryKind.DIAGNOSTICS)
            raise error from exc
        self.recorder.record(
            device_id=device_id,
            time_start=format_instant(start_ms),
            time_end=format_instant(end_ms),
            factor=None,
            points=report.total_samples,
            duration_ms=self._elapsed_ms(started),
            outcome=Outcome.SUCCESS,
            kind=QueryKind.DIAGNOSTICS,
        )
        return report

    async def load_aggregates(
        self,
        device_id: str,
        start: Any,
        end: Any,
        *,
        bucket_seconds: int = 3600,
    ) -> list[AggregateBucket]:
        """Per-bucket lead quality for a whole recording (not capped to one window)."""
        self._ensure_open()
        if int(bucket_seconds) <= 0:
            raise InvalidParametersError("Bucket size must be positive.")
        device_id, start_ms, end_ms = validate_window(device_id, start, end)
        key = ("aggregates", device_id, start_ms, end_ms, int(bucket_seconds))
        cached = self.cache.get(key)
        if cached is not None:
            self.recorder.record(
                device_id=device_id,
                time_start=format_instant(start_ms),
                time_end=format_instant(end_ms),
                factor=None,
                points=len(cached),
                duration_ms=0.0,
                outcome=Outcome.CACHE_HIT,
                kind=QueryKind.AGGREGATES,
            )
            return list(cached)
        started = self._clock()
        try:
            payload = await self.transport.fetch_aggregates(
                device_id, start_ms, end_ms, bucket_seconds=int(bucket_seconds)
            )
            buckets = AggregateBucket.from_rows(_unwrap_rows(payload))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = classify_exception(exc)
            self._record_failure(device_id, start_ms, end_ms, None, started, error, QueryKind.AGGREGATES)
            raise error from exc
        self.cache.put(key, tuple(buckets))
        self.recorder.record(
            device_id=device_id,
            time_start=format_instant(start_ms),
            time_end=format_instant(end_ms),
            factor=None,
            points=len(buckets),
            duration_ms=self._elapsed_ms(started),
            outcome=Outcome.SUCCESS,
            kind=QueryKind.AGGREGATES,
        )
        return buckets

    async def load_time_bounds(self, device_id: str) -> tuple[int, int] | None:
        """Earliest and latest recorded instants for a device, or None if it has no data."""
        self._ensure_open()
        if not isinstance(device_id, str) or not device_id.strip():
            raise InvalidParametersError("Pod ID is required.")
        try:
            payload = await self.transport.fetch_time_bounds(device_id.strip())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise classify_exception(exc) from exc
        rows = _unwrap_rows(payload)
        if not rows:
            return None
        row = rows[0]
        earliest = row.get("earliest_time")
        latest = row.get("latest_time")
        if not earliest or not latest:
            return None
        return parse_instant(earliest), parse_instant(latest)

    # ------------------------------------------------------------------
    # state

    def state(self, view: str = DEFAULT_VIEW) -> ViewState:
        return replace(self._state_for(view))

    @property
    def views(self) -> list[str]:
        return list(self._views)

    @property
    def inflight_count(self) -> int:
        return sum(1 for entry in self._inflight.values() if not entry.task.done())

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        tasks = [entry.task for entry in self._inflight.values() if not entry.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
        self._listeners.clear()
        if self._owns_recorder:
            self.recorder.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # internals

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("WindowedLoader has been closed")

    def _state_for(self, view: str) -> ViewState:
        state = self._views.get(view)
        if state is None:
            state = self._views[view] = ViewState()
        return state

    def _is_current(self, view: str, generation: int) -> bool:
        state = self._views.get(view)
        return state is not None and state.generation == generation

    def _join(self, request: WindowRequest, view: str) -> _InFlight:
        key = request.cache_key
        inflight = self._inflight.get(key)
        if inflight is None or inflight.task.done():
            task = asyncio.get_running_loop().create_task(self._fetch(request))
            inflight = _InFlight(task)
            self._inflight[key] = inflight
            task.add_done_callback(lambda t, key=key: self._forget(key, t))
        else:
            LOG.debug("Coalescing request for %s onto pending fetch", key)
        inflight.views.add(view)
        return inflight

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        entry = self._inflight.get(key)
        if entry is not None and entry.task is task:
            del self._inflight[key]

    def _detach(self, view: str, keep: Hashable | None = None) -> None:
        for key, entry in list(self._inflight.items()):
            if key == keep or view not in entry.views:
                continue
            self._leave(entry, view, key)

    def _leave(self, entry: _InFlight, view: str, key: Hashable) -> None:
        entry.views.discard(view)
        if not entry.views and not entry.task.done():
            LOG.debug("Cancelling fetch for %s; no view is waiting", key)
            entry.task.cancel()
            # A cancelling task must not take new joiners.
            if self._inflight.get(key) is entry:
                del self._inflight[key]

    async def _fetch(self, request: WindowRequest) -> SampleSet:
        LOG.info(
            "Fetching %s %s..%s (factor %d, max %d points)",
            request.device_id,
            request.time_start,
            request.time_end,
            request.factor,
            request.max_points,
        )
        started = self._clock()
        try:
            payload = await self.transport.fetch_window(request)
            samples = SampleSet.from_payload(payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = classify_exception(exc)
            self._record_failure(
                request.device_id,
                request.start_ms,
                request.end_ms,
                request.factor,
                started,
                error,
                QueryKind.WINDOW,
            )
            raise error from exc
        self.cache.put(request.cache_key, samples)
        self._record(
            request,
            points=len(samples),
            duration_ms=self._elapsed_ms(started),
            outcome=Outcome.SUCCESS,
        )
        return samples

    def _elapsed_ms(self, started: float) -> float:
        return (self._clock() - started) * 1000.0

    def _record(
        self,
        request: WindowRequest,
        *,
        points: int,
        duration_ms: float,
        outcome: Outcome,
        kind: QueryKind = QueryKind.WINDOW,
    ) -> None:
        self.recorder.record(
            device_id=request.device_id,
            time_start=request.time_start,
            time_end=request.time_end,
            factor=request.factor,
            points=points,
            duration_ms=duration_ms,
            outcome=outcome,
            kind=kind,
        )

    def _record_failure(
        self,
        device_id: str,
        start_ms: int,
        end_ms: int,
        factor: int | None,
        started: float,
        error: LoaderError,
        kind: QueryKind,
    ) -> None:
        LOG.warning("%s query for %s failed (%s): %s", kind.value, device_id, error.kind.value, error.user_message)
        self.recorder.record(
            device_id=device_id,
            time_start=format_instant(start_ms),
            time_end=format_instant(end_ms),
            factor=factor,
            points=0,
            duration_ms=self._elapsed_ms(started),
            outcome=Outcome.ERROR,
            kind=kind,
            error=error.user_message,
        )

    def _commit_samples(self, view: str, generation: int, samples: SampleSet) -> None:
        if not self._is_current(view, generation):
            return
        state = self._views[view]
        state.samples = samples
        state.status = ViewStatus.EMPTY if samples.is_empty else ViewStatus.READY
        state.error = None
        self._emit(view, state)

    def _commit_error(self, view: str, generation: int, error: LoaderError) -> None:
        if not self._is_current(view, generation):
            return
        state = self._views[view]
        state.status = ViewStatus.ERROR
        state.error = error
        self._emit(view, state)

    def _emit(self, view: str, state: ViewState) -> None:
        snapshot = replace(state)
        for listener in list(self._listeners):
            try:
                listener(view, snapshot)
            except Exception:
                LOG.exception("Loader state listener failed")


def _unwrap_rows(payload: Any) -> list[Mapping[str, Any]]:
    if payload is None:
        return []
    if isinstance(payload, Mapping):
        if "data" in payload:
            return _unwrap_rows(payload["data"])
        return [payload]
    if isinstance(payload, Sequence) and not isinstance(payload, (str, bytes)):
        return list(payload)
    raise ValueError(f"unrecognised payload: {type(payload).__name__}")
