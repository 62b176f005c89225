"""Paginated retrieval of fixed-duration chunks for incremental (infinite-scroll) views."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from holterview.core.cache import SampleCache
from holterview.core.downsample import FactorPolicy, resolve_factor
from holterview.core.errors import InvalidParametersError, LoaderError, RequestSuperseded, classify_exception
from holterview.core.recorder import Outcome, QueryKind, QueryRecorder
from holterview.core.samples import SampleSet
from holterview.core.timebase import parse_instant
from holterview.core.window import WindowLimits, WindowRequest, validate_window

LOG = logging.getLogger(__name__)

__all__ = ["ChunkPolicy", "Chunk", "ChunkedLoader"]

CHUNK_VIEW = "chunks"


@dataclass(frozen=True)
class ChunkPolicy:
    chunk_minutes: float = 5.0
    chunks_per_page: int = 5


@dataclass(frozen=True)
class Chunk:
    start_ms: int
    end_ms: int
    samples: SampleSet

    @classmethod
    def from_payload(cls, obj: Mapping[str, Any]) -> "Chunk":
        if not isinstance(obj, Mapping):
            raise ValueError("chunk entry is not an object")
        return cls(
            start_ms=parse_instant(obj["chunk_start"]),
            end_ms=parse_instant(obj["chunk_end"]),
            samples=SampleSet.from_payload(obj.get("samples") or []),
        )


@dataclass
class _PendingPage:
    offset: int
    generation: int
    task: asyncio.Task


class ChunkedLoader:
    """Loads ``chunks_per_page`` chunks at a time for the range given to :meth:`open`.

    Re-opening bumps the generation: pages still in flight for an older range are
    cancelled and their callers receive :class:`RequestSuperseded`.
    """

    def __init__(
        self,
        transport,
        *,
        limits: WindowLimits | None = None,
        factor_policy: FactorPolicy | None = None,
        cache: SampleCache | None = None,
        recorder: QueryRecorder | None = None,
        chunk_policy: ChunkPolicy | None = None,
        max_points: int = 2000,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.transport = transport
        self.limits = limits or WindowLimits()
        self.factor_policy = factor_policy or FactorPolicy()
        self.cache: SampleCache = cache if cache is not None else SampleCache()
        self._owns_recorder = recorder is None
        self.recorder = recorder if recorder is not None else QueryRecorder()
        self.policy = chunk_policy or ChunkPolicy()
        if self.policy.chunks_per_page <= 0 or self.policy.chunk_minutes <= 0:
            raise ValueError("chunk policy values must be positive")
        self.max_points = int(max_points)
        self._clock = clock
        self.request: WindowRequest | None = None
        self.pages: list[list[Chunk]] = []
        self.error: LoaderError | None = None
        self._generation = 0
        self._pending: _PendingPage | None = None
        self._closed = False

    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_more(self) -> bool:
        if self.request is None or not self.pages:
            return False
        return len(self.pages[-1]) == self.policy.chunks_per_page

    @property
    def is_loading(self) -> bool:
        return self._pending is not None and not self._pending.task.done()

    @property
    def next_offset(self) -> int:
        return len(self.pages) * self.policy.chunks_per_page

    @property
    def chunks(self) -> list[Chunk]:
        flat = [chunk for page in self.pages for chunk in page]
        return sorted(flat, key=lambda c: c.start_ms)

    @property
    def samples(self) -> SampleSet:
        return SampleSet.concat(chunk.samples for chunk in self.chunks)

    # ------------------------------------------------------------------

    async def open(
        self,
        device_id: str,
        start: Any,
        end: Any,
        factor: int | None = None,
        *,
        force_refresh: bool = False,
    ) -> list[Chunk]:
        if self._closed:
            raise RuntimeError("ChunkedLoader has been closed")
        device_id, start_ms, end_ms = validate_window(device_id, start, end, limits=self.limits)
        request = WindowRequest(
            device_id=device_id,
            start_ms=start_ms,
            end_ms=end_ms,
            factor=resolve_factor(factor, (end_ms - start_ms) / 1000.0, self.factor_policy),
            max_points=self.max_points,
        )
        self._generation += 1
        self._cancel_pending()
        self.request = request
        self.pages = []
        self.error = None
        return await self._load_page(0, self._generation, force_refresh=force_refresh)

    async def load_next_page(self) -> list[Chunk] | None:
        if self._closed:
            raise RuntimeError("ChunkedLoader has been closed")
        if not self.has_more:
            return None
        return await self._load_page(self.next_offset, self._generation)

    async def retry(self) -> list[Chunk] | None:
        """Reload the page that failed last (page 0 when nothing has loaded yet)."""
        if self.request is None:
            raise InvalidParametersError("There is no previous request to retry.")
        self.error = None
        if not self.pages:
            return await self._load_page(0, self._generation)
        return await self.load_next_page()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        pending = self._pending
        self._cancel_pending()
        if pending is not None:
            await asyncio.gather(pending.task, return_exceptions=True)
        if self._owns_recorder:
            self.recorder.close()

    # ------------------------------------------------------------------

    def _page_key(self, request: WindowRequest, offset: int) -> tuple:
        return request.cache_key + (
            int(offset),
            int(self.policy.chunks_per_page),
            float(self.policy.chunk_minutes),
        )

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.task.done():
            LOG.debug("Cancelling chunk page at offset %d", self._pending.offset)
            self._pending.task.cancel()
        self._pending = None

    async def _load_page(self, offset: int, generation: int, *, force_refresh: bool = False) -> list[Chunk]:
        request = self.request
        if request is None:
            raise InvalidParametersError("There is no open range.")
        pending = self._pending
        if pending is not None and pending.offset == offset and pending.generation == generation and not pending.task.done():
            LOG.debug("Coalescing chunk page request at offset %d", offset)
        else:
            key = self._page_key(request, offset)
            cached = None if force_refresh else self.cache.get(key)
            if cached is not None:
                self.recorder.record(
                    device_id=request.device_id,
                    time_start=request.time_start,
                    time_end=request.time_end,
                    factor=request.factor,
                    points=sum(len(c.samples) for c in cached),
                    duration_ms=0.0,
                    outcome=Outcome.CACHE_HIT,
                    kind=QueryKind.CHUNK,
                )
                page = list(cached)
                self._append(offset, page)
                return page
            task = asyncio.get_running_loop().create_task(self._fetch_page(request, offset, key))
            pending = self._pending = _PendingPage(offset, generation, task)

        try:
            page = await asyncio.shield(pending.task)
        except asyncio.CancelledError:
            if generation != self._generation:
                raise RequestSuperseded(CHUNK_VIEW, generation) from None
            raise
        except LoaderError as exc:
            if generation != self._generation:
                raise RequestSuperseded(CHUNK_VIEW, generation) from exc
            self.error = exc
            raise
        finally:
            if self._pending is pending and pending.task.done():
                self._pending = None
        if generation != self._generation:
            raise RequestSuperseded(CHUNK_VIEW, generation)
        self._append(offset, page)
        return page

    def _append(self, offset: int, page: list[Chunk]) -> None:
        # A coalesced sibling may already have appended this page.
        if offset != self.next_offset:
            return
        self.pages.append(page)
        LOG.info(
            "Loaded chunk page %d (%d chunks, has_more=%s)",
            len(self.pages) - 1,
            len(page),
            self.has_more,
        )

    async def _fetch_page(self, request: WindowRequest, offset: int, key: tuple) -> list[Chunk]:
        limit = self.policy.chunks_per_page
        started = self._clock()
        try:
            payload = await self.transport.fetch_chunks(
                request,
                offset=offset,
                limit=limit,
                chunk_minutes=self.policy.chunk_minutes,
            )
            if isinstance(payload, Mapping) and "data" in payload:
                payload = payload["data"]
            if payload is None:
                payload = []
            if not isinstance(payload, list):
                raise ValueError("Invalid response from chunked downsampling service")
            page = sorted((Chunk.from_payload(obj) for obj in payload), key=lambda c: c.start_ms)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = classify_exception(exc)
            LOG.warning("Chunk page at offset %d failed: %s", offset, error.user_message)
            self.recorder.record(
                device_id=request.device_id,
                time_start=request.time_start,
                time_end=request.time_end,
                factor=request.factor,
                points=0,
                duration_ms=(self._clock() - started) * 1000.0,
                outcome=Outcome.ERROR,
                kind=QueryKind.CHUNK,
                error=error.user_message,
            )
            raise error from exc
        self.cache.put(key, tuple(page))
        self.recorder.record(
            device_id=request.device_id,
            time_start=request.time_start,
            time_end=request.time_end,
            factor=request.factor,
            points=sum(len(c.samples) for c in page),
            duration_ms=(self._clock() - started) * 1000.0,
            outcome=Outcome.SUCCESS,
            kind=QueryKind.CHUNK,
        )
        return page
