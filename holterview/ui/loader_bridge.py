from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any

from PySide6 import QtCore

from holterview.core.errors import LoaderError, RequestSuperseded, ServerError
from holterview.core.loader import DEFAULT_VIEW, WindowedLoader

LOG = logging.getLogger(__name__)


class LoaderBridge(QtCore.QObject):
    """Runs a :class:`WindowedLoader` on a private asyncio loop thread.

    Results come back as Qt signals, which queue onto the GUI thread. Superseded
    requests are dropped without a signal. Aggregates, diagnostics and time bounds
    keep only their latest request per kind; an older one is cancelled and its
    result discarded on the GUI thread.
    """

    samplesReady = QtCore.Signal(str, object, object)  # view, WindowRequest, SampleSet
    loadFailed = QtCore.Signal(str, object)  # view, LoaderError
    stateChanged = QtCore.Signal(str, object)  # view, ViewState
    aggregatesReady = QtCore.Signal(object)  # list[AggregateBucket]
    aggregatesFailed = QtCore.Signal(object)
    diagnosticsReady = QtCore.Signal(object)  # DiagnosticsReport
    boundsReady = QtCore.Signal(object)  # (earliest_ms, latest_ms) | None
    _overviewDone = QtCore.Signal(str, object)  # kind, concurrent Future

    def __init__(self, loader: WindowedLoader, parent: QtCore.QObject | None = None) -> None:
        super().__init__(parent)
        self.loader = loader
        self._loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._stopped = False
        self._latest: dict[str, Future] = {}
        self._thread = threading.Thread(target=self._run_loop, name="holterview-loader", daemon=True)
        self._thread.start()
        self._ready.wait()
        self._unsubscribe = loader.subscribe(self.stateChanged.emit)
        self._overviewDone.connect(self._deliver_overview, QtCore.Qt.QueuedConnection)

    # ------------------------------------------------------------------
    # requests

    def request_window(
        self,
        device_id: str,
        start: Any,
        end: Any,
        *,
        factor: int | None = None,
        force_refresh: bool = False,
        view: str = DEFAULT_VIEW,
    ) -> Future:
        return self._submit_window(
            self.loader.load(
                device_id,
                start,
                end,
                factor=factor,
                force_refresh=force_refresh,
                view=view,
            ),
            view,
        )

    def retry(self, view: str = DEFAULT_VIEW) -> Future:
        return self._submit_window(self.loader.retry(view), view)

    def refresh(self, view: str = DEFAULT_VIEW) -> Future:
        return self._submit_window(self.loader.refresh(view), view)

    def request_aggregates(self, device_id: str, start: Any, end: Any, *, bucket_seconds: int = 3600) -> Future:
        return self._submit_latest(
            "aggregates", self.loader.load_aggregates(device_id, start, end, bucket_seconds=bucket_seconds)
        )

    def request_diagnostics(self, device_id: str, start: Any, end: Any) -> Future:
        return self._submit_latest("diagnostics", self.loader.load_diagnostics(device_id, start, end))

    def request_time_bounds(self, device_id: str) -> Future:
        return self._submit_latest("bounds", self.loader.load_time_bounds(device_id))

    def close(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._unsubscribe()
        fut = asyncio.run_coroutine_threadsafe(self.loader.close(), self._loop)
        try:
            fut.result(timeout=2.0)
        except Exception:
            LOG.exception("Loader did not close cleanly")
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=2.0)

    # ------------------------------------------------------------------
    # internals

    def _submit(self, coro) -> Future:
        if self._stopped:
            coro.close()
            raise RuntimeError("LoaderBridge has been closed")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def _submit_latest(self, kind: str, coro) -> Future:
        previous = self._latest.get(kind)
        fut = self._submit(coro)
        self._latest[kind] = fut
        if previous is not None and not previous.done():
            LOG.debug("Cancelling superseded %s request", kind)
            previous.cancel()
        fut.add_done_callback(lambda f, kind=kind: self._overviewDone.emit(kind, f))
        return fut

    def _submit_window(self, coro, view: str) -> Future:
        fut = self._submit(self._with_request(coro, view))
        fut.add_done_callback(lambda f, view=view: self._finish_window(view, f))
        return fut

    async def _with_request(self, coro, view: str):
        samples = await coro
        # Read on the loop thread right after the commit, before anything else runs.
        return self.loader.state(view).request, samples

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._ready.set()
        self._loop.run_forever()
        pending = [t for t in asyncio.all_tasks(self._loop) if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        self._loop.close()

    def _failure(self, fut: Future) -> LoaderError | None:
        """Return the error to surface, or None for success, supersession or cancellation."""
        if fut.cancelled():
            return None
        exc = fut.exception()
        if exc is None or isinstance(exc, (RequestSuperseded, asyncio.CancelledError)):
            if exc is not None:
                LOG.debug("Dropped result: %s", exc)
            return None
        if isinstance(exc, LoaderError):
            return exc
        LOG.error("Unexpected loader failure", exc_info=exc)
        return ServerError(detail=str(exc))

    def _finish_window(self, view: str, fut: Future) -> None:
        error = self._failure(fut)
        if error is not None:
            self.loadFailed.emit(view, error)
            return
        if fut.cancelled() or fut.exception() is not None:
            return
        request, samples = fut.result()
        self.samplesReady.emit(view, request, samples)

    def _deliver_overview(self, kind: str, fut: Future) -> None:
        # GUI thread only; requests are issued from the same thread.
        if self._latest.get(kind) is not fut:
            LOG.debug("Dropped stale %s result", kind)
            return
        del self._latest[kind]
        error = self._failure(fut)
        if error is not None:
            if kind == "aggregates":
                self.aggregatesFailed.emit(error)
            else:
                LOG.warning("%s unavailable: %s", kind.capitalize(), error.user_message)
            return
        if fut.cancelled() or fut.exception() is not None:
            return
        if kind == "aggregates":
            self.aggregatesReady.emit(fut.result())
        elif kind == "diagnostics":
            self.diagnosticsReady.emit(fut.result())
        else:
            self.boundsReady.emit(fut.result())
