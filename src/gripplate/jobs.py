"""
Background composition runner.

Runs compose_plate off the interactive thread and applies only the newest
result. Every submit takes an id from a monotonic counter; when a job
finishes, its result is applied to the arena only if no newer job was
submitted in the meantime. Older results are dropped.

Hosts with an event loop pass a ``dispatch`` hook that marshals the
completion onto their own thread. Without one, completions run inline on
the worker thread.
"""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

from gripplate.composition import CompositionResult, compose_plate
from gripplate.contracts import CompositionRequest
from gripplate.scene import SolidArena

logger = logging.getLogger(__name__)

# Delay for the synchronous path so a processing indicator can draw first.
SYNC_DEFER_S = 0.01


@dataclass(frozen=True)
class CompositionJob:
    id: int
    request: CompositionRequest


def _inline_dispatch(fn: Callable[[], None]) -> None:
    fn()


def _timer_scheduler(fn: Callable[[], None], delay_s: float) -> None:
    timer = threading.Timer(delay_s, fn)
    timer.daemon = True
    timer.start()


class CompositionController:
    """Latest-wins job runner around :func:`compose_plate`."""

    def __init__(
        self,
        arena: Optional[SolidArena] = None,
        use_worker: bool = True,
        compose: Callable[[CompositionRequest], CompositionResult] = compose_plate,
        dispatch: Callable[[Callable[[], None]], None] = _inline_dispatch,
        scheduler: Callable[[Callable[[], None], float], None] = _timer_scheduler,
        on_busy_changed: Optional[Callable[[bool], None]] = None,
        on_applied: Optional[Callable[[CompositionJob, CompositionResult], None]] = None,
        on_failed: Optional[Callable[[CompositionJob, BaseException], None]] = None,
    ):
        self.arena = arena if arena is not None else SolidArena()
        self.use_worker = use_worker
        self._compose = compose
        self._dispatch = dispatch
        self._scheduler = scheduler
        self._on_busy_changed = on_busy_changed
        self._on_applied = on_applied
        self._on_failed = on_failed

        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        # Held across the staleness check and the arena swap.
        self._apply_lock = threading.RLock()
        self._latest_id = 0
        self._busy = False
        self._idle = threading.Event()
        self._idle.set()
        self._executor: Optional[ThreadPoolExecutor] = None
        self.last_result: Optional[CompositionResult] = None

    # -- state -------------------------------------------------------------

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    @property
    def latest_id(self) -> int:
        with self._lock:
            return self._latest_id

    def _set_busy(self, busy: bool, job_id: Optional[int] = None) -> None:
        with self._lock:
            if job_id is not None and job_id != self._latest_id:
                return
            changed = self._busy != busy
            self._busy = busy
            if busy:
                self._idle.clear()
            else:
                self._idle.set()
        if changed and self._on_busy_changed is not None:
            self._on_busy_changed(busy)

    def is_stale(self, job: CompositionJob) -> bool:
        with self._lock:
            return job.id != self._latest_id

    # -- submission ----------------------------------------------------------

    def submit(self, request: CompositionRequest) -> CompositionJob:
        """Queue a composition pass and return its job handle immediately."""
        with self._apply_lock, self._lock:
            job = CompositionJob(id=next(self._ids), request=request)
            self._latest_id = job.id
        self._set_busy(True)
        logger.debug("Submitted composition job %d", job.id)

        if self.use_worker:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="composition"
                )
            future = self._executor.submit(self._compose, job.request)
            future.add_done_callback(lambda f, job=job: self._on_future_done(job, f))
        else:
            self._scheduler(lambda: self._run_sync(job), SYNC_DEFER_S)
        return job

    def _run_sync(self, job: CompositionJob) -> None:
        try:
            result = self._compose(job.request)
        except Exception as exc:
            self._dispatch(lambda: self._fail(job, exc))
            return
        self._dispatch(lambda: self._apply(job, result))

    def _on_future_done(self, job: CompositionJob, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            self._dispatch(lambda: self._fail(job, exc))
        else:
            result = future.result()
            self._dispatch(lambda: self._apply(job, result))

    # -- completion ------------------------------------------------------------

    def _apply(self, job: CompositionJob, result: CompositionResult) -> None:
        try:
            with self._apply_lock:
                applied = result.apply_to(self.arena, accept=lambda: not self.is_stale(job))
                if not applied:
                    logger.debug("Discarding stale composition job %d", job.id)
                    return
                self.last_result = result
            logger.debug("Applied composition job %d", job.id)
            if self._on_applied is not None:
                self._notify(self._on_applied, job, result)
        except Exception:
            logger.exception("Applying composition job %d failed", job.id)
        finally:
            self._set_busy(False, job.id)

    def _fail(self, job: CompositionJob, exc: BaseException) -> None:
        try:
            if self.is_stale(job):
                logger.debug("Discarding failure of stale composition job %d", job.id)
                return
            logger.error(
                "Composition job %d failed", job.id, exc_info=(type(exc), exc, exc.__traceback__)
            )
            if self._on_failed is not None:
                self._notify(self._on_failed, job, exc)
        finally:
            self._set_busy(False, job.id)

    @staticmethod
    def _notify(callback: Callable, job: CompositionJob, payload) -> None:
        try:
            callback(job, payload)
        except Exception:
            logger.exception("Callback %r raised for composition job %d", callback, job.id)

    # -- lifecycle -------------------------------------------------------------

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the latest job has been applied or failed."""
        return self._idle.wait(timeout)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
