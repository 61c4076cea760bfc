"""
Kokoro Engine: ordered job dispatch.

The engine owns one inference backend and one dispatcher thread. Callers
enqueue jobs from any thread; the dispatcher runs them strictly one at a
time, in enqueue order, step by step.

Architecture:
    enqueue(job) --> [ deque ] --> dispatcher thread --> job.progress(backend)
                         ^                                   |
                   Condition.notify                  step callbacks

    - One Condition guards the deque and the stop flag
    - The dispatcher sleeps on the Condition while the deque is empty
    - Canceled jobs are skipped when their turn comes

Shutdown:
    1. Set the stop flag; later enqueue() calls raise EngineDisposedError
    2. Cancel every queued job and the running one
    3. Wake and join the dispatcher (the current step finishes first)
    4. Close the backend

Usage:
    with KokoroEngine(backend) as engine:
        job = engine.enqueue(Job.create(tokens, style, on_complete=play))
        job.wait()

Thread Safety:
    enqueue(), cancel() and shutdown() may be called concurrently from any
    thread, including from inside a step callback.
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from kokoro_pipe.core.config import Defaults
from kokoro_pipe.core.errors import EngineDisposedError, InferenceError, KokoroError
from kokoro_pipe.core.logging import (
    error,
    get_logger,
    info,
    reset_job_id,
    set_job_id,
    success,
    verbose,
)
from kokoro_pipe.core.metrics import metrics
from kokoro_pipe.tts.jobs import Job, JobState
from kokoro_pipe.tts.model import BaseInferenceBackend

_LOG = get_logger("kokoro-pipe.engine")


@dataclass
class EngineStats:
    """Counters for one engine instance."""
    queue_depth: int
    jobs_enqueued: int
    jobs_completed: int
    jobs_canceled: int
    jobs_failed: int
    running: bool


class KokoroEngine:
    """
    Single-consumer FIFO scheduler for synthesis jobs.

    Args:
        backend: Inference backend; closed by ``shutdown()``.
        join_timeout_s: How long ``shutdown()`` waits for the dispatcher;
            0 waits indefinitely.
        name: Dispatcher thread name.
    """

    def __init__(
        self,
        backend: BaseInferenceBackend,
        join_timeout_s: float = Defaults.ENGINE_JOIN_TIMEOUT_S,
        name: str = "kokoro-dispatcher",
    ):
        self.backend = backend
        self.join_timeout_s = join_timeout_s

        self._cond = threading.Condition(threading.Lock())
        self._queue: Deque[Job] = deque()
        self._stopping = False
        self._current: Optional[Job] = None
        self._closed = False

        self._enqueued = 0
        self._completed = 0
        self._canceled = 0
        self._failed = 0

        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()
        info(_LOG, "engine_started", backend=backend.name)

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def is_disposed(self) -> bool:
        with self._cond:
            return self._stopping

    def enqueue(self, job: Job) -> Job:
        """
        Schedule a job behind every job enqueued before it.

        Returns:
            The job itself, as the caller's handle.

        Raises:
            EngineDisposedError: If shutdown has begun.
        """
        with self._cond:
            if self._stopping:
                raise EngineDisposedError()
            self._queue.append(job)
            self._enqueued += 1
            depth = len(self._queue)
            self._cond.notify()
        metrics.record_enqueued(depth)
        verbose(_LOG, "job_enqueued", job=job.id, steps=len(job.steps), queue_depth=depth)
        return job

    def cancel(self, job: Job) -> bool:
        """Cancel a queued or running job. Idempotent; True if this call canceled it."""
        return job.cancel()

    def stats(self) -> EngineStats:
        with self._cond:
            return EngineStats(
                queue_depth=len(self._queue),
                jobs_enqueued=self._enqueued,
                jobs_completed=self._completed,
                jobs_canceled=self._canceled,
                jobs_failed=self._failed,
                running=self._thread.is_alive(),
            )

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop the engine and release the backend. Idempotent.

        Args:
            timeout: Join timeout in seconds; defaults to ``join_timeout_s``.
        """
        with self._cond:
            first = not self._stopping
            self._stopping = True
            pending = list(self._queue)
            self._queue.clear()
            current = self._current
            self._cond.notify_all()

        canceled = sum(1 for job in pending if job.cancel())
        if current is not None:
            current.cancel()
        with self._cond:
            self._canceled += canceled
        metrics.set_queue_depth(0)

        if threading.current_thread() is not self._thread:
            join_timeout = self.join_timeout_s if timeout is None else timeout
            self._thread.join(join_timeout or None)
            if self._thread.is_alive():
                error(_LOG, "dispatcher_join_timeout", timeout_s=join_timeout)

        with self._cond:
            if self._closed:
                return
            self._closed = True
        self.backend.close()
        if first:
            success(_LOG, "engine_stopped", canceled=canceled)

    def __enter__(self) -> "KokoroEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ─────────────────────────────────────────────────────────────────────────
    # Dispatcher
    # ─────────────────────────────────────────────────────────────────────────

    def _next_job(self) -> Optional[Job]:
        with self._cond:
            while not self._queue and not self._stopping:
                self._cond.wait()
            if self._stopping:
                return None
            job = self._queue.popleft()
            self._current = job
            depth = len(self._queue)
        metrics.set_queue_depth(depth)
        return job

    def _run(self) -> None:
        while True:
            job = self._next_job()
            if job is None:
                break

            token = set_job_id(job.id)
            try:
                self._drive(job)
            finally:
                reset_job_id(token)
                with self._cond:
                    self._current = None

        verbose(_LOG, "dispatcher_exit")

    def _drive(self, job: Job) -> None:
        if job.is_done:
            with self._cond:
                self._canceled += 1
            verbose(_LOG, "job_skipped", job=job.id, state=job.state.value)
            return

        verbose(_LOG, "job_started", job=job.id, steps=len(job.steps))
        try:
            while not self._stop_requested() and job.progress(self.backend):
                pass
        except KokoroError as exc:
            job.fail(exc)
            with self._cond:
                self._failed += 1
            error(_LOG, "job_failed", job=job.id, code=exc.code, error=exc.message)
            return
        except Exception as exc:
            err = InferenceError(f"job aborted: {exc}", {"job": job.id})
            job.fail(err)
            with self._cond:
                self._failed += 1
            error(_LOG, "job_failed", exc_info=True, job=job.id, code=err.code, error=str(exc))
            return

        if self._stop_requested():
            job.cancel()

        state = job.state
        with self._cond:
            if state is JobState.COMPLETED:
                self._completed += 1
            else:
                self._canceled += 1
        verbose(_LOG, "job_finished", job=job.id, state=state.value, steps_done=job.steps_done)

    def _stop_requested(self) -> bool:
        with self._cond:
            return self._stopping
