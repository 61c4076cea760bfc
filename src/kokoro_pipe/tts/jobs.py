"""
Synthesis Jobs.

A Job is an ordered list of steps. Each step is one inference call (tokens,
voice style, speed) plus a callback that receives the produced samples.
The engine's dispatcher drives a job by calling ``progress()`` until it
returns False; any thread may call ``cancel()`` or ``wait()``.

State Machine:
    QUEUED -> RUNNING -> COMPLETED
       |         |
       +---------+----> CANCELED

    Transitions are one-way. COMPLETED and CANCELED are terminal.

Step Delivery:
    1. Cancellation is checked before inference starts
    2. Inference runs without holding the job lock
    3. Cancellation is checked again before the callback; samples of a
       step canceled mid-inference are discarded
    4. The callback runs once, outside the lock, and the job advances
       even if it raised

    So once cancel() has returned, no step that had not already begun
    delivery will reach its callback.

Usage:
    job = Job.create(tokens, style, speed=1.0, on_complete=play)
    engine.enqueue(job)
    job.wait()
    print(job.state)  # JobState.COMPLETED
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

import numpy as np

from kokoro_pipe.core.errors import InferenceError, KokoroError
from kokoro_pipe.core.logging import error, get_logger, verbose
from kokoro_pipe.core.metrics import metrics
from kokoro_pipe.utils.timeit import timeit

if TYPE_CHECKING:
    from kokoro_pipe.tts.model import BaseInferenceBackend

_LOG = get_logger("kokoro-pipe.jobs")

SamplesCallback = Callable[[np.ndarray], None]


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.CANCELED)


@dataclass(frozen=True)
class JobStep:
    """One inference call and the callback receiving its samples."""
    tokens: Tuple[int, ...]
    voice_style: np.ndarray
    speed: float = 1.0
    on_complete: Optional[SamplesCallback] = None


class Job:
    """
    An ordered, cancellable unit of synthesis work.

    The job is also the caller's handle: keep it to ``wait()``, ``cancel()``
    or read ``state`` and ``error``.
    """

    def __init__(self, steps: Sequence[JobStep], job_id: Optional[str] = None):
        self.id = job_id or uuid.uuid4().hex[:12]
        self.steps: Tuple[JobStep, ...] = tuple(steps)
        self.error: Optional[KokoroError] = None
        self.callback_errors: List[BaseException] = []

        self._lock = threading.Lock()
        self._done = threading.Event()
        self._state = JobState.QUEUED
        self._next_step = 0

    # ─────────────────────────────────────────────────────────────────────────
    # Construction
    # ─────────────────────────────────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        tokens: Sequence[int],
        voice_style: np.ndarray,
        speed: float = 1.0,
        on_complete: Optional[SamplesCallback] = None,
    ) -> "Job":
        """Single-step job."""
        return cls([JobStep(tuple(tokens), voice_style, speed, on_complete)])

    @classmethod
    def create_multi(
        cls,
        segments: Sequence[Sequence[int]],
        voice_style: np.ndarray,
        speed: float = 1.0,
        on_complete: Optional[SamplesCallback] = None,
    ) -> "Job":
        """One step per token segment, all sharing voice, speed and callback."""
        return cls([JobStep(tuple(seg), voice_style, speed, on_complete) for seg in segments])

    # ─────────────────────────────────────────────────────────────────────────
    # Observation
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    @property
    def is_done(self) -> bool:
        return self._done.is_set()

    @property
    def steps_done(self) -> int:
        with self._lock:
            return self._next_step

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job is COMPLETED or CANCELED; False on timeout."""
        return self._done.wait(timeout)

    def __repr__(self) -> str:
        with self._lock:
            state, done = self._state, self._next_step
        return f"Job(id={self.id!r}, state={state.value}, steps={done}/{len(self.steps)})"

    # ─────────────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────────────

    def cancel(self) -> bool:
        """
        Cancel the job. Idempotent and thread-safe.

        Returns:
            True if this call moved the job to CANCELED.
        """
        with self._lock:
            if self._state.is_terminal:
                return False
            self._finish_locked(JobState.CANCELED)
            steps_done = self._next_step
        verbose(_LOG, "job_canceled", job=self.id, steps_done=steps_done)
        return True

    def _finish_locked(self, state: JobState) -> None:
        self._state = state
        self._done.set()
        metrics.record_finished(state.value)

    def fail(self, err: KokoroError) -> bool:
        """
        Record ``err`` and cancel the job. The first recorded error is kept.

        Returns:
            True if this call moved the job to CANCELED.
        """
        with self._lock:
            if self.error is None:
                self.error = err
            if self._state.is_terminal:
                return False
            self._finish_locked(JobState.CANCELED)
        return True

    def progress(self, backend: "BaseInferenceBackend") -> bool:
        """
        Run the next step.

        Returns:
            True while steps remain and the job was not canceled.

        Raises:
            InferenceError: If the backend raised. The job is canceled and
                ``error`` is set before this propagates.
        """
        with self._lock:
            if self._state.is_terminal:
                return False
            if self._next_step >= len(self.steps):
                self._finish_locked(JobState.COMPLETED)
                return False
            self._state = JobState.RUNNING
            index = self._next_step
            step = self.steps[index]

        try:
            with timeit("infer") as t:
                raw = backend.infer(step.tokens, step.voice_style, step.speed)
            samples = np.asarray(raw, dtype=np.float32).reshape(-1)
        except Exception as exc:
            err = InferenceError(f"inference failed on step {index}: {exc}", {"job": self.id, "step": index})
            self.fail(err)
            metrics.record_step("failed")
            raise err from exc

        with self._lock:
            if self._state is JobState.CANCELED:
                metrics.record_step("discarded", t.seconds)
                verbose(_LOG, "step_discarded", job=self.id, step=index)
                return False

        metrics.record_step("delivered", t.seconds)
        verbose(_LOG, "step_done", job=self.id, step=index, tokens=len(step.tokens),
                samples=int(samples.shape[0]), seconds=round(t.seconds, 3))

        if step.on_complete is not None:
            try:
                step.on_complete(samples)
            except Exception as exc:
                self.callback_errors.append(exc)
                metrics.record_callback_error()
                error(_LOG, "step_callback_failed", exc_info=True, job=self.id, step=index, error=str(exc))

        with self._lock:
            if self._state.is_terminal:
                return False
            self._next_step = index + 1
            if self._next_step >= len(self.steps):
                self._finish_locked(JobState.COMPLETED)
                return False
            return True
