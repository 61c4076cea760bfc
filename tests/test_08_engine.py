"""Tests for KokoroEngine ordering, cancellation and shutdown."""
from __future__ import annotations

import threading

import numpy as np
import pytest

from conftest import FakeBackend
from kokoro_pipe.core.errors import EngineDisposedError, InferenceError
from kokoro_pipe.core.logging import get_job_id
from kokoro_pipe.tts.engine import KokoroEngine
from kokoro_pipe.tts.jobs import Job, JobState


def _recording_job(label, segments, style, log, cancel_after=None):
    holder = {}

    def on_complete(samples):
        log.append((label, len(samples)))
        if cancel_after is not None and sum(1 for entry in log if entry[0] == label) >= cancel_after:
            holder["job"].cancel()

    job = Job.create_multi(segments, style, on_complete=on_complete)
    holder["job"] = job
    return job


class TestOrdering:
    """Jobs run one at a time, in enqueue order."""

    def test_first_job_finishes_before_second_starts(self, voice_style):
        log = []
        backend = FakeBackend()
        with KokoroEngine(backend) as engine:
            a = engine.enqueue(_recording_job("A", [[1], [1, 1], [1, 1, 1]], voice_style, log))
            b = engine.enqueue(_recording_job("B", [[2], [2, 2]], voice_style, log))
            assert b.wait(5.0)
            assert a.is_done

        assert log == [("A", 1), ("A", 2), ("A", 3), ("B", 1), ("B", 2)]
        assert a.state is JobState.COMPLETED
        assert b.state is JobState.COMPLETED

    def test_enqueue_returns_same_job(self, voice_style):
        with KokoroEngine(FakeBackend()) as engine:
            job = Job.create([1], voice_style)
            assert engine.enqueue(job) is job
            assert job.wait(5.0)

    def test_job_id_bound_during_callbacks(self, voice_style):
        seen = []
        with KokoroEngine(FakeBackend()) as engine:
            job = engine.enqueue(Job.create([1], voice_style, on_complete=lambda s: seen.append(get_job_id())))
            assert job.wait(5.0)
        assert seen == [job.id]


class TestCancellation:
    """Cancelled jobs stop delivering and are skipped."""

    def test_cancel_inside_first_callback(self, voice_style):
        log = []
        backend = FakeBackend()
        with KokoroEngine(backend) as engine:
            a = engine.enqueue(_recording_job("A", [[1], [1, 1], [1, 1, 1]], voice_style, log, cancel_after=1))
            b = engine.enqueue(_recording_job("B", [[2]], voice_style, log))
            assert b.wait(5.0)

        assert log == [("A", 1), ("B", 1)]
        assert a.state is JobState.CANCELED
        assert b.state is JobState.COMPLETED
        assert backend.calls == [(1,), (2,)]

    def test_queued_job_canceled_before_dispatch_is_skipped(self, voice_style):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        log = []
        with KokoroEngine(backend) as engine:
            first = engine.enqueue(_recording_job("A", [[1]], voice_style, log))
            assert backend.started.wait(5.0)
            second = engine.enqueue(_recording_job("B", [[2]], voice_style, log))
            assert engine.cancel(second) is True
            assert engine.cancel(second) is False
            gate.set()
            assert first.wait(5.0)

        assert log == [("A", 1)]
        assert backend.calls == [(1,)]
        assert second.state is JobState.CANCELED


class TestFailures:
    """A failing backend cancels only the affected job."""

    def test_inference_error_does_not_stop_dispatcher(self, voice_style):
        log = []
        engine = KokoroEngine(FakeBackend(fail_on=0))
        a = engine.enqueue(_recording_job("A", [[1], [1]], voice_style, log))
        b = engine.enqueue(_recording_job("B", [[2]], voice_style, log))
        assert b.wait(5.0)
        engine.shutdown()

        assert isinstance(a.error, InferenceError)
        assert a.state is JobState.CANCELED
        assert b.state is JobState.COMPLETED
        assert log == [("B", 1)]

        stats = engine.stats()
        assert stats.jobs_failed == 1
        assert stats.jobs_completed == 1

    def test_callback_error_does_not_stop_job(self, voice_style):
        def explode(samples):
            raise RuntimeError("speaker unplugged")

        with KokoroEngine(FakeBackend()) as engine:
            job = engine.enqueue(Job.create_multi([[1], [2]], voice_style, on_complete=explode))
            assert job.wait(5.0)

        assert job.state is JobState.COMPLETED
        assert len(job.callback_errors) == 2

    def test_backend_returning_list_is_converted(self, voice_style):
        class ListBackend(FakeBackend):
            def infer(self, tokens, voice_style, speed=1.0):
                return [0.5] * len(tokens)

        delivered = []
        engine = KokoroEngine(ListBackend())
        a = engine.enqueue(Job.create_multi([[1, 1], [1]], voice_style, on_complete=delivered.append))
        b = engine.enqueue(Job.create([2], voice_style, on_complete=delivered.append))
        assert b.wait(5.0)
        assert engine.stats().running
        engine.shutdown()

        assert a.state is JobState.COMPLETED
        assert b.state is JobState.COMPLETED
        assert [len(s) for s in delivered] == [2, 1, 1]
        assert all(s.dtype == np.float32 for s in delivered)

    def test_unexpected_error_fails_job_and_dispatcher_continues(self, voice_style):
        class BrokenJob(Job):
            def progress(self, backend):
                raise AttributeError("no samples attribute")

        log = []
        engine = KokoroEngine(FakeBackend())
        a = engine.enqueue(BrokenJob([]))
        b = engine.enqueue(_recording_job("B", [[2]], voice_style, log))
        assert a.wait(5.0)
        assert b.wait(5.0)
        assert engine.stats().running
        engine.shutdown()

        assert a.state is JobState.CANCELED
        assert isinstance(a.error, InferenceError)
        assert "no samples attribute" in a.error.message
        assert b.state is JobState.COMPLETED
        assert log == [("B", 1)]
        assert engine.stats().jobs_failed == 1


class TestShutdown:
    """shutdown() cancels everything, closes the backend and is idempotent."""

    def test_shutdown_cancels_running_and_queued(self, voice_style):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        engine = KokoroEngine(backend)
        log = []
        jobs = [engine.enqueue(_recording_job(str(i), [[i + 1], [i + 1]], voice_style, log)) for i in range(3)]
        assert backend.started.wait(5.0)

        stopper = threading.Thread(target=engine.shutdown)
        stopper.start()
        for job in jobs:
            assert job.wait(5.0)
        gate.set()
        stopper.join(5.0)

        assert log == []
        assert all(job.state is JobState.CANCELED for job in jobs)
        assert backend.calls == [(1,)]
        assert backend.closed

    def test_enqueue_after_shutdown_raises(self, voice_style):
        engine = KokoroEngine(FakeBackend())
        engine.shutdown()
        assert engine.is_disposed
        with pytest.raises(EngineDisposedError):
            engine.enqueue(Job.create([1], voice_style))

    def test_shutdown_is_idempotent(self):
        backend = FakeBackend()
        engine = KokoroEngine(backend)
        engine.shutdown()
        engine.shutdown()
        assert backend.closed
        assert not engine.stats().running

    def test_shutdown_from_callback(self, voice_style):
        holder = {}
        backend = FakeBackend()
        engine = holder["engine"] = KokoroEngine(backend)
        job = engine.enqueue(Job.create_multi([[1], [2]], voice_style, on_complete=lambda s: holder["engine"].shutdown()))
        assert job.wait(5.0)
        engine.shutdown()

        assert job.state is JobState.CANCELED
        assert backend.calls == [(1,)]
        assert backend.closed

    def test_stats(self, voice_style):
        engine = KokoroEngine(FakeBackend())
        job = engine.enqueue(Job.create([1], voice_style))
        assert job.wait(5.0)
        engine.shutdown()

        stats = engine.stats()
        assert stats.jobs_enqueued == 1
        assert stats.jobs_completed == 1
        assert stats.jobs_canceled == 0
        assert stats.queue_depth == 0
