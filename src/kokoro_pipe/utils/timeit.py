"""
Timing helper for pipeline stages.

    with timeit("phonemize") as t:
        lines = phonemizer.phonemize(text, "en-us")
    seconds = t.seconds
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Optional


@dataclass
class Timing:
    """A finished measurement."""
    name: str
    seconds: float


class timeit:
    """
    Context manager measuring wall-clock time with perf_counter().

    ``timing`` is filled in on exit, also when the block raised.
    """

    def __init__(self, name: str):
        self.name = name
        self._t0: Optional[float] = None
        self.timing: Optional[Timing] = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=perf_counter() - self._t0)

    @property
    def seconds(self) -> float:
        """Elapsed seconds, or -1.0 while the block is still running."""
        return self.timing.seconds if self.timing else -1.0
