"""
kokoro-pipe Services Layer.

SynthesisService ties the text pipeline, token segmentation and the job
engine together behind ``speak()`` and ``synthesize()``.
"""
from .synthesis import MAX_SPEED, MIN_SPEED, SynthesisResult, SynthesisService

__all__ = [
    "SynthesisService",
    "SynthesisResult",
    "MIN_SPEED",
    "MAX_SPEED",
]
