"""
Phonemizer Bridge.

Phonemization is a capability: text plus a language code in, one IPA line
per punctuation-delimited segment out. ``BasePhonemizer`` defines that
contract so the normalization and post-processing code never needs to
know whether the phonemes come from a subprocess or an in-process
library.

EspeakPhonemizer runs::

    espeak-ng --ipa=3 -q -v <language> <text>

once per call, in a fresh process. espeak-ng starts a new output line at
every ``:,.!?`` and drops the punctuation itself; postprocess.py puts it
back.

Configuration:
    phonemizer:
      executable: espeak-ng          # or KOKORO_PIPE_ESPEAK
      data_path: /opt/espeak-ng-data # or ESPEAK_DATA_PATH
      timeout_s: 30

Failure Modes (all raise PhonemizationError, never retried):
    - executable not found / not runnable
    - non-zero exit status
    - timeout
    - stdout that is not valid UTF-8
"""
from __future__ import annotations

import os
import subprocess
from typing import Dict, List, Optional

from kokoro_pipe.core.config import Defaults, PhonemizerConfig
from kokoro_pipe.core.errors import PhonemizationError
from kokoro_pipe.core.logging import debug, fail, get_logger, verbose
from kokoro_pipe.core.metrics import metrics
from kokoro_pipe.utils.timeit import timeit

_LOG = get_logger("kokoro-pipe.phonemizer")


def split_phoneme_lines(raw_output: str) -> List[str]:
    """Normalize line endings, trim the output and split it into segment lines."""
    text = raw_output.replace("\r\n", "\n").replace("\r", "\n").strip()
    if not text:
        return []
    return [line.rstrip() for line in text.split("\n")]


class BasePhonemizer:
    """
    Abstract phonemizer.

    Subclasses implement ``phonemize()``. Implementations must be safe to
    call from several threads at once.
    """

    name: str = "base"

    def phonemize(self, text: str, language: str) -> List[str]:
        """
        Convert normalized text into phoneme lines.

        Args:
            text: Output of ``normalize()``.
            language: espeak-style language code, e.g. "en-us".

        Returns:
            One phoneme string per segment, in order.

        Raises:
            PhonemizationError: If phonemes could not be produced.
        """
        raise NotImplementedError


class EspeakPhonemizer(BasePhonemizer):
    """
    Phonemizer backed by the espeak-ng command line tool.

    The text is passed as a single argv element (no shell), so quotes and
    shell metacharacters in user text are harmless.
    """

    name = "espeak-ng"

    def __init__(
        self,
        executable: str = Defaults.PHONEMIZER_EXECUTABLE,
        data_path: Optional[str] = None,
        timeout_s: float = Defaults.PHONEMIZER_TIMEOUT_S,
    ):
        self.executable = executable
        self.data_path = data_path
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: PhonemizerConfig) -> "EspeakPhonemizer":
        return cls(executable=config.executable, data_path=config.data_path, timeout_s=config.timeout_s)

    def build_command(self, text: str, language: str) -> List[str]:
        return [self.executable, "--ipa=3", "-q", "-v", language, text]

    def _environment(self) -> Optional[Dict[str, str]]:
        if not self.data_path:
            return None
        env = dict(os.environ)
        env["ESPEAK_DATA_PATH"] = self.data_path
        return env

    def phonemize(self, text: str, language: str) -> List[str]:
        if not text:
            return []

        cmd = self.build_command(text, language)
        details = {"executable": self.executable, "language": language}

        with timeit("phonemize") as t:
            try:
                proc = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=self._environment(),
                    timeout=self.timeout_s,
                    check=False,
                )
            except FileNotFoundError as exc:
                fail(_LOG, "phonemizer_missing", executable=self.executable)
                raise PhonemizationError(f"phonemizer executable not found: {self.executable}", details) from exc
            except subprocess.TimeoutExpired as exc:
                fail(_LOG, "phonemizer_timeout", timeout_s=self.timeout_s)
                raise PhonemizationError(f"phonemizer timed out after {self.timeout_s}s", details) from exc
            except OSError as exc:
                fail(_LOG, "phonemizer_start_failed", error=str(exc))
                raise PhonemizationError(f"could not start phonemizer: {exc}", details) from exc

        metrics.observe_phonemize(t.seconds)

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            fail(_LOG, "phonemizer_exit", returncode=proc.returncode, stderr=stderr[:200])
            raise PhonemizationError(
                f"phonemizer exited with status {proc.returncode}",
                {**details, "returncode": proc.returncode, "stderr": stderr},
            )

        try:
            output = proc.stdout.decode("utf-8")
        except UnicodeDecodeError as exc:
            fail(_LOG, "phonemizer_decode_failed", error=str(exc))
            raise PhonemizationError("phonemizer output is not valid UTF-8", details) from exc

        lines = split_phoneme_lines(output)
        verbose(_LOG, "phonemized", chars=len(text), lines=len(lines), language=language, seconds=round(t.seconds, 4))
        debug(_LOG, "phoneme_lines", lines=lines)
        return lines
