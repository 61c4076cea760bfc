"""Tests for the espeak-ng phonemizer bridge (subprocess mocked)."""
from __future__ import annotations

import shutil
import subprocess
from types import SimpleNamespace

import pytest

from kokoro_pipe.core.config import PhonemizerConfig
from kokoro_pipe.core.errors import ErrorCode, PhonemizationError
from kokoro_pipe.tts import phonemizer as phonemizer_mod
from kokoro_pipe.tts.phonemizer import BasePhonemizer, EspeakPhonemizer, split_phoneme_lines


def _fake_run(stdout=b"", stderr=b"", returncode=0, calls=None, raises=None):
    def run(cmd, **kwargs):
        if calls is not None:
            calls.append((cmd, kwargs))
        if raises is not None:
            raise raises
        return SimpleNamespace(stdout=stdout, stderr=stderr, returncode=returncode)
    return run


class TestSplitLines:
    """Output normalization."""

    def test_crlf_and_trim(self):
        assert split_phoneme_lines("  həlˈoʊ\r\nwˈɜːld \r\n") == ["həlˈoʊ", "wˈɜːld"]

    def test_empty(self):
        assert split_phoneme_lines(" \n ") == []


class TestEspeakInvocation:
    """Command line and environment passed to espeak-ng."""

    def test_command_line(self, monkeypatch):
        calls = []
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(b"h\xc9\x99l\n", calls=calls))

        EspeakPhonemizer().phonemize("Hello", "en-us")

        cmd, kwargs = calls[0]
        assert cmd == ["espeak-ng", "--ipa=3", "-q", "-v", "en-us", "Hello"]
        assert "shell" not in kwargs
        assert kwargs["timeout"] == 30.0

    def test_text_is_a_single_argument(self, monkeypatch):
        """Quotes and shell metacharacters stay inside one argv element."""
        calls = []
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(b"x\n", calls=calls))
        text = 'say "hi"; rm -rf / $(whoami)'

        EspeakPhonemizer().phonemize(text, "en-us")

        assert calls[0][0][-1] == text

    def test_data_path_sets_environment(self, monkeypatch):
        calls = []
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(b"x\n", calls=calls))

        EspeakPhonemizer(data_path="/opt/espeak-data").phonemize("a", "en-gb")

        env = calls[0][1]["env"]
        assert env["ESPEAK_DATA_PATH"] == "/opt/espeak-data"

    def test_no_data_path_inherits_environment(self, monkeypatch):
        calls = []
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(b"x\n", calls=calls))

        EspeakPhonemizer().phonemize("a", "en-us")

        assert calls[0][1]["env"] is None

    def test_from_config(self):
        config = PhonemizerConfig(executable="/bin/espeak", data_path="/d", timeout_s=3.0)
        ph = EspeakPhonemizer.from_config(config)
        assert (ph.executable, ph.data_path, ph.timeout_s) == ("/bin/espeak", "/d", 3.0)

    def test_lines_returned(self, monkeypatch):
        out = "həlˈoʊ\r\nwˈɜːld\r\n".encode("utf-8")
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(out))

        assert EspeakPhonemizer().phonemize("Hello, world", "en-us") == ["həlˈoʊ", "wˈɜːld"]

    def test_empty_text_skips_subprocess(self, monkeypatch):
        calls = []
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(calls=calls))

        assert EspeakPhonemizer().phonemize("", "en-us") == []
        assert calls == []


class TestFailures:
    """Every failure surfaces as PhonemizationError."""

    def test_missing_executable(self, monkeypatch):
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(raises=FileNotFoundError("espeak-ng")))

        with pytest.raises(PhonemizationError, match="not found") as exc_info:
            EspeakPhonemizer().phonemize("a", "en-us")
        assert exc_info.value.code == ErrorCode.PHONEMIZATION_FAILED

    def test_non_zero_exit(self, monkeypatch):
        monkeypatch.setattr(
            phonemizer_mod.subprocess, "run", _fake_run(stderr=b"bad voice", returncode=1)
        )

        with pytest.raises(PhonemizationError, match="status 1") as exc_info:
            EspeakPhonemizer().phonemize("a", "xx-yy")
        assert exc_info.value.details["stderr"] == "bad voice"

    def test_timeout(self, monkeypatch):
        monkeypatch.setattr(
            phonemizer_mod.subprocess, "run",
            _fake_run(raises=subprocess.TimeoutExpired(cmd="espeak-ng", timeout=1.0)),
        )

        with pytest.raises(PhonemizationError, match="timed out"):
            EspeakPhonemizer(timeout_s=1.0).phonemize("a", "en-us")

    def test_invalid_utf8(self, monkeypatch):
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(stdout=b"\xff\xfe\xfa"))

        with pytest.raises(PhonemizationError, match="UTF-8"):
            EspeakPhonemizer().phonemize("a", "en-us")

    def test_permission_error(self, monkeypatch):
        monkeypatch.setattr(phonemizer_mod.subprocess, "run", _fake_run(raises=PermissionError("denied")))

        with pytest.raises(PhonemizationError, match="could not start"):
            EspeakPhonemizer().phonemize("a", "en-us")


class TestBaseClass:
    def test_base_is_abstract(self):
        with pytest.raises(NotImplementedError):
            BasePhonemizer().phonemize("a", "en-us")


@pytest.mark.slow
@pytest.mark.skipif(shutil.which("espeak-ng") is None, reason="espeak-ng not installed")
class TestRealEspeak:
    """Runs only where espeak-ng is installed."""

    def test_punctuation_is_dropped(self):
        lines = EspeakPhonemizer().phonemize("Hello, world.", "en-us")
        assert lines
        assert not any(ch in ",." for line in lines for ch in line)
