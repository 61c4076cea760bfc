"""
Command-Line Interface for kokoro-pipe.

Inspect the text pipeline or synthesize a WAV file without writing code.

Usage Examples:
    # Phonemes for a sentence
    kokoro-pipe "Dr. Smith paid $3.50." --phonemes

    # Token ids, as JSON
    kokoro-pipe --text "Hello, world!" --tokens --json

    # Tokenize an already phonemized string (no espeak-ng call)
    kokoro-pipe --text "həlˈoʊ" --from-phonemes --tokens

    # One item per line
    kokoro-pipe --file inputs.txt --phonemes --json

    # Synthesize to a WAV file
    kokoro-pipe "Hello there." --model models/kokoro-v1.0.onnx --voice af_heart --out hello.wav

Environment Variables:
    KOKORO_PIPE_SETTINGS: Settings file (default: config/settings.yaml)
    KOKORO_PIPE_ESPEAK: espeak-ng executable
    ESPEAK_DATA_PATH: espeak-ng data directory
    KOKORO_PIPE_MODEL: ONNX model path
    KOKORO_PIPE_LOG_LEVEL: 1-4
"""

from __future__ import annotations

import argparse
import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from kokoro_pipe.core.config import Defaults, PipelineConfig, Settings, default_settings, load_settings
from kokoro_pipe.core.errors import KokoroError
from kokoro_pipe.core.logging import configure_logging, fail, get_logger, info
from kokoro_pipe.core.metrics import metrics
from kokoro_pipe.tts.model import BaseInferenceBackend, create_backend
from kokoro_pipe.tts.phonemizer import BasePhonemizer, EspeakPhonemizer
from kokoro_pipe.tts.pipeline import TextPipeline
from kokoro_pipe.utils.audio import write_wav


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="kokoro-pipe", description="Kokoro text pipeline and synthesis CLI")

    parser.add_argument("text_pos", nargs="?", help="Text to process (positional)")
    parser.add_argument("--text", help="Text to process")
    parser.add_argument("--file", help="Batch input file (1 line = 1 item)")
    parser.add_argument("--settings", help="Settings YAML (default: $KOKORO_PIPE_SETTINGS or config/settings.yaml)")

    parser.add_argument("--phonemes", action="store_true", help="Print phonemes")
    parser.add_argument("--tokens", action="store_true", help="Print token ids")
    parser.add_argument("--from-phonemes", action="store_true",
                        help="Treat the input as phonemes and skip the phonemizer (not with --out)")
    parser.add_argument("--json", action="store_true", help="Print a JSON summary")
    parser.add_argument("--language", help="Language code override (e.g. en-gb)")

    parser.add_argument("--model", help="ONNX model path override")
    parser.add_argument("--voice", help="Voice name (in engine.voices_dir) or .npy path")
    parser.add_argument("--speed", type=float, default=Defaults.SPEED, help="Speech speed (default: 1.0)")
    parser.add_argument("--out", help="Output WAV path (file, or directory with --file)")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus metrics at the end")

    return parser.parse_args(argv)


def _load_texts(args: argparse.Namespace) -> List[str]:
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        lines = Path(args.file).read_text(encoding="utf-8").splitlines()
        items = [line.strip() for line in lines if line.strip()]
        if not items:
            raise SystemExit("Input file is empty.")
        return items

    if not text:
        raise SystemExit("Provide --text or a positional text.")
    return [text]


def _resolve_output_paths(args: argparse.Namespace, count: int) -> List[Path]:
    if args.file:
        out_dir = Path(args.out)
        return [out_dir / f"item_{i + 1:03d}.wav" for i in range(count)]
    return [Path(args.out)]


def _load_cli_settings(args: argparse.Namespace) -> Settings:
    path = args.settings or os.getenv("KOKORO_PIPE_SETTINGS") or "config/settings.yaml"
    if args.settings or Path(path).exists():
        settings = load_settings(path)
    else:
        settings = default_settings()

    raw: Dict[str, Any] = copy.deepcopy(settings.raw)
    if args.language:
        raw.setdefault("phonemizer", {})["language"] = args.language
    if args.model:
        raw.setdefault("engine", {})["model_path"] = args.model
    return Settings(raw=raw)


def _make_phonemizer(config: PipelineConfig) -> BasePhonemizer:
    return EspeakPhonemizer.from_config(config.phonemizer)


def _make_backend(config: PipelineConfig) -> BaseInferenceBackend:
    return create_backend(config.engine)


def _describe(pipeline: TextPipeline, text: str, args: argparse.Namespace) -> Dict[str, Any]:
    if args.from_phonemes:
        phonemes = text
        tokens = pipeline.tokenize_phonemes(text)
    else:
        result = pipeline.run(text)
        phonemes, tokens = result.phonemes, result.tokens

    item: Dict[str, Any] = {"text_len": len(text), "token_count": len(tokens)}
    if args.phonemes or not args.tokens:
        item["phonemes"] = phonemes
    if args.tokens:
        item["tokens"] = tokens
    return item


def _print_item(item: Dict[str, Any]) -> None:
    if "phonemes" in item:
        print(item["phonemes"])
    if "tokens" in item:
        print(" ".join(str(t) for t in item["tokens"]))


def _synthesize(settings: Settings, config: PipelineConfig, texts: List[str], args, log) -> List[Dict[str, Any]]:
    from kokoro_pipe.services.synthesis import SynthesisService

    if not args.voice:
        raise SystemExit("--voice is required with --out.")
    if args.from_phonemes:
        raise SystemExit("--from-phonemes cannot be combined with --out.")

    out_paths = _resolve_output_paths(args, len(texts))
    results = []
    with SynthesisService(settings, phonemizer=_make_phonemizer(config), backend=_make_backend(config)) as service:
        for text, out_path in zip(texts, out_paths):
            info(log, "synth_start", chars=len(text), out=str(out_path))
            res = service.synthesize(text, args.voice, speed=args.speed)
            write_wav(out_path, res.samples, res.sample_rate)
            results.append({
                "out": str(out_path),
                "samples": int(res.samples.shape[0]),
                "sample_rate": res.sample_rate,
                "segments": res.segments,
            })
    return results


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        0 on success, 1 when the pipeline or synthesis raised a KokoroError.
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("kokoro-pipe.cli")

    texts = _load_texts(args)
    settings = _load_cli_settings(args)

    try:
        config = settings.get_pipeline_config()
        if args.out:
            payload = {"ok": True, "items": _synthesize(settings, config, texts, args, log)}
        else:
            pipeline = TextPipeline.from_config(config, phonemizer=_make_phonemizer(config))
            payload = {"ok": True, "items": [_describe(pipeline, t, args) for t in texts]}
    except KokoroError as exc:
        fail(log, "cli_failed", code=exc.code, error=exc.message)
        if args.json:
            print(json.dumps(exc.to_dict(), ensure_ascii=False))
        else:
            print(f"error: {exc.message}")
        return 1

    if args.json:
        print(json.dumps(payload, ensure_ascii=False))
    elif args.out:
        for item in payload["items"]:
            print(f"{item['out']} ({item['samples']} samples @ {item['sample_rate']} Hz)")
    else:
        for item in payload["items"]:
            _print_item(item)

    if args.metrics:
        content, _ = metrics.get_metrics_response()
        print(content.decode("utf-8"))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
