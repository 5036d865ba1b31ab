"""
Record one spoken attempt at a target phrase and print the verdict.

Usage:
  python practice.py --target "¿Cuál es tu nombre?" --lang es
  python practice.py --target "good morning" --lang en --audio attempt.wav
  python practice.py --target "hola" --silence-ms 2000 --model base

Live mode reads the default input device; press ENTER to stop early.
With --audio the file is replayed as if it were the microphone.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from dataclasses import asdict
from pathlib import Path
from typing import List

_THIS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_THIS_DIR))

from speakscore.audio_io import FileMicrophone, SoundFileDecoder, WavRecorder  # noqa: E402
from speakscore.config import DEFAULT_LANG, SessionConfig  # noqa: E402
from speakscore.errors import SpeechPracticeError  # noqa: E402
from speakscore.session import PracticeResult, SpeechPracticeController  # noqa: E402
from speakscore.transcribe import WhisperTranscriber  # noqa: E402


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Speech practice: one attempt, one verdict.")
    ap.add_argument("--target", required=True, help="Phrase the learner should say")
    ap.add_argument("--lang", default=DEFAULT_LANG)
    ap.add_argument("--audio", type=Path, default=None, help="Replay this file instead of the microphone")
    ap.add_argument("--silence-ms", type=int, default=None)
    ap.add_argument("--hard-cap", type=float, default=None, help="Seconds before the attempt is cut off")
    ap.add_argument("--model", default=None, help="faster-whisper model (default: $WHISPER_MODEL or small)")
    ap.add_argument("--compute-type", default=None)
    ap.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap.parse_args()


def _session_config(args: argparse.Namespace) -> SessionConfig:
    base = SessionConfig.from_env()
    return SessionConfig(
        silence_timeout_ms=args.silence_ms if args.silence_ms is not None else base.silence_timeout_ms,
        hard_cap_seconds=args.hard_cap if args.hard_cap is not None else base.hard_cap_seconds,
    )


def _print_result(result: PracticeResult, as_json: bool) -> None:
    if as_json:
        payload = asdict(result)
        payload["error"] = getattr(result.error, "code", str(result.error)) if result.error else None
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
        return

    print(f"[practice] method={result.method}")
    if result.recognized_text:
        print(f"[practice] heard: \"{result.recognized_text}\" (confidence {result.confidence:.2f})")
    if result.audio_metrics is not None:
        am = result.audio_metrics
        print(f"[practice] audio: {am.duration:.2f}s rms={am.rms:.4f} zcr/s={am.zcr_per_sec:.0f}")
    if result.error is not None:
        print(f"[practice] no verdict: {getattr(result.error, 'code', '')} {result.error}")
        return

    ev = result.evaluation
    verdict = "PASS" if ev.passed else "TRY AGAIN"
    print(f"[practice] {verdict} score={ev.score}")
    if ev.reasons:
        print(f"[practice] reasons: {', '.join(ev.reasons)}")


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.audio is not None:
        microphone = FileMicrophone(args.audio)
    else:
        from speakscore.microphone import SoundDeviceMicrophone

        microphone = SoundDeviceMicrophone()

    results: List[PracticeResult] = []
    done = threading.Event()

    def on_result(result: PracticeResult) -> None:
        results.append(result)
        done.set()

    with SpeechPracticeController(
        microphone=microphone,
        transcriber=WhisperTranscriber(model_name=args.model, compute_type=args.compute_type),
        recorder=WavRecorder(),
        decoder=SoundFileDecoder(),
        on_result=on_result,
        config=_session_config(args),
    ) as controller:
        try:
            controller.start_recording(args.target, args.lang)
        except SpeechPracticeError as e:
            print(f"[practice] cannot start: {e.code} {e}")
            return 2

        print(f"[practice] say: \"{args.target}\"")
        if args.audio is None:
            stopper = threading.Thread(target=input, args=("[practice] recording... press ENTER to stop\n",), daemon=True)
            stopper.start()
            while not done.wait(0.1):
                if not stopper.is_alive():
                    controller.stop_recording()
                    break
        done.wait()

    _print_result(results[0], args.json)
    return 0 if results[0].evaluation is not None and results[0].evaluation.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
