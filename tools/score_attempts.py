"""
Score recorded practice attempts listed in a manifest CSV.

Manifest columns: attempt_id, audio (path relative to the manifest or http(s) URL),
target_text, lang (optional, default es).

Env:
- MANIFEST (default: attempts.csv)
- PUBLIC_DIR (default: public)
- CACHE_DIR (default: .cache/speakscore/audio)
- MAX_ITEMS (default: 0 = all)
- WHISPER_MODEL (default: small)
- WHISPER_COMPUTE_TYPE (default: int8)
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

_THIS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_THIS_DIR))

from speakscore.pipeline import run_batch  # noqa: E402


def main() -> None:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"))

    manifest = Path(os.getenv("MANIFEST", "attempts.csv")).resolve()
    public_dir = Path(os.getenv("PUBLIC_DIR", "public")).resolve()
    cache_dir = Path(os.getenv("CACHE_DIR", ".cache/speakscore/audio")).resolve()
    max_items = int(os.getenv("MAX_ITEMS", "0"))

    run_batch(
        manifest_path=manifest,
        public_dir=public_dir,
        cache_dir=cache_dir,
        max_items=max_items,
    )


if __name__ == "__main__":
    main()
