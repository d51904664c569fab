"""
Audio Analysis Cache — cached analyzer output keyed by (file path, analyzer).

Stored at .data/analysis_cache.jsonl (override with SET_SEQUENCER_ANALYSIS_PATH),
one entry per line:

    {"file_path": "/music/a.flac", "analyzer": "essentia",
     "created_at": "2026-01-02T10:00:00+00:00", "features": {...}}

Two analyzers feed track profiles:
  stratum-dsp  — tempo and key   ({"bpm": 128.0, "key_camelot": "8A", ...})
  essentia     — energy/timbre descriptors (danceability, loudness_integrated,
                 loudness_range, onset_rate, rhythm_regularity,
                 spectral_centroid_mean, ...)

Usage:
    cache = AnalysisCache()
    cache.load_from_disk()
    features = cache.get(resolve_file_path(track.file_path), ANALYZER_ESSENTIA)
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote

from loguru import logger

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ANALYZER_STRATUM = "stratum-dsp"
ANALYZER_ESSENTIA = "essentia"

_REPO_ROOT = Path(__file__).resolve().parent.parent
CACHE_PATH = Path(
    os.environ.get("SET_SEQUENCER_ANALYSIS_PATH", _REPO_ROOT / ".data" / "analysis_cache.jsonl")
)


def resolve_file_path(raw_path: str) -> str:
    """
    Resolve a library file path to the form used as the cache key.

    Tries the raw path first; if that does not exist, tries the
    percent-decoded form.  Falls back to the raw path unchanged.
    """
    if not raw_path:
        return raw_path
    if os.path.exists(raw_path):
        return raw_path
    decoded = unquote(raw_path)
    if decoded != raw_path and os.path.exists(decoded):
        return decoded
    return raw_path


class AnalysisCache:
    """In-memory view of the analysis cache, most recent entry wins."""

    def __init__(self, cache_path: Path = CACHE_PATH) -> None:
        self._cache_path: Path = Path(cache_path)
        # (file_path, analyzer) -> (created_at, features)
        self._entries: dict[tuple[str, str], tuple[str, dict]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def put(
        self,
        file_path: str,
        analyzer: str,
        features: dict[str, Any],
        created_at: str = "",
    ) -> None:
        """Record an analysis result; older entries for the same key are ignored."""
        self._store(file_path, analyzer, features, created_at or datetime.now(timezone.utc).isoformat())

    def _store(self, file_path: str, analyzer: str, features: dict[str, Any], created_at: str) -> None:
        # undated entries carry "" and lose to any dated entry
        key = (file_path, analyzer)
        existing = self._entries.get(key)
        if existing is not None and existing[0] > created_at:
            return
        self._entries[key] = (created_at, dict(features))

    def get(self, file_path: str, analyzer: str) -> Optional[dict]:
        """Most recent cached features for a file, or None."""
        entry = self._entries.get((file_path, analyzer))
        return dict(entry[1]) if entry is not None else None

    # ------------------------------------------------------------------
    # Disk
    # ------------------------------------------------------------------

    def load_from_disk(self) -> int:
        """
        Load the JSONL cache into memory.

        Malformed lines are skipped with a warning.

        Returns:
            Number of entries read, or 0 if the file does not exist.
        """
        if not self._cache_path.exists():
            return 0

        count = 0
        self._entries = {}
        with self._cache_path.open("r", encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                    self._store(
                        entry["file_path"],
                        entry["analyzer"],
                        entry.get("features") or {},
                        entry.get("created_at") or "",
                    )
                    count += 1
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                    logger.warning(f"AnalysisCache: skipped line {line_no}: {exc}")

        logger.debug(f"AnalysisCache: loaded {count} entries from {self._cache_path}")
        return count

    def save(self) -> None:
        self._cache_path.parent.mkdir(parents=True, exist_ok=True)
        with self._cache_path.open("w", encoding="utf-8") as fh:
            for (file_path, analyzer), (created_at, features) in self._entries.items():
                fh.write(json.dumps({
                    "file_path": file_path,
                    "analyzer": analyzer,
                    "created_at": created_at,
                    "features": features,
                }, ensure_ascii=False) + "\n")
        logger.info(f"Analysis cache saved: {len(self._entries)} entries → {self._cache_path}")

    def __repr__(self) -> str:
        return f"AnalysisCache({len(self._entries)} entries, path={self._cache_path})"
