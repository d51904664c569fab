"""
Library Index — JSONL track store used by the sequencing tools.

One catalog record per line at .data/library_index.jsonl (override with
SET_SEQUENCER_INDEX_PATH).  Each record carries at least the fields the
sequencer needs (id, title, artist, genre, bpm, key, length, file_path) plus
a ``_text`` field that is a grep-optimized summary string.

Usage:
    index = LibraryIndex()
    stats = index.build(tracks)
    record  = index.get_by_id("12345")
    records = index.get_by_ids(["12345", "678"])
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from loguru import logger
from pydantic import ValidationError

from .models import TrackRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_REPO_ROOT = Path(__file__).resolve().parent.parent
INDEX_PATH = Path(
    os.environ.get("SET_SEQUENCER_INDEX_PATH", _REPO_ROOT / ".data" / "library_index.jsonl")
)
_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _fmt_duration(length_seconds: int) -> str:
    """Convert integer seconds to 'M:SS' string."""
    if not length_seconds:
        return "0:00"
    m, s = divmod(int(length_seconds), 60)
    return f"{m}:{s:02d}"


def _build_record(track: TrackRecord, indexed_at: str = "") -> dict:
    """Serialize one track to a JSONL record.  Pure function (no I/O)."""
    record: dict[str, Any] = {"_schema_version": _SCHEMA_VERSION}
    record.update(track.model_dump())
    record["duration"] = _fmt_duration(track.length)
    record["_text"] = _build_text_field(record)
    record["_indexed_at"] = indexed_at or datetime.now(timezone.utc).isoformat()
    return record


def _build_text_field(record: dict) -> str:
    """All searchable values in one space-separated string."""
    parts: list[str] = [
        record.get("artist", ""),
        record.get("title", ""),
        record.get("genre", ""),
        record.get("key", ""),
    ]
    bpm = record.get("bpm", 0)
    if bpm:
        parts.append(f"{bpm:.0f}bpm")
    return " ".join(p for p in parts if p)


def _record_to_track(record: dict) -> TrackRecord:
    if not isinstance(record, dict):
        raise TypeError(f"expected a JSON object, got {type(record).__name__}")
    fields = {k: v for k, v in record.items() if k in TrackRecord.model_fields}
    fields["id"] = str(fields.get("id", ""))
    return TrackRecord(**fields)


# ---------------------------------------------------------------------------
# LibraryIndex
# ---------------------------------------------------------------------------

class LibraryIndex:
    """
    Builds and queries a JSONL index of catalog tracks.

    * **Programmatic lookup** — ``get_by_id()`` / ``get_by_ids()`` use an
      in-memory dict populated by ``build()`` or ``load_from_disk()``.
    * **Search** — ``search()`` streams the file and matches ``_text``.
    """

    def __init__(self, index_path: Path = INDEX_PATH) -> None:
        self._record_path: Path = Path(index_path)
        self._by_id: dict[str, TrackRecord] = {}
        self._built = False

    def __len__(self) -> int:
        return len(self._by_id)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self, tracks: Iterable[TrackRecord]) -> dict[str, Any]:
        """
        Build (or rebuild) the JSONL index file from scratch.

        Returns:
            Stats dict::

                {"total": int, "index_path": str, "built_at": str}
        """
        self._record_path.parent.mkdir(parents=True, exist_ok=True)
        self._by_id = {}

        indexed_at = datetime.now(timezone.utc).isoformat()
        with self._record_path.open("w", encoding="utf-8") as fh:
            for track in tracks:
                fh.write(json.dumps(_build_record(track, indexed_at), ensure_ascii=False) + "\n")
                self._by_id[track.id] = track

        self._built = True
        logger.info(f"Library index built: {len(self._by_id)} tracks → {self._record_path}")
        return {
            "total": len(self._by_id),
            "index_path": str(self._record_path),
            "built_at": indexed_at,
        }

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query: str = "",
        genre: Optional[str] = None,
        limit: int = 20,
    ) -> list[TrackRecord]:
        """
        Search the JSONL index using grep-style matching against ``_text``.

        Reads the file line-by-line (streaming — never loads the whole file).
        """
        if not self._record_path.exists():
            return []

        q_lower = query.lower() if query else ""
        gen_lower = genre.lower() if genre else ""
        results: list[TrackRecord] = []

        with self._record_path.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if not isinstance(record, dict):
                    continue

                text = record.get("_text", "")
                genre_field = record.get("genre")
                if not isinstance(text, str) or (genre_field is not None and not isinstance(genre_field, str)):
                    continue
                if q_lower and q_lower not in text.lower():
                    continue
                if gen_lower and gen_lower not in (genre_field or "").lower():
                    continue

                try:
                    results.append(_record_to_track(record))
                except ValidationError:
                    continue
                if len(results) >= limit:
                    break

        return results

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_by_id(self, track_id: str) -> Optional[TrackRecord]:
        if not self._built:
            self.load_from_disk()
        return self._by_id.get(str(track_id))

    def get_by_ids(self, track_ids: Iterable[str]) -> list[TrackRecord]:
        """Records for the given ids in request order; unknown ids are skipped."""
        if not self._built:
            self.load_from_disk()
        return [self._by_id[str(tid)] for tid in track_ids if str(tid) in self._by_id]

    # ------------------------------------------------------------------
    # Freshness
    # ------------------------------------------------------------------

    def is_fresh(self, max_age_seconds: int = 3600) -> bool:
        """True if the index file exists and was written within ``max_age_seconds``."""
        if not self._record_path.exists():
            return False
        mtime = self._record_path.stat().st_mtime
        age = datetime.now(timezone.utc).timestamp() - mtime
        return age < max_age_seconds

    # ------------------------------------------------------------------
    # Load without rebuild
    # ------------------------------------------------------------------

    def load_from_disk(self) -> int:
        """
        Load the existing JSONL file into the in-memory index.

        Malformed lines are skipped with a warning.

        Returns:
            Number of records loaded, or 0 if the file does not exist.
        """
        self._built = True
        self._by_id = {}
        if not self._record_path.exists():
            return 0

        with self._record_path.open("r", encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    track = _record_to_track(json.loads(line))
                except (json.JSONDecodeError, ValidationError, TypeError) as exc:
                    logger.warning(f"LibraryIndex: skipped line {line_no}: {exc}")
                    continue
                self._by_id[track.id] = track

        logger.debug(f"LibraryIndex: loaded {len(self._by_id)} records from {self._record_path}")
        return len(self._by_id)

    def __repr__(self) -> str:
        status = f"{len(self._by_id)} records" if self._built else "not loaded"
        return f"LibraryIndex({status}, path={self._record_path})"
