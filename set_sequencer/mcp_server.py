"""
FastMCP Server for the set sequencer

Exposes transition scoring, next-track candidate ranking and full set
building as MCP tools.  Tracks are addressed by catalog id; the catalog is
the JSONL library index and audio analysis comes from the analysis cache.

To connect over stdio, add to the client's MCP config:
{
  "mcpServers": {
    "set-sequencer": {
      "command": "uv",
      "args": ["run", "--project", "/path/to/set_sequencer", "python", "-m", "set_sequencer.mcp_server"],
      "env": {"SET_SEQUENCER_INDEX_PATH": "/path/to/library_index.jsonl"}
    }
  }
}

To run over HTTP (SSE):
  python -m set_sequencer.mcp_server --transport sse [--host 127.0.0.1] [--port 8000]
"""

import json
import signal
import sys
from typing import Annotated, Any, Dict, List, Optional, Tuple, Union

from fastmcp import FastMCP
from loguru import logger
from pydantic import BeforeValidator

from .analysis_cache import AnalysisCache
from .errors import SequencingError
from .library_index import LibraryIndex
from .models import EnergyPhase, HarmonicMixingStyle, SequencingPriority
from .profiles import ProfileBuilder
from .service import (
    DEFAULT_BEAM_WIDTH,
    DEFAULT_BPM_DRIFT_PCT,
    DEFAULT_CANDIDATE_LIMIT,
    MAX_BEAM_WIDTH,
    SequencingService,
)

MAX_CANDIDATE_LIMIT = 50

# ---------------------------------------------------------------------------
# Global state
# ---------------------------------------------------------------------------

mcp = FastMCP("Set Sequencer")

library_index: Optional[LibraryIndex] = None
analysis_cache: Optional[AnalysisCache] = None
service: Optional[SequencingService] = None
_initialized = False


async def _ensure_initialized():
    """Lazy-load the library index and analysis cache on first tool call."""
    global library_index, analysis_cache, service, _initialized
    if _initialized:
        return

    logger.info("Initializing Set Sequencer MCP server...")
    library_index = LibraryIndex()
    count = library_index.load_from_disk()
    logger.info(f"Library index loaded from disk: {count} records")

    analysis_cache = AnalysisCache()
    cached = analysis_cache.load_from_disk()
    logger.info(f"Analysis cache: {cached} entries loaded")

    service = SequencingService(ProfileBuilder(library_index, analysis_cache))
    _initialized = True
    logger.info(f"MCP server ready with {count} tracks")


# ---------------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------------

def _parse_json_str(v: Any) -> Any:
    """Parse JSON-encoded lists passed as strings; plain strings pass through.

    Clients sometimes send list arguments (energy_curve, track_ids) as a JSON
    string.  Preset names such as "flat" are not JSON and are left as-is.
    """
    if isinstance(v, str) and v.lstrip().startswith("["):
        try:
            return json.loads(v)
        except (json.JSONDecodeError, ValueError):
            return v
    return v


def _clamp_beam_width(beam_width: Optional[int], candidates: Optional[int] = None) -> int:
    """``beam_width`` wins over the older ``candidates`` alias; result is within 1..MAX_BEAM_WIDTH."""
    if beam_width is not None:
        width = beam_width
    elif candidates is not None:
        width = candidates
    else:
        width = DEFAULT_BEAM_WIDTH
    return max(1, min(MAX_BEAM_WIDTH, width))


def _clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_CANDIDATE_LIMIT
    return max(0, min(MAX_CANDIDATE_LIMIT, limit))


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------

@mcp.tool()
async def score_transition(
    source_track_id: str,
    target_track_id: str,
    energy_phase: Optional[EnergyPhase] = None,
    priority: SequencingPriority = SequencingPriority.BALANCED,
    use_master_tempo: bool = True,
    harmonic_style: HarmonicMixingStyle = HarmonicMixingStyle.BALANCED,
) -> Dict[str, Any]:
    """
    Score the transition between two tracks on every axis.

    Args:
        source_track_id: Track currently playing.
        target_track_id: Track to mix into.
        energy_phase: Phase of the set the transition happens in
            (warmup, build, peak, release). Optional.
        priority: Weighting preset - balanced, harmonic, energy or genre.
        use_master_tempo: When false, tempo changes also shift the key.
        harmonic_style: conservative, balanced or adventurous key tolerance.

    Returns:
        Per-axis values and labels, composite score, key relation and BPM adjustment.
    """
    await _ensure_initialized()
    try:
        return service.score_transition(
            source_track_id,
            target_track_id,
            energy_phase=energy_phase,
            priority=priority,
            master_tempo=use_master_tempo,
            harmonic_style=harmonic_style,
        )
    except SequencingError as e:
        return {"error": str(e)}


@mcp.tool()
async def query_transition_candidates(
    source_track_id: str,
    pool_track_ids: Annotated[List[str], BeforeValidator(_parse_json_str)],
    target_bpm: Optional[float] = None,
    energy_phase: Optional[EnergyPhase] = None,
    priority: SequencingPriority = SequencingPriority.BALANCED,
    use_master_tempo: bool = True,
    harmonic_style: HarmonicMixingStyle = HarmonicMixingStyle.BALANCED,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Rank a pool of tracks as the next track after a source track.

    Args:
        source_track_id: Track currently playing (excluded from the pool).
        pool_track_ids: Candidate track IDs.
        target_bpm: Score candidates as if played at this tempo. Optional.
        energy_phase: Phase of the set (warmup, build, peak, release). Optional.
        priority: balanced, harmonic, energy or genre.
        use_master_tempo: When false, tempo changes also shift the key.
        harmonic_style: conservative, balanced or adventurous.
        limit: Max candidates returned (default 10, max 50).

    Returns:
        Ranked candidates with scores; play_at_bpm and effective_key when target_bpm is given.
    """
    await _ensure_initialized()
    try:
        return service.query_transition_candidates(
            source_track_id,
            pool_track_ids,
            target_bpm=target_bpm,
            energy_phase=energy_phase,
            priority=priority,
            master_tempo=use_master_tempo,
            harmonic_style=harmonic_style,
            limit=_clamp_limit(limit),
        )
    except SequencingError as e:
        return {"error": str(e)}


@mcp.tool()
async def build_set(
    track_ids: Annotated[List[str], BeforeValidator(_parse_json_str)],
    target_tracks: int,
    priority: SequencingPriority = SequencingPriority.BALANCED,
    energy_curve: Annotated[Optional[Union[str, List[EnergyPhase]]], BeforeValidator(_parse_json_str)] = None,
    opening_track_id: Optional[str] = None,
    beam_width: Optional[int] = None,
    candidates: Optional[int] = None,
    use_master_tempo: bool = True,
    harmonic_style: HarmonicMixingStyle = HarmonicMixingStyle.BALANCED,
    bpm_drift_pct: float = DEFAULT_BPM_DRIFT_PCT,
    bpm_range: Optional[Tuple[float, float]] = None,
) -> Dict[str, Any]:
    """
    Build ordered candidate sets from a pool of tracks.

    Args:
        track_ids: Pool of track IDs (duplicates ignored).
        target_tracks: Tracks per set (capped at the pool size).
        priority: balanced, harmonic, energy or genre.
        energy_curve: Preset name (warmup_build_peak_release, flat, peak_only)
            or one phase per position. Default warmup_build_peak_release.
        opening_track_id: Force the first track. Must be in track_ids.
        beam_width: Number of candidate sets / search width (1-8, default 3).
            1 uses the greedy builder.
        candidates: Deprecated alias for beam_width.
        use_master_tempo: When false, tempo changes also shift the key.
        harmonic_style: conservative, balanced or adventurous.
        bpm_drift_pct: Total tempo drift allowed from the opening track, in percent.
        bpm_range: (start_bpm, end_bpm) to plan a tempo per position. Optional.

    Returns:
        Labelled candidate sets with per-track and per-transition detail.
    """
    await _ensure_initialized()
    try:
        return service.build_set(
            track_ids,
            target_tracks,
            priority=priority,
            energy_curve=energy_curve,
            start_track_id=opening_track_id,
            beam_width=_clamp_beam_width(beam_width, candidates),
            master_tempo=use_master_tempo,
            harmonic_style=harmonic_style,
            bpm_drift_pct=bpm_drift_pct,
            bpm_range=bpm_range,
        )
    except SequencingError as e:
        return {"error": str(e)}


@mcp.tool()
async def search_library(
    query: str = "",
    genre: Optional[str] = None,
    limit: int = 20,
) -> Dict[str, Any]:
    """
    Search the library index to find track IDs for the other tools.

    Args:
        query: Text matched against artist, title, genre, key and BPM.
        genre: Genre substring filter. Optional.
        limit: Max results (default 20, max 200).

    Returns:
        Matching tracks with id, artist, title, genre, bpm, key.
    """
    await _ensure_initialized()
    tracks = library_index.search(query=query, genre=genre, limit=max(1, min(200, limit)))
    return {
        "count": len(tracks),
        "tracks": [
            {
                "id": t.id,
                "artist": t.artist,
                "title": t.title,
                "genre": t.genre,
                "bpm": t.bpm,
                "key": t.key,
            }
            for t in tracks
        ],
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server."""
    import argparse

    def handle_shutdown(sig, frame):
        logger.info("Shutting down MCP server...")
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    parser = argparse.ArgumentParser()
    parser.add_argument("--transport", default="stdio", choices=["stdio", "sse"])
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    logger.info("Starting Set Sequencer MCP Server...")

    if args.transport == "sse":
        mcp.run(transport="sse", host=args.host, port=args.port)
    else:
        mcp.run()


if __name__ == "__main__":
    main()
