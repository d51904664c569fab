"""
Track Profile Builder

Merges a catalog track record with optional cached audio analysis into a
scoring-ready TrackProfile.  Analyzer values take priority over catalog
values; anything missing or malformed degrades to the catalog value or to
"absent", so a profile is always produced.
"""

from typing import Any, Iterable, List, Optional

from .analysis_cache import ANALYZER_ESSENTIA, ANALYZER_STRATUM, resolve_file_path
from .camelot import CamelotWheel
from .errors import TrackNotFoundError
from .genre import canonicalize_genre, genre_family
from .models import TrackProfile, TrackRecord


# BPM proxy normalization (typical club tempo range, 95-145)
BPM_PROXY_FLOOR = 95.0
BPM_PROXY_RANGE = 50.0

# Essentia descriptor normalization bounds
DANCEABILITY_MAX = 3.0
LOUDNESS_FLOOR_LUFS = -30.0
LOUDNESS_RANGE_LUFS = 30.0
ONSET_RATE_MAX = 10.0

# Composite energy weights
ENERGY_W_DANCE = 0.4
ENERGY_W_LOUDNESS = 0.3
ENERGY_W_ONSET = 0.3


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def compute_track_energy(descriptors: Optional[dict], bpm: float) -> float:
    """
    Energy in 0-1.

    Uses the danceability / integrated loudness / onset rate composite when all
    three descriptors are cached, otherwise a BPM-derived proxy.
    """
    bpm_proxy = _clamp((bpm - BPM_PROXY_FLOOR) / BPM_PROXY_RANGE)
    if not descriptors:
        return bpm_proxy

    dance = _as_float(descriptors.get("danceability"))
    loudness = _as_float(descriptors.get("loudness_integrated"))
    onset = _as_float(descriptors.get("onset_rate"))
    if dance is None or loudness is None or onset is None:
        return bpm_proxy

    return _clamp(
        ENERGY_W_DANCE * _clamp(dance / DANCEABILITY_MAX)
        + ENERGY_W_LOUDNESS * _clamp((loudness - LOUDNESS_FLOOR_LUFS) / LOUDNESS_RANGE_LUFS)
        + ENERGY_W_ONSET * _clamp(onset / ONSET_RATE_MAX)
    )


def build_track_profile(
    track: TrackRecord,
    tempo_analysis: Optional[dict] = None,
    descriptor_analysis: Optional[dict] = None,
) -> TrackProfile:
    """
    Build a profile from a track record plus cached analyzer output.

    Args:
        track:               Catalog record.
        tempo_analysis:      stratum-dsp features (``bpm``, ``key_camelot``).
        descriptor_analysis: essentia features (danceability, loudness, ...).
    """
    tempo_analysis = tempo_analysis or {}
    descriptor_analysis = descriptor_analysis or {}

    analyzed_bpm = _as_float(tempo_analysis.get("bpm"))
    bpm = max(0.0, analyzed_bpm if analyzed_bpm is not None else (track.bpm or 0.0))

    analyzed_key = tempo_analysis.get("key_camelot")
    camelot_key = CamelotWheel.parse(analyzed_key) if isinstance(analyzed_key, str) else None
    if camelot_key is None:
        camelot_key = CamelotWheel.resolve(track.key)

    if camelot_key is not None:
        key_display = CamelotWheel.format(camelot_key)
    else:
        key_display = track.key if track.key.strip() else "Unknown"

    canonical = canonicalize_genre(track.genre)

    return TrackProfile(
        track=track,
        camelot_key=camelot_key,
        key_display=key_display,
        bpm=bpm,
        energy=compute_track_energy(descriptor_analysis, bpm),
        brightness=_as_float(descriptor_analysis.get("spectral_centroid_mean")),
        rhythm_regularity=_as_float(descriptor_analysis.get("rhythm_regularity")),
        loudness_range=_as_float(descriptor_analysis.get("loudness_range")),
        canonical_genre=canonical,
        genre_family=genre_family(canonical),
    )


class ProfileBuilder:
    """
    Builds profiles by track id from a track store and an analysis cache.

    ``track_store`` needs ``get_by_id`` / ``get_by_ids`` (LibraryIndex);
    ``analysis_cache`` needs ``get(file_path, analyzer)`` (AnalysisCache) and
    may be None, in which case catalog values are used throughout.
    """

    def __init__(self, track_store, analysis_cache=None):
        self.track_store = track_store
        self.analysis_cache = analysis_cache

    def profile_for(self, track: TrackRecord) -> TrackProfile:
        if self.analysis_cache is None or not track.file_path:
            return build_track_profile(track)
        cache_key = resolve_file_path(track.file_path)
        return build_track_profile(
            track,
            tempo_analysis=self.analysis_cache.get(cache_key, ANALYZER_STRATUM),
            descriptor_analysis=self.analysis_cache.get(cache_key, ANALYZER_ESSENTIA),
        )

    def get(self, track_id: str) -> TrackProfile:
        track = self.track_store.get_by_id(track_id)
        if track is None:
            raise TrackNotFoundError(track_id)
        return self.profile_for(track)

    def get_many(self, track_ids: Iterable[str]) -> List[TrackProfile]:
        """Profiles for the ids the store knows about; unknown ids are skipped."""
        return [self.profile_for(t) for t in self.track_store.get_by_ids(list(track_ids))]
