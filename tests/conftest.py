"""Shared builders for track records and profiles."""

import pytest

from set_sequencer.camelot import CamelotWheel
from set_sequencer.genre import canonicalize_genre, genre_family
from set_sequencer.models import TrackProfile, TrackRecord


def _make_track(track_id: str, **fields) -> TrackRecord:
    fields.setdefault("title", f"Track {track_id}")
    fields.setdefault("artist", "Artist")
    return TrackRecord(id=track_id, **fields)


def _make_profile(
    track_id: str,
    key: str = "8A",
    bpm: float = 128.0,
    energy: float = 0.5,
    genre: str = "Techno",
    brightness=None,
    rhythm=None,
    loudness_range=None,
    length: int = 0,
) -> TrackProfile:
    camelot_key = CamelotWheel.resolve(key)
    canonical = canonicalize_genre(genre)
    return TrackProfile(
        track=_make_track(track_id, genre=genre, bpm=bpm, key=key, length=length),
        camelot_key=camelot_key,
        key_display=str(camelot_key) if camelot_key else (key or "Unknown"),
        bpm=bpm,
        energy=energy,
        brightness=brightness,
        rhythm_regularity=rhythm,
        loudness_range=loudness_range,
        canonical_genre=canonical,
        genre_family=genre_family(canonical),
    )


@pytest.fixture()
def make_track():
    return _make_track


@pytest.fixture()
def make_profile():
    return _make_profile


@pytest.fixture()
def club_pool():
    """Eight techno/house profiles with mixed keys, tempos and energies."""
    return [
        _make_profile("t01", key="8A", bpm=124.0, energy=0.30, genre="Deep House"),
        _make_profile("t02", key="9A", bpm=125.0, energy=0.40, genre="House"),
        _make_profile("t03", key="9B", bpm=126.0, energy=0.50, genre="Tech House"),
        _make_profile("t04", key="10A", bpm=127.0, energy=0.60, genre="Techno"),
        _make_profile("t05", key="10B", bpm=128.0, energy=0.70, genre="Techno"),
        _make_profile("t06", key="11A", bpm=130.0, energy=0.80, genre="Hard Techno"),
        _make_profile("t07", key="3B", bpm=132.0, energy=0.90, genre="Techno"),
        _make_profile("t08", key="7A", bpm=126.0, energy=0.45, genre="Minimal"),
    ]
