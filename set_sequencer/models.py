"""
Pydantic models shared by the scoring and sequencing modules.

Everything here is request-scoped: built from a track record (plus optional
cached analysis), used to score and order a pool, then serialized.  Models
are frozen so a profile or plan can be shared between beams without copies.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Closed variants
# ---------------------------------------------------------------------------

class EnergyPhase(str, Enum):
    WARMUP = "warmup"
    BUILD = "build"
    PEAK = "peak"
    RELEASE = "release"


class EnergyCurvePreset(str, Enum):
    WARMUP_BUILD_PEAK_RELEASE = "warmup_build_peak_release"
    FLAT = "flat"
    PEAK_ONLY = "peak_only"


class SequencingPriority(str, Enum):
    BALANCED = "balanced"
    HARMONIC = "harmonic"
    ENERGY = "energy"
    GENRE = "genre"


class HarmonicMixingStyle(str, Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    ADVENTUROUS = "adventurous"


class GenreFamily(str, Enum):
    HOUSE = "house"
    TECHNO = "techno"
    BASS = "bass"
    DOWNTEMPO = "downtempo"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Track data
# ---------------------------------------------------------------------------

class TrackRecord(BaseModel):
    """Catalog record as handed over by the track store."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    artist: str = ""
    genre: str = ""
    bpm: float = 0.0
    key: str = ""
    length: int = 0  # seconds, 0 = unknown
    file_path: str = ""


class CamelotKey(BaseModel):
    """A position on the Camelot wheel: 1-12 plus A (minor) or B (major)."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(ge=1, le=12)
    letter: Literal["A", "B"]

    def __str__(self) -> str:
        return f"{self.number}{self.letter}"


class TrackProfile(BaseModel):
    """Scoring-ready view of one track."""

    model_config = ConfigDict(frozen=True)

    track: TrackRecord
    camelot_key: Optional[CamelotKey] = None
    key_display: str = "Unknown"
    bpm: float = 0.0
    energy: float = 0.0
    brightness: Optional[float] = None
    rhythm_regularity: Optional[float] = None
    loudness_range: Optional[float] = None
    canonical_genre: Optional[str] = None
    genre_family: GenreFamily = GenreFamily.OTHER

    @property
    def id(self) -> str:
        return self.track.id


# ---------------------------------------------------------------------------
# Scores and plans
# ---------------------------------------------------------------------------

def round_to_3_decimals(value: float) -> float:
    """Round half away from zero to 3 decimals."""
    scaled = abs(value) * 1000.0
    rounded = int(scaled + 0.5) / 1000.0
    return rounded if value >= 0 else -rounded


class AxisScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float
    label: str

    def to_dict(self) -> dict:
        return {"value": round_to_3_decimals(self.value), "label": self.label}


class TransitionScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: AxisScore
    bpm: AxisScore
    energy: AxisScore
    genre: AxisScore
    brightness: AxisScore
    rhythm: AxisScore
    composite: float
    key_relation: str
    bpm_adjustment_pct: float = 0.0
    pitch_shift_semitones: int = 0
    effective_to_key: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key.to_dict(),
            "bpm": self.bpm.to_dict(),
            "energy": self.energy.to_dict(),
            "genre": self.genre.to_dict(),
            "brightness": self.brightness.to_dict(),
            "rhythm": self.rhythm.to_dict(),
            "composite": round_to_3_decimals(self.composite),
        }


class CandidateTransition(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_index: int
    to_index: int
    scores: TransitionScores


class CandidatePlan(BaseModel):
    """An ordered, non-repeating track sequence with its consecutive transitions."""

    model_config = ConfigDict(frozen=True)

    ordered_ids: List[str]
    transitions: List[CandidateTransition] = Field(default_factory=list)

    @property
    def mean_composite(self) -> float:
        if not self.transitions:
            return 0.0
        return sum(t.scores.composite for t in self.transitions) / len(self.transitions)
