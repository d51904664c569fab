"""
Transition Scoring

Six independent axis scorers (key, BPM, energy, genre, brightness, rhythm),
a priority-weighted composite and the harmonic-style gate that penalizes
weak key matches.  Every function here is pure and total: missing data
produces a documented neutral score and a label saying so, never an error.

Composite = sum(weight * value) / sum(weight) over the axes that have data;
brightness and rhythm drop out of both sums when either track lacks the
descriptor.
"""

import math
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .camelot import CamelotWheel
from .models import (
    AxisScore,
    CamelotKey,
    EnergyPhase,
    GenreFamily,
    HarmonicMixingStyle,
    SequencingPriority,
    TrackProfile,
    TransitionScores,
)


_WHEEL = CamelotWheel()

# BPM decay: value = exp(-k * pct^2)
BPM_DECAY = 0.019

# (upper bound of pct band, label); the last band is open-ended
BPM_BANDS = (
    (2.0, "Seamless"),
    (4.0, "Comfortable"),
    (6.0, "Noticeable"),
    (9.0, "Creative transition needed"),
)

# Brightness axis thresholds (Hz of spectral centroid)
BRIGHTNESS_SIMILAR_HZ = 300.0
BRIGHTNESS_SHIFT_HZ = 800.0
BRIGHTNESS_JUMP_HZ = 1500.0

# Rhythm regularity thresholds
RHYTHM_MATCHED_DELTA = 0.1
RHYTHM_MANAGEABLE_DELTA = 0.25
RHYTHM_CHALLENGING_DELTA = 0.5

# Loudness-range boosts on the energy axis (dB)
DYNAMIC_BOUNDARY_LRA = 8.0
SUSTAINED_PEAK_LRA = 4.0

GENRE_STREAK_CAP = 5
GENRE_EARLY_SWITCH_CAP = 2


# ---------------------------------------------------------------------------
# Priority weights
# ---------------------------------------------------------------------------

class PriorityWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: float
    bpm: float
    energy: float
    genre: float
    brightness: float
    rhythm: float


PRIORITY_WEIGHTS: Dict[SequencingPriority, PriorityWeights] = {
    SequencingPriority.BALANCED: PriorityWeights(key=0.30, bpm=0.20, energy=0.18, genre=0.17, brightness=0.08, rhythm=0.07),
    SequencingPriority.HARMONIC: PriorityWeights(key=0.48, bpm=0.18, energy=0.12, genre=0.08, brightness=0.08, rhythm=0.06),
    SequencingPriority.ENERGY: PriorityWeights(key=0.12, bpm=0.18, energy=0.42, genre=0.12, brightness=0.08, rhythm=0.08),
    SequencingPriority.GENRE: PriorityWeights(key=0.18, bpm=0.18, energy=0.12, genre=0.38, brightness=0.08, rhythm=0.06),
}


def priority_weights(priority: SequencingPriority) -> PriorityWeights:
    return PRIORITY_WEIGHTS[SequencingPriority(priority)]


# ---------------------------------------------------------------------------
# Harmonic-style policy
# ---------------------------------------------------------------------------

class HarmonicStylePolicy(BaseModel):
    """
    Minimum key-axis value per style and phase, plus the composite multiplier
    applied when a transition falls below it.  ``None`` phase means "no
    phase preference".
    """

    model_config = ConfigDict(frozen=True)

    thresholds: Dict[HarmonicMixingStyle, Dict[Optional[EnergyPhase], float]]
    penalty_factors: Dict[HarmonicMixingStyle, float]

    def min_key(self, style: HarmonicMixingStyle, phase: Optional[EnergyPhase]) -> float:
        return self.thresholds[style][phase]

    def penalty_factor(self, style: HarmonicMixingStyle) -> float:
        return self.penalty_factors[style]


DEFAULT_HARMONIC_POLICY = HarmonicStylePolicy(
    thresholds={
        HarmonicMixingStyle.CONSERVATIVE: {
            EnergyPhase.WARMUP: 0.8,
            EnergyPhase.BUILD: 0.8,
            EnergyPhase.PEAK: 0.8,
            EnergyPhase.RELEASE: 0.8,
            None: 0.8,
        },
        HarmonicMixingStyle.BALANCED: {
            EnergyPhase.WARMUP: 0.45,
            EnergyPhase.BUILD: 0.45,
            EnergyPhase.PEAK: 0.45,
            EnergyPhase.RELEASE: 0.45,
            None: 0.45,
        },
        HarmonicMixingStyle.ADVENTUROUS: {
            EnergyPhase.WARMUP: 0.45,
            EnergyPhase.BUILD: 0.1,
            EnergyPhase.PEAK: 0.1,
            EnergyPhase.RELEASE: 0.45,
            None: 0.1,
        },
    },
    penalty_factors={
        HarmonicMixingStyle.CONSERVATIVE: 0.1,
        HarmonicMixingStyle.BALANCED: 0.5,
        HarmonicMixingStyle.ADVENTUROUS: 0.5,
    },
)


# ---------------------------------------------------------------------------
# Axis scorers
# ---------------------------------------------------------------------------

def score_key_axis(from_key: Optional[CamelotKey], to_key: Optional[CamelotKey]) -> AxisScore:
    return _WHEEL.score(from_key, to_key)


def score_bpm_axis(from_bpm: float, to_bpm: float) -> AxisScore:
    """Continuous decay over the percentage tempo change relative to ``from_bpm``."""
    if from_bpm <= 0:
        return AxisScore(value=0.5, label="Unknown BPM")

    delta = abs(from_bpm - to_bpm)
    pct = delta / from_bpm * 100.0
    value = min(1.0, max(0.0, math.exp(-BPM_DECAY * pct * pct)))

    band = "Jarring"
    for upper, name in BPM_BANDS:
        if pct < upper:
            band = name
            break
    return AxisScore(value=value, label=f"{band} ({pct:.1f}%, {delta:.1f} BPM)")


def score_energy_axis(
    from_energy: float,
    to_energy: float,
    from_phase: Optional[EnergyPhase],
    to_phase: Optional[EnergyPhase],
    to_loudness_range: Optional[float],
) -> AxisScore:
    """Does the energy change suit the destination position's phase?"""
    delta = to_energy - from_energy

    if to_phase is None:
        value, label = 1.0, "No phase preference"
    elif to_phase == EnergyPhase.WARMUP:
        met = -0.03 <= delta <= 0.12
        value, label = (1.0, "Stable/slight rise (warmup phase)") if met else (0.5, "Too abrupt for warmup")
    elif to_phase == EnergyPhase.BUILD:
        met = delta >= 0.03
        value, label = (1.0, "Rising (build phase)") if met else (0.3, "Not rising (build phase)")
    elif to_phase == EnergyPhase.PEAK:
        met = to_energy >= 0.65 and abs(delta) <= 0.10
        value, label = (1.0, "High and stable (peak phase)") if met else (0.5, "Not high/stable (peak phase)")
    else:
        met = delta <= -0.03
        value, label = (1.0, "Dropping (release phase)") if met else (0.3, "Not dropping (release phase)")

    is_phase_boundary = from_phase is not None and to_phase is not None and from_phase != to_phase
    if to_phase is not None and to_loudness_range is not None:
        if is_phase_boundary and to_loudness_range > DYNAMIC_BOUNDARY_LRA:
            value = min(1.0, value + 0.1)
            label += " + dynamic boundary boost"
        elif (
            not is_phase_boundary
            and to_phase == EnergyPhase.PEAK
            and to_loudness_range < SUSTAINED_PEAK_LRA
        ):
            value = min(1.0, value + 0.05)
            label += " + sustained-peak consistency boost"

    return AxisScore(value=value, label=label)


def score_genre_axis(
    from_genre: Optional[str],
    to_genre: Optional[str],
    from_family: GenreFamily,
    to_family: GenreFamily,
    genre_run_length: int = 0,
) -> AxisScore:
    """
    Canonical-genre match with a streak adjustment.

    ``genre_run_length`` counts the consecutive prior transitions that stayed in
    the current family.  Staying in family earns a bonus while the streak is
    short; leaving it right after it formed costs a penalty.
    """
    if not from_genre or not to_genre:
        return AxisScore(value=0.5, label="Unknown genre")

    same_genre = from_genre.lower() == to_genre.lower()
    same_family = from_family == to_family and from_family != GenreFamily.OTHER

    if same_genre:
        value, label = 1.0, "Same genre"
    elif same_family:
        value, label = 0.7, "Same family"
    else:
        value, label = 0.3, "Different families"

    compatible = same_genre or same_family
    if compatible and from_family != GenreFamily.OTHER and 0 < genre_run_length < GENRE_STREAK_CAP:
        value = min(1.0, value + 0.1)
        label += " + streak bonus"
    elif not compatible and 0 < genre_run_length < GENRE_EARLY_SWITCH_CAP:
        value = max(0.0, value - 0.1)
        label += " + early switch penalty"

    return AxisScore(value=value, label=label)


def score_brightness_axis(from_centroid: Optional[float], to_centroid: Optional[float]) -> AxisScore:
    if from_centroid is None or to_centroid is None:
        return AxisScore(value=0.5, label="Unknown brightness")

    delta = abs(to_centroid - from_centroid)
    if delta < BRIGHTNESS_SIMILAR_HZ:
        return AxisScore(value=1.0, label=f"Similar timbre (delta {delta:.0f} Hz)")
    if delta < BRIGHTNESS_SHIFT_HZ:
        return AxisScore(value=0.7, label=f"Noticeable brightness shift (delta {delta:.0f} Hz)")
    if delta < BRIGHTNESS_JUMP_HZ:
        return AxisScore(value=0.4, label=f"Large timbral jump (delta {delta:.0f} Hz)")
    return AxisScore(value=0.2, label=f"Jarring brightness jump (delta {delta:.0f} Hz)")


def score_rhythm_axis(from_regularity: Optional[float], to_regularity: Optional[float]) -> AxisScore:
    if from_regularity is None or to_regularity is None:
        return AxisScore(value=0.5, label="Unknown groove")

    delta = abs(to_regularity - from_regularity)
    if delta < RHYTHM_MATCHED_DELTA:
        return AxisScore(value=1.0, label=f"Matching groove (delta {delta:.2f})")
    if delta < RHYTHM_MANAGEABLE_DELTA:
        return AxisScore(value=0.7, label=f"Manageable groove shift (delta {delta:.2f})")
    if delta < RHYTHM_CHALLENGING_DELTA:
        return AxisScore(value=0.4, label=f"Challenging groove shift (delta {delta:.2f})")
    return AxisScore(value=0.2, label=f"Groove clash (delta {delta:.2f})")


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------

def composite_score(
    key_score: float,
    bpm_score: float,
    energy_score: float,
    genre_score: float,
    brightness_score: Optional[float],
    rhythm_score: Optional[float],
    priority: SequencingPriority = SequencingPriority.BALANCED,
) -> float:
    weights = priority_weights(priority)
    weighted_sum = (
        weights.key * key_score
        + weights.bpm * bpm_score
        + weights.energy * energy_score
        + weights.genre * genre_score
    )
    total_weight = weights.key + weights.bpm + weights.energy + weights.genre

    if brightness_score is not None:
        weighted_sum += weights.brightness * brightness_score
        total_weight += weights.brightness
    if rhythm_score is not None:
        weighted_sum += weights.rhythm * rhythm_score
        total_weight += weights.rhythm

    if total_weight <= 0:
        return 0.0
    return weighted_sum / total_weight


def pitch_shift_semitones(native_bpm: float, play_bpm: float) -> int:
    """Semitones a track moves when played at ``play_bpm`` without master tempo."""
    if native_bpm <= 0 or play_bpm <= 0:
        return 0
    shift = 12.0 * math.log2(play_bpm / native_bpm)
    # round half away from zero
    return int(math.copysign(math.floor(abs(shift) + 0.5), shift))


def effective_key(
    key: Optional[CamelotKey],
    native_bpm: float,
    play_bpm: float,
    master_tempo: bool,
) -> Tuple[Optional[CamelotKey], int]:
    """(key heard when played at ``play_bpm``, semitone shift)."""
    shift = pitch_shift_semitones(native_bpm, play_bpm)
    if master_tempo or shift == 0 or key is None:
        return key, shift
    return CamelotWheel.transpose(key, shift), shift


def score_transition_profiles(
    from_profile: TrackProfile,
    to_profile: TrackProfile,
    from_phase: Optional[EnergyPhase] = None,
    to_phase: Optional[EnergyPhase] = None,
    priority: SequencingPriority = SequencingPriority.BALANCED,
    master_tempo: bool = True,
    harmonic_style: Optional[HarmonicMixingStyle] = HarmonicMixingStyle.BALANCED,
    genre_run_length: int = 0,
    play_bpms: Optional[Tuple[float, float]] = None,
    policy: HarmonicStylePolicy = DEFAULT_HARMONIC_POLICY,
) -> TransitionScores:
    """
    Score moving from ``from_profile`` into ``to_profile``.

    With ``play_bpms=(from_play, to_play)`` both tracks are played at planned
    tempos: each side's key is shifted by its own pitch change (when master
    tempo is off) and the BPM axis measures how far the destination must be
    stretched to reach ``to_play``.  Without it, the destination's play tempo
    defaults to the source's tempo, not its own native tempo, so
    ``bpm_adjustment_pct`` is the stretch needed to match the source.
    """
    if play_bpms is not None:
        from_play, to_play = play_bpms
        scoring_from_key, _ = effective_key(from_profile.camelot_key, from_profile.bpm, from_play, master_tempo)
        scoring_to_key, to_shift = effective_key(to_profile.camelot_key, to_profile.bpm, to_play, master_tempo)
        bpm = score_bpm_axis(to_play, to_profile.bpm)
    else:
        to_play = from_profile.bpm
        scoring_from_key = from_profile.camelot_key
        scoring_to_key, to_shift = effective_key(to_profile.camelot_key, to_profile.bpm, to_play, master_tempo)
        bpm = score_bpm_axis(from_profile.bpm, to_profile.bpm)
        if master_tempo:
            # the destination is time-stretched, so nothing is reported as shifted
            to_shift = 0

    shifted = not master_tempo and to_shift != 0

    key = score_key_axis(scoring_from_key, scoring_to_key)
    energy = score_energy_axis(
        from_profile.energy,
        to_profile.energy,
        from_phase,
        to_phase,
        to_profile.loudness_range,
    )
    genre = score_genre_axis(
        from_profile.canonical_genre,
        to_profile.canonical_genre,
        from_profile.genre_family,
        to_profile.genre_family,
        genre_run_length,
    )
    brightness = score_brightness_axis(from_profile.brightness, to_profile.brightness)
    rhythm = score_rhythm_axis(from_profile.rhythm_regularity, to_profile.rhythm_regularity)

    brightness_available = from_profile.brightness is not None and to_profile.brightness is not None
    rhythm_available = (
        from_profile.rhythm_regularity is not None and to_profile.rhythm_regularity is not None
    )
    composite = composite_score(
        key.value,
        bpm.value,
        energy.value,
        genre.value,
        brightness.value if brightness_available else None,
        rhythm.value if rhythm_available else None,
        priority,
    )

    if harmonic_style is not None:
        style = HarmonicMixingStyle(harmonic_style)
        if key.value < policy.min_key(style, to_phase):
            composite *= policy.penalty_factor(style)

    if to_profile.bpm > 0:
        bpm_adjustment_pct = abs(to_play - to_profile.bpm) / to_profile.bpm * 100.0
    else:
        bpm_adjustment_pct = 0.0

    return TransitionScores(
        key=key,
        bpm=bpm,
        energy=energy,
        genre=genre,
        brightness=brightness,
        rhythm=rhythm,
        composite=composite,
        key_relation=key.label,
        bpm_adjustment_pct=bpm_adjustment_pct,
        pitch_shift_semitones=to_shift,
        effective_to_key=str(scoring_to_key) if shifted and scoring_to_key is not None else None,
    )
