"""
Energy-Curve & BPM-Trajectory Planner

Turns an energy-curve request (a preset name or an explicit phase per
position) into one EnergyPhase per set position, and optionally derives a
target tempo for every position from a (start_bpm, end_bpm) range.

Preset boundaries, by fractional position p = index / n:

  warmup_build_peak_release   warmup < 0.15 <= build < 0.45 <= peak < 0.75 <= release
  flat                        peak everywhere
  peak_only                   build < 0.10 <= peak < 0.85 <= release
"""

from typing import List, Optional, Sequence, Union

from .errors import SequencingError
from .models import EnergyCurvePreset, EnergyPhase


WARMUP_PHASE_END = 0.15
BUILD_PHASE_END = 0.45
PEAK_PHASE_END = 0.75
PEAKONLY_BUILD_END = 0.10
PEAKONLY_RELEASE_END = 0.85

EnergyCurveInput = Union[EnergyCurvePreset, str, Sequence[Union[EnergyPhase, str]], None]


def _coerce_phase(value) -> EnergyPhase:
    try:
        return EnergyPhase(value)
    except ValueError:
        valid = ", ".join(p.value for p in EnergyPhase)
        raise SequencingError(f"unknown energy phase '{value}' (expected one of: {valid})") from None


def _coerce_preset(value) -> EnergyCurvePreset:
    try:
        return EnergyCurvePreset(value)
    except ValueError:
        valid = ", ".join(p.value for p in EnergyCurvePreset)
        raise SequencingError(f"unknown energy curve preset '{value}' (expected one of: {valid})") from None


def preset_energy_phase(preset: EnergyCurvePreset, position: int, total: int) -> EnergyPhase:
    fraction = position / total if total else 0.0

    if preset is EnergyCurvePreset.FLAT:
        return EnergyPhase.PEAK

    if preset is EnergyCurvePreset.PEAK_ONLY:
        if fraction < PEAKONLY_BUILD_END:
            return EnergyPhase.BUILD
        if fraction < PEAKONLY_RELEASE_END:
            return EnergyPhase.PEAK
        return EnergyPhase.RELEASE

    if fraction < WARMUP_PHASE_END:
        return EnergyPhase.WARMUP
    if fraction < BUILD_PHASE_END:
        return EnergyPhase.BUILD
    if fraction < PEAK_PHASE_END:
        return EnergyPhase.PEAK
    return EnergyPhase.RELEASE


def resolve_energy_curve(energy_curve: EnergyCurveInput, target_tracks: int) -> List[EnergyPhase]:
    """
    One phase per position.

    A custom phase list must have exactly ``target_tracks`` entries; a preset
    (or no curve at all, meaning warmup_build_peak_release) is expanded.

    Raises:
        SequencingError: zero target, wrong custom length, unknown names.
    """
    if target_tracks < 1:
        raise SequencingError("target_tracks must be at least 1")

    if energy_curve is None:
        preset = EnergyCurvePreset.WARMUP_BUILD_PEAK_RELEASE
    elif isinstance(energy_curve, (EnergyCurvePreset, str)):
        preset = _coerce_preset(energy_curve)
    else:
        phases = [_coerce_phase(p) for p in energy_curve]
        if len(phases) != target_tracks:
            raise SequencingError(
                f"custom phase array length ({len(phases)}) must match "
                f"target_tracks ({target_tracks})"
            )
        return phases

    return [preset_energy_phase(preset, i, target_tracks) for i in range(target_tracks)]


def _ramp(start: float, end: float, offset: int, run_length: int) -> float:
    if run_length == 1:
        return (start + end) / 2.0
    return start + (end - start) * (offset / (run_length - 1))


def compute_bpm_trajectory(
    phases: Sequence[EnergyPhase],
    start_bpm: float,
    end_bpm: float,
) -> List[float]:
    """
    Target tempo per position.

    - **warmup**  -> ``start_bpm``
    - **build**   -> each contiguous run ramps linearly start -> end (inclusive)
    - **peak**    -> ``end_bpm``
    - **release** -> each contiguous run ramps linearly end -> start (inclusive)

    Single-position build/release runs sit at the midpoint.
    """
    trajectory: List[float] = []
    i = 0
    while i < len(phases):
        phase = phases[i]
        run_end = i
        while run_end + 1 < len(phases) and phases[run_end + 1] == phase:
            run_end += 1
        run_length = run_end - i + 1

        for offset in range(run_length):
            if phase == EnergyPhase.WARMUP:
                trajectory.append(start_bpm)
            elif phase == EnergyPhase.PEAK:
                trajectory.append(end_bpm)
            elif phase == EnergyPhase.BUILD:
                trajectory.append(_ramp(start_bpm, end_bpm, offset, run_length))
            else:
                trajectory.append(_ramp(end_bpm, start_bpm, offset, run_length))
        i = run_end + 1

    return trajectory


def phase_at(phases: Sequence[EnergyPhase], index: int) -> Optional[EnergyPhase]:
    if 0 <= index < len(phases):
        return phases[index]
    return None
