"""
Sequencing Service — the three public query operations.

    score_transition            one (from, to) pair, every axis explained
    query_transition_candidates rank a pool against one fixed source track
    build_set                   up to ``beam_width`` labelled candidate sets

The module-level functions work on TrackProfile objects and never do I/O;
SequencingService resolves track ids through a ProfileBuilder first.
Results are plain dicts ready for JSON serialization.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from .camelot import CamelotWheel
from .energy_planner import EnergyCurveInput, compute_bpm_trajectory, resolve_energy_curve
from .errors import SequencingError
from .models import (
    CandidatePlan,
    EnergyCurvePreset,
    EnergyPhase,
    HarmonicMixingStyle,
    SequencingPriority,
    TrackProfile,
    TransitionScores,
    round_to_3_decimals,
)
from .profiles import ProfileBuilder
from .scoring import DEFAULT_HARMONIC_POLICY, HarmonicStylePolicy, pitch_shift_semitones, score_transition_profiles
from .sequencer import (
    PlanOptions,
    build_candidate_plan,
    build_candidate_plan_beam,
    rank_plans,
    select_start_track_ids,
)


DEFAULT_BEAM_WIDTH = 3
MAX_BEAM_WIDTH = 8
DEFAULT_BPM_DRIFT_PCT = 6.0
DEFAULT_TRACK_SECONDS = 6 * 60
DEFAULT_CANDIDATE_LIMIT = 10


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _track_summary(profile: TrackProfile) -> Dict[str, Any]:
    return {
        "track_id": profile.id,
        "title": profile.track.title,
        "artist": profile.track.artist,
        "key": profile.key_display,
        "bpm": round_to_3_decimals(profile.bpm),
        "energy": round_to_3_decimals(profile.energy),
        "genre": profile.track.genre,
    }


def _transition_extras(scores: TransitionScores, out: Dict[str, Any]) -> Dict[str, Any]:
    out["key_relation"] = scores.key_relation
    out["bpm_adjustment_pct"] = round_to_3_decimals(scores.bpm_adjustment_pct)
    if scores.effective_to_key is not None:
        out["effective_to_key"] = scores.effective_to_key
    if scores.pitch_shift_semitones != 0:
        out["pitch_shift_semitones"] = scores.pitch_shift_semitones
    return out


def _add_play_fields(out: Dict[str, Any], profile: TrackProfile, play_bpm: float, master_tempo: bool) -> None:
    """Tempo/pitch fields for a track played at ``play_bpm`` instead of its native tempo."""
    out["play_at_bpm"] = round_to_3_decimals(play_bpm)
    pct = abs(play_bpm - profile.bpm) / profile.bpm * 100.0 if profile.bpm > 0 else 0.0
    out["pitch_adjustment_pct"] = round_to_3_decimals(pct)
    if master_tempo:
        return
    shift = pitch_shift_semitones(profile.bpm, play_bpm)
    if shift != 0 and profile.camelot_key is not None:
        out["effective_key"] = CamelotWheel.format(CamelotWheel.transpose(profile.camelot_key, shift))


def _estimated_minutes(profiles: Iterable[TrackProfile]) -> int:
    total_seconds = sum(p.track.length if p.track.length > 0 else DEFAULT_TRACK_SECONDS for p in profiles)
    return int(total_seconds / 60.0 + 0.5)


# ---------------------------------------------------------------------------
# Operations on profiles
# ---------------------------------------------------------------------------

def score_transition(
    from_profile: TrackProfile,
    to_profile: TrackProfile,
    energy_phase: Optional[EnergyPhase] = None,
    priority: SequencingPriority = SequencingPriority.BALANCED,
    master_tempo: bool = True,
    harmonic_style: Optional[HarmonicMixingStyle] = HarmonicMixingStyle.BALANCED,
    policy: HarmonicStylePolicy = DEFAULT_HARMONIC_POLICY,
) -> Dict[str, Any]:
    """Score one transition; the energy phase applies to both sides."""
    scores = score_transition_profiles(
        from_profile,
        to_profile,
        from_phase=energy_phase,
        to_phase=energy_phase,
        priority=priority,
        master_tempo=master_tempo,
        harmonic_style=harmonic_style,
        policy=policy,
    )
    result = {
        "from": _track_summary(from_profile),
        "to": _track_summary(to_profile),
        "scores": scores.to_dict(),
    }
    return _transition_extras(scores, result)


def query_transition_candidates(
    source: TrackProfile,
    pool: Sequence[TrackProfile],
    target_bpm: Optional[float] = None,
    energy_phase: Optional[EnergyPhase] = None,
    priority: SequencingPriority = SequencingPriority.BALANCED,
    master_tempo: bool = True,
    harmonic_style: Optional[HarmonicMixingStyle] = HarmonicMixingStyle.BALANCED,
    limit: int = DEFAULT_CANDIDATE_LIMIT,
    policy: HarmonicStylePolicy = DEFAULT_HARMONIC_POLICY,
) -> Dict[str, Any]:
    """
    Rank ``pool`` as possible next tracks after ``source``.

    With ``target_bpm`` every candidate is scored as if played at that tempo
    (the source stays at its native tempo).

    Raises:
        SequencingError: the pool is empty.
    """
    if not pool:
        raise SequencingError("No tracks found in the specified pool")

    play_bpms = (source.bpm, target_bpm) if target_bpm is not None else None
    scored: List[Tuple[TrackProfile, TransitionScores]] = []
    for candidate in pool:
        if candidate.id == source.id:
            continue
        scored.append((
            candidate,
            score_transition_profiles(
                source,
                candidate,
                from_phase=energy_phase,
                to_phase=energy_phase,
                priority=priority,
                master_tempo=master_tempo,
                harmonic_style=harmonic_style,
                play_bpms=play_bpms,
                policy=policy,
            ),
        ))

    scored.sort(key=lambda item: (-item[1].composite, item[0].id))
    total_pool_size = len(scored)

    candidates = []
    for profile, scores in scored[: max(limit, 0)]:
        candidate = {
            "track_id": profile.id,
            "title": profile.track.title,
            "artist": profile.track.artist,
            "native_bpm": round_to_3_decimals(profile.bpm),
            "native_key": profile.key_display,
            "bpm_difference_pct": round_to_3_decimals(scores.bpm_adjustment_pct),
            "key_relation": scores.key_relation,
            "scores": scores.to_dict(),
        }
        if target_bpm is not None:
            _add_play_fields(candidate, profile, target_bpm, master_tempo)
            shift = 0 if master_tempo else pitch_shift_semitones(profile.bpm, target_bpm)
            if shift != 0:
                candidate["pitch_shift_semitones"] = shift
        candidates.append(candidate)

    return {
        "from": {
            "track_id": source.id,
            "title": source.track.title,
            "artist": source.track.artist,
            "native_bpm": round_to_3_decimals(source.bpm),
            "key": source.key_display,
            "energy": round_to_3_decimals(source.energy),
            "genre": source.track.genre,
        },
        "reference_bpm": round_to_3_decimals(target_bpm if target_bpm is not None else source.bpm),
        "master_tempo": master_tempo,
        "candidates": candidates,
        "total_pool_size": total_pool_size,
    }


def _resolve_phases(energy_curve: EnergyCurveInput, requested: int, actual: int) -> List[EnergyPhase]:
    # a custom curve must match the requested length even when the pool is smaller
    if energy_curve is not None and not isinstance(energy_curve, (EnergyCurvePreset, str)):
        return resolve_energy_curve(energy_curve, requested)[:actual]
    return resolve_energy_curve(energy_curve, actual)


def _candidate_dict(
    label: str,
    plan: CandidatePlan,
    profiles_by_id: Dict[str, TrackProfile],
    trajectory: Optional[List[float]],
    master_tempo: bool,
) -> Dict[str, Any]:
    plan_profiles = [profiles_by_id[tid] for tid in plan.ordered_ids]

    tracks = []
    for pos, profile in enumerate(plan_profiles):
        track = _track_summary(profile)
        if trajectory is not None and pos < len(trajectory):
            _add_play_fields(track, profile, trajectory[pos], master_tempo)
        tracks.append(track)

    transitions = [
        _transition_extras(t.scores, {
            "from_index": t.from_index,
            "to_index": t.to_index,
            "scores": t.scores.to_dict(),
        })
        for t in plan.transitions
    ]

    candidate = {
        "id": label,
        "tracks": tracks,
        "transitions": transitions,
        "set_score": round_to_3_decimals(plan.mean_composite * 10.0),
        "estimated_duration_minutes": _estimated_minutes(plan_profiles),
    }
    if trajectory is not None:
        candidate["bpm_trajectory"] = [round_to_3_decimals(b) for b in trajectory]
    return candidate


def build_set(
    pool: Sequence[TrackProfile],
    target_tracks: int,
    priority: SequencingPriority = SequencingPriority.BALANCED,
    energy_curve: EnergyCurveInput = None,
    start_track_id: Optional[str] = None,
    beam_width: int = DEFAULT_BEAM_WIDTH,
    master_tempo: bool = True,
    harmonic_style: Optional[HarmonicMixingStyle] = HarmonicMixingStyle.BALANCED,
    bpm_drift_pct: float = DEFAULT_BPM_DRIFT_PCT,
    bpm_range: Optional[Tuple[float, float]] = None,
    policy: HarmonicStylePolicy = DEFAULT_HARMONIC_POLICY,
) -> Dict[str, Any]:
    """
    Build up to ``beam_width`` candidate sets of ``target_tracks`` from ``pool``.

    Width 1 runs the greedy builder; wider beams run beam search from each
    seed track and keep the best distinct plans overall.  ``beam_width`` is
    expected to be clamped by the caller (1-8).

    Raises:
        SequencingError: empty pool, zero target, start track not in the pool,
            or an invalid energy curve.
    """
    if not pool:
        raise SequencingError("track_ids must include at least one track")
    if target_tracks < 1:
        raise SequencingError("target_tracks must be at least 1")

    profiles: List[TrackProfile] = []
    profiles_by_id: Dict[str, TrackProfile] = {}
    for profile in pool:
        if profile.id not in profiles_by_id:
            profiles_by_id[profile.id] = profile
            profiles.append(profile)

    if start_track_id is not None and start_track_id not in profiles_by_id:
        raise SequencingError(f"start_track_id '{start_track_id}' is not in track_ids")

    width = max(beam_width, 1)
    actual_target = min(target_tracks, len(profiles))
    phases = _resolve_phases(energy_curve, target_tracks, actual_target)
    trajectory = compute_bpm_trajectory(phases, bpm_range[0], bpm_range[1]) if bpm_range else None

    options = PlanOptions(
        priority=priority,
        master_tempo=master_tempo,
        harmonic_style=harmonic_style,
        bpm_drift_pct=bpm_drift_pct,
        target_bpms=tuple(trajectory) if trajectory is not None else None,
        policy=policy,
    )

    start_ids = select_start_track_ids(
        profiles,
        1 if len(profiles) <= actual_target else width,
        phases[0],
        start_track_id,
    )

    if width <= 1:
        plans = [
            build_candidate_plan(profiles, start_id, actual_target, phases, options, variation_index=i)
            for i, start_id in enumerate(start_ids)
        ]
    else:
        pooled: List[CandidatePlan] = []
        for start_id in start_ids:
            pooled.extend(build_candidate_plan_beam(profiles, start_id, actual_target, phases, width, options))
        plans = rank_plans(pooled, width)

    logger.debug(
        f"build_set: pool={len(profiles)} target={actual_target} width={width} "
        f"seeds={len(start_ids)} → {len(plans)} candidates"
    )

    result: Dict[str, Any] = {
        "candidates": [
            _candidate_dict(chr(ord("A") + i), plan, profiles_by_id, trajectory, master_tempo)
            for i, plan in enumerate(plans)
        ],
        "pool_size": len(profiles),
        "tracks_used": actual_target,
        "beam_width": width,
    }
    if trajectory is not None:
        result["bpm_trajectory"] = [round_to_3_decimals(b) for b in trajectory]
    return result


# ---------------------------------------------------------------------------
# Id-based facade
# ---------------------------------------------------------------------------

class SequencingService:
    """
    Runs the sequencing operations by track id.

    Usage:
        service = SequencingService(ProfileBuilder(index, cache))
        service.build_set(["1", "2", "3"], target_tracks=3)
    """

    def __init__(self, profile_builder: ProfileBuilder, policy: HarmonicStylePolicy = DEFAULT_HARMONIC_POLICY):
        self.profiles = profile_builder
        self.policy = policy

    def _pool(self, track_ids: Sequence[str]) -> List[TrackProfile]:
        pool = self.profiles.get_many(track_ids)
        if not pool:
            raise SequencingError("No valid tracks found for provided track_ids")
        return pool

    def score_transition(self, from_track_id: str, to_track_id: str, **kwargs) -> Dict[str, Any]:
        return score_transition(
            self.profiles.get(from_track_id),
            self.profiles.get(to_track_id),
            policy=self.policy,
            **kwargs,
        )

    def query_transition_candidates(
        self,
        source_track_id: str,
        pool_track_ids: Sequence[str],
        **kwargs,
    ) -> Dict[str, Any]:
        source = self.profiles.get(source_track_id)
        return query_transition_candidates(source, self._pool(pool_track_ids), policy=self.policy, **kwargs)

    def build_set(self, track_ids: Sequence[str], target_tracks: int, **kwargs) -> Dict[str, Any]:
        if not track_ids:
            raise SequencingError("track_ids must include at least one track")
        return build_set(self._pool(track_ids), target_tracks, policy=self.policy, **kwargs)
