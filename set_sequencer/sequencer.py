"""
Sequence Constructors

Builds ordered, non-repeating track sequences from a pool of profiles.

Two strategies share the same per-step scoring (transition score, tempo-drift
penalty, genre run tracking, planned tempo per position):

  greedy  — take the best next track at every step; a ``variation_index``
            picks a lower-ranked option on the first step and at a fixed
            cadence afterwards so several seeds give distinct sets.
  beam    — keep the ``beam_width`` best partial sequences (by mean
            transition composite) and extend each with every unused track.

Both are deterministic: ties break on track id.
"""

from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict

from .energy_planner import phase_at
from .models import (
    CandidatePlan,
    CandidateTransition,
    EnergyPhase,
    GenreFamily,
    HarmonicMixingStyle,
    SequencingPriority,
    TrackProfile,
    TransitionScores,
)
from .scoring import DEFAULT_HARMONIC_POLICY, HarmonicStylePolicy, score_transition_profiles


BPM_DRIFT_PENALTY_FACTOR = 0.7
VARIATION_CADENCE = 4


class PlanOptions(BaseModel):
    """Scoring configuration shared by every step of a build."""

    model_config = ConfigDict(frozen=True)

    priority: SequencingPriority = SequencingPriority.BALANCED
    master_tempo: bool = True
    harmonic_style: Optional[HarmonicMixingStyle] = HarmonicMixingStyle.BALANCED
    bpm_drift_pct: float = 6.0
    target_bpms: Optional[Tuple[float, ...]] = None
    policy: HarmonicStylePolicy = DEFAULT_HARMONIC_POLICY


# ---------------------------------------------------------------------------
# Shared step helpers
# ---------------------------------------------------------------------------

def select_start_track_ids(
    profiles: Sequence[TrackProfile],
    wanted: int,
    first_phase: EnergyPhase,
    forced_start: Optional[str] = None,
) -> List[str]:
    """
    Seed tracks for candidate sets.

    A warmup/build opening prefers the calmest tracks, anything else the most
    energetic; ties break on id.  ``forced_start`` overrides the choice.
    """
    if forced_start is not None:
        return [forced_start]

    if first_phase in (EnergyPhase.WARMUP, EnergyPhase.BUILD):
        ranked = sorted(profiles, key=lambda p: (p.energy, p.id))
    else:
        ranked = sorted(profiles, key=lambda p: (-p.energy, p.id))
    return [p.id for p in ranked[: max(wanted, 1)]]


def transition_pick_rank(variation_index: int, current_length: int, available_options: int) -> int:
    """Rank of the option greedy takes next, given how many tracks are already placed."""
    if available_options <= 1:
        return 0
    if current_length == 1:
        preferred = variation_index
    elif variation_index > 0 and current_length % VARIATION_CADENCE == 0:
        preferred = min(variation_index, 1)
    else:
        preferred = 0
    return min(preferred, available_options - 1)


def drift_budget_bpm(start_bpm: float, bpm_drift_pct: float, step: int, target_tracks: int) -> Optional[float]:
    """Allowed tempo deviation from the seed at ``step``; None when drift is not tracked."""
    if start_bpm <= 0 or target_tracks <= 1:
        return None
    budget_pct = bpm_drift_pct * (step / (target_tracks - 1))
    return start_bpm * budget_pct / 100.0


def next_genre_run(from_profile: TrackProfile, to_profile: TrackProfile, run_length: int) -> int:
    if to_profile.genre_family == from_profile.genre_family and from_profile.genre_family != GenreFamily.OTHER:
        return run_length + 1
    return 0


def _play_bpms(target_bpms: Optional[Sequence[float]], step: int) -> Optional[Tuple[float, float]]:
    if target_bpms is None or step >= len(target_bpms):
        return None
    return target_bpms[step - 1], target_bpms[step]


def _score_step(
    from_profile: TrackProfile,
    to_profile: TrackProfile,
    step: int,
    phases: Sequence[EnergyPhase],
    genre_run_length: int,
    budget_bpm: Optional[float],
    start_bpm: float,
    options: PlanOptions,
) -> TransitionScores:
    scores = score_transition_profiles(
        from_profile,
        to_profile,
        from_phase=phase_at(phases, step - 1),
        to_phase=phase_at(phases, step),
        priority=options.priority,
        master_tempo=options.master_tempo,
        harmonic_style=options.harmonic_style,
        genre_run_length=genre_run_length,
        play_bpms=_play_bpms(options.target_bpms, step),
        policy=options.policy,
    )
    if budget_bpm is not None and abs(to_profile.bpm - start_bpm) > budget_bpm:
        scores = scores.model_copy(update={"composite": scores.composite * BPM_DRIFT_PENALTY_FACTOR})
    return scores


def _profile_index(profiles: Sequence[TrackProfile]) -> Dict[str, int]:
    return {p.id: i for i, p in enumerate(profiles)}


# ---------------------------------------------------------------------------
# Greedy with variation
# ---------------------------------------------------------------------------

def build_candidate_plan(
    profiles: Sequence[TrackProfile],
    start_track_id: str,
    target_tracks: int,
    phases: Sequence[EnergyPhase],
    options: PlanOptions = PlanOptions(),
    variation_index: int = 0,
) -> CandidatePlan:
    """
    Greedy sequence from ``start_track_id``.

    Stops at ``target_tracks`` or when the pool runs out.
    """
    index_by_id = _profile_index(profiles)
    start = index_by_id[start_track_id]
    start_bpm = profiles[start].bpm

    ordered = [start]
    remaining = [i for i in range(len(profiles)) if i != start]
    transitions: List[CandidateTransition] = []
    genre_run_length = 0

    while len(ordered) < target_tracks and remaining:
        step = len(ordered)
        from_profile = profiles[ordered[-1]]
        budget = drift_budget_bpm(start_bpm, options.bpm_drift_pct, step, target_tracks)

        scored = [
            (
                i,
                _score_step(from_profile, profiles[i], step, phases, genre_run_length, budget, start_bpm, options),
            )
            for i in remaining
        ]
        scored.sort(key=lambda item: (-item[1].composite, profiles[item[0]].id))

        pick, scores = scored[transition_pick_rank(variation_index, step, len(scored))]
        genre_run_length = next_genre_run(from_profile, profiles[pick], genre_run_length)

        transitions.append(CandidateTransition(from_index=step - 1, to_index=step, scores=scores))
        ordered.append(pick)
        remaining.remove(pick)

    return CandidatePlan(ordered_ids=[profiles[i].id for i in ordered], transitions=transitions)


# ---------------------------------------------------------------------------
# Beam search
# ---------------------------------------------------------------------------

class _Beam:
    """Partial sequence; tracks are indices into the shared profile list."""

    __slots__ = ("ordered", "remaining", "genre_run_length", "cumulative", "transitions")

    def __init__(
        self,
        ordered: Tuple[int, ...],
        remaining: FrozenSet[int],
        genre_run_length: int,
        cumulative: float,
        transitions: Tuple[CandidateTransition, ...],
    ):
        self.ordered = ordered
        self.remaining = remaining
        self.genre_run_length = genre_run_length
        self.cumulative = cumulative
        self.transitions = transitions

    @property
    def mean(self) -> float:
        return self.cumulative / len(self.transitions) if self.transitions else 0.0


def build_candidate_plan_beam(
    profiles: Sequence[TrackProfile],
    start_track_id: str,
    target_tracks: int,
    phases: Sequence[EnergyPhase],
    beam_width: int,
    options: PlanOptions = PlanOptions(),
) -> List[CandidatePlan]:
    """
    Beam search from ``start_track_id``.

    Returns up to ``beam_width`` distinct plans, best mean composite first.
    With ``beam_width=1`` the result equals ``build_candidate_plan`` with
    ``variation_index=0``.
    """
    index_by_id = _profile_index(profiles)
    start = index_by_id[start_track_id]
    start_bpm = profiles[start].bpm
    width = max(beam_width, 1)

    def id_path(beam: _Beam) -> Tuple[str, ...]:
        return tuple(profiles[i].id for i in beam.ordered)

    beams = [
        _Beam(
            ordered=(start,),
            remaining=frozenset(i for i in range(len(profiles)) if i != start),
            genre_run_length=0,
            cumulative=0.0,
            transitions=(),
        )
    ]

    for step in range(1, target_tracks):
        budget = drift_budget_bpm(start_bpm, options.bpm_drift_pct, step, target_tracks)
        expansions: List[_Beam] = []

        for beam in beams:
            if not beam.remaining:
                expansions.append(beam)
                continue

            from_profile = profiles[beam.ordered[-1]]
            for candidate in beam.remaining:
                to_profile = profiles[candidate]
                scores = _score_step(
                    from_profile, to_profile, step, phases, beam.genre_run_length, budget, start_bpm, options
                )
                expansions.append(
                    _Beam(
                        ordered=beam.ordered + (candidate,),
                        remaining=beam.remaining - {candidate},
                        genre_run_length=next_genre_run(from_profile, to_profile, beam.genre_run_length),
                        cumulative=beam.cumulative + scores.composite,
                        transitions=beam.transitions
                        + (CandidateTransition(from_index=step - 1, to_index=step, scores=scores),),
                    )
                )

        expansions.sort(key=lambda b: (-b.mean, id_path(b)))

        seen = set()
        beams = []
        for beam in expansions:
            if beam.ordered in seen:
                continue
            seen.add(beam.ordered)
            beams.append(beam)
            if len(beams) == width:
                break

    logger.debug(
        f"Beam search from {start_track_id}: {len(beams)} plans, best mean {beams[0].mean:.3f}"
    )
    return [
        CandidatePlan(ordered_ids=list(id_path(beam)), transitions=list(beam.transitions))
        for beam in beams
    ]


def rank_plans(plans: Sequence[CandidatePlan], limit: int) -> List[CandidatePlan]:
    """De-duplicate plans pooled from several seeds and keep the ``limit`` best by mean composite."""
    unique: Dict[Tuple[str, ...], CandidatePlan] = {}
    for plan in plans:
        unique.setdefault(tuple(plan.ordered_ids), plan)
    ranked = sorted(unique.values(), key=lambda p: (-p.mean_composite, p.ordered_ids))
    return ranked[:limit]
