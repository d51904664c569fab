import pytest

from set_sequencer.energy_planner import resolve_energy_curve
from set_sequencer.models import CandidatePlan, EnergyPhase, GenreFamily, SequencingPriority
from set_sequencer.scoring import score_transition_profiles
from set_sequencer.sequencer import (
    BPM_DRIFT_PENALTY_FACTOR,
    PlanOptions,
    build_candidate_plan,
    build_candidate_plan_beam,
    drift_budget_bpm,
    next_genre_run,
    rank_plans,
    select_start_track_ids,
    transition_pick_rank,
)


class TestSelectStartTracks:
    def test_warmup_prefers_low_energy(self, club_pool):
        assert select_start_track_ids(club_pool, 2, EnergyPhase.WARMUP) == ["t01", "t02"]

    def test_peak_prefers_high_energy(self, club_pool):
        assert select_start_track_ids(club_pool, 2, EnergyPhase.PEAK) == ["t07", "t06"]

    def test_ties_break_on_id(self, make_profile):
        pool = [make_profile("b", energy=0.5), make_profile("a", energy=0.5)]
        assert select_start_track_ids(pool, 1, EnergyPhase.BUILD) == ["a"]

    def test_forced_start_wins(self, club_pool):
        assert select_start_track_ids(club_pool, 3, EnergyPhase.WARMUP, "t05") == ["t05"]

    def test_at_least_one(self, club_pool):
        assert len(select_start_track_ids(club_pool, 0, EnergyPhase.WARMUP)) == 1


@pytest.mark.parametrize(
    "variation,length,available,expected",
    [
        (0, 1, 5, 0),
        (2, 1, 5, 2),
        (2, 4, 5, 1),
        (2, 8, 5, 1),
        (2, 3, 5, 0),
        (3, 1, 2, 1),
        (1, 1, 1, 0),
    ],
)
def test_transition_pick_rank(variation, length, available, expected):
    assert transition_pick_rank(variation, length, available) == expected


def test_drift_budget():
    assert drift_budget_bpm(128.0, 6.0, 1, 5) == pytest.approx(1.92)
    assert drift_budget_bpm(128.0, 6.0, 4, 5) == pytest.approx(7.68)
    assert drift_budget_bpm(0.0, 6.0, 1, 5) is None
    assert drift_budget_bpm(128.0, 6.0, 1, 1) is None


def test_genre_run_only_grows_inside_a_named_family(make_profile):
    techno = make_profile("a", genre="Techno")
    minimal = make_profile("b", genre="Minimal")
    house = make_profile("c", genre="House")
    pop = make_profile("d", genre="Pop")
    assert techno.genre_family == GenreFamily.TECHNO
    assert next_genre_run(techno, minimal, 2) == 3
    assert next_genre_run(techno, house, 2) == 0
    assert next_genre_run(pop, pop, 2) == 0


class TestGreedy:
    def test_plan_shape(self, club_pool):
        phases = resolve_energy_curve(None, 6)
        plan = build_candidate_plan(club_pool, "t01", 6, phases)
        assert plan.ordered_ids[0] == "t01"
        assert len(plan.ordered_ids) == 6
        assert len(set(plan.ordered_ids)) == 6
        assert [(t.from_index, t.to_index) for t in plan.transitions] == [(i, i + 1) for i in range(5)]

    def test_stops_when_pool_is_exhausted(self, club_pool):
        phases = resolve_energy_curve(None, 12)
        plan = build_candidate_plan(club_pool[:3], "t01", 12, phases)
        assert len(plan.ordered_ids) == 3

    def test_single_track_target(self, club_pool):
        plan = build_candidate_plan(club_pool, "t03", 1, [EnergyPhase.WARMUP])
        assert plan.ordered_ids == ["t03"]
        assert plan.transitions == []
        assert plan.mean_composite == 0.0

    def test_first_step_picks_highest_composite(self, make_profile):
        seed = make_profile("seed", key="8A")
        clash = make_profile("a-clash", key="3A")
        adjacent = make_profile("b-adjacent", key="9A")
        plan = build_candidate_plan([seed, clash, adjacent], "seed", 2, [EnergyPhase.PEAK, EnergyPhase.PEAK])
        assert plan.ordered_ids == ["seed", "b-adjacent"]

    def test_variation_changes_first_pick(self, club_pool):
        phases = resolve_energy_curve(None, 5)
        first = build_candidate_plan(club_pool, "t01", 5, phases, variation_index=0)
        second = build_candidate_plan(club_pool, "t01", 5, phases, variation_index=1)
        assert first.ordered_ids[1] != second.ordered_ids[1]

    def test_deterministic(self, club_pool):
        phases = resolve_energy_curve(None, 6)
        runs = {tuple(build_candidate_plan(club_pool, "t01", 6, phases).ordered_ids) for _ in range(3)}
        assert len(runs) == 1

    def test_drift_penalty_applied_beyond_budget(self, make_profile):
        seed = make_profile("seed", bpm=128.0)
        far = make_profile("far", bpm=140.0)
        phases = [EnergyPhase.PEAK, EnergyPhase.PEAK]
        plan = build_candidate_plan([seed, far], "seed", 2, phases)
        direct = score_transition_profiles(seed, far, EnergyPhase.PEAK, EnergyPhase.PEAK)
        assert plan.transitions[0].scores.composite == pytest.approx(direct.composite * BPM_DRIFT_PENALTY_FACTOR)

    def test_no_drift_penalty_within_budget(self, make_profile):
        seed = make_profile("seed", bpm=128.0)
        near = make_profile("near", bpm=130.0)
        phases = [EnergyPhase.PEAK, EnergyPhase.PEAK]
        plan = build_candidate_plan([seed, near], "seed", 2, phases)
        direct = score_transition_profiles(seed, near, EnergyPhase.PEAK, EnergyPhase.PEAK)
        assert plan.transitions[0].scores.composite == pytest.approx(direct.composite)

    def test_trajectory_feeds_play_tempos(self, make_profile):
        seed = make_profile("seed", bpm=128.0)
        other = make_profile("other", bpm=128.0)
        options = PlanOptions(target_bpms=(128.0, 132.0))
        plan = build_candidate_plan([seed, other], "seed", 2, [EnergyPhase.BUILD, EnergyPhase.BUILD], options)
        assert plan.transitions[0].scores.bpm_adjustment_pct == pytest.approx(3.125)


class TestBeamSearch:
    @pytest.mark.parametrize("start", ["t01", "t04", "t08"])
    def test_width_one_matches_greedy(self, club_pool, start):
        phases = resolve_energy_curve(None, 6)
        greedy = build_candidate_plan(club_pool, start, 6, phases)
        beam = build_candidate_plan_beam(club_pool, start, 6, phases, beam_width=1)
        assert len(beam) == 1
        assert beam[0].ordered_ids == greedy.ordered_ids

    def test_width_one_matches_greedy_with_priority(self, club_pool):
        phases = resolve_energy_curve("peak_only", 5)
        options = PlanOptions(priority=SequencingPriority.ENERGY, master_tempo=False)
        greedy = build_candidate_plan(club_pool, "t05", 5, phases, options)
        beam = build_candidate_plan_beam(club_pool, "t05", 5, phases, 1, options)
        assert beam[0].ordered_ids == greedy.ordered_ids

    def test_returns_distinct_plans_best_first(self, club_pool):
        phases = resolve_energy_curve(None, 5)
        plans = build_candidate_plan_beam(club_pool, "t01", 5, phases, beam_width=4)
        assert 1 <= len(plans) <= 4
        assert len({tuple(p.ordered_ids) for p in plans}) == len(plans)
        means = [p.mean_composite for p in plans]
        assert means == sorted(means, reverse=True)
        for plan in plans:
            assert plan.ordered_ids[0] == "t01"
            assert len(set(plan.ordered_ids)) == 5

    def test_beams_carry_forward_when_pool_runs_out(self, club_pool):
        phases = resolve_energy_curve(None, 10)
        plans = build_candidate_plan_beam(club_pool[:3], "t01", 10, phases, beam_width=3)
        assert all(len(p.ordered_ids) == 3 for p in plans)


def test_rank_plans_dedupes_and_orders(make_profile):
    a, b = make_profile("a"), make_profile("b", key="3A")
    good = build_candidate_plan([a, b], "a", 2, [EnergyPhase.PEAK, EnergyPhase.PEAK])
    worse = CandidatePlan(
        ordered_ids=["b", "a"],
        transitions=[
            t.model_copy(update={"scores": t.scores.model_copy(update={"composite": 0.01})})
            for t in good.transitions
        ],
    )
    ranked = rank_plans([worse, good, good], limit=5)
    assert [p.ordered_ids for p in ranked] == [["a", "b"], ["b", "a"]]
    assert len(rank_plans([worse, good], limit=1)) == 1
