import pytest

from set_sequencer.errors import SequencingError, TrackNotFoundError
from set_sequencer.library_index import LibraryIndex
from set_sequencer.models import EnergyPhase, HarmonicMixingStyle
from set_sequencer.profiles import ProfileBuilder
from set_sequencer.service import (
    SequencingService,
    build_set,
    query_transition_candidates,
    score_transition,
)


class TestScoreTransition:
    def test_payload(self, make_profile):
        result = score_transition(make_profile("a", key="8A"), make_profile("b", key="9A"))
        assert result["from"]["track_id"] == "a"
        assert result["to"]["key"] == "9A"
        assert set(result["scores"]) == {"key", "bpm", "energy", "genre", "brightness", "rhythm", "composite"}
        assert result["key_relation"] == "Camelot adjacent (+1)"
        assert result["bpm_adjustment_pct"] == 0.0
        assert "effective_to_key" not in result
        assert "pitch_shift_semitones" not in result

    def test_pitch_fields_without_master_tempo(self, make_profile):
        result = score_transition(
            make_profile("a", key="8A", bpm=128.0),
            make_profile("b", key="8A", bpm=135.0),
            master_tempo=False,
        )
        assert result["effective_to_key"] == "1A"
        assert result["pitch_shift_semitones"] == -1

    def test_scores_are_rounded(self, make_profile):
        result = score_transition(make_profile("a", bpm=128.0), make_profile("b", bpm=129.5))
        assert result["scores"]["bpm"]["value"] == 0.974


class TestQueryTransitionCandidates:
    def test_source_excluded_and_ranked(self, club_pool):
        result = query_transition_candidates(club_pool[0], club_pool)
        ids = [c["track_id"] for c in result["candidates"]]
        assert "t01" not in ids
        assert result["total_pool_size"] == len(club_pool) - 1
        composites = [c["scores"]["composite"] for c in result["candidates"]]
        assert composites == sorted(composites, reverse=True)
        assert result["reference_bpm"] == 124.0
        assert result["master_tempo"] is True

    def test_limit(self, club_pool):
        result = query_transition_candidates(club_pool[0], club_pool, limit=3)
        assert len(result["candidates"]) == 3
        assert result["total_pool_size"] == 7

    def test_target_bpm_fields(self, club_pool):
        result = query_transition_candidates(club_pool[0], club_pool, target_bpm=126.0, master_tempo=False)
        assert result["reference_bpm"] == 126.0
        for candidate in result["candidates"]:
            assert candidate["play_at_bpm"] == 126.0
            assert "pitch_adjustment_pct" in candidate
        t06 = next(c for c in result["candidates"] if c["track_id"] == "t06")
        # 130 -> 126 BPM is about -0.54 semitones
        assert t06["pitch_shift_semitones"] == -1
        assert t06["effective_key"] == "4A"

    def test_no_target_bpm_fields_by_default(self, club_pool):
        result = query_transition_candidates(club_pool[0], club_pool)
        assert all("play_at_bpm" not in c for c in result["candidates"])

    def test_empty_pool(self, make_profile):
        with pytest.raises(SequencingError):
            query_transition_candidates(make_profile("a"), [])


class TestBuildSet:
    def test_basic_shape(self, club_pool):
        result = build_set(club_pool, 5, beam_width=3)
        assert result["pool_size"] == 8
        assert result["tracks_used"] == 5
        assert result["beam_width"] == 3
        assert 1 <= len(result["candidates"]) <= 3
        labels = [c["id"] for c in result["candidates"]]
        assert labels == ["A", "B", "C"][: len(labels)]
        for candidate in result["candidates"]:
            ids = [t["track_id"] for t in candidate["tracks"]]
            assert len(ids) == len(set(ids)) == 5
            assert len(candidate["transitions"]) == 4
            assert 0.0 <= candidate["set_score"] <= 10.0
        assert "bpm_trajectory" not in result

    def test_candidates_are_distinct(self, club_pool):
        result = build_set(club_pool, 4, beam_width=4)
        sequences = [tuple(t["track_id"] for t in c["tracks"]) for c in result["candidates"]]
        assert len(set(sequences)) == len(sequences)

    def test_width_one_is_a_single_greedy_set(self, club_pool):
        result = build_set(club_pool, 4, beam_width=1)
        assert len(result["candidates"]) == 1
        # warmup opening starts from the calmest track
        assert result["candidates"][0]["tracks"][0]["track_id"] == "t01"

    def test_duplicate_ids_are_ignored(self, club_pool):
        result = build_set(club_pool + club_pool[:3], 3, beam_width=2)
        assert result["pool_size"] == 8

    def test_target_capped_at_pool_size(self, club_pool):
        result = build_set(club_pool[:3], 10, beam_width=2)
        assert result["tracks_used"] == 3
        assert all(len(c["tracks"]) == 3 for c in result["candidates"])

    def test_custom_curve_validated_against_requested_target(self, club_pool):
        curve = ["warmup", "build", "peak", "peak", "release"]
        result = build_set(club_pool[:3], 5, energy_curve=curve, beam_width=1)
        assert result["tracks_used"] == 3
        with pytest.raises(SequencingError):
            build_set(club_pool[:3], 5, energy_curve=curve[:3])

    def test_start_track(self, club_pool):
        result = build_set(club_pool, 4, start_track_id="t05", beam_width=3)
        assert all(c["tracks"][0]["track_id"] == "t05" for c in result["candidates"])

    def test_start_track_must_be_in_pool(self, club_pool):
        with pytest.raises(SequencingError, match="not in track_ids"):
            build_set(club_pool, 4, start_track_id="nope")

    def test_empty_pool_and_zero_target(self, club_pool):
        with pytest.raises(SequencingError):
            build_set([], 3)
        with pytest.raises(SequencingError):
            build_set(club_pool, 0)

    def test_estimated_duration_defaults_to_six_minutes(self, make_profile):
        pool = [make_profile("a"), make_profile("b", length=300), make_profile("c")]
        result = build_set(pool, 3, beam_width=1)
        assert result["candidates"][0]["estimated_duration_minutes"] == 17

    def test_bpm_range_plans_tempos(self, club_pool):
        result = build_set(club_pool, 8, bpm_range=(124.0, 132.0), beam_width=2, master_tempo=False)
        # default curve for 8 positions: W W B B P P R R
        assert result["bpm_trajectory"] == [124.0, 124.0, 124.0, 132.0, 132.0, 132.0, 132.0, 124.0]
        for candidate in result["candidates"]:
            assert candidate["bpm_trajectory"] == result["bpm_trajectory"]
            plays = [t["play_at_bpm"] for t in candidate["tracks"]]
            assert plays == result["bpm_trajectory"]

    def test_set_score_is_mean_composite_times_ten(self, make_profile):
        pool = [make_profile("a"), make_profile("b")]
        result = build_set(pool, 2, beam_width=1, energy_curve="flat")
        candidate = result["candidates"][0]
        composite = candidate["transitions"][0]["scores"]["composite"]
        assert candidate["set_score"] == pytest.approx(composite * 10, abs=0.01)

    def test_harmonic_style_none_disables_gate(self, make_profile):
        pool = [make_profile("a", key="8A", energy=0.1), make_profile("b", key="3A", energy=0.2)]
        gated = build_set(pool, 2, beam_width=1, start_track_id="a")
        ungated = build_set(pool, 2, beam_width=1, start_track_id="a", harmonic_style=None)
        assert gated["candidates"][0]["set_score"] < ungated["candidates"][0]["set_score"]


@pytest.fixture()
def service(tmp_path, make_track):
    index = LibraryIndex(tmp_path / "library_index.jsonl")
    index.build([
        make_track("1", key="8A", bpm=124.0, genre="House", length=400),
        make_track("2", key="9A", bpm=125.0, genre="Deep House", length=380),
        make_track("3", key="Am", bpm=126.0, genre="Tech House"),
        make_track("4", key="10A", bpm=127.0, genre="Techno"),
    ])
    return SequencingService(ProfileBuilder(index))


class TestSequencingService:
    def test_score_by_id(self, service):
        result = service.score_transition("1", "3", energy_phase=EnergyPhase.BUILD)
        assert result["key_relation"] == "Perfect"

    def test_unknown_id(self, service):
        with pytest.raises(TrackNotFoundError) as exc_info:
            service.score_transition("1", "999")
        assert exc_info.value.track_id == "999"

    def test_query_skips_unknown_pool_ids(self, service):
        result = service.query_transition_candidates("1", ["2", "3", "999"])
        assert [c["track_id"] for c in result["candidates"]] != []
        assert result["total_pool_size"] == 2

    def test_build_set(self, service):
        result = service.build_set(["1", "2", "3", "4"], 4, harmonic_style=HarmonicMixingStyle.ADVENTUROUS)
        assert result["pool_size"] == 4
        assert result["candidates"][0]["estimated_duration_minutes"] == 25

    def test_build_set_with_no_known_ids(self, service):
        with pytest.raises(SequencingError):
            service.build_set(["998", "999"], 2)
