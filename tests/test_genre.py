import pytest

from set_sequencer.genre import (
    ALIASES,
    ALIAS_MAP,
    GENRES,
    canonical_genre_from_alias,
    canonical_genre_name,
    canonicalize_genre,
    genre_family,
    map_genre_through_taxonomy,
)
from set_sequencer.models import GenreFamily


def test_aliases_are_sorted_lowercase_and_unique():
    keys = [alias for alias, _ in ALIASES]
    assert keys == sorted(keys)
    assert len(set(keys)) == len(keys)
    assert all(k == k.strip().lower() for k in keys)


def test_every_alias_targets_a_canonical_genre():
    for alias, canonical in ALIASES:
        assert canonical in GENRES, alias


def test_alias_map_is_read_only():
    with pytest.raises(TypeError):
        ALIAS_MAP["new alias"] = "Techno"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Deep House", "Deep House"),
        ("deep house", "Deep House"),
        ("  TECHNO ", "Techno"),
        ("dnb", "Drum & Bass"),
        ("Hip-Hop", "Hip Hop"),
        ("uk garage", "Garage"),
        ("Polka", None),
        ("", None),
        (None, None),
    ],
)
def test_canonicalize_genre(raw, expected):
    assert canonicalize_genre(raw) == expected


def test_canonical_name_lookup_is_case_insensitive():
    assert canonical_genre_name("tech house") == "Tech House"
    assert canonical_genre_name("dnb") is None


def test_alias_lookup_only_covers_aliases():
    assert canonical_genre_from_alias("gabber") == "Hard Techno"
    assert canonical_genre_from_alias("Techno") is None


@pytest.mark.parametrize(
    "canonical,family",
    [
        ("Tech House", GenreFamily.HOUSE),
        ("Disco", GenreFamily.HOUSE),
        ("Dub Techno", GenreFamily.TECHNO),
        ("Jungle", GenreFamily.BASS),
        ("Ambient", GenreFamily.DOWNTEMPO),
        ("Pop", GenreFamily.OTHER),
        ("Trance", GenreFamily.OTHER),
        (None, GenreFamily.OTHER),
        ("not a genre", GenreFamily.OTHER),
    ],
)
def test_genre_family(canonical, family):
    assert genre_family(canonical) == family


def test_map_genre_through_taxonomy():
    assert map_genre_through_taxonomy("house") == ("House", "exact")
    assert map_genre_through_taxonomy("afrobeat") == ("Afro House", "alias")
    assert map_genre_through_taxonomy("polka") == (None, "unknown")
