"""
Genre taxonomy: canonical names, aliases and coarse families.

The taxonomy is not a closed list; arbitrary genres are accepted on track
records, they just canonicalize to None and fall into the Other family.
All tables are built once at import time and never mutated.
"""

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .models import GenreFamily


GENRES: Tuple[str, ...] = (
    "Acid",
    "Afro House",
    "Ambient",
    "Ambient Techno",
    "Bassline",
    "Breakbeat",
    "Broken Beat",
    "Dancehall",
    "Deep House",
    "Deep Techno",
    "Disco",
    "Downtempo",
    "Drone Techno",
    "Drum & Bass",
    "Dub",
    "Dub Reggae",
    "Dub Techno",
    "Dubstep",
    "Electro",
    "Experimental",
    "Garage",
    "Gospel House",
    "Grime",
    "Hard Techno",
    "Highlife",
    "Hip Hop",
    "House",
    "IDM",
    "Jazz",
    "Jungle",
    "Minimal",
    "Pop",
    "Progressive House",
    "Psytrance",
    "R&B",
    "Reggae",
    "Rock",
    "Speed Garage",
    "Synth-pop",
    "Tech House",
    "Techno",
    "Trance",
    "UK Bass",
)

# Lowercase ASCII alias -> canonical genre.  Sorted by alias.
ALIASES: Tuple[Tuple[str, str], ...] = (
    ("140 / deep dubstep / grime", "Dubstep"),
    ("afrobeat", "Afro House"),
    ("bass", "UK Bass"),
    ("breaks / breakbeat / uk bass", "Breakbeat"),
    ("chill dnb", "Drum & Bass"),
    ("dance / electro pop", "Synth-pop"),
    ("dance-pop", "Synth-pop"),
    ("dnb", "Drum & Bass"),
    ("drone", "Ambient"),
    ("electronic", "Experimental"),
    ("electronica", "Techno"),
    ("gabber", "Hard Techno"),
    ("glitch", "IDM"),
    ("hard dance", "Hard Techno"),
    ("hard trance", "Trance"),
    ("hip-hop", "Hip Hop"),
    ("indie dance", "House"),
    ("italodance", "Disco"),
    ("loop (hip-hop)", "Hip Hop"),
    ("loop (trance)", "Trance"),
    ("mainstage", "Trance"),
    ("melodic house & techno", "Deep Techno"),
    ("minimal / deep tech", "Minimal"),
    ("r & b", "R&B"),
    ("soundtrack", "Ambient"),
    ("techno (peak time / driving)", "Techno"),
    ("techno (raw / deep / hypnotic)", "Deep Techno"),
    ("trance (main floor)", "Trance"),
    ("trance (raw / deep / hypnotic)", "Trance"),
    ("uk garage", "Garage"),
)

_FAMILY_MEMBERS = {
    GenreFamily.HOUSE: (
        "House", "Deep House", "Tech House", "Afro House", "Gospel House",
        "Progressive House", "Garage", "Speed Garage", "Disco",
    ),
    GenreFamily.TECHNO: (
        "Techno", "Deep Techno", "Minimal", "Dub Techno", "Ambient Techno",
        "Hard Techno", "Drone Techno", "Acid", "Electro",
    ),
    GenreFamily.BASS: (
        "Drum & Bass", "Jungle", "Dubstep", "Breakbeat", "UK Bass", "Grime",
        "Bassline", "Broken Beat",
    ),
    GenreFamily.DOWNTEMPO: (
        "Ambient", "Downtempo", "Dub", "Dub Reggae", "IDM", "Experimental",
    ),
}


def _build_alias_map(aliases) -> Mapping[str, str]:
    alias_map = {}
    for alias, canonical in aliases:
        if alias != alias.strip() or not alias.isascii() or alias != alias.lower():
            raise ValueError(f"alias '{alias}' must be trimmed lowercase ASCII")
        if alias in alias_map:
            raise ValueError(f"duplicate alias key '{alias}'")
        alias_map[alias] = canonical
    return MappingProxyType(alias_map)


_CANONICAL_BY_LOWER: Mapping[str, str] = MappingProxyType({g.lower(): g for g in GENRES})
ALIAS_MAP: Mapping[str, str] = _build_alias_map(ALIASES)
FAMILY_BY_GENRE: Mapping[str, GenreFamily] = MappingProxyType({
    genre: family
    for family, members in _FAMILY_MEMBERS.items()
    for genre in members
})


def canonical_genre_name(genre: str) -> Optional[str]:
    """Canonical casing of a genre if it is in the taxonomy."""
    return _CANONICAL_BY_LOWER.get(genre.strip().lower())


def canonical_genre_from_alias(genre: str) -> Optional[str]:
    """Canonical target of a known alias; None when already canonical or unknown."""
    return ALIAS_MAP.get(genre.strip().lower())


def canonicalize_genre(raw_genre: Optional[str]) -> Optional[str]:
    if not raw_genre or not raw_genre.strip():
        return None
    return canonical_genre_name(raw_genre) or canonical_genre_from_alias(raw_genre)


def genre_family(canonical: Optional[str]) -> GenreFamily:
    """Family of a canonical genre name; non-canonical names fall through to Other."""
    if not canonical:
        return GenreFamily.OTHER
    return FAMILY_BY_GENRE.get(canonical, GenreFamily.OTHER)


def map_genre_through_taxonomy(style: str) -> Tuple[Optional[str], str]:
    """Returns (maps_to, mapping_type) where mapping_type is exact, alias or unknown."""
    canonical = canonical_genre_name(style)
    if canonical:
        return canonical, "exact"
    canonical = canonical_genre_from_alias(style)
    if canonical:
        return canonical, "alias"
    return None, "unknown"
