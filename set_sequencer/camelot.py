"""
Camelot Wheel Key Model

Implements the Camelot wheel for scoring harmonic compatibility between tracks.
The wheel has 12 positions (1-12) and 2 rings: A (minor) and B (major).

Key axis scores:
  same key          (8A -> 8A)   = 1.0
  adjacent +/-1     (8A -> 9A)   = 0.9
  mood shift        (8A -> 8B)   = 0.8
  energy diagonal   (8A -> 9B)   = 0.55
  extended +/-2     (8A -> 10A)  = 0.45
  clash                          = 0.1

Pitch shifting by one semitone moves a key 7 positions around the wheel
(circle of fifths), which is what `transpose` models.
"""

import re
from typing import Dict, Optional

from .models import AxisScore, CamelotKey


# Valid Camelot key pattern: 1-12 followed by A or B
_KEY_PATTERN = re.compile(r"^(\d{1,2})([ABab])$")

# Normalized root -> wheel number
MINOR_KEY_NUMBERS: Dict[str, int] = {
    "G#": 1, "Ab": 1,
    "D#": 2, "Eb": 2,
    "A#": 3, "Bb": 3,
    "F": 4,
    "C": 5,
    "G": 6,
    "D": 7,
    "A": 8,
    "E": 9,
    "B": 10,
    "F#": 11, "Gb": 11,
    "C#": 12, "Db": 12,
}

MAJOR_KEY_NUMBERS: Dict[str, int] = {
    "B": 1,
    "F#": 2, "Gb": 2,
    "C#": 3, "Db": 3,
    "G#": 4, "Ab": 4,
    "D#": 5, "Eb": 5,
    "A#": 6, "Bb": 6,
    "F": 7,
    "C": 8,
    "G": 9,
    "D": 10,
    "A": 11,
    "E": 12,
}

# Checked in order, longest suffix first
_MODE_SUFFIXES = (
    ("minor", True),
    ("min", True),
    ("m", True),
    ("major", False),
    ("maj", False),
)


class CamelotWheel:
    """Implements Camelot wheel logic for harmonic DJ mixing."""

    @staticmethod
    def parse(key: Optional[str]) -> Optional[CamelotKey]:
        """
        Parse a Camelot key string.
        '8A' -> 8A, '12b' -> 12B.  Returns None for invalid keys.
        """
        if not key:
            return None
        match = _KEY_PATTERN.match(key.strip())
        if not match:
            return None
        num = int(match.group(1))
        if not (1 <= num <= 12):
            return None
        return CamelotKey(number=num, letter=match.group(2).upper())

    @staticmethod
    def from_musical(key: Optional[str]) -> Optional[CamelotKey]:
        """Convert a key name such as 'Am', 'F#m', 'Bb', 'C major' or 'Dbmin'."""
        if not key:
            return None
        normalized = key.strip().replace("♯", "#").replace("♭", "b")
        if not normalized:
            return None

        lower = normalized.lower()
        root_raw, is_minor = normalized, False
        for suffix, minor in _MODE_SUFFIXES:
            if lower.endswith(suffix) and len(normalized) > len(suffix):
                root_raw, is_minor = normalized[: -len(suffix)], minor
                break

        root = _normalize_root(root_raw)
        if root is None:
            return None
        table = MINOR_KEY_NUMBERS if is_minor else MAJOR_KEY_NUMBERS
        number = table.get(root)
        if number is None:
            return None
        return CamelotKey(number=number, letter="A" if is_minor else "B")

    @classmethod
    def resolve(cls, key: Optional[str]) -> Optional[CamelotKey]:
        """Camelot notation first, then musical key names."""
        return cls.parse(key) or cls.from_musical(key)

    @staticmethod
    def transpose(key: CamelotKey, semitones: int) -> CamelotKey:
        """
        Transpose a key by a number of semitones.
        +1 semitone = +7 wheel positions (mod 12); the letter is unchanged.
        """
        steps = ((semitones % 12) * 7) % 12
        return CamelotKey(number=((key.number - 1 + steps) % 12) + 1, letter=key.letter)

    @staticmethod
    def format(key: CamelotKey) -> str:
        return str(key)

    @staticmethod
    def _wrap(num: int) -> int:
        """Wrap position to 1-12 range."""
        return ((num - 1) % 12) + 1

    def score(self, from_key: Optional[CamelotKey], to_key: Optional[CamelotKey]) -> AxisScore:
        """Key axis score for a transition between two wheel positions."""
        if from_key is None or to_key is None:
            return AxisScore(value=0.1, label="Clash (missing key)")

        f_num, f_letter = from_key.number, from_key.letter
        t_num, t_letter = to_key.number, to_key.letter

        if f_num == t_num:
            if f_letter == t_letter:
                return AxisScore(value=1.0, label="Perfect")
            return AxisScore(value=0.8, label="Mood shift (A↔B)")

        if f_letter == t_letter:
            if t_num == self._wrap(f_num + 1):
                return AxisScore(value=0.9, label="Camelot adjacent (+1)")
            if t_num == self._wrap(f_num - 1):
                return AxisScore(value=0.9, label="Camelot adjacent (-1)")
            if t_num in (self._wrap(f_num + 2), self._wrap(f_num - 2)):
                return AxisScore(value=0.45, label="Extended (+/-2)")
        elif t_num in (self._wrap(f_num + 1), self._wrap(f_num - 1)):
            return AxisScore(value=0.55, label="Energy diagonal (+/-1 cross)")

        return AxisScore(value=0.1, label="Clash")


def _normalize_root(root: str) -> Optional[str]:
    """'f#' -> 'F#', 'bb' -> 'Bb', ' E ' -> 'E'.  None when not a note name."""
    stripped = "".join(root.split())
    if not stripped or len(stripped) > 2:
        return None
    letter = stripped[0].upper()
    if letter not in "ABCDEFG":
        return None
    if len(stripped) == 1:
        return letter
    accidental = stripped[1]
    if accidental == "#":
        return f"{letter}#"
    if accidental in ("b", "B"):
        return f"{letter}b"
    return None
