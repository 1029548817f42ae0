"""Closed lookup tables for the multiple-choice keys used by Trialist surveys.

The survey configuration stores the position of the chosen option, not its
meaning, so every key has to be translated here.  Adding a new option is a
one-line table edit.
"""

from enum import Enum
from typing import Dict, Mapping, TypeVar

from .errors import UnknownKeyError

V = TypeVar("V")


class SurveyKind(str, Enum):
    """Surveys that make up a Trialist campaign."""
    SETUP = "setup"
    START = "start"
    MAIN = "main"


class Regimen(str, Enum):
    """The two regimens compared by a trial."""
    A = "A"
    B = "B"


REGIMEN_DURATION_DAYS: Dict[int, int] = {0: 2, 1: 7, 2: 14}

NUMBER_OF_CYCLES: Dict[int, int] = {0: 2, 1: 3, 2: 4}

REGIMEN_BY_KEY: Dict[int, Regimen] = {0: Regimen.A, 1: Regimen.B}

MEDICATION_LABELS: Dict[int, str] = {
    0: "No specific treatment",
    1: "Tylenol (acetaminophen)",
    2: "Any NSAID (e.g., ibuprofen, naproxen, sulindac)",
    3: "Codeine combination product (e.g., Tylenol with codeine, Tylenol #3)",
    4: "Tramadol (e.g., Ultram, Ryzolt, ConZip, Rybix)",
    5: "Hydrocodone combination product (e.g., Vicodin, Norco)",
    6: "Oxycodone combination treatment (e.g., Percocet)",
    7: (
        "Complementary treatment: including but not limited to physical activity (exercise,"
        " stretching, yoga), mindfulness (meditation, relaxation, music therapy)"
    ),
}

# Mock and test campaigns compare music genres instead of medications.
GENRE_LABELS: Dict[int, str] = {
    0: "Classical",
    1: "Country",
    2: "Easy Listening",
    3: "Folk",
    4: "Hip hop",
    5: "Jazz",
    6: "Pop",
    7: "Rock",
    8: "Other",
}

MOCK_CAMPAIGN_MARKERS = ("old", "mock")


def _lookup(table: Mapping[int, V], key: int, name: str) -> V:
    if isinstance(key, bool) or not isinstance(key, int) or key not in table:
        raise UnknownKeyError(name, key)
    return table[key]


def regimen_duration_days(key: int) -> int:
    """Length of one regimen period in days."""
    return _lookup(REGIMEN_DURATION_DAYS, key, "regimen duration")


def number_of_cycles(key: int) -> int:
    """Number of A/B comparison cycles."""
    return _lookup(NUMBER_OF_CYCLES, key, "number of cycles")


def regimen_for_key(key: int) -> Regimen:
    return _lookup(REGIMEN_BY_KEY, key, "regimen")


def is_mock_campaign(campaign_id: str) -> bool:
    return any(marker in campaign_id for marker in MOCK_CAMPAIGN_MARKERS)


def regimen_label(key: int, is_mock: bool) -> str:
    """Human-readable label for a regimen option key."""
    if is_mock:
        return _lookup(GENRE_LABELS, key, "mock regimen option")
    return _lookup(MEDICATION_LABELS, key, "regimen option")


def total_trial_days(duration_key: int, cycles_key: int) -> int:
    """Days between the first and last day of a trial.

    Each cycle holds one period of each regimen.  One day is subtracted so
    that adding the result to the start date lands on the last trial day.
    """
    return 2 * regimen_duration_days(duration_key) * number_of_cycles(cycles_key) - 1
