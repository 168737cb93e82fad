"""
Cheap deterministic rejection of impossible pairs.

Runs before the vision model so obviously wrong pairs never cost an API
call. Rules are conservative: a pair is skipped only on a species mismatch
or a clearly contradictory colour.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from stray_match.storage.models import AnimalRecord, LostAnimalRecord

SPECIES_MISMATCH = "species mismatch"

# Pairs are matched by substring in both directions. The list is kept as
# deployed; e.g. orange vs gray is intentionally absent.
INCOMPATIBLE_COLORS: Tuple[Tuple[str, str], ...] = (
    ("white", "orange"),
    ("white", "black"),
    ("white", "brown"),
    ("black", "white"),
    ("black", "orange"),
    ("orange", "white"),
    ("orange", "black"),
)


@dataclass(frozen=True)
class PreFilterDecision:
    """Whether to skip a pair, and why."""
    skip: bool
    reason: Optional[str] = None

    @property
    def confidence(self) -> Optional[float]:
        """Skipped pairs score 0; others are left to the analyzer."""
        return 0.0 if self.skip else None


PROCEED = PreFilterDecision(skip=False)


def color_conflict(lost_color: Optional[str], sighting_color: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return the first incompatible pair found, or None.

    Both colours must be present; comparison is case-insensitive.
    """
    if not lost_color or not sighting_color:
        return None
    lost = lost_color.lower()
    seen = sighting_color.lower()
    for first, second in INCOMPATIBLE_COLORS:
        if (first in lost and second in seen) or (second in lost and first in seen):
            return first, second
    return None


def should_skip(lost: LostAnimalRecord, sighting: AnimalRecord) -> PreFilterDecision:
    """Decide whether a pair can be rejected without the vision model."""
    if lost.animal_type != sighting.animal_type:
        return PreFilterDecision(
            skip=True,
            reason=f"{SPECIES_MISMATCH}: {lost.animal_type.value} vs {sighting.animal_type.value}",
        )

    if color_conflict(lost.color, sighting.color):
        return PreFilterDecision(
            skip=True,
            reason=f"different colors: {lost.color.lower()} vs {sighting.color.lower()}",
        )

    return PROCEED
