"""
Thresholds and the dual-hash consensus rule.

Two records are compared perceptually slot by slot (aHash with aHash, dHash
with dHash). When both slots are comparable, both distances must be within the
threshold. When only one slot is comparable the single signal is held to the
stricter HIGH threshold. With no comparable slot there is no perceptual match
at all.
"""
from typing import Optional

from .. import config
from ..models import Confidence, PhotoRecord
from .bktree import hamming_distance

NEAR_CERTAIN = config.PHASH_NEAR_CERTAIN_THRESHOLD
HIGH = config.PHASH_HIGH_THRESHOLD
PROBABLE = config.PHASH_PROBABLE_THRESHOLD


def confidence_from_hamming(distance: int) -> Optional[Confidence]:
    if distance <= NEAR_CERTAIN:
        return Confidence.NEAR_CERTAIN
    if distance <= HIGH:
        return Confidence.HIGH
    if distance <= PROBABLE:
        return Confidence.PROBABLE
    return None


def combine_confidence(a: Confidence, b: Confidence) -> Confidence:
    """The weaker of the two."""
    return min(a, b)


def can_compare(x: PhotoRecord, y: PhotoRecord) -> bool:
    """True when at least one hash slot is present on both records."""
    xa, xb = x.perceptual_codes()
    ya, yb = y.perceptual_codes()
    return (xa is not None and ya is not None) or (xb is not None and yb is not None)


def perceptual_distance(x: PhotoRecord, y: PhotoRecord, threshold: int = PROBABLE) -> Optional[int]:
    """
    Applies the consensus rule at `threshold`.

    Returns the governing distance (the larger of the slot distances) when the
    pair matches, otherwise None.
    """
    xa, xb = x.perceptual_codes()
    ya, yb = y.perceptual_codes()

    distances = []
    if xa is not None and ya is not None:
        distances.append(hamming_distance(xa, ya))
    if xb is not None and yb is not None:
        distances.append(hamming_distance(xb, yb))

    if not distances:
        return None
    if len(distances) == 1:
        threshold = min(threshold, HIGH)

    worst = max(distances)
    return worst if worst <= threshold else None


def is_perceptual_match(x: PhotoRecord, y: PhotoRecord, threshold: int = PROBABLE) -> bool:
    return perceptual_distance(x, y, threshold) is not None
