"""Pure formulas used by the weekly aggregator.

Relative shares are stored per mille (0..1000) so that a compound lift can
split its stimulus across several muscles without floating point drift in
the reference data.
"""

from __future__ import annotations

SHARE_SCALE = 1000.0


def raw_volume(weight: float | None, reps: int | None) -> float:
    if weight is None or reps is None:
        return 0.0
    return float(weight) * float(reps)


def effective_volume(
    raw_volume: float | None,
    relative_share: float | None,
    tension_factor: float | None,
    modifier: float | None = 1.0,
) -> float:
    """Scale raw volume to the stimulus attributed to one muscle.

    Missing inputs yield 0.0 rather than an error: a set without a muscle
    mapping still counts towards the user's weekly total. Neither the tension
    factor nor the modifier is clamped here.
    """
    if raw_volume is None or relative_share is None or tension_factor is None:
        return 0.0
    if modifier is None:
        modifier = 1.0
    return raw_volume * (relative_share / SHARE_SCALE) * tension_factor * modifier


def is_e1rm_eligible(weight: float | None, reps: int | None) -> bool:
    return weight is not None and reps is not None and weight > 0 and reps > 0


def epley_1rm(weight: float | None, reps: int | None) -> float:
    """Epley estimate; a single is its own 1RM."""
    if not is_e1rm_eligible(weight, reps):
        return 0.0
    if reps == 1:
        return float(weight)
    return weight * (1 + reps / 30.0)
