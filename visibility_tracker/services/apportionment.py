"""Provider apportionment: Largest Remainder (Hamilton) method.

Turns (number of prompts, weighted providers) into:
  1. an exact per-provider count that sums to the total (apportion)
  2. a shuffled per-prompt assignment list (allocate)

Counting is pure and deterministic; only the shuffle uses randomness, and
the random source is injectable so tests can control it.

    ideal_i     = weight_i / Σweight × total
    base_i      = floor(ideal_i)
    leftover    = total − Σbase_i
    → top `leftover` providers by remainder (ties: lowest id) get +1
"""

from __future__ import annotations

import logging
import random
from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from fractions import Fraction
from typing import Protocol

from visibility_tracker.core.exceptions import InvalidProviderWeightError, NoEligibleProvidersError

logger = logging.getLogger(__name__)


class WeightedProvider(Protocol):
    id: Hashable
    weight: int


class Shuffler(Protocol):
    def shuffle(self, x: list) -> None: ...


@dataclass(frozen=True)
class Share:
    """Intermediate apportionment figures for one provider."""

    provider_id: Hashable
    ideal: Fraction
    base: int
    remainder: Fraction
    extra: int = 0

    @property
    def count(self) -> int:
        return self.base + self.extra


def validate_weights(providers: Sequence[WeightedProvider]) -> int:
    """Reject unusable provider sets. Returns the total weight."""
    if not providers:
        raise NoEligibleProvidersError()

    for p in providers:
        if isinstance(p.weight, bool) or not isinstance(p.weight, int) or p.weight <= 0:
            raise InvalidProviderWeightError(p.id, p.weight)

    total_weight = sum(p.weight for p in providers)
    if total_weight == 0:
        raise NoEligibleProvidersError()
    return total_weight


def compute_shares(total_units: int, providers: Sequence[WeightedProvider]) -> list[Share]:
    """Run the counting step and return per-provider figures, in input order."""
    if total_units < 0:
        raise ValueError(f"total_units must be >= 0, got {total_units}")

    total_weight = validate_weights(providers)

    raw: list[Share] = []
    for p in providers:
        ideal = Fraction(p.weight * total_units, total_weight)
        base = ideal.numerator // ideal.denominator
        raw.append(Share(provider_id=p.id, ideal=ideal, base=base, remainder=ideal - base))

    leftover = total_units - sum(s.base for s in raw)

    # Largest remainder first; equal remainders go to the lowest provider id
    ranked = sorted(range(len(raw)), key=lambda i: (-raw[i].remainder, raw[i].provider_id))
    winners = set(ranked[:leftover])

    return [
        Share(
            provider_id=s.provider_id,
            ideal=s.ideal,
            base=s.base,
            remainder=s.remainder,
            extra=1 if i in winners else 0,
        )
        for i, s in enumerate(raw)
    ]


def apportion(total_units: int, providers: Sequence[WeightedProvider]) -> dict[Hashable, int]:
    """Exact per-provider unit counts summing to total_units."""
    return {s.provider_id: s.count for s in compute_shares(total_units, providers)}


def allocate(
    total_units: int,
    providers: Sequence[WeightedProvider],
    rng: Shuffler | None = None,
) -> list[Hashable]:
    """Build the shuffled assignment list; zip it 1:1 against the ordered prompts.

    Args:
        total_units: Number of prompts to assign.
        providers: Enabled providers with positive integer weights.
        rng: Object with a ``shuffle(list)`` method. Defaults to a fresh
            ``random.Random()``.

    Returns:
        List of provider ids, ``len == total_units``.
    """
    if total_units == 0:
        if providers:
            validate_weights(providers)
        return []

    counts = apportion(total_units, providers)

    assignments: list[Hashable] = []
    for provider_id, count in counts.items():
        assignments.extend([provider_id] * count)

    (rng or random.Random()).shuffle(assignments)

    logger.debug("Allocated %d units across %d providers: %s", total_units, len(providers), counts)
    return assignments
