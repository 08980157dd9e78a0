"""Tests for weighted provider apportionment (Largest Remainder method)."""

import random
from collections import Counter
from dataclasses import dataclass
from fractions import Fraction

import pytest

from visibility_tracker.core.exceptions import InvalidProviderWeightError, NoEligibleProvidersError
from visibility_tracker.services.apportionment import allocate, apportion, compute_shares


@dataclass(frozen=True)
class P:
    id: int
    weight: int


class TestApportion:
    def test_exact_shares_have_no_leftover(self):
        providers = [P(1, 5), P(2, 3), P(3, 2)]
        shares = compute_shares(10, providers)
        assert [s.base for s in shares] == [5, 3, 2]
        assert all(s.extra == 0 for s in shares)
        assert apportion(10, providers) == {1: 5, 2: 3, 3: 2}

    def test_tied_remainder_goes_to_lowest_id(self):
        providers = [P(2, 1), P(1, 1)]
        shares = {s.provider_id: s for s in compute_shares(3, providers)}
        assert shares[1].ideal == Fraction(3, 2)
        assert shares[1].base == 1 and shares[2].base == 1
        assert apportion(3, providers) == {1: 2, 2: 1}

    def test_largest_remainder_wins(self):
        # ideals: 7 * 6/10 = 4.2, 7 * 3/10 = 2.1, 7 * 1/10 = 0.7
        assert apportion(7, [P(1, 6), P(2, 3), P(3, 1)]) == {1: 4, 2: 2, 3: 1}

    @pytest.mark.parametrize("total", [0, 1, 2, 7, 13, 100])
    @pytest.mark.parametrize("weights", [[1], [1, 1, 1], [5, 3, 2], [7, 1], [2, 9, 4, 1]])
    def test_counts_sum_and_stay_within_one_of_ideal(self, total, weights):
        providers = [P(i + 1, w) for i, w in enumerate(weights)]
        shares = compute_shares(total, providers)
        leftover = total - sum(s.base for s in shares)

        assert leftover >= 0
        assert sum(s.count for s in shares) == total
        for s in shares:
            assert abs(s.count - s.ideal) < 1

    def test_no_providers(self):
        with pytest.raises(NoEligibleProvidersError):
            apportion(5, [])

    @pytest.mark.parametrize("weight", [0, -1, 1.5, True])
    def test_invalid_weight(self, weight):
        with pytest.raises(InvalidProviderWeightError) as exc:
            apportion(5, [P(1, 1), P(2, weight)])
        assert exc.value.provider_id == 2

    def test_negative_total(self):
        with pytest.raises(ValueError):
            apportion(-1, [P(1, 1)])


class TestAllocate:
    def test_assignment_counts_match_apportionment(self):
        providers = [P(1, 5), P(2, 3), P(3, 2)]
        assignments = allocate(10, providers, rng=random.Random(42))
        assert len(assignments) == 10
        assert Counter(assignments) == {1: 5, 2: 3, 3: 2}

    def test_zero_units(self):
        assert allocate(0, [P(1, 1)]) == []
        assert allocate(0, []) == []

    def test_zero_units_still_rejects_bad_weights(self):
        with pytest.raises(InvalidProviderWeightError):
            allocate(0, [P(1, 0)])

    def test_shuffle_uses_injected_rng(self):
        class Reverse:
            def shuffle(self, x):
                x.reverse()

        assert allocate(3, [P(1, 2), P(2, 1)], rng=Reverse()) == [2, 1, 1]

    def test_same_seed_same_order(self):
        providers = [P(1, 1), P(2, 1), P(3, 1)]
        first = allocate(12, providers, rng=random.Random(7))
        second = allocate(12, providers, rng=random.Random(7))
        assert first == second

    def test_shuffle_spreads_providers(self):
        """Over many shuffles every provider shows up in the first slot."""
        providers = [P(1, 1), P(2, 1)]
        rng = random.Random(1)
        first_slots = {allocate(4, providers, rng=rng)[0] for _ in range(50)}
        assert first_slots == {1, 2}
