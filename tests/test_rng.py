"""Tests for the injectable random source helpers."""

import random
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mood_composer.rng import SequenceRandom, pick, randbelow, resolve, uniform  # noqa: E402


def test_sequence_random_cycles_and_counts():
    """Values are replayed in order and wrap around at the end."""
    rng = SequenceRandom([0.1, 0.2])
    assert [rng.random() for _ in range(5)] == [0.1, 0.2, 0.1, 0.2, 0.1]
    assert rng.calls == 5


@pytest.mark.parametrize("values", [[], [1.0], [-0.1]])
def test_sequence_random_validates_values(values):
    with pytest.raises(ValueError):
        SequenceRandom(values)


def test_resolve_defaults_to_module():
    assert resolve(None) is random
    source = random.Random(1)
    assert resolve(source) is source


def test_randbelow_uses_one_draw():
    rng = SequenceRandom([0.5])
    assert randbelow(rng, 4) == 2
    assert rng.calls == 1


def test_randbelow_never_reaches_n():
    assert randbelow(SequenceRandom([0.9999999999]), 4) == 3
    with pytest.raises(ValueError):
        randbelow(SequenceRandom([0.5]), 0)


def test_pick_and_uniform():
    assert pick(SequenceRandom([0.0]), ["a", "b", "c"]) == "a"
    assert pick(SequenceRandom([0.7]), ["a", "b", "c"]) == "c"
    assert uniform(SequenceRandom([0.25]), 10, 20) == pytest.approx(12.5)
    with pytest.raises(ValueError):
        pick(SequenceRandom([0.5]), [])


def test_seeded_random_is_reproducible():
    """``random.Random`` satisfies the protocol and replays with a seed."""
    first = [randbelow(random.Random(9), 100) for _ in range(3)]
    second = [randbelow(random.Random(9), 100) for _ in range(3)]
    assert first == second
