import random

import pytest

from lossless_vault.exceptions import IndexInconsistencyError
from lossless_vault.matching.bktree import BKTree, hamming_distance

FULL = (1 << 64) - 1


def test_hamming_distance():
    assert hamming_distance(0, 0) == 0
    assert hamming_distance(FULL, FULL) == 0
    assert hamming_distance(0, 1) == 1
    assert hamming_distance(0, 3) == 2
    assert hamming_distance(0, FULL) == 64
    assert hamming_distance(0b1010, 0b0110) == hamming_distance(0b0110, 0b1010)


def test_query_matches_brute_force():
    rng = random.Random(1234)
    base = rng.getrandbits(64)
    # Cluster around one code plus noise, so small radii have real hits
    codes = [base ^ (1 << rng.randrange(64)) ^ (1 << rng.randrange(64)) for _ in range(150)]
    codes += [rng.getrandbits(64) for _ in range(150)]

    tree = BKTree.build((code, idx) for idx, code in enumerate(codes))
    assert len(tree) == len(codes)

    for radius in (0, 2, 5, 12):
        query = codes[3]
        expected = {
            (idx, hamming_distance(query, code))
            for idx, code in enumerate(codes)
            if hamming_distance(query, code) <= radius
        }
        assert set(tree.query_within(query, radius)) == expected


def test_duplicate_codes_are_kept():
    tree = BKTree()
    tree.insert(0xABC, 1)
    tree.insert(0xABC, 2)
    tree.insert(0xABD, 3)

    assert len(tree) == 3
    hits = sorted(tree.query_within(0xABC, 0))
    assert hits == [(1, 0), (2, 0)]


def test_query_is_lazy_and_restartable():
    tree = BKTree.build([(0, 1), (1, 2), (FULL, 3)])
    query = tree.query_within(0, 1)

    assert not isinstance(query, list)
    first = sorted(query)
    second = sorted(query)
    assert first == second == [(1, 0), (2, 1)]

    it = iter(query)
    assert next(it) in first


def test_empty_tree_returns_nothing():
    assert list(BKTree().query_within(0, 64)) == []


def test_insert_after_query_is_rejected():
    tree = BKTree.build([(0, 1)])
    list(tree.query_within(0, 3))
    with pytest.raises(IndexInconsistencyError):
        tree.insert(5, 2)
