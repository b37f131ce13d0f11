import numpy as np
import pytest

from descminer.rowsets import (
    BitRows,
    SparseRows,
    choose_rowset_type,
    contains,
    intersect,
    intersection_size,
    size,
    union,
)

REPRS = [BitRows, SparseRows]


@pytest.mark.parametrize("R", REPRS)
def test_basic_operations(R):
    a = R.from_indices([0, 1, 2, 3], n_rows=10)
    b = R.from_indices([2, 3, 4, 9], n_rows=10)
    assert size(a) == 4
    assert intersect(a, b).to_indices().tolist() == [2, 3]
    assert intersection_size(a, b) == 2
    assert union(a, b).to_indices().tolist() == [0, 1, 2, 3, 4, 9]
    assert contains(b, 9) and not contains(a, 9)
    assert 3 in a and 5 not in a


@pytest.mark.parametrize("R", REPRS)
def test_intersection_size_matches_materialized(R):
    rng = np.random.default_rng(1)
    for _ in range(20):
        x = rng.random(77) < 0.3
        y = rng.random(77) < 0.6
        a, b = R.from_mask(x), R.from_mask(y)
        assert intersection_size(a, b) == int((x & y).sum()) == intersect(a, b).size


@pytest.mark.parametrize("R", REPRS)
def test_empty_sets(R):
    e = R.from_indices([], n_rows=5)
    a = R.from_indices([1, 4], n_rows=5)
    assert size(e) == 0
    assert intersection_size(e, a) == 0
    assert intersect(a, e).size == 0
    assert list(e) == []


@pytest.mark.parametrize("R", REPRS)
def test_out_of_range_index_rejected(R):
    with pytest.raises(IndexError):
        R.from_indices([5], n_rows=5)


def test_mixed_representations_rejected():
    a = BitRows.from_indices([1], n_rows=4)
    b = SparseRows.from_indices([1], n_rows=4)
    with pytest.raises(TypeError):
        intersect(a, b)


def test_universe_mismatch_rejected():
    a = BitRows.from_indices([1], n_rows=4)
    b = BitRows.from_indices([1], n_rows=12)
    with pytest.raises(ValueError):
        intersection_size(a, b)


def test_bit_rows_ignore_padding():
    # 11 rows -> two bytes, 5 padding bits that must never count
    a = BitRows.from_mask(np.ones(11, dtype=bool))
    assert a.size == 11
    assert a.to_indices().tolist() == list(range(11))
    assert not a.contains(11)


def test_representations_agree():
    idx = [0, 3, 8, 15]
    assert BitRows.from_indices(idx, 16).to_indices().tolist() == SparseRows.from_indices(idx, 16).to_indices().tolist()


def test_choose_rowset_type_by_density():
    assert choose_rowset_type(1000, 500_000, 1000) is BitRows
    assert choose_rowset_type(1000, 100, 1000) is SparseRows
    assert choose_rowset_type(0, 0, 0) is SparseRows
