# src/descminer/rowsets.py

from __future__ import annotations

from typing import Iterable, Iterator, Protocol, Type, Union, runtime_checkable

import numpy as np

"""
Row-set representations used by the lattice and the discoverer.

A *row-set* is an immutable set of record indices ``0..n-1``: the rows that
contain an item, or the rows that satisfy every item of an itemset. Row-sets
are created once per column and afterwards only derived by intersection.

Two interchangeable representations implement the same small capability
interface (:class:`RowSet`):

- :class:`BitRows` packs membership into a ``uint8`` bit-vector
  (``np.packbits``) and counts with a popcount lookup table. Best for dense
  data, where intersections are a single vectorized AND.
- :class:`SparseRows` stores a sorted index array. Best for sparse data,
  where a column touches only a small fraction of the records.

Search and scoring code only talks to the module-level helpers
(:func:`size`, :func:`intersect`, :func:`intersection_size`, :func:`union`,
:func:`contains`), so the representation can be swapped without touching it.

Examples
--------
>>> from descminer.rowsets import BitRows, intersection_size
>>> a = BitRows.from_indices([0, 1, 2, 3], n_rows=6)
>>> b = BitRows.from_indices([2, 3, 4], n_rows=6)
>>> intersection_size(a, b)
2
>>> a.intersect(b).to_indices().tolist()
[2, 3]
"""

__all__ = [
    "RowSet",
    "BitRows",
    "SparseRows",
    "size",
    "intersect",
    "intersection_size",
    "union",
    "contains",
    "choose_rowset_type",
]

# popcount of every byte value
_POPCOUNT = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)

# minimal column density at which packed bit-vectors beat index arrays
DENSE_THRESHOLD = 1.0 / 32.0


def _popcount(bits: np.ndarray) -> int:
    return int(_POPCOUNT[bits].sum(dtype=np.int64))


@runtime_checkable
class RowSet(Protocol):
    """Capability interface shared by all row-set representations."""

    n_rows: int

    @property
    def size(self) -> int: ...

    def intersect(self, other: "RowSet") -> "RowSet": ...

    def intersection_size(self, other: "RowSet") -> int: ...

    def union(self, other: "RowSet") -> "RowSet": ...

    def contains(self, row: int) -> bool: ...

    def to_indices(self) -> np.ndarray: ...


def _check_pair(a, b) -> None:
    if type(a) is not type(b):
        raise TypeError(
            f"Cannot combine row-sets of different representations: "
            f"{type(a).__name__} and {type(b).__name__}."
        )
    if a.n_rows != b.n_rows:
        raise ValueError(f"Row-set universes differ: {a.n_rows} vs {b.n_rows} rows.")


class BitRows:
    """
    Dense row-set backed by a packed bit-vector.

    Parameters
    ----------
    bits : numpy.ndarray
        Packed ``uint8`` buffer as produced by ``np.packbits``; trailing pad
        bits must be zero.
    n_rows : int
        Number of records in the universe.
    """

    __slots__ = ("bits", "n_rows", "_size")

    def __init__(self, bits: np.ndarray, n_rows: int):
        self.bits = bits
        self.n_rows = int(n_rows)
        self._size = _popcount(bits)

    @classmethod
    def from_indices(cls, indices: Iterable[int], n_rows: int) -> "BitRows":
        mask = np.zeros(int(n_rows), dtype=bool)
        idx = np.fromiter(indices, dtype=np.int64) if not isinstance(indices, np.ndarray) else indices
        if idx.size:
            if idx.min() < 0 or idx.max() >= n_rows:
                raise IndexError(f"Row index out of range for {n_rows} rows.")
            mask[idx] = True
        return cls.from_mask(mask)

    @classmethod
    def from_mask(cls, mask: np.ndarray) -> "BitRows":
        mask = np.asarray(mask, dtype=bool)
        if mask.ndim != 1:
            raise ValueError("Row mask must be one-dimensional.")
        return cls(np.packbits(mask), mask.size)

    @property
    def size(self) -> int:
        return self._size

    def intersect(self, other: "BitRows") -> "BitRows":
        _check_pair(self, other)
        return BitRows(np.bitwise_and(self.bits, other.bits), self.n_rows)

    def intersection_size(self, other: "BitRows") -> int:
        _check_pair(self, other)
        return _popcount(np.bitwise_and(self.bits, other.bits))

    def union(self, other: "BitRows") -> "BitRows":
        _check_pair(self, other)
        return BitRows(np.bitwise_or(self.bits, other.bits), self.n_rows)

    def contains(self, row: int) -> bool:
        if row < 0 or row >= self.n_rows:
            return False
        return bool(self.bits[row >> 3] & (0x80 >> (row & 7)))

    def to_indices(self) -> np.ndarray:
        return np.flatnonzero(np.unpackbits(self.bits, count=self.n_rows))

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[int]:
        return iter(self.to_indices().tolist())

    def __contains__(self, row: int) -> bool:
        return self.contains(row)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BitRows):
            return NotImplemented
        return self.n_rows == other.n_rows and bool(np.array_equal(self.bits, other.bits))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"BitRows(size={self._size}, n_rows={self.n_rows})"


class SparseRows:
    """
    Sparse row-set backed by a sorted array of unique record indices.

    Parameters
    ----------
    indices : numpy.ndarray
        Sorted, duplicate-free ``int64`` array.
    n_rows : int
        Number of records in the universe.
    """

    __slots__ = ("indices", "n_rows")

    def __init__(self, indices: np.ndarray, n_rows: int):
        self.indices = indices
        self.n_rows = int(n_rows)

    @classmethod
    def from_indices(cls, indices: Iterable[int], n_rows: int) -> "SparseRows":
        idx = np.fromiter(indices, dtype=np.int64) if not isinstance(indices, np.ndarray) else indices
        idx = np.unique(idx.astype(np.int64, copy=False))
        if idx.size and (idx[0] < 0 or idx[-1] >= n_rows):
            raise IndexError(f"Row index out of range for {n_rows} rows.")
        return cls(idx, n_rows)

    @classmethod
    def from_mask(cls, mask: np.ndarray) -> "SparseRows":
        mask = np.asarray(mask, dtype=bool)
        if mask.ndim != 1:
            raise ValueError("Row mask must be one-dimensional.")
        return cls(np.flatnonzero(mask).astype(np.int64), mask.size)

    @property
    def size(self) -> int:
        return int(self.indices.size)

    def intersect(self, other: "SparseRows") -> "SparseRows":
        _check_pair(self, other)
        return SparseRows(np.intersect1d(self.indices, other.indices, assume_unique=True), self.n_rows)

    def intersection_size(self, other: "SparseRows") -> int:
        _check_pair(self, other)
        small, big = (self.indices, other.indices)
        if small.size > big.size:
            small, big = big, small
        if small.size == 0:
            return 0
        # count matches by binary search instead of building the intersection
        pos = np.searchsorted(big, small)
        pos[pos == big.size] = 0
        return int(np.count_nonzero(big[pos] == small))

    def union(self, other: "SparseRows") -> "SparseRows":
        _check_pair(self, other)
        return SparseRows(np.union1d(self.indices, other.indices), self.n_rows)

    def contains(self, row: int) -> bool:
        k = int(np.searchsorted(self.indices, row))
        return k < self.indices.size and int(self.indices[k]) == row

    def to_indices(self) -> np.ndarray:
        return self.indices

    def __len__(self) -> int:
        return int(self.indices.size)

    def __iter__(self) -> Iterator[int]:
        return iter(self.indices.tolist())

    def __contains__(self, row: int) -> bool:
        return self.contains(row)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SparseRows):
            return NotImplemented
        return self.n_rows == other.n_rows and bool(np.array_equal(self.indices, other.indices))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"SparseRows(size={self.size}, n_rows={self.n_rows})"


AnyRows = Union[BitRows, SparseRows]


# ──────────────────────────────────────────────────────────────────────────────
# Representation-agnostic helpers
# ──────────────────────────────────────────────────────────────────────────────

def size(a: AnyRows) -> int:
    """Number of records in ``a``."""
    return a.size


def intersect(a: AnyRows, b: AnyRows) -> AnyRows:
    """Records present in both ``a`` and ``b``."""
    return a.intersect(b)


def intersection_size(a: AnyRows, b: AnyRows) -> int:
    """``|a ∩ b|`` without building a row-set for the intersection."""
    return a.intersection_size(b)


def union(a: AnyRows, b: AnyRows) -> AnyRows:
    return a.union(b)


def contains(a: AnyRows, row: int) -> bool:
    return a.contains(row)


def choose_rowset_type(n_rows: int, n_ones: int, n_items: int) -> Type[AnyRows]:
    """
    Pick the row-set representation for a dataset.

    Parameters
    ----------
    n_rows : int
        Number of records.
    n_ones : int
        Total number of (record, item) memberships.
    n_items : int
        Number of items (columns).

    Returns
    -------
    type
        :class:`BitRows` when the average column density is at least
        ``DENSE_THRESHOLD``, otherwise :class:`SparseRows`.
    """
    if n_rows <= 0 or n_items <= 0:
        return SparseRows
    density = n_ones / float(n_rows * n_items)
    return BitRows if density >= DENSE_THRESHOLD else SparseRows
