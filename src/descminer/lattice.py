# src/descminer/lattice.py

from __future__ import annotations

import heapq
from bisect import bisect_right
from dataclasses import dataclass
from typing import Dict, List, Sequence, Set, Tuple

from .rowsets import AnyRows, intersect, intersection_size

"""
Candidate search space over itemsets.

Candidates are generated by extending an itemset with one item larger than
its current maximum, so every itemset has exactly one generation path. The
lattice keeps:

- an *arena* of live candidates keyed by id,
- a *frontier* heap of candidates waiting to be scored, ordered by
  non-increasing support (ties: lexicographically smallest items first),
- a *closed* set of itemsets that already entered the search.

Support is anti-monotone, so the frontier order visits the candidates whose
descendants could still carry the most support first.
"""

__all__ = ["Candidate", "Lattice"]


@dataclass(frozen=True, slots=True)
class Candidate:
    """An itemset together with the rows that contain all of its items."""

    id: int
    items: Tuple[int, ...]
    rows: AnyRows
    support: int

    @property
    def itemset(self) -> frozenset:
        return frozenset(self.items)

    def __len__(self) -> int:
        return len(self.items)


class Lattice:
    """
    Incrementally expanded itemset lattice.

    Parameters
    ----------
    columns : sequence of row-sets
        Row-set of every item position. Items with empty row-sets are outside
        the universe and never appear in a candidate.

    Examples
    --------
    >>> from descminer.rowsets import BitRows
    >>> cols = [BitRows.from_indices(r, 6) for r in ([0, 1, 2, 3], [0, 1, 2, 3], [4, 5])]
    >>> L = Lattice(cols)
    >>> [c.items for c in L.pop_batch(3)]
    [(0,), (1,), (2,)]
    """

    def __init__(self, columns: Sequence[AnyRows]):
        self._columns = list(columns)
        self.universe: Tuple[int, ...] = tuple(i for i, r in enumerate(self._columns) if r.size > 0)
        self._arena: Dict[int, Candidate] = {}
        self._frontier: List[Tuple[int, Tuple[int, ...], int]] = []
        self._closed: Set[Tuple[int, ...]] = set()
        self._next_id = 0

        self.singletons: List[Candidate] = []
        for i in self.universe:
            c = self._make((i,), self._columns[i])
            self.singletons.append(c)
            self.push(c)

    def _make(self, items: Tuple[int, ...], rows: AnyRows) -> Candidate:
        c = Candidate(self._next_id, items, rows, rows.size)
        self._next_id += 1
        return c

    @property
    def n_generated(self) -> int:
        return self._next_id

    @property
    def empty(self) -> bool:
        return not self._frontier

    def __len__(self) -> int:
        return len(self._frontier)

    def __contains__(self, items) -> bool:
        return tuple(sorted(items)) in self._closed

    def push(self, candidate: Candidate) -> None:
        self._arena[candidate.id] = candidate
        self._closed.add(candidate.items)
        heapq.heappush(self._frontier, (-candidate.support, candidate.items, candidate.id))

    def pop_batch(self, max_expansions: int) -> List[Candidate]:
        """Remove and return up to ``max_expansions`` candidates in frontier order."""
        out: List[Candidate] = []
        while self._frontier and len(out) < max_expansions:
            _, _, cid = heapq.heappop(self._frontier)
            out.append(self._arena.pop(cid))
        return out

    def expand(self, candidate: Candidate, min_support: int = 0) -> List[Candidate]:
        """
        Children of ``candidate``: one per universe item after its maximum item.

        Children already in the closed set are skipped. Children whose support
        would fall below ``min_support`` are not materialized.
        """
        start = bisect_right(self.universe, candidate.items[-1])
        children: List[Candidate] = []
        for j in self.universe[start:]:
            items = candidate.items + (j,)
            if items in self._closed:
                continue
            col = self._columns[j]
            if min_support > 0 and intersection_size(candidate.rows, col) < min_support:
                continue
            children.append(self._make(items, intersect(candidate.rows, col)))
        return children
