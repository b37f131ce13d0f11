# src/descminer/maxent.py

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

"""
Factorized maximum-entropy model over binary feature vectors.

The model starts as the independence model defined by the singleton
marginals. Every accepted pattern adds a constraint ``P(S ⊆ t) = f``. Patterns
that share items are grouped into a single :class:`Factor` spanning the union
of their items; distinct factors are disjoint and therefore independent.

Inside a factor with items ``U``, patterns ``S_1..S_k`` and parameters
``θ_i`` (items) and ``θ_j`` (patterns) the distribution is

    P(t) ∝ Π_{i∈t} θ_i · Π_{j : S_j ⊆ t} θ_j,        t ⊆ U.

Writing ``Π_j θ_j^[S_j ⊆ t]`` as ``Σ_J Π_{j∈J} (θ_j − 1) [U_J ⊆ t]`` turns
every expectation into a sum over the ``2^k`` pattern subsets ``J``:

    E[X ⊆ t] = Σ_J c_J Π_{i ∈ U_J ∪ X} q_i  /  Σ_J c_J Π_{i ∈ U_J} q_i

with ``c_J = Π_{j∈J} (θ_j − 1)``, ``U_J = ∪_{j∈J} S_j`` and
``q_i = θ_i / (1 + θ_i)``. The cost is linear in ``|U|`` and exponential only
in the number of patterns, which is why factor sizes are capped by
:data:`MAX_MAXENT_FACTOR_SIZE`.

Parameters are fitted by iterative scaling: each item marginal and each
pattern frequency is matched in turn with the exact coordinate update
``θ ← θ · f(1 − E) / (E(1 − f))``.

Examples
--------
>>> from descminer.maxent import MaxEnt
>>> p = MaxEnt([4 / 6, 4 / 6, 2 / 6], items=["A", "B", "C"])
>>> round(p.probability_of([0, 1]), 4)
0.4444
>>> _ = p.insert_pattern(4 / 6, [0, 1], max_factor_size=8, max_factor_width=50)
>>> round(p.probability_of([0, 1]), 2)
0.67
>>> p.patterns()
[frozenset({'A', 'B'})]
"""

__all__ = [
    "MAX_MAXENT_FACTOR_SIZE",
    "FactorCapacityError",
    "Factor",
    "MaxEnt",
    "probability_of",
    "forbidden",
    "insert",
    "patterns",
]

logger = logging.getLogger(__name__)

# hard ceiling on the number of patterns per factor (inference is O(2^size))
MAX_MAXENT_FACTOR_SIZE = 12

# targets are clamped to [EPS, 1 - EPS]
EPS = 1e-10

DEFAULT_TOL = 1e-9
DEFAULT_MAX_ITER = 500


class FactorCapacityError(RuntimeError):
    """Raised when inserting a pattern would exceed the factor size/width caps."""


def _clamp(p):
    return np.clip(p, EPS, 1.0 - EPS)


def _scale(target: float, current: float) -> float:
    e = min(max(current, EPS), 1.0 - EPS)
    return target * (1.0 - e) / (e * (1.0 - target))


def _as_positions(itemset: Iterable[int]) -> Tuple[int, ...]:
    return tuple(sorted({int(i) for i in itemset}))


class Factor:
    """
    One component of the factorized model.

    Parameters
    ----------
    items : sequence of int
        Item positions spanned by the factor (its *width*).
    patterns : sequence of sequence of int
        Constrained itemsets; each must be a subset of ``items``. Their count is
        the factor *size*.
    frequencies : sequence of float
        Empirical frequency of each pattern.
    marginals : sequence of float
        Singleton marginal of each item, aligned with ``sorted(items)``.
    item_theta, pattern_theta : dict, optional
        Warm-start parameters keyed by item position / pattern tuple, used when
        factors are merged.

    Notes
    -----
    - Instances are not thread-safe while :meth:`fit` runs. Read-only
      :meth:`expectation` calls may run concurrently.
    """

    __slots__ = (
        "items",
        "patterns",
        "frequencies",
        "_marginals",
        "_index",
        "_item_theta",
        "_pattern_theta",
        "_pattern_masks",
        "_masks",
        "_coef",
        "_logq",
    )

    def __init__(
        self,
        items: Sequence[int],
        patterns: Sequence[Sequence[int]],
        frequencies: Sequence[float],
        marginals: Sequence[float],
        *,
        item_theta: Optional[Dict[int, float]] = None,
        pattern_theta: Optional[Dict[Tuple[int, ...], float]] = None,
    ):
        self.items: Tuple[int, ...] = _as_positions(items)
        self.patterns: Tuple[Tuple[int, ...], ...] = tuple(_as_positions(p) for p in patterns)
        self.frequencies = np.asarray(frequencies, dtype=float)
        if len(self.patterns) != self.frequencies.size:
            raise ValueError("Each pattern needs exactly one frequency.")
        self._marginals = _clamp(np.asarray(marginals, dtype=float))
        if self._marginals.size != len(self.items):
            raise ValueError("Each factor item needs exactly one marginal.")
        self._index = {it: k for k, it in enumerate(self.items)}

        w, k = len(self.items), len(self.patterns)
        self._pattern_masks = np.zeros((k, w), dtype=bool)
        for j, pat in enumerate(self.patterns):
            try:
                self._pattern_masks[j, [self._index[i] for i in pat]] = True
            except KeyError as e:
                raise ValueError(f"Pattern {pat} is not covered by factor items {self.items}.") from e

        # union masks of all 2^k pattern subsets; row J has bit j set iff j ∈ J
        masks = np.zeros((1, w), dtype=bool)
        for pm in self._pattern_masks:
            masks = np.vstack([masks, masks | pm])
        self._masks = masks

        item_theta = item_theta or {}
        pattern_theta = pattern_theta or {}
        odds = self._marginals / (1.0 - self._marginals)
        self._item_theta = np.array(
            [item_theta.get(it, odds[k_]) for k_, it in enumerate(self.items)], dtype=float
        )
        self._pattern_theta = np.array([pattern_theta.get(p, 1.0) for p in self.patterns], dtype=float)
        self._logq = -np.log1p(1.0 / self._item_theta)
        self._coef = self._coefficients()

    # ---------- internals ----------

    def _coefficients(self) -> np.ndarray:
        c = np.ones(1)
        for t in self._pattern_theta:
            c = np.concatenate([c, c * (t - 1.0)])
        return c

    def _expect_mask(self, x_mask: np.ndarray) -> float:
        z = float(self._coef @ np.exp(self._masks @ self._logq))
        if not z > 0.0 or not math.isfinite(z):
            return 0.0
        num = float(self._coef @ np.exp(np.logical_or(self._masks, x_mask) @ self._logq))
        return min(max(num / z, 0.0), 1.0)

    def _local_mask(self, itemset: Iterable[int]) -> np.ndarray:
        m = np.zeros(len(self.items), dtype=bool)
        for i in itemset:
            m[self._index[i]] = True
        return m

    # ---------- public API ----------

    @property
    def size(self) -> int:
        """Number of patterns modelled by the factor."""
        return len(self.patterns)

    @property
    def width(self) -> int:
        """Number of singleton items the factor spans."""
        return len(self.items)

    def expectation(self, itemset: Iterable[int]) -> float:
        """Probability that a record contains every item of ``itemset`` (all in ``items``)."""
        return self._expect_mask(self._local_mask(itemset))

    def parameters(self) -> Tuple[Dict[int, float], Dict[Tuple[int, ...], float]]:
        """Current ``(item_theta, pattern_theta)`` keyed by item position / pattern."""
        return (
            {it: float(t) for it, t in zip(self.items, self._item_theta)},
            {p: float(t) for p, t in zip(self.patterns, self._pattern_theta)},
        )

    def fit(self, *, tol: float = DEFAULT_TOL, max_iter: int = DEFAULT_MAX_ITER) -> int:
        """
        Fit parameters by iterative scaling.

        Returns
        -------
        int
            Number of sweeps performed.
        """
        targets = _clamp(self.frequencies)
        eye = np.eye(len(self.items), dtype=bool)
        sweeps, err = 0, math.inf
        for sweeps in range(1, max_iter + 1):
            err = 0.0
            for j, f in enumerate(targets):
                e = self._expect_mask(self._pattern_masks[j])
                err = max(err, abs(e - f))
                self._pattern_theta[j] *= _scale(f, e)
                self._coef = self._coefficients()
            for k_, f in enumerate(self._marginals):
                e = self._expect_mask(eye[k_])
                err = max(err, abs(e - f))
                self._item_theta[k_] *= _scale(f, e)
                self._logq[k_] = -math.log1p(1.0 / self._item_theta[k_])
            if err < tol:
                break
        else:
            logger.debug(
                "factor %s stopped after %d sweeps without converging (max error %.3g)",
                self.items, sweeps, err,
            )
        return sweeps

    def __repr__(self) -> str:
        return f"Factor(items={self.items}, size={self.size}, width={self.width})"


class MaxEnt:
    """
    Factorized maximum-entropy distribution over binary feature vectors.

    Parameters
    ----------
    marginals : sequence of float
        Empirical singleton frequency of each item, indexed by item position.
    items : sequence, optional
        Caller-facing identifier of each position; defaults to the positions.
    label : optional
        Group label when the model belongs to one group of a partition.
    tol, max_iter :
        Convergence controls for factor fitting.

    Attributes
    ----------
    stats : DiscoveryStats or None
        Bookkeeping of the search run that produced the model, set by
        :func:`descminer.fit`.

    Notes
    -----
    All itemset arguments are *item positions* ``0..m-1``; only
    :meth:`patterns` translates back to the caller's identifiers.
    """

    def __init__(
        self,
        marginals: Sequence[float],
        items: Optional[Sequence] = None,
        *,
        label=None,
        tol: float = DEFAULT_TOL,
        max_iter: int = DEFAULT_MAX_ITER,
    ):
        m = np.asarray(marginals, dtype=float)
        if m.ndim != 1:
            raise ValueError("Singleton marginals must be one-dimensional.")
        if np.any(~np.isfinite(m)) or np.any(m < 0.0) or np.any(m > 1.0):
            raise ValueError("Singleton marginals must lie in [0, 1].")
        self._marginals = m
        self.items: Tuple = tuple(items) if items is not None else tuple(range(m.size))
        if len(self.items) != m.size:
            raise ValueError("Item vocabulary and marginals differ in length.")
        self.label = label
        self.tol = tol
        self.max_iter = max_iter
        self.stats = None

        self._factors: Dict[int, Factor] = {}
        self._owner = np.full(m.size, -1, dtype=np.int64)
        self._next_factor = 0
        self._patterns: List[Tuple[int, ...]] = []
        self._pattern_set: set = set()
        self._frequencies: List[float] = []

    # ---------- introspection ----------

    @property
    def n_items(self) -> int:
        return int(self._marginals.size)

    @property
    def marginals(self) -> np.ndarray:
        return self._marginals.copy()

    @property
    def factors(self) -> Tuple[Factor, ...]:
        return tuple(self._factors.values())

    @property
    def frequencies(self) -> List[float]:
        """Empirical frequency recorded for each pattern, in insertion order."""
        return list(self._frequencies)

    def patterns(self) -> List[frozenset]:
        """Accepted itemsets in insertion order, as caller-facing identifiers."""
        return [frozenset(self.items[i] for i in p) for p in self._patterns]

    def pattern_positions(self) -> List[Tuple[int, ...]]:
        return list(self._patterns)

    def summary(self) -> Dict[str, object]:
        """Small dict summary useful in logs."""
        return {
            "label": self.label,
            "items": self.n_items,
            "patterns": len(self._patterns),
            "factors": len(self._factors),
            "max_factor_size": max((f.size for f in self._factors.values()), default=0),
            "max_factor_width": max((f.width for f in self._factors.values()), default=0),
        }

    def __len__(self) -> int:
        return len(self._patterns)

    def __repr__(self) -> str:
        s = self.summary()
        return f"MaxEnt(items={s['items']}, patterns={s['patterns']}, factors={s['factors']})"

    # ---------- inference ----------

    def _overlapping(self, positions: Iterable[int]) -> List[int]:
        owners = {int(self._owner[i]) for i in positions}
        owners.discard(-1)
        return sorted(owners)

    def probability_of(self, itemset: Iterable[int]) -> float:
        """
        Probability that a random record contains every item of ``itemset``.

        Items owned by a factor are evaluated jointly and exactly inside that
        factor; items outside every factor contribute their singleton marginal.
        Distinct factors are independent by construction.
        """
        by_factor: Dict[int, List[int]] = {}
        p = 1.0
        for i in _as_positions(itemset):
            fid = int(self._owner[i])
            if fid < 0:
                p *= float(self._marginals[i])
            else:
                by_factor.setdefault(fid, []).append(i)
        for fid, sub in by_factor.items():
            p *= self._factors[fid].expectation(sub)
        return p

    def log_probability_of(self, itemset: Iterable[int]) -> float:
        p = self.probability_of(itemset)
        return math.log(p) if p > 0.0 else -math.inf

    # ---------- admission & insertion ----------

    def is_forbidden(self, itemset: Iterable[int], max_factor_size: int, max_factor_width: int) -> bool:
        """
        True if ``itemset`` cannot be admitted as a new pattern.

        Admission merges the pattern with every factor it overlaps; it is refused
        when the merged factor would hold more than ``max_factor_size`` patterns
        or span more than ``max_factor_width`` items, or when the itemset is
        already a pattern of this model.
        """
        pos = _as_positions(itemset)
        if pos in self._pattern_set:
            return True
        fids = self._overlapping(pos)
        n_patterns = 1 + sum(self._factors[f].size for f in fids)
        if n_patterns > max_factor_size:
            return True
        width = set(pos)
        for f in fids:
            width.update(self._factors[f].items)
        return len(width) > max_factor_width

    def insert_pattern(
        self,
        probability: float,
        itemset: Iterable[int],
        max_factor_size: int,
        max_factor_width: int,
    ) -> Factor:
        """
        Add ``P(itemset ⊆ t) = probability`` as a new constraint.

        The pattern and every factor it overlaps are merged into one factor that
        is refitted and replaces the inputs.

        Raises
        ------
        FactorCapacityError
            If :meth:`is_forbidden` refuses the itemset.
        """
        pos = _as_positions(itemset)
        if not pos:
            raise ValueError("Cannot insert an empty pattern.")
        if self.is_forbidden(pos, max_factor_size, max_factor_width):
            raise FactorCapacityError(
                f"Pattern {pos} exceeds factor capacity "
                f"(max_factor_size={max_factor_size}, max_factor_width={max_factor_width})."
            )
        fids = self._overlapping(pos)
        items = set(pos)
        patterns: List[Tuple[int, ...]] = []
        freqs: List[float] = []
        item_theta: Dict[int, float] = {}
        pattern_theta: Dict[Tuple[int, ...], float] = {}
        for fid in fids:
            f = self._factors[fid]
            items.update(f.items)
            patterns.extend(f.patterns)
            freqs.extend(float(v) for v in f.frequencies)
            it, pt = f.parameters()
            item_theta.update(it)
            pattern_theta.update(pt)
        patterns.append(pos)
        freqs.append(float(probability))

        ordered = sorted(items)
        merged = Factor(
            ordered,
            patterns,
            freqs,
            self._marginals[ordered],
            item_theta=item_theta,
            pattern_theta=pattern_theta,
        )
        merged.fit(tol=self.tol, max_iter=self.max_iter)

        for fid in fids:
            del self._factors[fid]
        fid = self._next_factor
        self._next_factor += 1
        self._factors[fid] = merged
        self._owner[ordered] = fid

        self._patterns.append(pos)
        self._pattern_set.add(pos)
        self._frequencies.append(float(probability))
        return merged


# ──────────────────────────────────────────────────────────────────────────────
# Functional interface
# ──────────────────────────────────────────────────────────────────────────────

def probability_of(model: MaxEnt, itemset: Iterable[int]) -> float:
    return model.probability_of(itemset)


def forbidden(model: MaxEnt, itemset: Iterable[int], max_factor_size: int, max_factor_width: int) -> bool:
    return model.is_forbidden(itemset, max_factor_size, max_factor_width)


def insert(
    model: MaxEnt,
    probability: float,
    itemset: Iterable[int],
    max_factor_size: int,
    max_factor_width: int,
) -> Factor:
    return model.insert_pattern(probability, itemset, max_factor_size, max_factor_width)


def patterns(model: MaxEnt) -> List[frozenset]:
    """Itemsets backing the model's accepted constraints, in insertion order."""
    return model.patterns()
