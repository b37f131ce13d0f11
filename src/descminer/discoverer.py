# src/descminer/discoverer.py

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype
from tqdm.auto import tqdm

from .config import ConfigurationError, DiscoveryConfig
from .lattice import Candidate, Lattice
from .maxent import MaxEnt, patterns
from .rowsets import AnyRows, choose_rowset_type, intersection_size

"""
Pattern discovery by BIC-penalized maximum-entropy modelling.

The search alternates two phases per round:

1. *score*: up to ``max_expansions`` candidates are drawn from the lattice
   and scored in parallel against the current model(s) (read-only);
2. *report*: winners are visited sequentially in canonical item order,
   re-scored against the model as already updated this round, and inserted
   as new factors; every drawn candidate is then expanded and its admissible
   children are pushed back onto the frontier.

The run stops when ``max_discoveries`` patterns were accepted, when
``max_seconds`` elapsed, or when the frontier is exhausted.

Examples
--------
>>> import numpy as np
>>> from descminer import fit, patterns
>>> X = np.array([[1, 1, 0], [1, 1, 0], [1, 1, 0], [1, 1, 0], [0, 0, 1], [0, 0, 1]], dtype=bool)
>>> patterns(fit(X, min_support=2))
[frozenset({0, 1})]
"""

__all__ = [
    "DiscoveryStats",
    "Dataset",
    "prepare_dataset",
    "discover_patterns",
    "fit",
    "patterns",
]

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Input normalization
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class Dataset:
    """Column row-sets of a binary dataset plus the caller-facing item vocabulary."""

    columns: Tuple[AnyRows, ...]
    items: Tuple[Any, ...]
    n_rows: int

    @property
    def rowset_type(self) -> type:
        return type(self.columns[0]) if self.columns else choose_rowset_type(0, 0, 0)


def _is_boolean_like(s: pd.Series) -> bool:
    """
    Return True if `s` behaves like a boolean indicator column.

    Accepts bool / nullable boolean dtypes and numeric columns holding only
    {0, 1} (ignoring NA).
    """
    if is_bool_dtype(s) or str(s.dtype).lower().startswith("boolean"):
        return True
    vals = s.dropna()
    if vals.empty:
        return True
    if pd.api.types.is_numeric_dtype(vals):
        return bool(vals.isin([0, 1]).all())
    return False


def _is_bool_row(row) -> bool:
    """True for a non-empty list/tuple holding only bools (a dense matrix row)."""
    return (
        isinstance(row, (list, tuple))
        and len(row) > 0
        and all(isinstance(v, (bool, np.bool_)) for v in row)
    )


def _dense_to_dataset(mat: np.ndarray, items: Sequence[Any]) -> Dataset:
    n, m = mat.shape
    rtype = choose_rowset_type(n, int(mat.sum()), m)
    columns = tuple(rtype.from_mask(mat[:, j]) for j in range(m))
    return Dataset(columns, tuple(items), n)


def prepare_dataset(data) -> Dataset:
    """
    Normalize supported inputs into a :class:`Dataset`.

    Accepted inputs
    ---------------
    • ``pandas.DataFrame`` of boolean-like columns (items are column labels).
    • 2-D ``numpy.ndarray`` of bools or 0/1 values (items are column positions).
    • A list of equal-length list/tuple rows of bools, treated like the ndarray.
    • Any other iterable of records, each an iterable of item identifiers
      (items are the identifiers observed, in sorted order).

    Raises
    ------
    ConfigurationError
        Empty dataset, non-binary values, or a non 2-D matrix.
    """
    if isinstance(data, pd.DataFrame):
        bad = [c for c in data.columns if not _is_boolean_like(data[c])]
        if bad:
            raise ConfigurationError(f"Columns are not boolean-like: {bad!r}")
        if len(data) == 0:
            raise ConfigurationError("Dataset has no records.")
        mat = data.fillna(False).to_numpy().astype(bool)
        return _dense_to_dataset(mat, list(data.columns))

    if isinstance(data, np.ndarray):
        if data.ndim != 2:
            raise ConfigurationError(f"Dense dataset must be 2-D, got shape {data.shape}.")
        if data.shape[0] == 0:
            raise ConfigurationError("Dataset has no records.")
        if data.dtype != bool:
            if not np.isin(data, (0, 1)).all():
                raise ConfigurationError("Dense dataset must contain only 0/1 values.")
            data = data.astype(bool)
        return _dense_to_dataset(data, range(data.shape[1]))

    raw = list(data)
    if raw and all(_is_bool_row(r) for r in raw):
        try:
            mat = np.array(raw, dtype=bool)
        except ValueError as e:
            raise ConfigurationError("Rows of a boolean matrix must have equal length.") from e
        return prepare_dataset(mat)

    records = [frozenset(r) for r in raw]
    n = len(records)
    if n == 0:
        raise ConfigurationError("Dataset has no records.")
    try:
        items = sorted(set().union(*records))
    except TypeError as e:
        raise ConfigurationError("Item identifiers must be mutually comparable.") from e
    position = {it: k for k, it in enumerate(items)}
    rows: List[List[int]] = [[] for _ in items]
    for r, rec in enumerate(records):
        for it in rec:
            rows[position[it]].append(r)
    rtype = choose_rowset_type(n, sum(len(x) for x in rows), len(items))
    columns = tuple(rtype.from_indices(np.asarray(x, dtype=np.int64), n) for x in rows)
    return Dataset(columns, tuple(items), n)


def _as_labels(labels, n_rows: int) -> np.ndarray:
    y = labels.to_numpy() if isinstance(labels, pd.Series) else np.asarray(labels)
    if y.ndim != 1:
        y = y.ravel()
    if y.size != n_rows:
        raise ConfigurationError(
            f"Label vector has {y.size} entries but the dataset has {n_rows} records."
        )
    if pd.isna(y).any():
        raise ConfigurationError("Label vector contains missing values.")
    return y


# ──────────────────────────────────────────────────────────────────────────────
# Orchestration loop
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(slots=True)
class DiscoveryStats:
    """Bookkeeping of one discovery run."""

    rounds: int = 0
    scored: int = 0
    discoveries: int = 0
    generated: int = 0
    elapsed: float = 0.0
    stop_reason: str = ""


def discover_patterns(
    lattice: Lattice,
    score: Callable[[Candidate], float],
    is_forbidden: Callable[[Candidate], bool],
    report: Callable[[Candidate], bool],
    *,
    min_support: int = 2,
    max_discoveries: Optional[int] = None,
    max_seconds: float = math.inf,
    max_expansions: int = 32,
    n_workers: Optional[int] = None,
    progress: bool = False,
) -> DiscoveryStats:
    """
    Run the round-based search over ``lattice``.

    Parameters
    ----------
    lattice : Lattice
        Search space; consumed by the run.
    score : callable
        Read-only scoring function, called concurrently from worker threads.
    is_forbidden : callable
        Admission guard; forbidden children are not pushed and forbidden
        winners are not reported.
    report : callable
        Called sequentially for each winner; re-scores against the current
        model(s), inserts, and returns True if the candidate was accepted.

    Returns
    -------
    DiscoveryStats
    """
    stats = DiscoveryStats()
    limit = math.inf if max_discoveries is None else max_discoveries
    start = time.perf_counter()
    bar = tqdm(desc="desc", unit="round") if progress else None

    try:
        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            while True:
                if stats.discoveries >= limit:
                    stats.stop_reason = "max_discoveries"
                    break
                if time.perf_counter() - start >= max_seconds:
                    stats.stop_reason = "max_seconds"
                    break
                if lattice.empty:
                    stats.stop_reason = "frontier"
                    break

                batch = lattice.pop_batch(max_expansions)
                scores = list(pool.map(score, batch))
                stats.scored += len(batch)

                winners = sorted((c for c, s in zip(batch, scores) if s > 0.0), key=lambda c: c.items)
                for c in winners:
                    if stats.discoveries >= limit:
                        break
                    if is_forbidden(c):
                        continue
                    if report(c):
                        stats.discoveries += 1
                        logger.debug("accepted %s (support=%d)", c.items, c.support)

                for c in batch:
                    for child in lattice.expand(c, min_support=min_support):
                        if not is_forbidden(child):
                            lattice.push(child)

                stats.rounds += 1
                if bar is not None:
                    bar.update(1)
                    bar.set_postfix(found=stats.discoveries, frontier=len(lattice))
    finally:
        if bar is not None:
            bar.close()

    stats.generated = lattice.n_generated
    stats.elapsed = time.perf_counter() - start
    logger.info(
        "stopped (%s) after %d rounds: %d candidates scored, %d patterns, %.3fs",
        stats.stop_reason, stats.rounds, stats.scored, stats.discoveries, stats.elapsed,
    )
    return stats


def _gain(q: int, n: int, log_p: float) -> float:
    """``q · (ln(q/n) − log_p)``, or 0 for degenerate inputs."""
    if q <= 0 or n <= 0 or not math.isfinite(log_p):
        return 0.0
    h = q * (math.log(q / n) - log_p)
    return h if math.isfinite(h) else 0.0


def _run(lattice: Lattice, score, is_forbidden, report, cfg: DiscoveryConfig) -> DiscoveryStats:
    return discover_patterns(
        lattice,
        score,
        is_forbidden,
        report,
        min_support=cfg.min_support,
        max_discoveries=cfg.max_discoveries,
        max_seconds=cfg.max_seconds,
        max_expansions=cfg.max_expansions,
        n_workers=cfg.n_workers,
        progress=cfg.progress,
    )


def _fit_single(data: Dataset, cfg: DiscoveryConfig) -> MaxEnt:
    n = data.n_rows
    size, width = cfg.max_factor_size, cfg.max_factor_width
    lattice = Lattice(data.columns)
    model = MaxEnt(np.array([c.size for c in data.columns], dtype=float) / n, items=data.items)
    cost = math.log(n) / 2

    def is_forbidden(x: Candidate) -> bool:
        return model.is_forbidden(x.items, size, width)

    def score(x: Candidate) -> float:
        if len(x.items) < 2 or x.support < cfg.min_support or is_forbidden(x):
            return 0.0
        h = _gain(x.support, n, model.log_probability_of(x.items))
        return h - cost if h > 0.0 else 0.0

    def report(x: Candidate) -> bool:
        if score(x) <= 0.0:
            return False
        model.insert_pattern(x.support / n, x.items, size, width)
        return True

    model.stats = _run(lattice, score, is_forbidden, report, cfg)
    return model


def _fit_groups(data: Dataset, y: np.ndarray, cfg: DiscoveryConfig) -> List[MaxEnt]:
    n = data.n_rows
    size, width = cfg.max_factor_size, cfg.max_factor_width
    rtype = data.rowset_type
    groups = list(pd.unique(y))
    masks = [rtype.from_mask(y == g) for g in groups]
    sizes = [m.size for m in masks]
    k = len(groups)

    lattice = Lattice(data.columns)
    models = [
        MaxEnt(
            np.array([intersection_size(c, m) for c in data.columns], dtype=float) / ni,
            items=data.items,
            label=g,
        )
        for g, m, ni in zip(groups, masks, sizes)
    ]
    cost = math.log(n) * k / 2
    icost = [math.log(ni) / 2 for ni in sizes]
    scratch = threading.local()

    def is_forbidden(x: Candidate) -> bool:
        return any(p.is_forbidden(x.items, size, width) for p in models)

    def group_gains(x: Candidate, q: np.ndarray, h: np.ndarray) -> None:
        for i, p in enumerate(models):
            q[i] = intersection_size(x.rows, masks[i])
            h[i] = _gain(int(q[i]), sizes[i], p.log_probability_of(x.items)) if q[i] > 0 else 0.0

    def score(x: Candidate) -> float:
        if len(x.items) < 2 or x.support < cfg.min_support or is_forbidden(x):
            return 0.0
        buf = getattr(scratch, "buf", None)
        if buf is None:
            buf = scratch.buf = (np.zeros(k, dtype=np.int64), np.zeros(k, dtype=float))
        q, h = buf
        group_gains(x, q, h)
        s = float(h.sum()) - cost
        return s if math.isfinite(s) else 0.0

    def report(x: Candidate) -> bool:
        q, h = np.zeros(k, dtype=np.int64), np.zeros(k, dtype=float)
        group_gains(x, q, h)
        accepted = False
        for i, p in enumerate(models):
            if h[i] > icost[i] and not p.is_forbidden(x.items, size, width):
                p.insert_pattern(q[i] / sizes[i], x.items, size, width)
                logger.debug("group %r accepted %s (support=%d)", groups[i], x.items, int(q[i]))
                accepted = True
        return accepted

    stats = _run(lattice, score, is_forbidden, report, cfg)
    for p in models:
        p.stats = stats
    return models


# ──────────────────────────────────────────────────────────────────────────────
# Public entry point
# ──────────────────────────────────────────────────────────────────────────────

def fit(
    data,
    labels: Optional[Iterable] = None,
    *,
    config: Optional[DiscoveryConfig] = None,
    **options,
) -> Union[MaxEnt, List[MaxEnt]]:
    """
    Discover a concise set of informative patterns using maximum entropy
    modelling and the Bayesian information criterion.

    Parameters
    ----------
    data : DataFrame, 2-D ndarray, or iterable of item collections
        Binary dataset; see :func:`prepare_dataset`.
    labels : array-like, optional
        Group label of every record. When given, one model is fitted per group
        (in first-appearance order of the labels).
    config : DiscoveryConfig, optional
        Search budgets; keyword ``options`` override its fields
        (``min_support``, ``max_discoveries``, ``max_seconds``,
        ``max_factor_size``, ``max_factor_width``, ``max_expansions``,
        ``n_workers``, ``progress``).

    Returns
    -------
    MaxEnt or list of MaxEnt
        The fitted distribution, or one distribution per group. Use
        :func:`patterns` to list the discovered itemsets.
        Each carries the run's :class:`DiscoveryStats` as ``stats``.

    Raises
    ------
    ConfigurationError
        Invalid options or malformed inputs; raised before any search work.
    """
    cfg = DiscoveryConfig.from_options(config, **options)
    dataset = prepare_dataset(data)
    logger.debug(
        "fitting %d records x %d items (%s)",
        dataset.n_rows, len(dataset.items), dataset.rowset_type.__name__,
    )
    if labels is None:
        return _fit_single(dataset, cfg)
    return _fit_groups(dataset, _as_labels(labels, dataset.n_rows), cfg)
