# src/descminer/io.py

from __future__ import annotations

import gzip
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

"""
Dataset and label readers.

Supported formats
-----------------
- sparse ``.dat``: one record per line, a space-separated list of item ids;
- dense ``.tsv``: headerless tab-separated 0/1 matrix;
- labels: one integer per line.

Every reader accepts gzip-compressed files (``.gz`` suffix).
"""

__all__ = [
    "read_sets",
    "read_labels",
    "read_dense",
    "normalize_sets",
    "read_dataset",
]

PathLike = Union[str, Path]


def _open_text(path: PathLike):
    path = str(path)
    if path.endswith(".gz"):
        return gzip.open(path, "rt")
    return open(path, "r")


def read_sets(path: PathLike, *, offset: int = 0) -> List[frozenset]:
    """Read a sparse list-of-sets file; ``offset`` is added to every item id."""
    with _open_text(path) as fh:
        return [frozenset(offset + int(tok) for tok in line.split()) for line in fh]


def read_labels(path: PathLike) -> np.ndarray:
    """Read one integer label per non-empty line."""
    with _open_text(path) as fh:
        return np.array([int(line) for line in fh if line.strip()], dtype=np.int64)


def read_dense(path: PathLike) -> np.ndarray:
    """Read a headerless tab-separated 0/1 matrix as a boolean array."""
    df = pd.read_csv(path, sep="\t", header=None, compression="infer")
    vals = df.to_numpy()
    if not np.isin(vals, (0, 1)).all():
        raise ValueError(f"{path}: dense datasets must contain only 0/1 values.")
    return vals.astype(bool)


def normalize_sets(records: Sequence[frozenset]) -> Tuple[List[frozenset], Optional[Dict[int, int]]]:
    """
    Remap item ids to the contiguous range ``1..m``.

    Returns
    -------
    (records, vocab)
        ``vocab`` maps new ids back to the original ones, or is ``None`` when the
        ids already form ``1..m`` and nothing was remapped.
    """
    ids = sorted(set().union(*records)) if records else []
    if ids == list(range(1, len(ids) + 1)):
        return list(records), None
    forward = {e: k for k, e in enumerate(ids, start=1)}
    remapped = [frozenset(forward[e] for e in r) for r in records]
    return remapped, {k: e for e, k in forward.items()}


def read_dataset(path: PathLike):
    """
    Read a dataset, dispatching on the file suffix.

    Returns
    -------
    (data, vocab)
        Sparse files yield normalized records and their inverse vocabulary;
        dense files yield a boolean matrix and a vocabulary mapping column
        positions to the 1-based ids ``1..m``.
    """
    name = str(path)
    if name.endswith(".dat") or name.endswith(".dat.gz"):
        return normalize_sets(read_sets(path))
    X = read_dense(path)
    return X, {j: j + 1 for j in range(X.shape[1])}
