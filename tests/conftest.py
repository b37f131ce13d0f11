import os, sys
import numpy as np
import pandas as pd
import pytest

# Ensure `src/` is importable
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)


@pytest.fixture
def abc_matrix():
    # A and B co-occur in the first four records, C in the last two
    return np.array([
        [1, 1, 0],
        [1, 1, 0],
        [1, 1, 0],
        [1, 1, 0],
        [0, 0, 1],
        [0, 0, 1],
    ], dtype=bool)


@pytest.fixture
def abc_frame(abc_matrix):
    return pd.DataFrame(abc_matrix, columns=["A", "B", "C"])


def _noisy_copy(rng, z, flip):
    return z ^ (rng.random(z.size) < flip)


@pytest.fixture
def paired_blocks():
    # three independent latent bits, each observed twice with 5% flip noise
    rng = np.random.default_rng(0)
    n = 300
    cols = []
    for _ in range(3):
        z = rng.random(n) < 0.5
        cols += [_noisy_copy(rng, z, 0.05), _noisy_copy(rng, z, 0.05)]
    return np.column_stack(cols)


@pytest.fixture
def grouped_blocks():
    # group 0: items 0,1 correlated; group 1: items 2,3 correlated
    rng = np.random.default_rng(7)
    n = 300
    parts, labels = [], []
    for g in (0, 1):
        z = rng.random(n) < 0.5
        pair = [_noisy_copy(rng, z, 0.05), _noisy_copy(rng, z, 0.05)]
        free = [rng.random(n) < 0.5, rng.random(n) < 0.5]
        parts.append(np.column_stack(pair + free if g == 0 else free + pair))
        labels += [g] * n
    return np.vstack(parts), np.array(labels)
