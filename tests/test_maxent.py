import itertools

import numpy as np
import pytest

from descminer.maxent import (
    MAX_MAXENT_FACTOR_SIZE,
    Factor,
    FactorCapacityError,
    MaxEnt,
    forbidden,
    insert,
    patterns,
    probability_of,
)


def brute_force_expectation(factor: Factor, itemset):
    """Enumerate every transaction over the factor's items."""
    item_theta, pattern_theta = factor.parameters()
    num = den = 0.0
    for bits in itertools.product((0, 1), repeat=factor.width):
        t = {i for i, b in zip(factor.items, bits) if b}
        w = 1.0
        for i in t:
            w *= item_theta[i]
        for p, th in pattern_theta.items():
            if set(p) <= t:
                w *= th
        den += w
        if set(itemset) <= t:
            num += w
    return num / den


# -----------------------
# Independence model
# -----------------------

def test_independence_product():
    p = MaxEnt([0.5, 0.2, 0.9])
    assert probability_of(p, [0]) == pytest.approx(0.5)
    assert probability_of(p, [0, 1, 2]) == pytest.approx(0.5 * 0.2 * 0.9)
    assert p.probability_of([]) == 1.0


def test_zero_marginal_gives_zero_probability():
    p = MaxEnt([0.0, 0.5])
    assert p.probability_of([0, 1]) == 0.0
    assert p.log_probability_of([0, 1]) == -np.inf


def test_invalid_marginals_rejected():
    with pytest.raises(ValueError):
        MaxEnt([0.5, 1.5])
    with pytest.raises(ValueError):
        MaxEnt([0.5, 0.5], items=["a"])


# -----------------------
# Factor inference
# -----------------------

def test_factor_matches_brute_force():
    f = Factor(
        items=[0, 1, 2, 3],
        patterns=[[0, 1], [1, 2, 3]],
        frequencies=[0.35, 0.2],
        marginals=[0.5, 0.6, 0.4, 0.45],
    )
    f.fit()
    for r in range(1, 5):
        for sub in itertools.combinations(f.items, r):
            assert f.expectation(sub) == pytest.approx(brute_force_expectation(f, sub), abs=1e-9)


def test_factor_fit_reproduces_constraints():
    f = Factor([0, 1, 2], [[0, 1], [1, 2]], [0.3, 0.25], [0.45, 0.5, 0.4])
    f.fit()
    assert f.expectation([0, 1]) == pytest.approx(0.3, abs=1e-7)
    assert f.expectation([1, 2]) == pytest.approx(0.25, abs=1e-7)
    for i, m in zip(f.items, [0.45, 0.5, 0.4]):
        assert f.expectation([i]) == pytest.approx(m, abs=1e-7)


def test_factor_rejects_uncovered_pattern():
    with pytest.raises(ValueError):
        Factor([0, 1], [[0, 2]], [0.2], [0.5, 0.5])


# -----------------------
# Insertion & merging
# -----------------------

def test_insert_single_pattern():
    p = MaxEnt([0.5, 0.5, 0.5], items=["a", "b", "c"])
    insert(p, 0.4, [0, 1], 8, 50)
    assert p.probability_of([0, 1]) == pytest.approx(0.4, abs=1e-7)
    assert p.probability_of([0]) == pytest.approx(0.5, abs=1e-7)
    # uncovered item stays independent of the factor
    assert p.probability_of([0, 2]) == pytest.approx(0.25, abs=1e-7)
    assert patterns(p) == [frozenset({"a", "b"})]


def test_overlapping_patterns_merge_into_one_factor():
    p = MaxEnt([0.5, 0.5, 0.5])
    p.insert_pattern(0.4, [0, 1], 8, 50)
    p.insert_pattern(0.4, [1, 2], 8, 50)
    assert len(p.factors) == 1
    f = p.factors[0]
    assert f.items == (0, 1, 2) and f.size == 2 and f.width == 3
    assert p.probability_of([0, 1]) == pytest.approx(0.4, abs=1e-6)
    assert p.probability_of([1, 2]) == pytest.approx(0.4, abs=1e-6)
    # chain A-B-C: maximum entropy keeps A and C independent given B
    assert p.probability_of([0, 1, 2]) == pytest.approx(0.4 * 0.4 / 0.5, abs=1e-6)


def test_disjoint_factors_are_independent():
    p = MaxEnt([0.5, 0.5, 0.5, 0.5])
    p.insert_pattern(0.4, [0, 1], 8, 50)
    p.insert_pattern(0.4, [2, 3], 8, 50)
    assert len(p.factors) == 2
    assert p.probability_of([0, 1, 2, 3]) == pytest.approx(0.16, abs=1e-6)
    assert p.probability_of([1, 2]) == pytest.approx(0.25, abs=1e-6)


def test_merge_keeps_items_disjoint_across_factors():
    p = MaxEnt([0.5] * 6)
    for pat in ([0, 1], [2, 3], [4, 5], [1, 2]):
        p.insert_pattern(0.35, pat, 8, 50)
    seen = set()
    for f in p.factors:
        assert seen.isdisjoint(f.items)
        seen.update(f.items)
    assert p.pattern_positions() == [(0, 1), (2, 3), (4, 5), (1, 2)]


def test_boundary_frequency_stays_finite():
    # A and B always together: the exact optimum lies at the boundary
    p = MaxEnt([4 / 6, 4 / 6, 2 / 6])
    p.insert_pattern(4 / 6, [0, 1], 8, 50)
    v = p.probability_of([0, 1])
    assert np.isfinite(v)
    assert v == pytest.approx(4 / 6, abs=1e-2)


def test_unconverged_fit_is_logged(caplog):
    f = Factor([0, 1], [[0, 1]], [4 / 6], [4 / 6, 4 / 6])
    with caplog.at_level("DEBUG", logger="descminer.maxent"):
        assert f.fit(max_iter=3) == 3
    assert "without converging" in caplog.text


def test_converged_fit_is_quiet(caplog):
    f = Factor([0, 1], [[0, 1]], [0.3], [0.5, 0.5])
    with caplog.at_level("DEBUG", logger="descminer.maxent"):
        assert f.fit() < 500
    assert "without converging" not in caplog.text


# -----------------------
# Admission guard
# -----------------------

def test_forbidden_by_size():
    p = MaxEnt([0.5] * 4)
    p.insert_pattern(0.4, [0, 1], 1, 50)
    assert forbidden(p, [1, 2], 1, 50)
    assert not forbidden(p, [2, 3], 1, 50)
    assert not forbidden(p, [1, 2], 2, 50)


def test_forbidden_by_width():
    p = MaxEnt([0.5] * 4)
    p.insert_pattern(0.4, [0, 1], 8, 2)
    assert forbidden(p, [1, 2], 8, 2)
    assert forbidden(p, [0, 1, 2], 8, 2)
    assert not forbidden(p, [2, 3], 8, 2)


def test_duplicate_pattern_forbidden():
    p = MaxEnt([0.5] * 3)
    p.insert_pattern(0.4, [0, 1], 8, 50)
    assert p.is_forbidden([1, 0], 8, 50)


def test_insert_forbidden_raises():
    p = MaxEnt([0.5] * 3)
    p.insert_pattern(0.4, [0, 1], 1, 50)
    with pytest.raises(FactorCapacityError):
        p.insert_pattern(0.3, [1, 2], 1, 50)
    # failed insertion leaves the model untouched
    assert len(p) == 1 and len(p.factors) == 1


def test_patterns_restartable():
    p = MaxEnt([0.5] * 3, items=[10, 20, 30])
    p.insert_pattern(0.4, [0, 1], 8, 50)
    assert p.patterns() == p.patterns() == [frozenset({10, 20})]
    assert p.frequencies == [0.4]


def test_ceiling_constant():
    assert MAX_MAXENT_FACTOR_SIZE == 12


def test_summary_counts():
    p = MaxEnt([0.5] * 4, label="g")
    p.insert_pattern(0.4, [0, 1], 8, 50)
    s = p.summary()
    assert s["label"] == "g"
    assert s["patterns"] == 1 and s["factors"] == 1
    assert s["max_factor_size"] == 1 and s["max_factor_width"] == 2
