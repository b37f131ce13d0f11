# src/descminer/config.py

from __future__ import annotations
import math
from dataclasses import dataclass, fields, replace
from typing import Optional

from .maxent import MAX_MAXENT_FACTOR_SIZE

"""
Configuration objects for pattern discovery.

The primary entry point is :class:`DiscoveryConfig`, a small dataclass with
sane defaults that bundles every search budget. Treat it as an immutable
configuration snapshot you pass into :func:`descminer.fit`; avoid mutating it
mid-run.

Examples
--------
>>> from descminer.config import DiscoveryConfig
>>> cfg = DiscoveryConfig(min_support=4, max_discoveries=10)
>>> cfg.max_factor_size
8
>>> DiscoveryConfig.from_options(cfg, max_seconds=2.5).max_seconds
2.5
"""

__all__ = [
    'ConfigurationError',
    'DiscoveryConfig',
]


class ConfigurationError(ValueError):
    """Invalid options or malformed inputs, reported before any search work."""


@dataclass(frozen=True)
class DiscoveryConfig:
    """
    Search budgets and limits used by :func:`descminer.fit`.

    Parameters
    ----------
    min_support : int, default=2
        Minimum number of records that must contain a pattern. Candidates below
        this count are never accepted and never expanded.
    max_discoveries : int or None, default=None
        Stop after this many accepted patterns. ``None`` means unbounded.
    max_seconds : float, default=inf
        Wall-clock budget of the search. Checked between rounds, so a run may
        overshoot by up to one round of scoring.
    max_factor_size : int, default=8
        Maximum number of patterns a single factor of the maximum entropy
        distribution may model. Inference cost grows as ``2^max_factor_size``;
        bounded by ``MAX_MAXENT_FACTOR_SIZE`` (12).
    max_factor_width : int, default=50
        Maximum number of singleton items a single factor may span.
    max_expansions : int, default=32
        Number of candidates drawn from the frontier and scored per round.
    n_workers : int or None, default=None
        Size of the scoring thread pool. ``None`` uses ``os.cpu_count()``.
    progress : bool, default=False
        Show a tqdm progress bar over search rounds.

    Notes
    -----
    - Validation happens in ``__post_init__`` and raises
      :class:`ConfigurationError`.
    - Results are identical for every ``n_workers``; only wall-clock time
      changes.
    """

    min_support: int = 2
    max_discoveries: Optional[int] = None
    max_seconds: float = math.inf
    max_factor_size: int = 8
    max_factor_width: int = 50
    max_expansions: int = 32
    n_workers: Optional[int] = None
    progress: bool = False

    def __post_init__(self):
        if self.min_support < 1:
            raise ConfigurationError("min_support must be ≥ 1")
        if self.max_discoveries is not None and self.max_discoveries < 0:
            raise ConfigurationError("max_discoveries must be ≥ 0 or None")
        if math.isnan(self.max_seconds) or self.max_seconds < 0:
            raise ConfigurationError("max_seconds must be ≥ 0")
        if self.max_factor_size < 1:
            raise ConfigurationError("max_factor_size must be ≥ 1")
        if self.max_factor_size > MAX_MAXENT_FACTOR_SIZE:
            raise ConfigurationError(
                f"max_factor_size={self.max_factor_size} exceeds "
                f"MAX_MAXENT_FACTOR_SIZE={MAX_MAXENT_FACTOR_SIZE}"
            )
        if self.max_factor_width < 1:
            raise ConfigurationError("max_factor_width must be ≥ 1")
        if self.max_expansions < 1:
            raise ConfigurationError("max_expansions must be ≥ 1")
        if self.n_workers is not None and self.n_workers < 1:
            raise ConfigurationError("n_workers must be ≥ 1 or None")

    @classmethod
    def from_options(cls, config: Optional["DiscoveryConfig"] = None, **options) -> "DiscoveryConfig":
        """Return ``config`` (or the defaults) with keyword overrides applied."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"Unknown option(s): {', '.join(unknown)}")
        base = config if config is not None else cls()
        return replace(base, **options) if options else base
