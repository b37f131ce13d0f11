from .config import ConfigurationError, DiscoveryConfig
from .maxent import MAX_MAXENT_FACTOR_SIZE, Factor, FactorCapacityError, MaxEnt, patterns
from .lattice import Candidate, Lattice
from .discoverer import DiscoveryStats, discover_patterns, fit, prepare_dataset
from .rowsets import BitRows, SparseRows

desc = fit

__all__ = [
    "fit",
    "desc",
    "patterns",
    "DiscoveryConfig",
    "ConfigurationError",
    "MAX_MAXENT_FACTOR_SIZE",
    "MaxEnt",
    "Factor",
    "FactorCapacityError",
    "Candidate",
    "Lattice",
    "DiscoveryStats",
    "discover_patterns",
    "prepare_dataset",
    "BitRows",
    "SparseRows",
]
