# src/descminer/cli.py

from __future__ import annotations

import argparse
import json
import logging
import math
import sys
import time
from typing import List, Optional

from . import fit, patterns
from .config import ConfigurationError, DiscoveryConfig
from .io import read_dataset, read_labels

"""
Command line interface: ``desc x [y] [options] > result.json``.

``x`` is a headerless 0/1 ``.tsv`` matrix or a sparse ``.dat`` list of sets
(optionally gzipped); ``y`` optionally holds one integer group label per
record. The output is a JSON document with the discovered (per-group)
``patterns`` and the ``executiontime`` in seconds.
"""


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="desc",
        description="Discover non-redundant pattern sets using maximum entropy modelling and BIC.",
    )
    p.add_argument("x", help="Dataset: dense .tsv or sparse .dat (optionally .gz).")
    p.add_argument("y", nargs="?", default=None,
                   help="Optional group labels, one integer per line (optionally .gz).")
    p.add_argument("--min-support", type=int, default=2,
                   help="Require a minimal support of each pattern (default: 2).")
    p.add_argument("--max-discoveries", type=int, default=None,
                   help="Terminate after this many discoveries (default: unbounded).")
    p.add_argument("--max-seconds", type=float, default=math.inf,
                   help="Terminate after approximately this many seconds (default: inf).")
    p.add_argument("--max-factor-size", type=int, default=8,
                   help="Maximum number of patterns per factor, at most 12 (default: 8).")
    p.add_argument("--max-factor-width", type=int, default=50,
                   help="Maximum number of singletons per factor (default: 50).")
    p.add_argument("--max-expansions", type=int, default=32,
                   help="Candidates scored per search round (default: 32).")
    p.add_argument("--workers", type=int, default=None,
                   help="Scoring threads (default: number of CPUs).")
    p.add_argument("--measure-time", action="store_true",
                   help="Run once untimed before the measured run.")
    p.add_argument("--progress", action="store_true", help="Show a progress bar.")
    p.add_argument("-v", "--verbose", action="count", default=0,
                   help="Log to stderr (-v info, -vv debug).")
    return p.parse_args(argv)


def _restore(itemsets, vocab) -> List[list]:
    out = []
    for s in itemsets:
        s = [vocab[i] for i in s] if vocab is not None else list(s)
        out.append(sorted(int(i) if hasattr(i, "__index__") else i for i in s))
    return out


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    try:
        cfg = DiscoveryConfig(
            min_support=args.min_support,
            max_discoveries=args.max_discoveries,
            max_seconds=args.max_seconds,
            max_factor_size=args.max_factor_size,
            max_factor_width=args.max_factor_width,
            max_expansions=args.max_expansions,
            n_workers=args.workers,
            progress=args.progress,
        )
        X, vocab = read_dataset(args.x)
        Y = read_labels(args.y) if args.y else None

        if args.measure_time:
            fit(X, Y, config=DiscoveryConfig.from_options(cfg, max_seconds=0.0, progress=False))

        t0 = time.perf_counter()
        p = fit(X, Y, config=cfg)
        elapsed = time.perf_counter() - t0
    except (ConfigurationError, OSError, ValueError) as e:
        print(f"desc: error: {e}", file=sys.stderr)
        return 2

    if isinstance(p, list):
        found = [_restore(patterns(q), vocab) for q in p]
    else:
        found = _restore(patterns(p), vocab)
    doc = {"patterns": found, "executiontime": elapsed, "input": [args.x, args.y]}
    print(json.dumps(doc))
    return 0


if __name__ == "__main__":
    sys.exit(main())
