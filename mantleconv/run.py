"""Command line entry point: ``python -m mantleconv.run``.

Exit status is 0 on success, 1 when ``--check`` finds the final Stokes error
above ``diagnostics.tolerance``, 2 for configuration or domain errors and 3
for communication faults.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import numpy as np

from .config_utils import configure_logging, load_config
from .driver import ConvectionDriver
from .errors import CommunicationFault, ConfigurationError
from .runtime.context import RuntimeContext
from .runtime.helpers import format_exception_short

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TOLERANCE = 1
EXIT_CONFIG = 2
EXIT_COMMUNICATION = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a 2-D mantle thermal convection model")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration (defaults to the built-in reference configuration)",
    )
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help="Apply configuration overrides using dotted paths; e.g. --override stokes.iter_max=2000",
    )
    parser.add_argument("--iterations", type=int, default=None, help="Override time.n_iterations")
    parser.add_argument("--seed", type=int, default=None, help="Seed of the random perturbation")
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a console progress bar with ETA for the driver loop.",
    )
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Suppress INFO logs and Python warnings (use --no-quiet to show logs).",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Exit with status 1 when the final Stokes error exceeds diagnostics.tolerance.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point; returns the process exit status."""

    args = build_parser().parse_args(argv)
    configure_logging(logging.WARNING if args.quiet else logging.INFO, suppress_warnings=args.quiet)

    override_list: List[str] = []
    if args.override:
        for group in args.override:
            override_list.extend(group)
    if args.iterations is not None:
        override_list.append(f"time.n_iterations={args.iterations}")
    if args.seed is not None:
        override_list.append(f"runtime.seed={args.seed}")

    try:
        cfg = load_config(args.config, overrides=override_list)
        if args.progress:
            cfg.progress.enable = True
        ctx = RuntimeContext.create(
            cfg.domain.resolved_nx(),
            cfg.domain.ny,
            backend=cfg.runtime.backend,
            threads=cfg.runtime.threads,
            partition_count=cfg.runtime.partition_count,
        )
    except ConfigurationError as exc:
        logger.error("configuration error: %s", format_exception_short(exc))
        return EXIT_CONFIG

    try:
        driver = ConvectionDriver(cfg, ctx, rng=np.random.default_rng(cfg.runtime.seed))
        diagnostics = driver.run()
    except ConfigurationError as exc:
        logger.error("configuration error: %s", format_exception_short(exc))
        return EXIT_CONFIG
    except CommunicationFault as exc:
        logger.error("aborted: %s", format_exception_short(exc))
        return EXIT_COMMUNICATION
    finally:
        ctx.close()

    err = diagnostics.err if diagnostics is not None else float("nan")
    logger.info(
        "finished %d iterations in %.2fs; final Stokes error %.3e",
        driver.clock.it, driver.history.total_time_elapsed, err,
    )
    if args.check:
        tolerance = cfg.diagnostics.tolerance
        if not err < tolerance:
            logger.error("final Stokes error %.3e exceeds tolerance %.1e", err, tolerance)
            return EXIT_TOLERANCE
    return EXIT_OK


__all__ = ["build_parser", "main", "EXIT_OK", "EXIT_TOLERANCE", "EXIT_CONFIG", "EXIT_COMMUNICATION"]


if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    raise SystemExit(main())
