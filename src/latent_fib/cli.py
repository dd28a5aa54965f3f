"""
Command-line interface for fitting the latent contamination model.

Example
-------
    latent-fib --data storm_sewer.csv --event_col Event \\
        --min_detect min_detect.csv --specific Bac.human Lachno.2 \\
        --results_path results/latent
"""

import argparse
import logging
import sys

from .io import load_fib_table, load_min_detect, write_fit_result
from .latent import LatentConfig, fit_latent
from .optimize import LatentFitError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Fit a Poisson latent contamination model to censored indicator counts'
    )

    parser.add_argument(
        '--data',
        required=True,
        help='Path to count table (CSV or Excel), one row per sample',
    )
    parser.add_argument(
        '--event_col',
        default='Event',
        help='Column holding event labels',
    )
    parser.add_argument(
        '--categories',
        nargs='+',
        default=None,
        help='Indicator columns to model (default: all other columns)',
    )
    parser.add_argument(
        '--min_detect',
        required=True,
        help='Path to detection limit table with columns category, min_detect',
    )
    parser.add_argument(
        '--specific',
        nargs='*',
        default=[],
        help='Names of human-specific indicator categories',
    )
    parser.add_argument(
        '--results_path',
        required=True,
        help='Path to output directory',
    )
    parser.add_argument(
        '--format',
        choices=['excel', 'csv'],
        default='csv',
        help='Output format',
    )
    parser.add_argument(
        '--max_rounds',
        type=int,
        default=LatentConfig.max_rounds,
        help='Maximum number of EM rounds',
    )
    parser.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='Do not report progress',
    )
    parser.add_argument(
        '-d', '--debug',
        action='store_true',
        help='Enable debug logging',
    )
    return parser


def main(argv=None) -> int:
    """Command-line interface for fit_latent."""
    args = build_parser().parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    counts, event = load_fib_table(args.data, event_col=args.event_col, categories=args.categories)
    min_detect = load_min_detect(args.min_detect)

    unknown = [s for s in args.specific if s not in counts.columns]
    if unknown:
        raise ValueError(f"--specific names unknown categories: {unknown}")
    specific = [c in args.specific for c in counts.columns]

    try:
        result = fit_latent(
            counts,
            min_detect,
            event,
            specific=specific,
            verbose=not args.quiet,
            config=LatentConfig(max_rounds=args.max_rounds),
        )
    except LatentFitError as e:
        logger.error(f"Fit failed: {e}")
        return 1

    write_fit_result(result, args.results_path, format=args.format)
    if not result.converged:
        logger.warning(f"Fit did not converge after {result.n_rounds} rounds")
    logger.info(f"Final log-likelihood: {result.log_likelihood:.4f}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
