#!/usr/bin/env python3
"""
Survey Disclosure Control - Main Entry Point
=============================================
Command-line interface for applying suppression and DP noise to aggregated
survey cells before publication.

Usage:
    python main.py --config configs/default.ini --input cells.csv --output published.csv
    python main.py --config configs/default.ini --check
"""

import argparse
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional

import pandas as pd

from disclosure.audit import InMemoryAuditRepository
from disclosure.config import Config
from disclosure.errors import ConfigurationDriftError, InvalidInputError
from disclosure.invariants import run_methodology_checks
from disclosure.pipeline import DisclosurePipeline


# Identifiers stay text even when they look numeric (district codes like 101)
INPUT_DTYPES = {"district": str, "tenure_bucket": str, "subject": str}


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_dir: Optional[str] = "logs"
) -> logging.Logger:
    """
    Set up logging with console and optional file output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file name. If None, auto-generated.
        log_dir: Directory for log files. None disables file logging.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("disclosure")
    logger.setLevel(getattr(logging, log_level.upper()))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S'
    ))
    logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        if log_file is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = f"disclosure_{timestamp}.log"

        log_path = os.path.join(log_dir, log_file)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
        ))
        logger.addHandler(file_handler)
        logger.info(f"Logging to file: {log_path}")

    return logger


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Apply statistical disclosure control to aggregated survey cells",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Input CSV columns: district, tenure_bucket, subject, n
(leave tenure_bucket/subject empty for coarser slices)

Examples:
    python main.py -c configs/default.ini -i cells.csv -o published.csv
    python main.py -c configs/default.ini -i cells.csv --epsilon 0.5 --audit-out audit.csv
    python main.py -c configs/default.ini --check --fingerprint <sha256>
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default="configs/default.ini",
        help="Path to configuration file (default: configs/default.ini)"
    )
    parser.add_argument("--input", "-i", type=str, default=None, help="Input CSV of cells")
    parser.add_argument("--output", "-o", type=str, default=None, help="Output CSV path")
    parser.add_argument(
        "--audit-out",
        type=str,
        default=None,
        help="Write suppression audit entries to this CSV"
    )

    parser.add_argument(
        "--epsilon",
        type=float,
        default=None,
        help="Override the privacy budget epsilon"
    )
    parser.add_argument(
        "--min-cell-size",
        type=int,
        default=None,
        help="Override the minimum cell size k"
    )
    parser.add_argument(
        "--no-dp",
        action="store_true",
        help="Publish threshold-passing counts without Laplace noise"
    )

    parser.add_argument(
        "--check",
        action="store_true",
        help="Run methodology consistency checks and exit"
    )
    parser.add_argument(
        "--fingerprint",
        type=str,
        default=None,
        help="Published methodology fingerprint to verify against"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Directory for log files (default: console only)"
    )

    return parser.parse_args()


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command-line overrides to configuration."""
    if args.epsilon is not None:
        config.privacy.epsilon = args.epsilon

    if args.min_cell_size is not None:
        config.privacy.min_cell_size = args.min_cell_size

    if args.no_dp:
        config.privacy.apply_dp_noise = False

    return config


def print_config_summary(config: Config, logger: logging.Logger):
    """Print configuration summary."""
    logger.info("=" * 60)
    logger.info("Configuration Summary")
    logger.info("=" * 60)
    logger.info(f"Minimum cell size (k):    {config.privacy.min_cell_size}")
    logger.info(f"DP noise:                 {'on' if config.privacy.apply_dp_noise else 'off'}")
    logger.info(f"Epsilon:                  {config.privacy.epsilon}")
    logger.info(f"Sensitivity:              {config.privacy.sensitivity}")
    logger.info(f"Methodology version:      {config.privacy.methodology_version}")
    logger.info(f"Fingerprint:              {config.privacy.methodology_fingerprint()}")
    logger.info("=" * 60)


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = parse_args()
    logger = setup_logging(log_level=args.log_level, log_dir=args.log_dir)

    try:
        logger.info(f"Loading configuration from: {args.config}")
        config = apply_overrides(Config.from_ini(args.config), args)
        config.validate()
        print_config_summary(config, logger)

        run_methodology_checks(config, published_fingerprint=args.fingerprint)

        if args.check:
            return 0

        if not args.input:
            logger.error("--input is required unless --check is given")
            return 1

        repository = InMemoryAuditRepository()
        pipeline = DisclosurePipeline(config, repository=repository)

        cells = pd.read_csv(args.input, dtype=INPUT_DTYPES)
        logger.info(f"Read {len(cells):,} cells from {args.input}")
        published = pipeline.publish_frame(cells)

        if args.output:
            published.to_csv(args.output, index=False)
            logger.info(f"Wrote published cells to {args.output}")
        else:
            print(published.to_string(index=False))

        if args.audit_out:
            audit_df = pd.DataFrame([e.to_dict() for e in repository.entries()])
            audit_df.to_csv(args.audit_out, index=False)
            logger.info(f"Wrote {len(audit_df):,} audit entries to {args.audit_out}")

        if config.privacy.apply_dp_noise:
            logger.info(pipeline.noiser.methodology_text())

        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ConfigurationDriftError as e:
        logger.error(f"Methodology drift: {e}")
        return 1
    except InvalidInputError as e:
        logger.error(f"Invalid input: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
