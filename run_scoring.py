"""
Listening Study - Score Calculation Runner
==========================================

Inspect studies, calculate objective scores and correlate score types.

Usage:
    python run_scoring.py --details ./studies/codec_test
    python run_scoring.py --calculate ./studies/codec_test --workers 8
    python run_scoring.py --calculate ./studies/codec_test --measure SNR STOI
    python run_scoring.py --correlate ./studies/codec_test

Version: 1.0.0
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from listening_study.config import PipelineConfig
from listening_study.measurements import MEASUREMENTS, get_measurements
from listening_study.progress import ProgressBar
from listening_study.reporting import (
    plot_correlation_heatmap, save_correlation, save_run_metadata, save_scores
)
from listening_study.study import Study, StudyError
from listening_study.worker import AggregateError, WorkerPool

logger = logging.getLogger("run_scoring")


def setup_logging(output_dir: str, verbose: bool = False):
    """Configure logging for the pipeline."""
    log_dir = Path(output_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"scoring_{timestamp}.log"

    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ],
        force=True
    )

    # Reduce noise from third-party libraries
    logging.getLogger('matplotlib').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('numba').setLevel(logging.WARNING)

    return str(log_file)


def build_parser(config: PipelineConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Listening study score calculation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show references and recorded scores
  python run_scoring.py --details ./studies/codec_test

  # Calculate SNR and STOI with 8 workers, then correlate
  python run_scoring.py --calculate ./studies/codec_test --measure SNR STOI --workers 8 \\
                        --correlate ./studies/codec_test
        """
    )

    parser.add_argument(
        '--details',
        type=str,
        metavar='STUDY_DIR',
        help='Study directory to print the references of'
    )

    parser.add_argument(
        '--calculate',
        type=str,
        metavar='STUDY_DIR',
        help='Study directory to calculate scores for'
    )

    parser.add_argument(
        '--measure',
        nargs='+',
        choices=sorted(MEASUREMENTS),
        default=None,
        help=f'Measurements to calculate (default: {" ".join(config.measurements)})'
    )

    parser.add_argument(
        '--correlate',
        type=str,
        metavar='STUDY_DIR',
        help='Study directory to correlate scores for'
    )

    parser.add_argument(
        '--workers', '-w',
        type=int,
        default=None,
        help=f'Number of concurrent workers (default: {config.workers})'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default=config.study.OUTPUT_DIR,
        help=f'Output directory for logs and reports (default: {config.study.OUTPUT_DIR})'
    )

    parser.add_argument(
        '--config',
        type=str,
        metavar='JSON_FILE',
        help='Load runtime settings from a saved config'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable the progress bar'
    )

    return parser


def show_details(study_dir: str):
    study = Study.open(study_dir)

    def visit(reference):
        print(json.dumps(reference.to_dict(), indent=2))

    study.view_each_reference(visit)


def calculate(study_dir: str, config: PipelineConfig, output_dir: Path):
    study = Study.open(study_dir, config)
    measurements = get_measurements(config.measurements)

    bar = ProgressBar("Calculating", disable=not config.show_progress)
    pool = WorkerPool(workers=config.workers, on_change=bar.update)

    metadata = {
        "study": study_dir,
        "config_hash": config.config_hash,
        "config_version": config.audio.CONFIG_VERSION,
        "start_time": datetime.now().isoformat(),
        "workers": config.workers,
        "measurements": list(measurements),
        "entries": study.num_entries
    }

    try:
        study.calculate(measurements, pool)
        metadata["failed"] = []
    except AggregateError as e:
        metadata["failed"] = e.failed_keys
        raise
    finally:
        metadata["end_time"] = datetime.now().isoformat()
        save_scores(study.records(), output_dir / "scores.csv")
        save_run_metadata(metadata, output_dir / "run_metadata.json")
        config.save(str(output_dir / "config_snapshot.json"))


def correlate(study_dir: str, config: PipelineConfig, output_dir: Path):
    study = Study.open(study_dir, config)
    table = study.correlate()

    print(table.to_string(float_format=lambda v: f"{v:.4f}"))

    save_correlation(table, output_dir / "correlation.csv")
    if len(table) >= 2:
        plot_correlation_heatmap(table, output_dir / "correlation_heatmap.png")


def main(argv=None) -> int:
    config = PipelineConfig()
    parser = build_parser(config)
    args = parser.parse_args(argv)

    if not (args.details or args.calculate or args.correlate):
        parser.print_usage()
        return 1

    if args.config:
        config = PipelineConfig.load(args.config)
    if args.workers is not None:
        config.workers = args.workers
    if args.measure:
        config.measurements = list(args.measure)
    config.verbose = config.verbose or args.verbose
    config.show_progress = config.show_progress and not args.no_progress

    log_file = setup_logging(args.output, config.verbose)
    output_dir = Path(args.output)

    logger.info("=" * 70)
    logger.info("Listening Study Score Calculation")
    logger.info("=" * 70)
    logger.info(f"Log file: {log_file}")

    try:
        if args.details:
            show_details(args.details)

        if args.calculate:
            logger.info(f"Workers: {config.workers}")
            logger.info(f"Measurements: {', '.join(config.measurements)}")
            calculate(args.calculate, config, output_dir)

        if args.correlate:
            correlate(args.correlate, config, output_dir)

    except AggregateError as e:
        logger.error(f"Calculation incomplete: {e}")
        return 1
    except (StudyError, KeyError, ValueError) as e:
        logger.error(f"Scoring failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
