#!/usr/bin/env python3
"""
Run Repli-seq Replication Timing Workflow

Command-line interface for turning per-fraction BAM files into a
weighted-average replication timing track.

Usage:
    # From config file
    python scripts/run_repliseq.py --config configs/repliseq.yaml

    # Override config with CLI args
    python scripts/run_repliseq.py --config configs/repliseq.yaml --high_threshold 80

    # Pure CLI mode
    python scripts/run_repliseq.py --bam G1=G1.bam --bam S1=S1.bam ... \\
        --chromsizes_path hg38.chrom.sizes --output_dir ./results/repliseq
"""

import argparse
import sys
import time
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

# Add parent directory to path to import cli_utils
sys.path.insert(0, str(Path(__file__).parent))

from cli_utils import (
    load_yaml_config,
    merge_configs,
    parse_named_paths,
    setup_logging,
    print_config_summary,
    print_run_summary,
    save_run_metadata,
    create_timestamped_dir,
    validate_required_keys,
)

from repliseq_analysis.workflows import run_repliseq_workflow


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Run Repli-seq Replication Timing Workflow',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run from config file
  %(prog)s --config configs/repliseq.yaml

  # Override thresholds
  %(prog)s --config configs/repliseq.yaml --high_threshold 80 --low_threshold 0.5

  # Use pure CLI mode
  %(prog)s --bam G1=G1.bam --bam S1=S1.bam --bam S2=S2.bam --bam S3=S3.bam \\
           --bam S4=S4.bam --bam G2=G2.bam --output_dir ./results
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='Path to YAML configuration file'
    )

    # Inputs
    parser.add_argument('--bam', type=str, action='append', metavar='FRACTION=PATH',
                        help='BAM file of one fraction (repeat for every fraction)')
    parser.add_argument('--chromsizes_path', type=str,
                        help='chrom.sizes file (default: header of the first BAM)')
    parser.add_argument('--sample_name', type=str,
                        help='Prefix of output files (default: repliseq)')

    # Thresholds
    parser.add_argument('--high_threshold', type=int,
                        help='Reads per bad-region window above which it is excluded (default: 100)')
    parser.add_argument('--low_threshold', type=float,
                        help='RPM at or below which a fraction is low (default: 0)')
    parser.add_argument('--min_mapq', type=int,
                        help='Minimum mapping quality (default: 0)')

    # Windows
    parser.add_argument('--window_width', type=int,
                        help='Counting window width in bp (default: 50000)')
    parser.add_argument('--window_spacing', type=int,
                        help='Counting window spacing in bp (default: 1000)')
    parser.add_argument('--bad_window_width', type=int,
                        help='Bad-region window width in bp (default: 150)')
    parser.add_argument('--bad_window_spacing', type=int,
                        help='Bad-region window spacing in bp (default: 150)')
    parser.add_argument('--output_width', type=int,
                        help='Width of output windows in bp (default: 1000)')

    # Fractions
    parser.add_argument('--fractions', type=str, nargs='+',
                        help='Fraction names in weight order (default: G1 S1 S2 S3 S4 G2)')
    parser.add_argument('--weights', type=float, nargs='+',
                        help='Weights of the leading fractions')
    parser.add_argument('--chromosome_set', type=str, nargs='+',
                        help='Chromosomes to analyse')

    # Output
    parser.add_argument('--output_dir', '-o', type=str,
                        help='Output directory')
    parser.add_argument('--write_bigwig', type=lambda x: str(x).lower() == 'true', default=None,
                        help='Write a bigWig track (true/false)')
    parser.add_argument('--save_intermediate', type=lambda x: str(x).lower() == 'true', default=None,
                        help='Save per-window signal and bad regions (true/false)')
    parser.add_argument('--timestamped_output', action='store_true',
                        help='Create timestamped output directory')

    # Logging
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--log_file', type=str,
                        help='Path to log file')

    return parser.parse_args()


def main():
    """Main entry point."""
    args = parse_args()

    yaml_config = None
    if args.config:
        try:
            yaml_config = load_yaml_config(args.config)
            print(f"Loaded configuration from: {args.config}")
        except Exception as e:
            print(f"Error loading config file: {e}")
            sys.exit(1)

    cli_args = {k: v for k, v in vars(args).items()
                if k not in ['config', 'verbose', 'log_file', 'timestamped_output', 'bam']
                and v is not None}
    try:
        cli_args['bam_files'] = parse_named_paths(args.bam, '--bam')
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    config = merge_configs(yaml_config, cli_args)

    setup_logging(verbose=args.verbose, log_file=args.log_file)

    if args.timestamped_output and 'output_dir' in config:
        config['output_dir'] = str(create_timestamped_dir(config['output_dir'], prefix='repliseq'))

    print_config_summary(config, title="Repli-seq Workflow Configuration")

    start_time = time.time()
    start_timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    print("\n" + "=" * 70)
    print(f"  Repli-seq Workflow")
    print(f"  Start Time: {start_timestamp}")
    print("=" * 70 + "\n")

    try:
        validate_required_keys(config, ['bam_files', 'output_dir'])
        track, metadata = run_repliseq_workflow(config)

        elapsed_time = time.time() - start_time
        end_timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        print_run_summary("Repli-seq Complete!", {
            'End Time': end_timestamp,
            'Elapsed Time': f"{elapsed_time:.1f}s ({elapsed_time/60:.1f} min)",
            'Bad Regions': metadata['n_bad_regions'],
            'Windows': metadata['n_windows'],
            'Low-count Windows': metadata['n_low_count_windows'],
            'Track Windows': metadata['n_track_windows'],
            'Mean Score': f"{track['score'].mean():.3f}" if len(track) else 'n/a',
        })

        save_run_metadata(
            {'start_time': start_timestamp, 'end_time': end_timestamp,
             'elapsed_seconds': elapsed_time, 'config': config},
            config['output_dir'], filename='run_info.json'
        )
        for kind, path in metadata['outputs'].items():
            print(f"{kind:15s}: {path}")
        print(f"Output directory: {config['output_dir']}\n")

        return 0

    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
