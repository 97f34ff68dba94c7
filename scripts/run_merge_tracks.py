#!/usr/bin/env python3
"""
Run Cross-Track Merge Workflow

Command-line interface for intersecting replication timing tracks of
several samples into one master table.

Usage:
    # From config file
    python scripts/run_merge_tracks.py --config configs/merge_tracks.yaml

    # Pure CLI mode
    python scripts/run_merge_tracks.py --track ctrl=ctrl_timing.bw --track ko=ko_timing.bw \\
        --output_dir ./results/master
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
    validate_required_keys,
)

from repliseq_analysis.workflows import run_track_merge_workflow


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Run Cross-Track Merge Workflow',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run from config file
  %(prog)s --config configs/merge_tracks.yaml

  # Use pure CLI mode
  %(prog)s --track ctrl=ctrl_timing.bedGraph --track ko=ko_timing.bedGraph -o ./results
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='Path to YAML configuration file'
    )
    parser.add_argument('--track', type=str, action='append', metavar='NAME=PATH',
                        help='Scored track (bedGraph or bigWig); repeat for every track')
    parser.add_argument('--output_dir', '-o', type=str,
                        help='Output directory')
    parser.add_argument('--output_name', type=str,
                        help='Output file stem (default: master_table)')
    parser.add_argument('--save_pickle', type=lambda x: str(x).lower() == 'true', default=None,
                        help='Also save the table as a pickle (true/false)')

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
                if k not in ['config', 'verbose', 'log_file', 'track']
                and v is not None}
    try:
        cli_args['tracks'] = parse_named_paths(args.track, '--track')
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    config = merge_configs(yaml_config, cli_args)

    setup_logging(verbose=args.verbose, log_file=args.log_file)
    print_config_summary(config, title="Track Merge Configuration")

    start_time = time.time()

    try:
        validate_required_keys(config, ['tracks', 'output_dir'])
        master, metadata = run_track_merge_workflow(config)

        elapsed_time = time.time() - start_time
        summary = {
            'End Time': datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            'Elapsed Time': f"{elapsed_time:.1f}s",
            'Tracks': len(config['tracks']),
            'Shared Windows': metadata['n_windows'],
        }
        for name, size in metadata['track_sizes'].items():
            summary[f"  {name}"] = size
        print_run_summary("Track Merge Complete!", summary)
        print(f"Master table saved to: {metadata['outputs']['table']}\n")

        return 0

    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
