#!/usr/bin/env python3
"""
Run Spike-in Normalized Expression Workflow

Command-line interface for building a log(CPM + 1) expression matrix
from RSEM gene quantifications, normalized against spike-in controls.

Usage:
    # From config file
    python scripts/run_expression.py --config configs/expression.yaml

    # Override normalizer
    python scripts/run_expression.py --config configs/expression.yaml --normalizer tmm

    # Pure CLI mode
    python scripts/run_expression.py --counts ctrl_1=ctrl_1.genes.results \\
        --counts ko_1=ko_1.genes.results --gtf_path gencode.gtf.gz -o ./results/rnaseq
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
    create_timestamped_dir,
    validate_required_keys,
)

from repliseq_analysis.workflows import run_expression_workflow


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Run Spike-in Normalized Expression Workflow',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run from config file
  %(prog)s --config configs/expression.yaml

  # Use pure CLI mode
  %(prog)s --counts A=A.genes.results --counts B=B.genes.results \\
           --gtf_path gencode.gtf.gz --output_dir ./results
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='Path to YAML configuration file'
    )
    parser.add_argument('--counts', type=str, action='append', metavar='SAMPLE=PATH',
                        help='RSEM gene results table of one sample (repeat for every sample)')
    parser.add_argument('--gtf_path', type=str,
                        help='GTF gene annotation')
    parser.add_argument('--spike_in_prefix', type=str,
                        help='Identifier prefix of spike-in rows (default: ERCC)')
    parser.add_argument('--normalizer', type=str, choices=['edger', 'tmm'],
                        help='Normalization factor backend: edger (R) or tmm (in-process) (default: edger)')

    parser.add_argument('--output_dir', '-o', type=str,
                        help='Output directory')
    parser.add_argument('--output_name', type=str,
                        help='Output file stem (default: log_expression)')
    parser.add_argument('--save_counts', type=lambda x: str(x).lower() == 'true', default=None,
                        help='Save the annotated count matrix and factors (true/false)')
    parser.add_argument('--timestamped_output', action='store_true',
                        help='Create timestamped output directory')

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
                if k not in ['config', 'verbose', 'log_file', 'timestamped_output', 'counts']
                and v is not None}
    try:
        cli_args['count_files'] = parse_named_paths(args.counts, '--counts')
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    config = merge_configs(yaml_config, cli_args)

    setup_logging(verbose=args.verbose, log_file=args.log_file)

    if args.timestamped_output and 'output_dir' in config:
        config['output_dir'] = str(create_timestamped_dir(config['output_dir'], prefix='expression'))

    print_config_summary(config, title="Expression Workflow Configuration")

    start_time = time.time()

    try:
        validate_required_keys(config, ['count_files', 'gtf_path', 'output_dir'])
        expression, metadata = run_expression_workflow(config)

        elapsed_time = time.time() - start_time
        print_run_summary("Expression Complete!", {
            'End Time': datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            'Elapsed Time': f"{elapsed_time:.1f}s",
            'Samples': metadata['n_samples'],
            'Genes': metadata['n_genes'],
            'Spike-ins': metadata['n_spike_ins'],
            'Normalizer': metadata['normalizer'],
        })
        print(f"Expression matrix saved to: {metadata['outputs']['expression']}\n")

        return 0

    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
