"""
Repli-seq Analysis Package

This package provides batch pipelines for a replication timing study.

Key components:
- workflows.repliseq: Filter aligned reads, count them in genome windows and
  compute a weighted-average replication timing score per window
- workflows.merge: Intersect timing tracks of several samples into a master table
- workflows.expression: Build a spike-in normalized RNA-seq expression matrix
- utils: Reusable functions for windows, intervals, reads, normalization,
  tracks and annotation

Example usage:
    >>> from repliseq_analysis import run_repliseq_workflow
    >>>
    >>> track, metadata = run_repliseq_workflow({
    ...     'bam_files': {'G1': 'G1.bam', 'S1': 'S1.bam', 'S2': 'S2.bam',
    ...                   'S3': 'S3.bam', 'S4': 'S4.bam', 'G2': 'G2.bam'},
    ...     'chromsizes_path': 'hg38.chrom.sizes',
    ...     'output_dir': './results/repliseq',
    ... })
"""

__version__ = "0.1.0"

from .utils import PipelineConfig
from .workflows import (
    run_repliseq_workflow,
    run_track_merge_workflow,
    run_expression_workflow,
)

# Import utils submodule for convenient access
from . import utils

__all__ = [
    'PipelineConfig',
    'run_repliseq_workflow',
    'run_track_merge_workflow',
    'run_expression_workflow',
    'utils',
]
