"""
Workflows for Repli-seq and RNA-seq analysis

This package provides high-level workflows that combine utility functions
into complete analysis pipelines:

- repliseq: Aligned reads -> replication timing track
- merge: Timing tracks -> cross-sample master table
- expression: RSEM count tables -> spike-in normalized log-expression matrix

Each workflow is designed as a simple function that takes a config dictionary
and returns results as DataFrames for easy downstream analysis.
"""

from .repliseq import run_repliseq_workflow, compute_timing_track
from .merge import run_track_merge_workflow, merge_tracks
from .expression import run_expression_workflow, normalize_expression

__all__ = [
    'run_repliseq_workflow',
    'compute_timing_track',
    'run_track_merge_workflow',
    'merge_tracks',
    'run_expression_workflow',
    'normalize_expression',
]
