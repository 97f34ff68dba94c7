"""
Spike-in Normalized Expression Workflow

Builds a log-expression matrix from per-sample RSEM gene quantifications:

1. Assemble the genes x samples count matrix (ordering check, rounding,
   zero-row removal)
2. Label genes as <gene_id>_<gene_name> from a GTF annotation
3. Compute normalization factors from spike-in control rows
4. Convert biological rows to log(CPM + 1)
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

import pandas as pd
from tqdm import tqdm

from repliseq_analysis.utils import (
    DEFAULT_NORMALIZER,
    DEFAULT_SPIKE_IN_PREFIX,
    LibraryNormalizer,
    annotate_gene_ids,
    assemble_expression_matrix,
    gene_annotation,
    get_normalizer,
    load_expected_counts,
    log_cpm,
    parse_gtf,
    spike_in_norm_factors,
    split_spike_ins,
)

logger = logging.getLogger(__name__)


def normalize_expression(
    matrix: pd.DataFrame,
    spike_in_prefix: str = DEFAULT_SPIKE_IN_PREFIX,
    normalizer: Optional[LibraryNormalizer] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Normalize biological genes with factors computed from spike-ins.

    Args:
        matrix: Genes x samples count matrix including spike-in rows
        spike_in_prefix: Row identifier prefix of spike-in controls
        normalizer: Library normalizer (default: EdgeRNormalizer)

    Returns:
        Tuple of:
            - expression: log(CPM + 1) of the biological rows
            - factors: Per-sample factor table (see spike_in_norm_factors)
    """
    spike, bio = split_spike_ins(matrix, prefix=spike_in_prefix)
    if len(spike) == 0:
        raise ValueError(f"No spike-in rows with prefix '{spike_in_prefix}'")
    if len(bio) == 0:
        raise ValueError("No biological rows left after removing spike-ins")

    bio_lib_sizes = bio.sum(axis=0)
    factors = spike_in_norm_factors(spike, bio_lib_sizes, normalizer)
    for sample, row in factors.iterrows():
        logger.debug(
            f"{sample}: spike factor {row['spike_factor']:.4f}, "
            f"norm factor {row['norm_factor']:.4f}, scale factor {row['scale_factor']:.4g}"
        )

    expression = log_cpm(bio, lib_sizes=bio_lib_sizes, norm_factors=factors['norm_factor'])
    return expression, factors


def run_expression_workflow(config: Dict) -> Tuple[pd.DataFrame, Dict]:
    """
    Run the RNA-seq workflow from count tables to a log-expression matrix.

    Args:
        config: Configuration dictionary with keys:
            - count_files: Sample name -> RSEM genes.results path (required)
            - gtf_path: GTF annotation path (required)
            - output_dir: Output directory (required)
            - output_name: Output file stem (default: 'log_expression')
            - spike_in_prefix: Spike-in row prefix (default: 'ERCC')
            - normalizer: 'edger' (R) or 'tmm' (in-process) (default: 'edger')
            - save_counts: Also save the annotated count matrix and factors
              (default: False)

    Returns:
        Tuple of:
            - expression: Genes x samples log(CPM + 1) matrix
            - metadata: Run summary (also saved as JSON)

    Example:
        >>> config = {
        ...     'count_files': {'ctrl_1': 'ctrl_1.genes.results', 'ko_1': 'ko_1.genes.results'},
        ...     'gtf_path': 'gencode.v44.annotation.gtf.gz',
        ...     'output_dir': './results/rnaseq',
        ... }
        >>> expression, metadata = run_expression_workflow(config)
    """
    _validate_expression_config(config)

    output_dir = Path(config['output_dir'])
    output_name = config.get('output_name', 'log_expression')
    spike_in_prefix = config.get('spike_in_prefix', DEFAULT_SPIKE_IN_PREFIX)

    # Step 1: count matrix
    logger.info("Step 1/3: Assembling count matrix...")
    counts_by_sample = {
        sample: load_expected_counts(path)
        for sample, path in tqdm(config['count_files'].items(), desc="Loading count tables")
    }
    matrix = assemble_expression_matrix(counts_by_sample)
    logger.info(f"Count matrix: {matrix.shape[0]} genes x {matrix.shape[1]} samples")

    # Step 2: annotation
    logger.info("Step 2/3: Annotating genes...")
    annotation = gene_annotation(parse_gtf(config['gtf_path']))
    matrix = annotate_gene_ids(matrix, annotation)

    # Step 3: normalization
    logger.info("Step 3/3: Normalizing to spike-ins...")
    normalizer = get_normalizer(config.get('normalizer', DEFAULT_NORMALIZER))
    expression, factors = normalize_expression(matrix, spike_in_prefix, normalizer)

    output_dir.mkdir(parents=True, exist_ok=True)
    expression_file = output_dir / f"{output_name}.tsv"
    expression.to_csv(expression_file, sep='\t')
    outputs = {'expression': str(expression_file)}

    if config.get('save_counts', False):
        counts_file = output_dir / f"{output_name}_counts.tsv"
        factors_file = output_dir / f"{output_name}_norm_factors.tsv"
        matrix.to_csv(counts_file, sep='\t')
        factors.to_csv(factors_file, sep='\t')
        outputs.update({'counts': str(counts_file), 'norm_factors': str(factors_file)})

    metadata = {
        'timestamp': datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        'n_samples': int(expression.shape[1]),
        'n_genes': int(expression.shape[0]),
        'n_spike_ins': int(matrix.shape[0] - expression.shape[0]),
        'normalizer': normalizer.name,
        'norm_factors': factors['norm_factor'].to_dict(),
        'scale_factors': factors['scale_factor'].to_dict(),
        'outputs': outputs,
    }
    with open(output_dir / f"{output_name}_metadata.json", 'w') as f:
        json.dump(metadata, f, indent=2, default=str)

    logger.info(f"Expression complete. {expression.shape[0]} genes saved to {expression_file}")
    return expression, metadata


def _validate_expression_config(config: Dict) -> None:
    """Validate required configuration parameters."""
    for key in ['count_files', 'gtf_path', 'output_dir']:
        if key not in config:
            raise ValueError(f"Missing required config key: {key}")

    if not isinstance(config['count_files'], dict) or not config['count_files']:
        raise ValueError("count_files must map sample names to count tables")

    if not Path(config['gtf_path']).exists():
        raise FileNotFoundError(f"GTF file not found: {config['gtf_path']}")
