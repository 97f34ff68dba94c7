"""
RNA-seq expression matrix utilities.

Loads per-sample RSEM gene quantifications, assembles them into a genes x
samples count matrix and labels rows with gene symbols.
"""

import logging
from pathlib import Path
from typing import Dict, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_SPIKE_IN_PREFIX = 'ERCC'


def load_expected_counts(
    count_path: Union[str, Path],
    id_column: str = 'gene_id',
    count_column: str = 'expected_count'
) -> pd.Series:
    """
    Load one sample's expected counts from an RSEM-style table.

    Args:
        count_path: Tab-delimited table with a header row
        id_column: Column holding gene identifiers
        count_column: Column holding expected counts

    Returns:
        Series of expected counts, indexed by gene id in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the required columns are missing
    """
    count_path = Path(count_path)
    if not count_path.exists():
        raise FileNotFoundError(f"Count table not found: {count_path}")

    table = pd.read_csv(count_path, sep='\t', dtype={id_column: str})
    missing = [c for c in (id_column, count_column) if c not in table.columns]
    if missing:
        raise ValueError(f"{count_path.name} is missing columns: {', '.join(missing)}")

    counts = pd.Series(
        table[count_column].to_numpy(dtype=float),
        index=pd.Index(table[id_column].to_numpy(), name='gene_id'),
        name=count_column
    )
    logger.debug(f"Loaded {len(counts)} genes from {count_path.name}")
    return counts


def assemble_expression_matrix(counts_by_sample: Dict[str, pd.Series]) -> pd.DataFrame:
    """
    Build a genes x samples integer count matrix.

    Every sample must list the same gene ids in the same order. Counts are
    rounded to integers and genes with zero total count are dropped.

    Args:
        counts_by_sample: Sample name -> expected counts indexed by gene id

    Returns:
        DataFrame indexed by gene_id with one int64 column per sample

    Raises:
        ValueError: If no samples are given or gene ordering differs

    Example:
        >>> genes = pd.Index(['g1', 'g2', 'g3'], name='gene_id')
        >>> matrix = assemble_expression_matrix({
        ...     'A': pd.Series([10.0, 0.0, 0.0], index=genes),
        ...     'B': pd.Series([0.0, 5.0, 0.0], index=genes),
        ... })
        >>> matrix.index.tolist()
        ['g1', 'g2']
    """
    if not counts_by_sample:
        raise ValueError("No count tables given")

    samples = list(counts_by_sample)
    gene_ids = counts_by_sample[samples[0]].index

    for sample in samples[1:]:
        other = counts_by_sample[sample].index
        if len(other) != len(gene_ids) or not np.array_equal(other.to_numpy(), gene_ids.to_numpy()):
            raise ValueError(
                f"Gene ids of sample {sample} differ from those of sample {samples[0]}"
            )

    values = np.column_stack([
        np.round(counts_by_sample[s].to_numpy(dtype=float)) for s in samples
    ]).astype(np.int64)
    matrix = pd.DataFrame(values, index=pd.Index(gene_ids.to_numpy(), name='gene_id'), columns=samples)

    nonzero = matrix.sum(axis=1) > 0
    logger.info(f"Dropped {int((~nonzero).sum())} of {len(matrix)} genes with zero counts")
    return matrix.loc[nonzero]


def annotate_gene_ids(
    matrix: pd.DataFrame,
    annotation: pd.DataFrame,
    symbol_column: str = 'gene_name',
    sep: str = '_'
) -> pd.DataFrame:
    """
    Label matrix rows as ``<gene_id><sep><gene_name>``.

    Gene ids absent from the annotation (e.g. spike-in controls) keep their
    bare id. Row order and values are unchanged.

    Args:
        matrix: Count matrix indexed by gene id
        annotation: Gene annotation indexed by gene_id (see gene_annotation)
        symbol_column: Annotation column holding the gene symbol
        sep: Separator between id and symbol

    Returns:
        Copy of the matrix with relabelled rows
    """
    symbols = pd.Series(
        matrix.index.map(annotation[symbol_column]), index=matrix.index
    )
    labels = [
        f"{gene_id}{sep}{symbol}" if isinstance(symbol, str) else str(gene_id)
        for gene_id, symbol in symbols.items()
    ]

    n_unmatched = int(symbols.isna().sum())
    if n_unmatched:
        logger.info(f"{n_unmatched} of {len(matrix)} genes have no symbol in the annotation")

    labelled = matrix.copy()
    labelled.index = pd.Index(labels, name='gene')
    return labelled


def split_spike_ins(
    matrix: pd.DataFrame,
    prefix: str = DEFAULT_SPIKE_IN_PREFIX
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Partition matrix rows into spike-in controls and biological genes.

    Args:
        matrix: Count matrix
        prefix: Row identifier prefix of spike-in controls

    Returns:
        (spike_in_rows, biological_rows)
    """
    is_spike = matrix.index.astype(str).str.startswith(prefix)
    logger.info(f"{int(is_spike.sum())} spike-in rows, {int((~is_spike).sum())} biological rows")
    return matrix.loc[is_spike], matrix.loc[~is_spike]
