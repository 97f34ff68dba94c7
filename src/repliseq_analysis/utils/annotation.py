"""
Gene annotation utilities.

Parses GTF files into a feature table and builds the gene id -> symbol
lookup used to label expression matrix rows.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import bioframe as bf
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

GTF_COLUMNS = [
    'chrom', 'source', 'feature', 'start', 'end',
    'score', 'strand', 'frame', 'attribute'
]

# Attributes extracted from the GTF attribute column
GTF_ATTRIBUTES = ['gene_name', 'gene_type', 'gene_id', 'transcript_id', 'transcript_name']


def _attribute_pattern(key: str) -> str:
    # Anchored on field start so that gene_id does not match havana_gene_id.
    return rf'(?:^|;)\s*{key} "([^"]*)"'


def extract_attributes(attributes: pd.Series, keys: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Extract key "value" pairs from GTF attribute strings.

    Args:
        attributes: Series of raw GTF attribute strings
        keys: Attribute names to extract (default: GTF_ATTRIBUTES)

    Returns:
        DataFrame with one column per key; NaN where the attribute is absent

    Example:
        >>> attrs = pd.Series(['gene_id "ENSG1"; gene_name "TP53";'])
        >>> extract_attributes(attrs, ['gene_id', 'gene_name']).values.tolist()
        [['ENSG1', 'TP53']]
    """
    keys = keys or GTF_ATTRIBUTES
    raw = attributes.fillna('').astype(str)
    return pd.DataFrame(
        {key: raw.str.extract(_attribute_pattern(key), expand=False) for key in keys},
        index=attributes.index
    )


def parse_gtf(
    gtf_path: Union[str, Path],
    feature: Optional[str] = None,
    attributes: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Parse a GTF annotation file.

    Args:
        gtf_path: Path to GTF file (plain or gzipped)
        feature: Keep only this feature type (e.g. 'gene'); default all
        attributes: Attribute names to extract (default: GTF_ATTRIBUTES)

    Returns:
        DataFrame with chrom, start, end (0-based, half-open), strand,
        feature and one column per extracted attribute

    Raises:
        FileNotFoundError: If the GTF file doesn't exist

    Example:
        >>> genes = parse_gtf('gencode.v44.annotation.gtf.gz', feature='gene')
        >>> genes[['gene_id', 'gene_name', 'gene_type']].head()
    """
    gtf_path = Path(gtf_path)
    if not gtf_path.exists():
        raise FileNotFoundError(f"GTF file not found: {gtf_path}")

    gtf = bf.read_table(
        str(gtf_path), names=GTF_COLUMNS, sep='\t', comment='#',
        dtype={'chrom': str, 'attribute': str}
    )
    if feature is not None:
        gtf = gtf[gtf['feature'] == feature]

    attrs = extract_attributes(gtf['attribute'], attributes)
    table = gtf[['chrom', 'start', 'end', 'strand', 'feature']].copy()
    # GTF is 1-based inclusive
    table['start'] = table['start'].astype(np.int64) - 1
    table['end'] = table['end'].astype(np.int64)
    table = table.join(attrs).reset_index(drop=True)

    logger.info(f"Parsed {len(table)} features from {gtf_path.name}")
    return table


def gene_annotation(gtf: pd.DataFrame) -> pd.DataFrame:
    """
    One annotation row per gene id, keeping the first occurrence.

    Args:
        gtf: Feature table from parse_gtf

    Returns:
        Feature table deduplicated on gene_id and indexed by it
    """
    if 'gene_id' not in gtf.columns:
        raise ValueError("Annotation table has no gene_id column")

    genes = gtf.dropna(subset=['gene_id']).drop_duplicates(subset='gene_id', keep='first')
    logger.debug(f"{len(genes)} unique gene ids in {len(gtf)} features")
    return genes.set_index('gene_id')
