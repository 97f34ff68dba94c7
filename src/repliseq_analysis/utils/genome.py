"""
Reference genome utilities.

This module provides functions for loading chromosome sizes and for
partitioning the genome into fixed-width, fixed-spacing windows.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import pandas as pd
import pysam

logger = logging.getLogger(__name__)


def load_chromsizes(
    chromsizes_path: Optional[Union[str, Path]] = None,
    bam_path: Optional[Union[str, Path]] = None,
    chromosome_set: Optional[List[str]] = None
) -> pd.Series:
    """
    Load the chromosome name/length table of the reference genome.

    Sizes are read from a two-column chrom.sizes file when given, otherwise
    from the header of an aligned-read file.

    Args:
        chromsizes_path: Tab-delimited file with chromosome and length columns
        bam_path: BAM file whose header provides reference lengths
        chromosome_set: Chromosomes to keep, in output order (default: all)

    Returns:
        Series of lengths indexed by chromosome name

    Raises:
        FileNotFoundError: If the given file doesn't exist
        ValueError: If neither source is given or no chromosome survives

    Example:
        >>> sizes = load_chromsizes('hg38.chrom.sizes', chromosome_set=['chr1', 'chr2'])
        >>> sizes['chr1']
        248956422
    """
    if chromsizes_path is not None:
        chromsizes_path = Path(chromsizes_path)
        if not chromsizes_path.exists():
            raise FileNotFoundError(f"Chromosome sizes file not found: {chromsizes_path}")
        table = pd.read_csv(
            chromsizes_path, sep='\t', header=None, usecols=[0, 1],
            names=['chrom', 'length'], dtype={'chrom': str, 'length': np.int64},
            comment='#'
        )
        sizes = pd.Series(table['length'].values, index=table['chrom'].values, name='length')
    elif bam_path is not None:
        bam_path = Path(bam_path)
        if not bam_path.exists():
            raise FileNotFoundError(f"BAM file not found: {bam_path}")
        with pysam.AlignmentFile(str(bam_path), 'rb') as bam:
            sizes = pd.Series(
                np.asarray(bam.lengths, dtype=np.int64),
                index=list(bam.references), name='length'
            )
    else:
        raise ValueError("Provide either chromsizes_path or bam_path")

    if chromosome_set is not None:
        missing = [c for c in chromosome_set if c not in sizes.index]
        if missing:
            logger.warning(f"Chromosomes not in reference, skipped: {', '.join(missing)}")
        sizes = sizes.loc[[c for c in chromosome_set if c in sizes.index]]

    if len(sizes) == 0:
        raise ValueError("No chromosomes left after applying chromosome_set")

    sizes.index.name = 'chrom'
    return sizes


def make_windows(chromsizes: pd.Series, width: int, spacing: int) -> pd.DataFrame:
    """
    Partition the genome into windows of fixed width at fixed spacing.

    Windows start at position 0 of every chromosome and every ``spacing``
    bases after that. Windows running past the chromosome end are truncated,
    so the last windows of a chromosome can be narrower than ``width``.

    Args:
        chromsizes: Chromosome lengths, in output order
        width: Window width (bp)
        spacing: Distance between consecutive window starts (bp)

    Returns:
        DataFrame with chrom, start, end, window_id columns, ordered by
        chromosome then start. window_id runs 0..n-1 in that order.

    Example:
        >>> sizes = pd.Series({'chr1': 2500})
        >>> make_windows(sizes, width=1000, spacing=1000)[['start', 'end']].values.tolist()
        [[0, 1000], [1000, 2000], [2000, 2500]]
    """
    if width <= 0 or spacing <= 0:
        raise ValueError(f"width and spacing must be > 0, got {width} and {spacing}")

    chroms = []
    starts = []
    ends = []
    for chrom, length in chromsizes.items():
        chrom_starts = np.arange(0, int(length), spacing, dtype=np.int64)
        chroms.append(np.full(len(chrom_starts), chrom, dtype=object))
        starts.append(chrom_starts)
        ends.append(np.minimum(chrom_starts + width, int(length)))

    if not starts:
        return pd.DataFrame({
            'chrom': pd.Series([], dtype=object),
            'start': pd.Series([], dtype=np.int64),
            'end': pd.Series([], dtype=np.int64),
            'window_id': pd.Series([], dtype=np.int64),
        })

    windows = pd.DataFrame({
        'chrom': np.concatenate(chroms),
        'start': np.concatenate(starts),
        'end': np.concatenate(ends),
    })
    windows['window_id'] = np.arange(len(windows), dtype=np.int64)

    logger.debug(
        f"Created {len(windows)} windows ({width} bp every {spacing} bp) "
        f"on {len(chromsizes)} chromosomes"
    )
    return windows


def resize_centered(
    intervals: pd.DataFrame,
    width: int,
    chromsizes: Optional[pd.Series] = None
) -> pd.DataFrame:
    """
    Resize intervals to a fixed width centered on their midpoint.

    Args:
        intervals: DataFrame with chrom, start, end columns
        width: New interval width (bp)
        chromsizes: Optional chromosome lengths used to clip interval ends

    Returns:
        Copy of intervals with start/end replaced by the resized coordinates

    Example:
        >>> df = pd.DataFrame({'chrom': ['chr1'], 'start': [0], 'end': [50000]})
        >>> resize_centered(df, 1000)[['start', 'end']].values.tolist()
        [[24500, 25500]]
    """
    if width <= 0:
        raise ValueError(f"width must be > 0, got {width}")

    resized = intervals.copy()
    mid = (resized['start'].to_numpy(dtype=np.int64) + resized['end'].to_numpy(dtype=np.int64)) // 2
    new_start = np.maximum(mid - width // 2, 0)
    new_end = new_start + width

    if chromsizes is not None:
        chrom_len = resized['chrom'].map(chromsizes)
        if chrom_len.isna().any():
            missing = sorted(resized.loc[chrom_len.isna(), 'chrom'].astype(str).unique())
            raise ValueError(f"No size known for chromosomes: {', '.join(missing)}")
        new_end = np.minimum(new_end, chrom_len.to_numpy(dtype=np.int64))

    resized['start'] = new_start
    resized['end'] = new_end
    return resized
