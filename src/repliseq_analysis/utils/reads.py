"""
Aligned-read utilities for Repli-seq.

This module loads read intervals from BAM files, removes reads falling in
high-signal artefact regions, counts reads per window and computes library
sizes.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd
import pysam

from .intervals import IntervalIndex, sort_intervals

logger = logging.getLogger(__name__)


def load_bam_reads(
    bam_path: Union[str, Path],
    chromosomes: Optional[Iterable[str]] = None,
    min_mapq: int = 0
) -> pd.DataFrame:
    """
    Load aligned reads from a BAM file as genomic intervals.

    Unmapped, secondary, supplementary and QC-failed alignments are skipped.
    The whole file is scanned, so no BAM index is required.

    Args:
        bam_path: Path to BAM file
        chromosomes: Chromosomes to keep (default: all)
        min_mapq: Minimum mapping quality

    Returns:
        DataFrame with chrom, start, end, strand columns (0-based, half-open),
        sorted by chromosome and start

    Example:
        >>> reads = load_bam_reads('S1.bam', chromosomes=['chr1', 'chr2'], min_mapq=20)
        >>> print(f"Loaded {len(reads)} reads")
    """
    bam_path = Path(bam_path)
    if not bam_path.exists():
        raise FileNotFoundError(f"BAM file not found: {bam_path}")

    chromosomes = list(chromosomes) if chromosomes is not None else None
    keep = set(chromosomes) if chromosomes is not None else None

    chroms = []
    starts = []
    ends = []
    strands = []
    n_skipped = 0

    with pysam.AlignmentFile(str(bam_path), 'rb') as bam:
        for read in bam.fetch(until_eof=True):
            if (read.is_unmapped or read.is_secondary or read.is_supplementary
                    or read.is_qcfail or read.mapping_quality < min_mapq):
                n_skipped += 1
                continue

            chrom = read.reference_name
            if keep is not None and chrom not in keep:
                continue

            chroms.append(chrom)
            starts.append(read.reference_start)
            ends.append(read.reference_end)
            strands.append('-' if read.is_reverse else '+')

    reads = pd.DataFrame({
        'chrom': pd.Series(chroms, dtype=object),
        'start': pd.Series(starts, dtype=np.int64),
        'end': pd.Series(ends, dtype=np.int64),
        'strand': pd.Series(strands, dtype=object),
    })

    logger.info(f"Loaded {len(reads)} reads from {bam_path.name} ({n_skipped} alignments skipped)")
    return sort_intervals(reads, chromosome_order=chromosomes)


def count_reads_in_windows(reads: pd.DataFrame, windows: pd.DataFrame) -> pd.Series:
    """
    Count reads overlapping each window.

    Args:
        reads: Read intervals (chrom, start, end)
        windows: Windows with chrom, start, end, window_id columns

    Returns:
        Integer Series of counts indexed by window_id
    """
    index = IntervalIndex.from_intervals(windows)
    counts = index.count_overlaps(reads)
    return pd.Series(counts, index=pd.Index(windows['window_id'].to_numpy(), name='window_id'),
                     name='count')


def detect_bad_regions(
    reads_by_sample: Dict[str, pd.DataFrame],
    windows: pd.DataFrame,
    high_threshold: int
) -> pd.DataFrame:
    """
    Find windows with an artefactual pile-up of reads in any sample.

    A window is bad when its read count is strictly greater than
    ``high_threshold`` in at least one sample. The returned set is the union
    of bad windows across samples.

    Args:
        reads_by_sample: Sample name -> read intervals
        windows: Fine-grained detection windows (chrom, start, end, window_id)
        high_threshold: Maximum tolerated reads per window

    Returns:
        Bad windows (subset of ``windows`` rows, window order preserved) with
        an extra ``n_samples`` column counting the samples flagging each one
    """
    if len(windows) == 0:
        return windows.assign(n_samples=pd.Series([], dtype=np.int64))

    index = IntervalIndex.from_intervals(windows)
    flagged = np.zeros(len(windows), dtype=np.int64)

    for sample, reads in reads_by_sample.items():
        is_bad = index.count_overlaps(reads) > high_threshold
        logger.debug(f"{sample}: {int(is_bad.sum())} windows above {high_threshold} reads")
        flagged += is_bad

    bad = windows.loc[flagged > 0].copy()
    bad['n_samples'] = flagged[flagged > 0]

    logger.info(
        f"Found {len(bad)} bad regions (> {high_threshold} reads in any of "
        f"{len(reads_by_sample)} samples)"
    )
    return bad


def filter_reads(reads: pd.DataFrame, bad_regions: pd.DataFrame) -> pd.DataFrame:
    """
    Remove reads overlapping any bad region.

    Args:
        reads: Read intervals
        bad_regions: Excluded intervals

    Returns:
        Reads not overlapping any excluded interval, order preserved
    """
    if len(bad_regions) == 0 or len(reads) == 0:
        return reads.copy()

    hits = IntervalIndex.from_intervals(bad_regions).overlaps_any(reads)
    logger.debug(f"Removed {int(hits.sum())} of {len(reads)} reads in bad regions")
    return reads.loc[~hits].copy()


def library_size(reads: pd.DataFrame, exclude_chromosomes: Optional[List[str]] = None) -> int:
    """
    Count retained reads outside the excluded chromosomes.

    Args:
        reads: Read intervals
        exclude_chromosomes: Chromosomes left out of the total (e.g. chrM, chrY)

    Returns:
        Number of reads contributing to the library size
    """
    if exclude_chromosomes:
        return int((~reads['chrom'].isin(exclude_chromosomes)).sum())
    return int(len(reads))


def assemble_count_matrix(
    windows: pd.DataFrame,
    counts_by_sample: Dict[str, pd.Series]
) -> pd.DataFrame:
    """
    Join per-sample window counts into a windows x samples matrix.

    Counts are aligned on window_id, never by position. Each sample must
    provide exactly one count per window.

    Args:
        windows: Windows with a window_id column
        counts_by_sample: Sample name -> counts indexed by window_id

    Returns:
        DataFrame indexed by window_id with one integer column per sample

    Raises:
        ValueError: If a sample's counts don't cover the windows one to one
    """
    window_ids = pd.Index(windows['window_id'].to_numpy(), name='window_id')
    matrix = pd.DataFrame(index=window_ids)

    for sample, counts in counts_by_sample.items():
        if len(counts) != len(window_ids):
            raise ValueError(
                f"Sample {sample} has {len(counts)} window counts but there are "
                f"{len(window_ids)} windows"
            )
        if counts.index.has_duplicates or not counts.index.isin(window_ids).all():
            raise ValueError(f"Sample {sample} counts are not keyed by the window ids")
        matrix = matrix.join(counts.rename(sample).astype(np.int64), how='left')

    return matrix
