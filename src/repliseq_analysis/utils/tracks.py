"""
Genome track I/O.

Scored interval tracks (chrom, start, end, score) are written as bedGraph
text files or bigWig files, and read back from either format based on the
file suffix.
"""

import gzip
import logging
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
import pandas as pd
import pyBigWig

from .intervals import INTERVAL_COLUMNS, sort_intervals

logger = logging.getLogger(__name__)

TRACK_COLUMNS = INTERVAL_COLUMNS + ['score']
BIGWIG_SUFFIXES = ('.bw', '.bigwig')
BEDGRAPH_SUFFIXES = ('.bedgraph', '.bdg', '.bg', '.bedgraph.gz', '.bdg.gz', '.bg.gz')


def _track_format(path: Path) -> str:
    name = path.name.lower()
    if name.endswith(BIGWIG_SUFFIXES):
        return 'bigwig'
    if name.endswith(BEDGRAPH_SUFFIXES):
        return 'bedgraph'
    raise ValueError(f"Unrecognised track format for {path.name}; use one of "
                     f"{BIGWIG_SUFFIXES + BEDGRAPH_SUFFIXES}")


def _count_header_lines(path: Path) -> int:
    n = 0
    if path.name.lower().endswith('.gz'):
        handle = gzip.open(path, 'rt')
    else:
        handle = open(path, 'r')
    with handle:
        for line in handle:
            if line.startswith(('track', 'browser', '#')):
                n += 1
            else:
                break
    return n


def write_bedgraph(track: pd.DataFrame, output_path: Union[str, Path]) -> Path:
    """
    Write a scored track as a 4-column bedGraph file.

    Args:
        track: DataFrame with chrom, start, end, score columns
        output_path: Destination file

    Returns:
        Path to the written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    track[TRACK_COLUMNS].to_csv(output_path, sep='\t', header=False, index=False)
    logger.info(f"Wrote {len(track)} intervals to {output_path}")
    return output_path


def write_bigwig(
    track: pd.DataFrame,
    chromsizes: pd.Series,
    output_path: Union[str, Path]
) -> Path:
    """
    Write a scored track as a bigWig file.

    Intervals must not overlap. They are written in the chromosome order of
    ``chromsizes``, which also forms the file header.

    Args:
        track: DataFrame with chrom, start, end, score columns
        chromsizes: Chromosome lengths (header order)
        output_path: Destination file

    Returns:
        Path to the written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    unknown = set(track['chrom']) - set(chromsizes.index)
    if unknown:
        raise ValueError(f"Track chromosomes missing from chromsizes: {', '.join(sorted(unknown))}")

    ordered = sort_intervals(track[TRACK_COLUMNS], chromosome_order=list(chromsizes.index))

    bw = pyBigWig.open(str(output_path), 'w')
    try:
        bw.addHeader([(str(chrom), int(length)) for chrom, length in chromsizes.items()])
        for chrom, group in ordered.groupby('chrom', sort=False):
            bw.addEntries(
                [str(chrom)] * len(group),
                group['start'].astype(int).tolist(),
                ends=group['end'].astype(int).tolist(),
                values=group['score'].astype(float).tolist(),
            )
    finally:
        bw.close()

    logger.info(f"Wrote {len(ordered)} intervals to {output_path}")
    return output_path


def read_track(track_path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a scored track from a bedGraph or bigWig file.

    Args:
        track_path: Path to .bedGraph/.bdg/.bg (optionally gzipped) or .bw/.bigWig

    Returns:
        DataFrame with chrom, start, end, score columns

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    track_path = Path(track_path)
    if not track_path.exists():
        raise FileNotFoundError(f"Track file not found: {track_path}")

    if _track_format(track_path) == 'bigwig':
        records = []
        bw = pyBigWig.open(str(track_path))
        try:
            for chrom in bw.chroms():
                for start, end, value in bw.intervals(chrom) or ():
                    records.append((chrom, start, end, value))
        finally:
            bw.close()
        track = pd.DataFrame.from_records(records, columns=TRACK_COLUMNS)
    else:
        track = pd.read_csv(
            track_path, sep='\t', header=None, usecols=[0, 1, 2, 3],
            names=TRACK_COLUMNS, skiprows=_count_header_lines(track_path),
            dtype={'chrom': str}
        )

    track['start'] = track['start'].astype(np.int64)
    track['end'] = track['end'].astype(np.int64)
    track['score'] = track['score'].astype(float)
    logger.debug(f"Read {len(track)} intervals from {track_path}")
    return track


def read_tracks(track_paths: Dict[str, Union[str, Path]]) -> Dict[str, pd.DataFrame]:
    """Read several named tracks, keeping the given name order."""
    return {name: read_track(path) for name, path in track_paths.items()}


def write_track(
    track: pd.DataFrame,
    output_path: Union[str, Path],
    chromsizes: Optional[pd.Series] = None
) -> Path:
    """
    Write a scored track, choosing the format from the file suffix.

    Args:
        track: DataFrame with chrom, start, end, score columns
        output_path: Destination (.bedGraph or .bw)
        chromsizes: Required for bigWig output

    Returns:
        Path to the written file
    """
    output_path = Path(output_path)
    if _track_format(output_path) == 'bigwig':
        if chromsizes is None:
            raise ValueError("chromsizes required to write bigWig output")
        return write_bigwig(track, chromsizes, output_path)
    return write_bedgraph(track, output_path)
