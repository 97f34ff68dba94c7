"""Shared fixtures for repliseq_analysis tests."""

from pathlib import Path
from typing import List, Tuple

import pandas as pd
import pysam
import pytest


def write_bam(
    path: Path,
    references: List[Tuple[str, int]],
    reads: List[dict]
) -> Path:
    """
    Write a small BAM file.

    Each read dict takes chrom, start, length and optionally flag and mapq.
    Reads with flag 4 (unmapped) get no reference.
    """
    header = {
        'HD': {'VN': '1.0', 'SO': 'unsorted'},
        'SQ': [{'SN': name, 'LN': length} for name, length in references],
    }
    ref_ids = {name: i for i, (name, _) in enumerate(references)}

    with pysam.AlignmentFile(str(path), 'wb', header=header) as bam:
        for i, read in enumerate(reads):
            length = read.get('length', 50)
            segment = pysam.AlignedSegment(bam.header)
            segment.query_name = f"read{i}"
            segment.query_sequence = 'A' * length
            segment.flag = read.get('flag', 0)
            if segment.flag & 4:
                segment.reference_id = -1
                segment.reference_start = -1
                segment.mapping_quality = 0
            else:
                segment.reference_id = ref_ids[read['chrom']]
                segment.reference_start = read['start']
                segment.mapping_quality = read.get('mapq', 60)
                segment.cigartuples = [(0, length)]
            segment.query_qualities = pysam.qualitystring_to_array('I' * length)
            bam.write(segment)
    return path


def make_reads(chrom: str, starts, length: int = 50) -> pd.DataFrame:
    """Build a read interval table from start positions."""
    starts = list(starts)
    return pd.DataFrame({
        'chrom': [chrom] * len(starts),
        'start': starts,
        'end': [s + length for s in starts],
    })


@pytest.fixture
def bam_writer(tmp_path):
    """Write BAM files into the test's temporary directory."""
    def _write(name, references, reads):
        return write_bam(tmp_path / name, references, reads)
    return _write
