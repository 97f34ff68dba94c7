"""Tests for BAM loading, bad-region filtering and window counting."""

import pandas as pd
import pytest

from repliseq_analysis.utils import (
    assemble_count_matrix,
    count_reads_in_windows,
    detect_bad_regions,
    filter_reads,
    library_size,
    load_bam_reads,
    make_windows,
)

from conftest import make_reads


@pytest.fixture
def fine_windows():
    return make_windows(pd.Series({'chr1': 600}), width=150, spacing=150)


@pytest.fixture
def reads_by_sample():
    return {
        'A': make_reads('chr1', [0, 0, 0], length=10),
        'B': make_reads('chr1', [160, 160, 460], length=10),
    }


def test_bad_regions_any_sample(fine_windows, reads_by_sample):
    """A window is bad when one sample exceeds the threshold."""
    bad = detect_bad_regions(reads_by_sample, fine_windows, high_threshold=2)
    assert bad['start'].tolist() == [0]
    assert bad['n_samples'].tolist() == [1]


def test_bad_regions_strictly_greater(fine_windows, reads_by_sample):
    """Counts equal to the threshold are tolerated."""
    bad = detect_bad_regions(reads_by_sample, fine_windows, high_threshold=1)
    # A: 3 reads in [0, 150); B: 2 reads in [150, 300) and 1 in [450, 600)
    assert bad['start'].tolist() == [0, 150]

    bad = detect_bad_regions(reads_by_sample, fine_windows, high_threshold=3)
    assert len(bad) == 0


def test_filter_reads(fine_windows, reads_by_sample):
    """Reads overlapping a bad region are removed, others kept."""
    bad = detect_bad_regions(reads_by_sample, fine_windows, high_threshold=1)
    assert len(filter_reads(reads_by_sample['A'], bad)) == 0
    kept = filter_reads(reads_by_sample['B'], bad)
    assert kept['start'].tolist() == [460]


def test_filter_reads_without_bad_regions(reads_by_sample, fine_windows):
    """Nothing is removed when there are no bad regions."""
    no_bad = fine_windows.iloc[0:0]
    assert len(filter_reads(reads_by_sample['B'], no_bad)) == 3


def test_library_size_excludes_chromosomes():
    """Reads on excluded chromosomes don't count toward the library size."""
    reads = pd.concat([
        make_reads('chr1', [0, 100, 200]),
        make_reads('chrM', [0, 10]),
        make_reads('chrY', [5]),
    ], ignore_index=True)
    assert library_size(reads, ['chrM', 'chrY']) == 3
    assert library_size(reads) == 6


def test_count_reads_in_windows():
    """Counts are indexed by window id."""
    windows = make_windows(pd.Series({'chr1': 300}), width=200, spacing=100)
    reads = make_reads('chr1', [0, 150, 250], length=10)
    counts = count_reads_in_windows(reads, windows)
    assert counts.index.tolist() == [0, 1, 2]
    # [0,200): 0,150  [100,300): 150,250  [200,300): 250
    assert counts.tolist() == [2, 2, 1]


def test_assemble_count_matrix_joins_on_window_id():
    """Counts are aligned by window id regardless of their order."""
    windows = make_windows(pd.Series({'chr1': 300}), width=100, spacing=100)
    counts = {
        'S1': pd.Series([1, 2, 3], index=pd.Index([0, 1, 2], name='window_id')),
        'S2': pd.Series([30, 10, 20], index=pd.Index([2, 0, 1], name='window_id')),
    }
    matrix = assemble_count_matrix(windows, counts)
    assert matrix['S1'].tolist() == [1, 2, 3]
    assert matrix['S2'].tolist() == [10, 20, 30]


def test_assemble_count_matrix_length_mismatch():
    """A sample whose counts don't match the window set is fatal."""
    windows = make_windows(pd.Series({'chr1': 300}), width=100, spacing=100)
    with pytest.raises(ValueError):
        assemble_count_matrix(windows, {'S1': pd.Series([1, 2], index=[0, 1])})
    with pytest.raises(ValueError):
        assemble_count_matrix(windows, {'S1': pd.Series([1, 2, 3], index=[0, 1, 7])})


def test_load_bam_reads(bam_writer):
    """Mapped primary alignments are loaded as 0-based half-open intervals."""
    bam = bam_writer('sample.bam', [('chr1', 1000), ('chrM', 500)], [
        {'chrom': 'chr1', 'start': 200, 'length': 20, 'flag': 16, 'mapq': 5},
        {'chrom': 'chr1', 'start': 100, 'length': 20, 'mapq': 30},
        {'flag': 4, 'length': 20},
        {'chrom': 'chr1', 'start': 300, 'length': 20, 'flag': 256},
        {'chrom': 'chrM', 'start': 10, 'length': 20},
    ])

    reads = load_bam_reads(bam, chromosomes=['chr1', 'chrM'])
    assert reads[['chrom', 'start', 'end', 'strand']].values.tolist() == [
        ['chr1', 100, 120, '+'],
        ['chr1', 200, 220, '-'],
        ['chrM', 10, 30, '+'],
    ]

    assert len(load_bam_reads(bam, chromosomes=['chr1'])) == 2
    assert load_bam_reads(bam, min_mapq=10)['start'].tolist() == [100, 10]


def test_load_bam_reads_chromosome_generator(bam_writer):
    """A one-shot chromosome iterable both filters and orders the reads."""
    bam = bam_writer('sample.bam', [('chr1', 1000), ('chrM', 500), ('chr2', 1000)], [
        {'chrom': 'chr1', 'start': 200, 'length': 20},
        {'chrom': 'chr1', 'start': 100, 'length': 20},
        {'chrom': 'chrM', 'start': 10, 'length': 20},
        {'chrom': 'chr2', 'start': 50, 'length': 20},
    ])

    reads = load_bam_reads(bam, chromosomes=(c for c in ['chrM', 'chr1']))
    assert reads['chrom'].tolist() == ['chrM', 'chr1', 'chr1']
    assert reads['start'].tolist() == [10, 100, 200]


def test_load_bam_reads_missing_file(tmp_path):
    """A missing BAM file is fatal."""
    with pytest.raises(FileNotFoundError):
        load_bam_reads(tmp_path / 'missing.bam')
