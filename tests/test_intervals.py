"""Tests for the interval index and overlap helpers."""

import itertools

import numpy as np
import pandas as pd
import pytest

from repliseq_analysis.utils import (
    IntervalIndex,
    drop_self_overlaps,
    restrict_to_overlaps,
    sort_intervals,
    values_at,
)


def _intervals(rows, chrom='chr1'):
    return pd.DataFrame({
        'chrom': [r[0] if len(r) == 3 else chrom for r in rows],
        'start': [r[-2] for r in rows],
        'end': [r[-1] for r in rows],
    })


def _overlap(a, b):
    return a['chrom'] == b['chrom'] and a['start'] < b['end'] and b['start'] < a['end']


def test_count_overlaps():
    """Counts follow half-open semantics: abutting intervals do not overlap."""
    windows = _intervals([(0, 100), (100, 200), (200, 300)])
    reads = _intervals([
        ('chr1', 50, 150), ('chr1', 99, 100), ('chr1', 100, 101),
        ('chr1', 250, 400), ('chr1', 300, 310), ('chr2', 0, 1000),
    ])
    index = IntervalIndex.from_intervals(windows)
    assert index.count_overlaps(reads).tolist() == [2, 2, 1]


def test_overlaps_any():
    """Each query is flagged when it overlaps at least one indexed interval."""
    windows = _intervals([(0, 100), (100, 200), (200, 300)])
    reads = _intervals([
        ('chr1', 50, 150), ('chr1', 99, 100), ('chr1', 100, 101),
        ('chr1', 250, 400), ('chr1', 300, 310), ('chr2', 0, 1000),
    ])
    hits = IntervalIndex.from_intervals(windows).overlaps_any(reads)
    assert hits.tolist() == [True, True, True, True, False, False]


def test_count_overlaps_matches_brute_force():
    """Overlap counts equal an exhaustive pairwise count."""
    rng = np.random.default_rng(0)
    starts = rng.integers(0, 5000, size=60)
    windows = pd.DataFrame({'chrom': 'chr1', 'start': starts, 'end': starts + rng.integers(1, 800, size=60)})
    read_starts = rng.integers(0, 6000, size=200)
    reads = pd.DataFrame({'chrom': 'chr1', 'start': read_starts, 'end': read_starts + 50})

    counts = IntervalIndex.from_intervals(windows).count_overlaps(reads)
    expected = [
        sum(_overlap(w, r) for _, r in reads.iterrows())
        for _, w in windows.iterrows()
    ]
    assert counts.tolist() == expected


def test_index_rejects_empty_intervals():
    """Indexed intervals must have positive width."""
    with pytest.raises(ValueError):
        IntervalIndex.from_intervals(_intervals([(10, 10)]))


def test_zero_width_queries_never_overlap():
    """Queries with end <= start are not counted and not flagged."""
    windows = _intervals([(0, 100), (100, 200)])
    reads = _intervals([(50, 50), (60, 70), (150, 140), (100, 100)])
    index = IntervalIndex.from_intervals(windows)
    assert index.count_overlaps(reads).tolist() == [1, 0]
    assert index.overlaps_any(reads).tolist() == [False, True, False, False]


def test_queries_keep_their_index():
    """Answers follow row order and the caller's frames are left untouched."""
    windows = _intervals([(0, 100), ('chr2', 0, 100)])
    windows.index = [10, 20]
    reads = _intervals([('chr2', 10, 20), ('chr1', 90, 110), ('chr3', 0, 50)])
    reads.index = ['r1', 'r2', 'r3']

    index = IntervalIndex.from_intervals(windows)
    assert index.count_overlaps(reads).tolist() == [1, 1]
    assert index.overlaps_any(reads).tolist() == [True, True, False]
    assert windows.index.tolist() == [10, 20]
    assert reads.index.tolist() == ['r1', 'r2', 'r3']


def test_empty_query():
    """An empty query gives zero counts and no hits."""
    index = IntervalIndex.from_intervals(_intervals([(0, 100)]))
    empty = _intervals([])
    assert index.count_overlaps(empty).tolist() == [0]
    assert index.overlaps_any(empty).tolist() == []


def test_drop_self_overlaps_removes_both_members():
    """Both members of an overlapping pair are dropped; abutting ones stay."""
    df = _intervals([(0, 1000), (500, 1500), (5000, 6000), (6000, 7000)])
    result = drop_self_overlaps(df)
    assert result['start'].tolist() == [5000, 6000]


def test_drop_self_overlaps_exhaustive():
    """No two remaining intervals overlap and every removed one had an overlap."""
    rng = np.random.default_rng(1)
    starts = np.sort(rng.integers(0, 20000, size=80))
    df = pd.DataFrame({
        'chrom': rng.choice(['chr1', 'chr2'], size=80),
        'start': starts,
        'end': starts + 400,
    })
    kept = drop_self_overlaps(df)

    for (_, a), (_, b) in itertools.combinations(kept.iterrows(), 2):
        assert not _overlap(a, b)

    removed = df.drop(index=kept.index)
    for i, row in removed.iterrows():
        assert any(_overlap(row, other) for j, other in df.iterrows() if j != i)


def test_sort_intervals_with_order():
    """Sorting follows the given chromosome order."""
    df = _intervals([('chr2', 5, 10), ('chr1', 50, 60), ('chr1', 0, 10)])
    result = sort_intervals(df, chromosome_order=['chr2', 'chr1'])
    assert result[['chrom', 'start']].values.tolist() == [['chr2', 5], ['chr1', 0], ['chr1', 50]]


def test_restrict_to_overlaps():
    """Only intervals overlapping the other set are kept."""
    df = _intervals([(0, 100), (200, 300), (400, 500)])
    other = _intervals([(250, 260), (500, 600)])
    assert restrict_to_overlaps(df, other)['start'].tolist() == [200]
    assert len(restrict_to_overlaps(df, other.iloc[0:0])) == 0


def test_values_at_takes_first_overlap():
    """Values come from the first overlapping track interval; no overlap gives NaN."""
    query = _intervals([(0, 1000), (1000, 2000), (5000, 6000)])
    track = pd.DataFrame({
        'chrom': ['chr1'] * 3,
        'start': [1500, 0, 900],
        'end': [2500, 1000, 1100],
        'score': [2.5, 1.5, 9.0],
    })
    values = values_at(query, track)
    assert values.iloc[0] == 1.5
    assert values.iloc[1] == 9.0
    assert np.isnan(values.iloc[2])
