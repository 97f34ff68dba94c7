"""
Interval overlap utilities.

Intervals are DataFrames with chrom, start, end columns in 0-based,
half-open coordinates: two intervals overlap when they share at least one
base, so abutting intervals do not overlap.

The IntervalIndex answers the two questions the pipelines ask of a set of
windows: how many query intervals overlap each window, and whether a query
interval overlaps any window. Both are answered by bioframe's overlap
counting.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import bioframe as bf
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

INTERVAL_COLUMNS = ['chrom', 'start', 'end']


def _check_interval_columns(df: pd.DataFrame, name: str = 'intervals') -> None:
    missing = [c for c in INTERVAL_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{name} is missing columns: {', '.join(missing)}")


def _as_bedframe(df: pd.DataFrame) -> pd.DataFrame:
    """Fresh chrom/start/end frame with a RangeIndex and uniform dtypes."""
    return pd.DataFrame({
        'chrom': df['chrom'].astype(str).to_numpy(dtype=object),
        'start': df['start'].to_numpy(dtype=np.int64),
        'end': df['end'].to_numpy(dtype=np.int64),
    })


def _overlap_counts(target: pd.DataFrame, query: pd.DataFrame) -> np.ndarray:
    """Number of query intervals overlapping each target interval."""
    if len(target) == 0 or len(query) == 0:
        return np.zeros(len(target), dtype=np.int64)
    # bf.count_overlaps resets the index of its first argument in place
    counts = bf.count_overlaps(_as_bedframe(target), _as_bedframe(query), return_input=False)
    return counts['count'].to_numpy(dtype=np.int64)


@dataclass
class IntervalIndex:
    """
    Fixed set of intervals queried for overlaps with other interval sets.

    Build it once from a window set, then query it with read sets.

    Example:
        >>> windows = pd.DataFrame({'chrom': ['chr1', 'chr1'], 'start': [0, 100], 'end': [100, 200]})
        >>> reads = pd.DataFrame({'chrom': ['chr1'] * 2, 'start': [50, 150], 'end': [120, 160]})
        >>> index = IntervalIndex.from_intervals(windows)
        >>> index.count_overlaps(reads).tolist()
        [1, 2]
        >>> index.overlaps_any(reads).tolist()
        [True, True]
    """
    intervals: pd.DataFrame
    _bed: pd.DataFrame = field(default=None, init=False, repr=False)

    def __post_init__(self):
        """Validate intervals and keep a normalized copy for overlap queries."""
        _check_interval_columns(self.intervals)
        self._bed = _as_bedframe(self.intervals)
        if np.any(self._bed['end'].to_numpy() <= self._bed['start'].to_numpy()):
            raise ValueError("Indexed intervals must have end > start")

    @classmethod
    def from_intervals(cls, intervals: pd.DataFrame) -> 'IntervalIndex':
        """Build an index over the given intervals."""
        return cls(intervals=intervals)

    def __len__(self) -> int:
        return len(self.intervals)

    def count_overlaps(self, query: pd.DataFrame) -> np.ndarray:
        """
        Count query intervals overlapping each indexed interval.

        Args:
            query: Intervals to count (e.g. reads). Empty intervals
                (end <= start) are ignored.

        Returns:
            Integer array aligned with the indexed intervals' row order
        """
        _check_interval_columns(query, 'query')
        query = _as_bedframe(query)
        query = query[query['end'] > query['start']]
        return _overlap_counts(self._bed, query)

    def overlaps_any(self, query: pd.DataFrame) -> np.ndarray:
        """
        Flag query intervals that overlap at least one indexed interval.

        Args:
            query: Intervals to test. Empty intervals never overlap.

        Returns:
            Boolean array aligned with the query's row order
        """
        _check_interval_columns(query, 'query')
        query = _as_bedframe(query)
        valid = (query['end'] > query['start']).to_numpy()

        hits = np.zeros(len(query), dtype=bool)
        hits[valid] = _overlap_counts(query[valid], self._bed) > 0
        return hits



def sort_intervals(
    intervals: pd.DataFrame,
    chromosome_order: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Sort intervals by chromosome then start and end.

    Args:
        intervals: DataFrame with chrom, start, end columns
        chromosome_order: Chromosome order to use (default: lexicographic
            via bioframe's sort_bedframe)

    Returns:
        Sorted copy with a fresh RangeIndex
    """
    _check_interval_columns(intervals)
    if chromosome_order is None:
        return bf.sort_bedframe(intervals).reset_index(drop=True)

    rank = {chrom: i for i, chrom in enumerate(chromosome_order)}
    order = intervals['chrom'].map(rank).fillna(len(rank))
    return (
        intervals.assign(_rank=order)
        .sort_values(['_rank', 'chrom', 'start', 'end'], kind='mergesort')
        .drop(columns='_rank')
        .reset_index(drop=True)
    )


def drop_self_overlaps(intervals: pd.DataFrame) -> pd.DataFrame:
    """
    Remove every interval that overlaps another interval of the same set.

    Both members of each overlapping pair are removed, not only duplicates,
    so the result contains no two overlapping intervals.

    Args:
        intervals: DataFrame with chrom, start, end columns

    Returns:
        Subset of rows with zero overlaps against the rest of the set,
        original row order and index preserved

    Example:
        >>> df = pd.DataFrame({'chrom': ['chr1'] * 3, 'start': [0, 500, 5000], 'end': [1000, 1500, 6000]})
        >>> drop_self_overlaps(df)['start'].tolist()
        [5000]
    """
    if len(intervals) == 0:
        return intervals.copy()

    index = IntervalIndex.from_intervals(intervals)
    # Every interval overlaps itself once.
    n_overlaps = index.count_overlaps(intervals) - 1
    keep = n_overlaps == 0

    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.info(f"Removed {n_dropped} of {len(intervals)} self-overlapping intervals")
    return intervals.loc[keep].copy()


def restrict_to_overlaps(intervals: pd.DataFrame, other: pd.DataFrame) -> pd.DataFrame:
    """Keep the intervals that overlap at least one interval of ``other``."""
    if len(intervals) == 0 or len(other) == 0:
        return intervals.iloc[0:0].copy()
    hits = IntervalIndex.from_intervals(other).overlaps_any(intervals)
    return intervals.loc[hits].copy()


def values_at(
    intervals: pd.DataFrame,
    track: pd.DataFrame,
    value_column: str = 'score'
) -> pd.Series:
    """
    Fetch a track's value at each interval.

    The value is taken from the first overlapping track interval in
    chromosome/start order; intervals without an overlap get NaN.

    Args:
        intervals: Query intervals (chrom, start, end)
        track: Track intervals carrying ``value_column``
        value_column: Column holding the values

    Returns:
        Series aligned with ``intervals.index``
    """
    _check_interval_columns(track, 'track')
    if value_column not in track.columns:
        raise ValueError(f"track has no '{value_column}' column")

    query = intervals[INTERVAL_COLUMNS].reset_index(drop=True)
    target = sort_intervals(track[INTERVAL_COLUMNS + [value_column]])

    hits = bf.overlap(
        query, target,
        how='inner',
        return_input=False,
        return_index=True,
        suffixes=('', '_track'),
    )
    first = hits.groupby('index')['index_track'].min()

    values = pd.Series(np.nan, index=query.index, dtype=float)
    values.loc[first.index.to_numpy(dtype=np.int64)] = (
        target[value_column].to_numpy(dtype=float)[first.to_numpy(dtype=np.int64)]
    )
    values.index = intervals.index
    return values
