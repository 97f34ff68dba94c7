"""
Normalization utilities for read-count matrices.

Repli-seq:
    - reads_per_million: Library-size scaling of window counts
    - row_percentages: Per-window distribution of signal across fractions
    - low_count_mask: Windows empty in every fraction
    - composite_score: Weighted-average replication timing score

RNA-seq:
    - EdgeRNormalizer (default) / TMMNormalizer: Library normalization factors
    - spike_in_norm_factors: Factors derived from spike-in control rows
    - cpm / log_cpm: Counts-per-million expression values
"""

import logging
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.stats import rankdata

logger = logging.getLogger(__name__)

PCT_SUFFIX = '_pct'


# =============================================================================
# Repli-seq window signal
# =============================================================================

def reads_per_million(
    counts: pd.DataFrame,
    library_sizes: Union[pd.Series, Dict[str, int]]
) -> pd.DataFrame:
    """
    Scale window counts to reads per million library reads.

    Args:
        counts: Windows x samples count matrix
        library_sizes: Library size for every column of ``counts``

    Returns:
        Windows x samples matrix of counts * 1e6 / library size

    Raises:
        ValueError: If a column has no library size or a library size is 0
    """
    library_sizes = pd.Series(library_sizes, dtype=float)
    missing = [c for c in counts.columns if c not in library_sizes.index]
    if missing:
        raise ValueError(f"No library size for samples: {', '.join(map(str, missing))}")

    sizes = library_sizes.reindex(counts.columns)
    empty = sizes.index[sizes <= 0].tolist()
    if empty:
        raise ValueError(f"Library size is zero for samples: {', '.join(map(str, empty))}")

    return counts.astype(float).div(sizes, axis=1) * 1e6


def row_percentages(rpm: pd.DataFrame, fractions: Sequence[str]) -> pd.DataFrame:
    """
    Express each window's signal as a percentage distribution over fractions.

    Rows whose fraction total is exactly zero get 0 in every column, so the
    result never contains NaN.

    Args:
        rpm: Windows x samples reads-per-million matrix
        fractions: Fraction columns to distribute over

    Returns:
        DataFrame with one ``<fraction>_pct`` column per fraction

    Example:
        >>> rpm = pd.DataFrame({'S1': [1.0, 0.0], 'S2': [3.0, 0.0]})
        >>> row_percentages(rpm, ['S1', 'S2']).values.tolist()
        [[25.0, 75.0], [0.0, 0.0]]
    """
    values = rpm[list(fractions)].to_numpy(dtype=float)
    totals = values.sum(axis=1, keepdims=True)

    pct = np.zeros_like(values)
    np.divide(values, totals, out=pct, where=totals != 0)
    pct *= 100

    return pd.DataFrame(pct, index=rpm.index, columns=[f"{f}{PCT_SUFFIX}" for f in fractions])


def low_count_mask(rpm: pd.DataFrame, fractions: Sequence[str], low_threshold: float) -> pd.Series:
    """
    Flag windows at or below the low threshold in every fraction.

    A window is flagged only when all fractions are low. A single fraction
    above the threshold keeps it.

    Args:
        rpm: Windows x samples reads-per-million matrix
        fractions: Fraction columns to test
        low_threshold: Reads-per-million at or below which a fraction is low

    Returns:
        Boolean Series, True for windows to drop
    """
    return (rpm[list(fractions)] <= low_threshold).all(axis=1)


def composite_score(
    pct: pd.DataFrame,
    fractions: Sequence[str],
    weights: Sequence[float]
) -> pd.Series:
    """
    Weighted sum of the leading fraction percentages.

    Args:
        pct: Percentage matrix from row_percentages
        fractions: Fractions in weight order
        weights: One weight per leading fraction

    Returns:
        Series of composite scores named ``score``
    """
    if len(weights) > len(fractions):
        raise ValueError(f"{len(weights)} weights given for only {len(fractions)} fractions")

    columns = [f"{f}{PCT_SUFFIX}" for f in fractions[:len(weights)]]
    score = pct[columns].to_numpy(dtype=float) @ np.asarray(weights, dtype=float)
    return pd.Series(score, index=pct.index, name='score')


# =============================================================================
# Library normalization factors
# =============================================================================

class LibraryNormalizer:
    """
    Interface for computing per-sample library normalization factors.

    Subclasses take a features x samples count matrix and return one factor
    per sample (column), indexed by sample name.
    """

    name = 'base'

    def norm_factors(self, counts: pd.DataFrame) -> pd.Series:
        raise NotImplementedError


class TMMNormalizer(LibraryNormalizer):
    """
    In-process TMM (trimmed mean of M-values) factors, following edgeR's
    calcNormFactors.

    Opt-in alternative to EdgeRNormalizer (``normalizer: tmm``) for
    environments without R. For each sample, log-ratios (M) and average
    log-abundances (A) against a reference sample are trimmed by
    ``logratio_trim`` and ``sum_trim`` at both ends, and the factor is the
    precision-weighted mean of the remaining M values. Factors are
    re-centered to a geometric mean of 1. Without weighting, scaling all
    counts of one sample by a constant leaves every factor unchanged; with
    weighting the factors move only through the precision weights.

    Args:
        logratio_trim: Fraction of M values trimmed at each end
        sum_trim: Fraction of A values trimmed at each end
        do_weighting: Use inverse asymptotic variance weights
        a_cutoff: Minimum A value of features used
        ref_column: Reference sample (default: upper-quartile closest to mean)

    Example:
        >>> counts = pd.DataFrame({'A': [10, 20, 30, 40], 'B': [20, 40, 60, 80]})
        >>> TMMNormalizer().norm_factors(counts).round(3).tolist()
        [1.0, 1.0]
    """

    name = 'tmm'

    def __init__(
        self,
        logratio_trim: float = 0.3,
        sum_trim: float = 0.05,
        do_weighting: bool = True,
        a_cutoff: float = -1e10,
        ref_column: Optional[str] = None
    ):
        self.logratio_trim = logratio_trim
        self.sum_trim = sum_trim
        self.do_weighting = do_weighting
        self.a_cutoff = a_cutoff
        self.ref_column = ref_column

    def norm_factors(self, counts: pd.DataFrame) -> pd.Series:
        x = counts.to_numpy(dtype=float)
        if np.any(~np.isfinite(x)) or np.any(x < 0):
            raise ValueError("Counts must be finite and non-negative")

        lib_sizes = x.sum(axis=0)
        if np.any(lib_sizes <= 0):
            empty = counts.columns[lib_sizes <= 0].tolist()
            raise ValueError(f"Library size is zero for samples: {', '.join(map(str, empty))}")

        x = x[(x > 0).any(axis=1)]
        n_samples = x.shape[1]
        if x.shape[0] == 0 or n_samples == 1:
            return pd.Series(np.ones(n_samples), index=counts.columns, name='norm_factor')

        ref = self._reference_index(counts, x, lib_sizes)
        factors = np.array([
            self._tmm_factor(x[:, j], x[:, ref], lib_sizes[j], lib_sizes[ref])
            for j in range(n_samples)
        ])
        factors = factors / np.exp(np.mean(np.log(factors)))

        return pd.Series(factors, index=counts.columns, name='norm_factor')

    def _reference_index(self, counts: pd.DataFrame, x: np.ndarray, lib_sizes: np.ndarray) -> int:
        if self.ref_column is not None:
            if self.ref_column not in counts.columns:
                raise ValueError(f"Reference sample not found: {self.ref_column}")
            return int(counts.columns.get_loc(self.ref_column))

        f75 = np.quantile(x / lib_sizes, 0.75, axis=0)
        if np.median(f75) < 1e-20:
            return int(np.argmax(np.sqrt(x).sum(axis=0)))
        return int(np.argmin(np.abs(f75 - f75.mean())))

    def _tmm_factor(self, obs: np.ndarray, ref: np.ndarray, n_obs: float, n_ref: float) -> float:
        with np.errstate(divide='ignore', invalid='ignore'):
            log_r = np.log2((obs / n_obs) / (ref / n_ref))
            abs_e = (np.log2(obs / n_obs) + np.log2(ref / n_ref)) / 2
            v = (n_obs - obs) / n_obs / obs + (n_ref - ref) / n_ref / ref

        finite = np.isfinite(log_r) & np.isfinite(abs_e) & (abs_e > self.a_cutoff)
        log_r = log_r[finite]
        abs_e = abs_e[finite]
        v = v[finite]

        if len(log_r) == 0 or np.max(np.abs(log_r)) < 1e-6:
            return 1.0

        n = len(log_r)
        lo_l = np.floor(n * self.logratio_trim) + 1
        hi_l = n + 1 - lo_l
        lo_s = np.floor(n * self.sum_trim) + 1
        hi_s = n + 1 - lo_s

        rank_r = rankdata(log_r)
        rank_e = rankdata(abs_e)
        keep = (rank_r >= lo_l) & (rank_r <= hi_l) & (rank_e >= lo_s) & (rank_e <= hi_s)
        if not keep.any():
            return 1.0

        if self.do_weighting:
            f = np.sum(log_r[keep] / v[keep]) / np.sum(1 / v[keep])
        else:
            f = np.mean(log_r[keep])

        if not np.isfinite(f):
            f = 0.0
        return float(2 ** f)


class EdgeRNormalizer(LibraryNormalizer):
    """
    Library normalization factors from R's edgeR::calcNormFactors via rpy2.

    Default normalizer of the expression workflow. Requires R with the
    edgeR package installed.

    Args:
        method: calcNormFactors method ('TMM', 'TMMwsp', 'RLE', 'upperquartile')
        logratio_trim: Fraction of M values trimmed at each end (TMM)
        sum_trim: Fraction of A values trimmed at each end (TMM)
        do_weighting: Use precision weights (TMM)
        a_cutoff: Minimum A value of features used (TMM)

    Example:
        >>> counts = pd.DataFrame({'A': [10, 20, 30, 40], 'B': [20, 40, 60, 80]})
        >>> EdgeRNormalizer().norm_factors(counts).tolist()
        [1.0, 1.0]
    """

    name = 'edger'

    def __init__(
        self,
        method: str = 'TMM',
        logratio_trim: float = 0.3,
        sum_trim: float = 0.05,
        do_weighting: bool = True,
        a_cutoff: float = -1e10
    ):
        self.method = method
        self.logratio_trim = logratio_trim
        self.sum_trim = sum_trim
        self.do_weighting = do_weighting
        self.a_cutoff = a_cutoff

    def norm_factors(self, counts: pd.DataFrame) -> pd.Series:
        try:
            import rpy2.robjects as ro
            from rpy2.robjects.packages import importr
        except ImportError as e:
            raise ImportError(
                "EdgeRNormalizer needs rpy2 and R with edgeR; "
                "use normalizer 'tmm' for the in-process implementation"
            ) from e

        edger = importr('edgeR')
        values = counts.to_numpy(dtype=float)
        r_counts = ro.r['matrix'](
            ro.FloatVector(values.flatten(order='F')),
            nrow=values.shape[0], ncol=values.shape[1]
        )
        factors = np.asarray(
            edger.calcNormFactors(
                r_counts,
                method=self.method,
                logratioTrim=self.logratio_trim,
                sumTrim=self.sum_trim,
                doWeighting=self.do_weighting,
                Acutoff=self.a_cutoff,
            ),
            dtype=float
        )
        logger.debug(f"edgeR {self.method} factors: {factors}")
        return pd.Series(factors, index=counts.columns, name='norm_factor')


NORMALIZERS = {
    EdgeRNormalizer.name: EdgeRNormalizer,
    TMMNormalizer.name: TMMNormalizer,
}

DEFAULT_NORMALIZER = EdgeRNormalizer.name


def get_normalizer(name: str = DEFAULT_NORMALIZER, **kwargs) -> LibraryNormalizer:
    """
    Create a library normalizer by name.

    Args:
        name: 'edger' (R via rpy2, default) or 'tmm' (in-process)
        **kwargs: Passed to the normalizer constructor

    Returns:
        LibraryNormalizer instance
    """
    if name not in NORMALIZERS:
        raise ValueError(f"Unknown normalizer: {name}. Choose from {list(NORMALIZERS)}")
    return NORMALIZERS[name](**kwargs)


# =============================================================================
# Spike-in scaled expression
# =============================================================================

def spike_in_norm_factors(
    spike_counts: pd.DataFrame,
    bio_lib_sizes: pd.Series,
    normalizer: Optional[LibraryNormalizer] = None
) -> pd.DataFrame:
    """
    Derive normalization factors for biological libraries from spike-ins.

    Factors are computed on the spike-in rows alone and expressed relative
    to the biological library sizes, so that ``bio_lib_size * norm_factor``
    equals the normalizer-adjusted spike-in library size of each sample.
    ``scale_factor`` is the resulting per-sample multiplier from counts to
    counts-per-million, ``1e6 / (bio_lib_size * norm_factor)``. With a
    scale-invariant normalizer (e.g. unweighted TMM), scaling one sample's
    spike-in counts by c scales its scale_factor by 1/c.

    Args:
        spike_counts: Spike-in rows x samples count matrix
        bio_lib_sizes: Biological library size per sample
        normalizer: Library normalizer (default: EdgeRNormalizer)

    Returns:
        DataFrame indexed by sample with spike_lib_size, spike_factor,
        bio_lib_size, norm_factor and scale_factor columns
    """
    if len(spike_counts) == 0:
        raise ValueError("No spike-in rows to compute normalization factors from")

    normalizer = normalizer or get_normalizer()
    spike_lib = spike_counts.sum(axis=0).astype(float)
    spike_factor = normalizer.norm_factors(spike_counts).reindex(spike_counts.columns)

    bio_lib = pd.Series(bio_lib_sizes, dtype=float).reindex(spike_counts.columns)
    if bio_lib.isna().any() or (bio_lib <= 0).any():
        raise ValueError("Every sample needs a positive biological library size")

    factors = pd.DataFrame({
        'spike_lib_size': spike_lib,
        'spike_factor': spike_factor,
        'bio_lib_size': bio_lib,
    })
    factors['norm_factor'] = factors['spike_lib_size'] * factors['spike_factor'] / factors['bio_lib_size']
    factors['scale_factor'] = 1e6 / (factors['bio_lib_size'] * factors['norm_factor'])
    factors.index.name = 'sample'
    return factors


def cpm(
    counts: pd.DataFrame,
    lib_sizes: Optional[pd.Series] = None,
    norm_factors: Optional[pd.Series] = None
) -> pd.DataFrame:
    """
    Counts per million of the (normalized) library size.

    Args:
        counts: Features x samples count matrix
        lib_sizes: Library sizes (default: column sums)
        norm_factors: Multiplicative library size factors (default: 1)

    Returns:
        counts * 1e6 / (lib_size * norm_factor)
    """
    if lib_sizes is None:
        lib_sizes = counts.sum(axis=0)
    lib_sizes = pd.Series(lib_sizes, dtype=float).reindex(counts.columns)
    if norm_factors is not None:
        lib_sizes = lib_sizes * pd.Series(norm_factors, dtype=float).reindex(counts.columns)

    if lib_sizes.isna().any() or (lib_sizes <= 0).any():
        raise ValueError("Effective library sizes must be positive for every sample")

    return counts.astype(float).div(lib_sizes, axis=1) * 1e6


def log_cpm(
    counts: pd.DataFrame,
    lib_sizes: Optional[pd.Series] = None,
    norm_factors: Optional[pd.Series] = None
) -> pd.DataFrame:
    """Natural log of counts per million plus one."""
    return np.log(cpm(counts, lib_sizes=lib_sizes, norm_factors=norm_factors) + 1)
