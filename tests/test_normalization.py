"""Tests for window signal normalization and library normalization factors."""

import sys

import numpy as np
import pandas as pd
import pytest

from repliseq_analysis.utils import (
    EdgeRNormalizer,
    TMMNormalizer,
    composite_score,
    cpm,
    get_normalizer,
    log_cpm,
    low_count_mask,
    reads_per_million,
    row_percentages,
    spike_in_norm_factors,
)


# =============================================================================
# Repli-seq window signal
# =============================================================================

def test_reads_per_million():
    """Counts are scaled by 1e6 / library size per column."""
    counts = pd.DataFrame({'A': [1, 2], 'B': [0, 4]})
    rpm = reads_per_million(counts, {'A': 1_000_000, 'B': 2_000_000})
    assert rpm['A'].tolist() == [1.0, 2.0]
    assert rpm['B'].tolist() == [0.0, 2.0]


def test_reads_per_million_bad_library_sizes():
    """Missing or zero library sizes are fatal."""
    counts = pd.DataFrame({'A': [1], 'B': [2]})
    with pytest.raises(ValueError):
        reads_per_million(counts, {'A': 10})
    with pytest.raises(ValueError):
        reads_per_million(counts, {'A': 10, 'B': 0})


def test_row_percentages_zero_rows():
    """Zero-sum rows give zero in every fraction, never NaN."""
    rpm = pd.DataFrame({'E': [0.0, 1.0, 0.0], 'L': [0.0, 3.0, 2.0]})
    pct = row_percentages(rpm, ['E', 'L'])
    assert list(pct.columns) == ['E_pct', 'L_pct']
    assert pct.values.tolist() == [[0.0, 0.0], [25.0, 75.0], [0.0, 100.0]]
    assert not pct.isna().any().any()


def test_row_percentages_sum_to_100():
    """Nonzero rows sum to 100 across fractions."""
    rng = np.random.default_rng(0)
    rpm = pd.DataFrame(rng.random((50, 6)) * 10, columns=list('ABCDEF'))
    rpm.iloc[::7] = 0.0
    pct = row_percentages(rpm, list('ABCDEF'))
    totals = pct.sum(axis=1)
    nonzero = rpm.sum(axis=1) > 0

    np.testing.assert_allclose(totals[nonzero], 100.0)
    assert (totals[~nonzero] == 0).all()


def test_row_percentages_subset_of_samples():
    """Only the listed fractions enter the row total."""
    rpm = pd.DataFrame({'E': [1.0], 'L': [1.0], 'extra': [98.0]})
    pct = row_percentages(rpm, ['E', 'L'])
    assert pct.values.tolist() == [[50.0, 50.0]]


def test_low_count_mask_requires_all_fractions():
    """A window is low only when every fraction is at or below the threshold."""
    rpm = pd.DataFrame({'E': [0.0, 0.0, 0.5, 0.6], 'L': [0.0, 1.0, 0.5, 0.1]})
    assert low_count_mask(rpm, ['E', 'L'], 0.5).tolist() == [True, False, True, False]


def test_composite_score():
    """Score is the weighted sum of the leading fraction percentages."""
    fractions = ['G1', 'S1', 'S2', 'S3', 'S4', 'G2']
    weights = [0.917, 0.750, 0.583, 0.417, 0.250]
    pct = pd.DataFrame([
        [100.0, 0, 0, 0, 0, 0],
        [0, 0, 0, 0, 0, 100.0],
        [0, 50.0, 0, 0, 50.0, 0],
    ], columns=[f"{f}_pct" for f in fractions])

    score = composite_score(pct, fractions, weights)
    np.testing.assert_allclose(score.values, [91.7, 0.0, 50.0])
    assert score.name == 'score'


def test_composite_score_too_many_weights():
    """More weights than fractions is a configuration error."""
    pct = pd.DataFrame({'E_pct': [100.0]})
    with pytest.raises(ValueError):
        composite_score(pct, ['E'], [1.0, 0.5])


# =============================================================================
# Library normalization factors
# =============================================================================

def test_tmm_identical_composition():
    """Samples differing only in depth get factor 1."""
    counts = pd.DataFrame({'A': [10, 20, 30, 40, 0], 'B': [20, 40, 60, 80, 0]})
    factors = TMMNormalizer().norm_factors(counts)
    np.testing.assert_allclose(factors.values, [1.0, 1.0])


def test_tmm_composition_bias():
    """One dominant feature doesn't inflate the effective library size."""
    counts = pd.DataFrame({
        'A': [100] * 20,
        'B': [100] * 19 + [10000],
    })
    factors = TMMNormalizer().norm_factors(counts)

    assert factors['B'] < factors['A']
    np.testing.assert_allclose(np.prod(factors.values), 1.0)
    # Unchanged features end up with equal effective library sizes
    effective = counts.sum() * factors
    assert effective['A'] == pytest.approx(effective['B'])


def test_tmm_single_sample():
    """A single sample gets factor 1."""
    factors = TMMNormalizer().norm_factors(pd.DataFrame({'A': [1, 2, 3]}))
    assert factors.tolist() == [1.0]


def test_tmm_rejects_empty_library():
    """A sample with no counts is fatal."""
    with pytest.raises(ValueError):
        TMMNormalizer().norm_factors(pd.DataFrame({'A': [1, 2], 'B': [0, 0]}))


def test_get_normalizer():
    """Normalizers are selected by name; edgeR is the default."""
    assert isinstance(get_normalizer(), EdgeRNormalizer)
    assert isinstance(get_normalizer('edger'), EdgeRNormalizer)
    assert isinstance(get_normalizer('tmm'), TMMNormalizer)
    assert get_normalizer('edger', do_weighting=False).do_weighting is False
    with pytest.raises(ValueError):
        get_normalizer('quantile')


def test_edger_without_rpy2(monkeypatch):
    """Without rpy2 the edgeR normalizer fails instead of falling back."""
    for module in ('rpy2', 'rpy2.robjects', 'rpy2.robjects.packages'):
        monkeypatch.setitem(sys.modules, module, None)

    counts = pd.DataFrame({'A': [1, 2], 'B': [2, 1]})
    with pytest.raises(ImportError, match="normalizer 'tmm'"):
        EdgeRNormalizer().norm_factors(counts)


def _require_edger():
    pytest.importorskip('rpy2')
    from rpy2.robjects.packages import importr
    try:
        importr('edgeR')
    except Exception:
        pytest.skip("edgeR not installed")


EDGER_COUNTS = pd.DataFrame({
    'A': [100, 200, 300, 400, 50, 60, 700, 5],
    'B': [120, 180, 330, 390, 40, 70, 900, 9],
    'C': [90, 210, 280, 420, 55, 65, 500, 1],
})


@pytest.mark.parametrize('do_weighting', [True, False])
def test_edger_matches_builtin_tmm(do_weighting):
    """edgeR via rpy2 agrees with the in-process TMM."""
    _require_edger()
    expected = TMMNormalizer(do_weighting=do_weighting).norm_factors(EDGER_COUNTS)
    observed = EdgeRNormalizer(do_weighting=do_weighting).norm_factors(EDGER_COUNTS)
    np.testing.assert_allclose(observed.values, expected.values, rtol=1e-6)
    assert observed.index.tolist() == ['A', 'B', 'C']


# =============================================================================
# Spike-in scaled expression
# =============================================================================

@pytest.fixture
def spike_counts():
    return pd.DataFrame({
        'A': [100, 200, 300, 400, 50, 60],
        'B': [120, 180, 330, 390, 40, 70],
        'C': [90, 210, 280, 420, 55, 65],
    }, index=[f"ERCC-0000{i}" for i in range(6)])


@pytest.fixture
def bio_counts():
    return pd.DataFrame({
        'A': [500, 1500, 8000],
        'B': [700, 1200, 9100],
        'C': [450, 1700, 6850],
    }, index=['g1', 'g2', 'g3'])


def test_spike_in_factors_effective_library(spike_counts, bio_counts):
    """bio_lib_size * norm_factor equals the adjusted spike-in library size."""
    factors = spike_in_norm_factors(spike_counts, bio_counts.sum(), TMMNormalizer())
    effective = factors['bio_lib_size'] * factors['norm_factor']
    expected = factors['spike_lib_size'] * factors['spike_factor']
    np.testing.assert_allclose(effective.values, expected.values)
    np.testing.assert_allclose(factors['scale_factor'].values, 1e6 / effective.values)
    assert list(factors.columns) == [
        'spike_lib_size', 'spike_factor', 'bio_lib_size', 'norm_factor', 'scale_factor'
    ]


@pytest.mark.parametrize('c', [4, 0.5])
def test_spike_in_scale_factor_inverse_to_spike_counts(spike_counts, bio_counts, c):
    """Scaling one sample's spike-ins by c scales its scale factor and CPM by 1/c."""
    normalizer = TMMNormalizer(do_weighting=False)
    scaled = spike_counts.copy()
    scaled['B'] = scaled['B'] * c

    base = spike_in_norm_factors(spike_counts, bio_counts.sum(), normalizer)
    moved = spike_in_norm_factors(scaled, bio_counts.sum(), normalizer)

    assert moved.loc['B', 'scale_factor'] == pytest.approx(base.loc['B', 'scale_factor'] / c)
    assert moved.loc['A', 'scale_factor'] == pytest.approx(base.loc['A', 'scale_factor'])
    assert moved.loc['C', 'scale_factor'] == pytest.approx(base.loc['C', 'scale_factor'])

    cpm_base = cpm(bio_counts, bio_counts.sum(), base['norm_factor'])
    cpm_moved = cpm(bio_counts, bio_counts.sum(), moved['norm_factor'])
    np.testing.assert_allclose(cpm_moved['B'].values, cpm_base['B'].values / c)
    np.testing.assert_allclose(cpm_moved['A'].values, cpm_base['A'].values)

    # CPM is counts times the scale factor
    np.testing.assert_allclose(
        cpm_moved['B'].values, bio_counts['B'].values * moved.loc['B', 'scale_factor']
    )


def test_spike_in_factors_default_to_edger(spike_counts, bio_counts):
    """Without an explicit normalizer the factors come from edgeR."""
    _require_edger()
    default = spike_in_norm_factors(spike_counts, bio_counts.sum())
    explicit = spike_in_norm_factors(spike_counts, bio_counts.sum(), EdgeRNormalizer())
    pd.testing.assert_frame_equal(default, explicit)


def test_spike_in_factors_require_rows(bio_counts):
    """Spike-in normalization needs spike-in rows."""
    with pytest.raises(ValueError):
        spike_in_norm_factors(bio_counts.iloc[0:0], bio_counts.sum())


def test_cpm_and_log_cpm():
    """CPM uses library size times factor; log_cpm is ln(CPM + 1)."""
    counts = pd.DataFrame({'A': [1, 3], 'B': [2, 2]})
    values = cpm(counts, norm_factors=pd.Series({'A': 1.0, 'B': 2.0}))
    assert values['A'].tolist() == [250000.0, 750000.0]
    assert values['B'].tolist() == [250000.0, 250000.0]

    logged = log_cpm(counts)
    np.testing.assert_allclose(logged['A'].values, np.log([250001.0, 750001.0]))


def test_cpm_rejects_zero_library():
    """Effective library sizes must be positive."""
    with pytest.raises(ValueError):
        cpm(pd.DataFrame({'A': [0, 0]}))
