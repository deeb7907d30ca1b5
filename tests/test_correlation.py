"""Tests for pairwise-complete correlations and Student p-values."""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from coexnet.core.exceptions import ConfigurationError, DataValidationError
from coexnet.stats.correlation import (
    correlate_with_pvalues,
    pairwise_correlation,
    student_pvalue,
)


@pytest.fixture
def frames():
    """x: 3 complete variables; y: traits with missing values."""
    rng = np.random.RandomState(11)
    index = pd.Index([f"S{i}" for i in range(15)])
    x = pd.DataFrame(rng.normal(size=(15, 3)), index=index, columns=['MEblue', 'MEbrown', 'MEturquoise'])
    y = pd.DataFrame({
        'age': rng.normal(50, 10, size=15),
        'diagnosis.ALS': rng.randint(0, 2, size=15).astype(float),
    }, index=index)
    y['age'] += 30 * x['MEblue']
    y.iloc[[1, 4, 9], 0] = np.nan
    y.iloc[[2], 1] = np.nan
    return x, y


class TestPairwiseCorrelation:

    def test_pearson_matches_scipy_on_complete_pairs(self, frames):
        x, y = frames
        cor, n_obs = pairwise_correlation(x, y, method='pearson')

        for xc in x.columns:
            for yc in y.columns:
                ok = y[yc].notna()
                expected = stats.pearsonr(x.loc[ok, xc], y.loc[ok, yc])[0]
                assert cor.loc[xc, yc] == pytest.approx(expected, abs=1e-10)
                assert n_obs.loc[xc, yc] == ok.sum()

    def test_spearman_matches_scipy_on_complete_pairs(self, frames):
        x, y = frames
        cor, n_obs = pairwise_correlation(x, y, method='spearman')

        for xc in x.columns:
            for yc in y.columns:
                ok = y[yc].notna()
                expected = stats.spearmanr(x.loc[ok, xc], y.loc[ok, yc])[0]
                assert cor.loc[xc, yc] == pytest.approx(expected, abs=1e-10)

    def test_spearman_with_missing_values_on_both_sides(self, frames):
        x, y = frames
        x = x.copy()
        x.iloc[[0, 5], 1] = np.nan
        cor, n_obs = pairwise_correlation(x, y, method='spearman')

        ok = x['MEbrown'].notna() & y['age'].notna()
        expected = stats.spearmanr(x.loc[ok, 'MEbrown'], y.loc[ok, 'age'])[0]
        assert cor.loc['MEbrown', 'age'] == pytest.approx(expected, abs=1e-10)
        assert n_obs.loc['MEbrown', 'age'] == ok.sum()

    def test_missing_values_never_filled(self, frames):
        x, y = frames
        filled = y.fillna(0.0)
        cor_missing, _ = pairwise_correlation(x, y)
        cor_filled, _ = pairwise_correlation(x, filled)
        assert not np.allclose(cor_missing['age'], cor_filled['age'])

    def test_labels(self, frames):
        x, y = frames
        cor, n_obs = pairwise_correlation(x, y)
        assert list(cor.index) == list(x.columns)
        assert list(cor.columns) == list(y.columns)
        assert n_obs.shape == cor.shape

    def test_constant_column_is_nan(self, frames):
        x, y = frames
        y = y.assign(batch=1.0)
        cor, _ = pairwise_correlation(x, y)
        assert cor['batch'].isna().all()

    def test_fewer_than_two_pairs_is_nan(self):
        index = pd.Index(['S1', 'S2', 'S3'])
        x = pd.DataFrame({'a': [1.0, 2.0, 3.0]}, index=index)
        y = pd.DataFrame({'b': [np.nan, np.nan, 4.0]}, index=index)
        cor, n_obs = pairwise_correlation(x, y)
        assert np.isnan(cor.loc['a', 'b'])
        assert n_obs.loc['a', 'b'] == 1

    def test_unknown_method(self, frames):
        x, y = frames
        with pytest.raises(ConfigurationError, match="method"):
            pairwise_correlation(x, y, method='kendall')

    def test_index_must_match(self, frames):
        x, y = frames
        with pytest.raises(DataValidationError, match="same sample index"):
            pairwise_correlation(x, y.iloc[::-1])


class TestStudentPvalue:

    def test_matches_pearsonr(self):
        rng = np.random.RandomState(5)
        a = rng.normal(size=20)
        b = a + rng.normal(size=20)
        r, expected = stats.pearsonr(a, b)
        assert student_pvalue(np.array([r]), 20)[0] == pytest.approx(expected, rel=1e-8)

    def test_perfect_correlation_is_zero(self):
        np.testing.assert_array_equal(student_pvalue(np.array([1.0, -1.0]), 10), [0.0, 0.0])

    def test_small_n_and_nan_are_nan(self):
        p = student_pvalue(np.array([0.5, np.nan, 0.3]), np.array([2, 10, 10]))
        assert np.isnan(p[0])
        assert np.isnan(p[1])
        assert 0 < p[2] < 1

    def test_zero_correlation_is_one(self):
        assert student_pvalue(np.array([0.0]), 12)[0] == pytest.approx(1.0)

    def test_dataframe_labels_preserved(self):
        cor = pd.DataFrame([[0.4, -0.2]], index=['MEblue'], columns=['age', 'sex.M'])
        n = pd.DataFrame([[12, 10]], index=['MEblue'], columns=['age', 'sex.M'])
        p = student_pvalue(cor, n)
        assert isinstance(p, pd.DataFrame)
        assert list(p.columns) == ['age', 'sex.M']


class TestCorrelateWithPvalues:

    def test_bundle(self, frames):
        x, y = frames
        assoc = correlate_with_pvalues(x, y)
        assert assoc.method == 'pearson'
        assert assoc.cor.shape == assoc.pvalue.shape == assoc.n_obs.shape == (3, 2)
        expected = student_pvalue(assoc.cor, assoc.n_obs)
        pd.testing.assert_frame_equal(assoc.pvalue, expected)

    def test_planted_association_is_significant(self, frames):
        x, y = frames
        assoc = correlate_with_pvalues(x, y)
        assert assoc.cor.loc['MEblue', 'age'] > 0.3
        assert assoc.pvalue.loc['MEblue', 'age'] < 0.05

    def test_to_long(self, frames):
        x, y = frames
        long = correlate_with_pvalues(x, y).to_long(row_name='module', col_name='trait')
        assert list(long.columns) == ['module', 'trait', 'cor', 'pvalue', 'n']
        assert len(long) == 6
        row = long[(long['module'] == 'MEblue') & (long['trait'] == 'age')].iloc[0]
        assert row['n'] == 12

    def test_empty_traits(self, frames):
        x, _ = frames
        assoc = correlate_with_pvalues(x, pd.DataFrame(index=x.index))
        assert assoc.cor.shape == (3, 0)
        assert assoc.to_long().empty
