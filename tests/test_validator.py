import logging

import pytest
import numpy as np
import pandas as pd

from data_manager.data_validator import ReturnSeriesValidator
from garch.exceptions import DegenerateSeriesError, InvalidSeriesError


@pytest.fixture
def validator():
    return ReturnSeriesValidator()


@pytest.fixture
def returns():
    rng = np.random.default_rng(1)
    return pd.Series(rng.standard_normal(250) * 0.01,
                     index=pd.bdate_range('2021-01-01', periods=250))


def test_valid_series(validator, returns):
    is_valid, issues = validator.validate_data(returns)
    assert is_valid
    assert issues == []

    prepared = validator.prepare(returns)
    pd.testing.assert_series_equal(prepared, returns.rename('returns'))
    assert prepared is not returns


def test_arrays_get_range_index(validator):
    prepared = validator.prepare([0.01, -0.02, 0.015, -0.005])
    assert isinstance(prepared.index, pd.RangeIndex)
    assert prepared.name == 'returns'


def test_single_column_frame(validator, returns):
    frame = returns.to_frame('SPX')
    assert validator.as_series(frame).name == 'SPX'
    with pytest.raises(InvalidSeriesError):
        validator.as_series(pd.concat([frame, frame.rename(columns={'SPX': 'NDX'})], axis=1))


def test_missing_values_reported(validator, returns):
    broken = returns.copy()
    broken.iloc[[3, 7]] = np.nan
    is_valid, issues = validator.validate_data(broken)
    assert not is_valid
    assert any('2 missing values' in issue for issue in issues)

    with pytest.raises(InvalidSeriesError):
        validator.prepare(broken)


def test_infinite_values_rejected(validator, returns):
    broken = returns.copy()
    broken.iloc[5] = np.inf
    with pytest.raises(InvalidSeriesError, match='infinite'):
        validator.prepare(broken)


def test_index_must_be_strictly_increasing(validator, returns):
    duplicated = pd.concat([returns.iloc[:10], returns.iloc[9:20]])
    is_valid, issues = validator.validate_data(duplicated)
    assert not is_valid
    assert any('duplicate' in issue for issue in issues)

    with pytest.raises(InvalidSeriesError):
        validator.prepare(returns.sort_index(ascending=False))


def test_empty_series(validator):
    is_valid, issues = validator.validate_data(pd.Series([], dtype=float))
    assert not is_valid
    assert issues == ["Series is empty"]


def test_constant_series_is_degenerate(validator):
    with pytest.raises(DegenerateSeriesError):
        validator.prepare(np.full(100, 0.002))


def test_percent_returns_warned(validator, returns, caplog):
    with caplog.at_level(logging.WARNING):
        prepared = validator.prepare(returns * 200)
    assert 'are returns in percent' in caplog.text
    assert len(prepared) == len(returns)


def test_non_vector_input(validator):
    with pytest.raises(InvalidSeriesError):
        validator.as_series(np.zeros((3, 2)))
