import numpy as np
import pytest

from backtester.indicators import (
    IndicatorBank,
    calculate_sma,
    calculate_ema,
    calculate_rsi,
    calculate_macd,
    calculate_bollinger_bands,
)


def test_sma_warmup_and_values():
    sma = calculate_sma([1, 2, 3, 4, 5], 3)
    assert np.isnan(sma[0]) and np.isnan(sma[1])
    assert sma[2:].tolist() == [2.0, 3.0, 4.0]


def test_sma_shorter_than_window():
    sma = calculate_sma([1, 2], 5)
    assert len(sma) == 2
    assert np.isnan(sma).all()


def test_sma_rejects_zero_window():
    with pytest.raises(ValueError):
        calculate_sma([1, 2, 3], 0)


def test_ema_seeding():
    values = [2.0, 4.0, 6.0, 8.0, 10.0]
    ema = calculate_ema(values, 3)
    # index 0 raw, indices 1..2 cumulative mean, then recurrence
    assert ema[0] == 2.0
    assert ema[1] == pytest.approx(3.0)
    assert ema[2] == pytest.approx(4.0)
    assert ema[3] == pytest.approx(4.0 + 0.5 * (8.0 - 4.0))
    assert ema[4] == pytest.approx(6.0 + 0.5 * (10.0 - 6.0))


def test_constant_series_converges():
    values = np.full(40, 42.0)
    assert np.allclose(calculate_sma(values, 10)[9:], 42.0)
    assert np.allclose(calculate_ema(values, 10), 42.0)


def test_rsi_flat_series_is_fifty():
    rsi = calculate_rsi(np.full(30, 10.0), 14)
    assert np.isnan(rsi[:14]).all()
    assert np.allclose(rsi[14:], 50.0)


def test_rsi_only_gains_is_hundred():
    rsi = calculate_rsi(np.arange(1.0, 31.0), 14)
    assert np.allclose(rsi[14:], 100.0)


def test_rsi_first_value_and_smoothing():
    values = [10, 11, 10, 12, 11]
    rsi = calculate_rsi(values, 2)
    assert np.isnan(rsi[0]) and np.isnan(rsi[1])
    # gains [1, 0], losses [0, 1] -> avg 0.5 / 0.5
    assert rsi[2] == pytest.approx(50.0)
    # next change +2: avg_gain = (0.5 + 2) / 2, avg_loss = (0.5 + 0) / 2
    avg_gain, avg_loss = 1.25, 0.25
    assert rsi[3] == pytest.approx(100 - 100 / (1 + avg_gain / avg_loss))
    # next change -1
    avg_gain, avg_loss = (avg_gain + 0) / 2, (avg_loss + 1) / 2
    assert rsi[4] == pytest.approx(100 - 100 / (1 + avg_gain / avg_loss))


def test_rsi_too_short():
    assert np.isnan(calculate_rsi([1, 2, 3], 14)).all()


def test_bollinger_uses_population_std():
    values = [1.0, 2.0, 3.0, 4.0]
    upper, middle, lower = calculate_bollinger_bands(values, 4, 2.0)
    std = np.std(values)
    assert middle[3] == pytest.approx(2.5)
    assert upper[3] == pytest.approx(2.5 + 2 * std)
    assert lower[3] == pytest.approx(2.5 - 2 * std)
    assert np.isnan(upper[:3]).all()


def test_macd_components():
    values = 100 + np.sin(np.arange(60) * 0.3) * 5
    macd, signal, hist = calculate_macd(values, 12, 26, 9)
    expected_macd = calculate_ema(values, 12) - calculate_ema(values, 26)
    assert np.allclose(macd, expected_macd)
    assert np.allclose(signal, calculate_ema(expected_macd, 9))
    assert np.allclose(hist, macd - signal)


def test_indicator_bank_caches_series():
    bank = IndicatorBank(np.arange(1.0, 50.0))
    first = bank.sma(5)
    assert bank.sma(5) is first
    assert "sma_5" in bank.indicators
    macd, signal, hist = bank.macd(3, 6, 2)
    assert "macd_signal_3_6_2" in bank.indicators
    upper, middle, lower = bank.bollinger(10, 2)
    assert np.allclose(middle, bank.sma(10), equal_nan=True)
