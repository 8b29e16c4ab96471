"""
Unit tests for services/market/indicators.py
"""
import pytest

from neurotrade.services.market.indicators import adx, bollinger_bands, ema, rsi, sma

from conftest import make_candles, v_shape_closes


class TestMovingAverages:
    def test_sma_leading_entries_are_none(self):
        assert sma([1, 2, 3, 4, 5], 3) == [None, None, 2, 3, 4]

    def test_sma_output_aligned_with_input(self):
        assert len(sma([1.0] * 7, 10)) == 7
        assert sma([1.0] * 7, 10) == [None] * 7

    def test_ema_seeded_with_first_value(self):
        assert ema([0.0, 10.0], 3) == [0.0, 5.0]

    def test_ema_constant_series(self):
        assert ema([10.0, 10.0, 10.0], 5) == [10.0, 10.0, 10.0]


class TestRSI:
    def test_short_series_is_neutral(self):
        assert rsi([1, 2, 3], 14) == [50.0, 50.0, 50.0]
        assert rsi([float(i) for i in range(14)], 14) == [50.0] * 14

    def test_only_gains_gives_100(self):
        values = [float(i) for i in range(30)]
        out = rsi(values, 14)
        assert out[:14] == [50.0] * 14
        assert out[-1] == 100.0

    def test_only_losses_gives_0(self):
        values = [100.0 - i for i in range(30)]
        assert rsi(values, 14)[-1] == pytest.approx(0.0)

    def test_flat_series_has_no_loss(self):
        # avg loss is 0, so RSI is pinned to 100
        assert rsi([5.0] * 20, 14)[-1] == 100.0

    def test_bounded(self):
        out = rsi(v_shape_closes(), 14)
        assert all(0.0 <= v <= 100.0 for v in out)


class TestBollinger:
    def test_none_before_window(self):
        bands = bollinger_bands([float(i) for i in range(1, 25)], 20, 2.0)
        assert bands[:19] == [None] * 19
        assert bands[19] is not None

    def test_constant_series_has_zero_width(self):
        band = bollinger_bands([100.0] * 20, 20, 2.0)[-1]
        assert band.middle == 100.0
        assert band.upper == band.lower == 100.0
        assert band.bandwidth == 0.0

    def test_population_std(self):
        band = bollinger_bands([1.0, 3.0], 2, 2.0)[-1]
        # mean 2, population std 1
        assert band.upper == pytest.approx(4.0)
        assert band.lower == pytest.approx(0.0)
        assert band.bandwidth == pytest.approx(2.0)

    def test_non_positive_mean_bandwidth_is_zero(self):
        assert bollinger_bands([0.0, 0.0], 2, 2.0)[-1].bandwidth == 0.0


class TestADX:
    def test_short_series_is_zero(self):
        candles = make_candles([100.0 + i for i in range(27)])
        assert adx(candles, 14) == [0.0] * 27

    def test_flat_series_is_zero(self):
        candles = make_candles([100.0] * 40, wick=0.0)
        assert adx(candles, 14) == [0.0] * 40

    def test_bounded_and_strong_in_trend(self):
        out = adx(make_candles(v_shape_closes()), 14)
        assert len(out) == 300
        assert all(0.0 <= v <= 100.0 for v in out)
        assert out[-1] > 20.0
