"""
Unit tests for services/market/candle_store.py
"""
import asyncio

from neurotrade.models.market_models import Candle
from neurotrade.services.market.candle_store import GAP_THRESHOLD_MS, CandleStore, merge_candles


def c(time: int, close: float = 1.0) -> Candle:
    return Candle(time=time, open=close, high=close, low=close, close=close, volume=1.0)


def times(candles):
    return [x.time for x in candles]


class TestMergeCandles:
    def test_live_update_replaces_last(self):
        merged = merge_candles([c(100), c(200)], [c(200, close=5.0), c(300)])
        assert times(merged) == [100, 200, 300]
        assert merged[1].close == 5.0

    def test_live_update_kept_when_batch_also_extends(self):
        merged = merge_candles([c(100), c(200)], [c(150), c(200, close=4.0), c(300, close=6.0), c(400)])
        assert times(merged) == [100, 200, 300, 400]
        assert [x.close for x in merged] == [1.0, 4.0, 6.0, 1.0]

    def test_last_duplicate_of_forming_bar_wins(self):
        merged = merge_candles([c(100), c(200)], [c(200, close=2.0), c(200, close=3.0), c(300)])
        assert times(merged) == [100, 200, 300]
        assert merged[1].close == 3.0

    def test_gap_replaces_series(self):
        merged = merge_candles([c(100)], [c(5_000_000)])
        assert times(merged) == [5_000_000]

    def test_gap_threshold_is_exclusive(self):
        merged = merge_candles([c(0)], [c(GAP_THRESHOLD_MS)])
        assert times(merged) == [0, GAP_THRESHOLD_MS]

    def test_only_last_timestamp_replaced_in_place(self):
        merged = merge_candles([c(100), c(200)], [c(150, close=9.0), c(200, close=7.0)])
        assert times(merged) == [100, 200]
        assert merged[-1].close == 7.0

    def test_older_batch_is_ignored(self):
        existing = [c(100), c(200)]
        assert merge_candles(existing, [c(50), c(100)]) == existing

    def test_empty_inputs(self):
        assert times(merge_candles([], [c(1), c(2)])) == [1, 2]
        assert times(merge_candles([c(1)], [])) == [1]

    def test_inputs_not_mutated(self):
        existing = [c(100), c(200)]
        merge_candles(existing, [c(200, close=3.0)])
        assert existing[-1].close == 1.0


class TestCandleStore:
    def test_append_and_trim(self):
        store = CandleStore(max_history=50)
        batch = [c(i * 60_000) for i in range(80)]
        series = asyncio.run(store.append("BTC", batch))
        assert len(series) == 50
        assert series[0].time == 30 * 60_000
        assert store.get("BTC") == series
        assert store.symbols() == ["BTC"]

    def test_append_updates_forming_bar(self):
        store = CandleStore()

        async def scenario():
            await store.append("SOL", [c(60_000), c(120_000)])
            return await store.append("SOL", [c(120_000, close=8.0), c(180_000)])

        series = asyncio.run(scenario())
        assert times(series) == [60_000, 120_000, 180_000]
        assert series[1].close == 8.0

    def test_get_unknown_symbol(self):
        assert CandleStore().get("ETH") == []

    def test_snapshot_is_a_copy(self):
        store = CandleStore()
        series = asyncio.run(store.append("BTC", [c(1)]))
        series.append(c(2))
        assert times(store.get("BTC")) == [1]

    def test_concurrent_appends_per_asset(self):
        store = CandleStore(max_history=1000)

        async def scenario():
            batches = [[c(i * 60_000 + j * 60_000 * 10) for i in range(10)] for j in range(5)]
            await asyncio.gather(
                *(store.append(symbol, batch) for batch in batches for symbol in ("BTC", "ETH"))
            )

        asyncio.run(scenario())
        for symbol in ("BTC", "ETH"):
            series = store.get(symbol)
            assert len(series) == 50
            assert times(series) == sorted(set(times(series)))
