"""Tests for trading_engine/position_tracker.py"""

from cryptodash.trading_engine.position_tracker import PositionTracker


class TestObserve:
    def test_first_observation_initializes_to_price(self):
        tracker = PositionTracker()
        assert tracker.observe(1, "BTC", 41000.0) == 41000.0
        assert tracker.get(1, "BTC") == 41000.0

    def test_highest_never_decreases(self):
        """Running max over a price sequence"""
        tracker = PositionTracker()
        highs = [tracker.observe(1, "BTC", p) for p in [100.0, 110.0, 104.0, 108.0, 111.0]]
        assert highs == [100.0, 110.0, 110.0, 110.0, 111.0]

    def test_positions_are_keyed_by_user_and_symbol(self):
        tracker = PositionTracker()
        tracker.observe(1, "BTC", 100.0)
        tracker.observe(2, "BTC", 200.0)
        tracker.observe(1, "ETH", 300.0)

        assert tracker.get(1, "BTC") == 100.0
        assert tracker.get(2, "BTC") == 200.0
        assert tracker.get(1, "ETH") == 300.0
        assert len(tracker) == 3

    def test_symbol_case_is_ignored(self):
        tracker = PositionTracker()
        tracker.observe(1, "btc", 100.0)
        assert tracker.observe(1, "BTC", 90.0) == 100.0


class TestSeedAndDiscard:
    def test_seed_sets_baseline(self):
        tracker = PositionTracker()
        tracker.seed(1, "BTC", 50000.0)
        assert tracker.observe(1, "BTC", 45000.0) == 50000.0

    def test_seed_replaces_higher_value(self):
        tracker = PositionTracker()
        tracker.observe(1, "BTC", 50000.0)
        tracker.seed(1, "BTC", 10.0)
        assert tracker.get(1, "BTC") == 10.0

    def test_discard_and_clear(self):
        tracker = PositionTracker()
        tracker.observe(1, "BTC", 1.0)
        tracker.observe(2, "ETH", 2.0)

        tracker.discard(1, "BTC")
        assert tracker.get(1, "BTC") is None
        tracker.discard(1, "BTC")  # missing key is fine

        tracker.clear()
        assert len(tracker) == 0

    def test_get_unknown_position_returns_none(self):
        assert PositionTracker().get(9, "XRP") is None

    def test_snapshot_is_a_copy(self):
        tracker = PositionTracker()
        tracker.observe(1, "BTC", 1.0)
        snap = tracker.snapshot()
        snap[(1, "BTC")] = 999.0
        assert tracker.get(1, "BTC") == 1.0
