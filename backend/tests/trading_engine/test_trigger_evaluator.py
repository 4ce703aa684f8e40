"""Tests for trading_engine/trigger_evaluator.py"""

import pytest

from cryptodash.trading_engine.trigger_evaluator import TriggerType, evaluate_trigger, trailing_stop_price


class TestStopLoss:
    def test_triggers_at_stop_price(self):
        trigger, reason = evaluate_trigger(40000.0, None, 40000.0, 41000.0)
        assert trigger == TriggerType.STOP_LOSS
        assert "Stop loss triggered" in reason

    def test_triggers_below_stop_price(self):
        trigger, _ = evaluate_trigger(40000.0, None, 39900.0, 41000.0)
        assert trigger == TriggerType.STOP_LOSS

    def test_no_trigger_above_stop_price(self):
        trigger, _ = evaluate_trigger(40000.0, None, 40000.01, 41000.0)
        assert trigger == TriggerType.NONE

    def test_zero_stop_limit_is_still_a_stop(self):
        """A stop of 0 is set (not missing); it fires only at a price of 0"""
        assert evaluate_trigger(0.0, None, 0.0, 10.0)[0] == TriggerType.STOP_LOSS
        assert evaluate_trigger(0.0, None, 0.01, 10.0)[0] == TriggerType.NONE


class TestTrailingStop:
    def test_trailing_scenario_triggers_on_drop_below_threshold(self):
        """High 110, 5% trailing -> threshold 104.5; 104 triggers"""
        trigger, reason = evaluate_trigger(None, 5.0, 104.0, 110.0)
        assert trigger == TriggerType.TRAILING_STOP
        assert "Trailing stop triggered" in reason

    def test_trailing_no_trigger_above_threshold(self):
        assert evaluate_trigger(None, 5.0, 105.0, 110.0)[0] == TriggerType.NONE

    def test_trailing_triggers_exactly_at_threshold(self):
        threshold = trailing_stop_price(200.0, 25.0)
        assert threshold == pytest.approx(150.0)
        assert evaluate_trigger(None, 25.0, threshold, 200.0)[0] == TriggerType.TRAILING_STOP

    def test_zero_pct_triggers_when_price_equals_high(self):
        """0% trailing fires on any non-increasing tick, including the first"""
        assert evaluate_trigger(None, 0.0, 100.0, 100.0)[0] == TriggerType.TRAILING_STOP

    def test_zero_pct_no_trigger_when_price_above_high(self):
        # Only possible if the high passed in lags the price
        assert evaluate_trigger(None, 0.0, 101.0, 100.0)[0] == TriggerType.NONE


class TestPrecedence:
    def test_stop_loss_wins_when_both_fire(self):
        trigger, _ = evaluate_trigger(100.0, 5.0, 90.0, 120.0)
        assert trigger == TriggerType.STOP_LOSS

    def test_trailing_fires_when_stop_loss_does_not(self):
        trigger, _ = evaluate_trigger(50.0, 5.0, 90.0, 120.0)
        assert trigger == TriggerType.TRAILING_STOP

    def test_neither_configured(self):
        trigger, reason = evaluate_trigger(None, None, 1.0, 100.0)
        assert trigger == TriggerType.NONE
        assert reason == "No stop configured"


class TestTriggerLabels:
    def test_labels(self):
        assert TriggerType.STOP_LOSS.label == "Stop Loss"
        assert TriggerType.TRAILING_STOP.label == "Trailing Stop"
        assert TriggerType.NONE.label == "None"
