import os
import random
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from signalbot.config.schema import SignalConfig
from signalbot.strategy.indicators import BollingerBands, IndicatorSnapshot, MACDResult
from signalbot.strategy.signal_generator import BUY, SELL, SignalGenerator

import unittest


def snapshot(short=105.0, medium=100.0, rsi=50.0, upper=110.0, middle=100.0, lower=90.0, histogram=0.0):
    return IndicatorSnapshot(
        short_ema=short,
        medium_ema=medium,
        rsi=rsi,
        bollinger=BollingerBands(upper=upper, middle=middle, lower=lower),
        macd=MACDResult(line=histogram, signal=0.0, histogram=histogram),
        last_close=middle,
    )


class TestSignalDirection(unittest.TestCase):
    def setUp(self) -> None:
        self.generator = SignalGenerator(SignalConfig())

    def test_buy_on_oversold_uptrend(self) -> None:
        signal = self.generator.evaluate("BTCUSDT", 95.0, snapshot(rsi=20.0, histogram=1.0))
        self.assertIsNotNone(signal)
        self.assertEqual(signal.action, BUY)
        self.assertEqual(signal.symbol, "BTCUSDT")
        self.assertEqual(signal.price, 95.0)
        self.assertIn("RSI oversold", signal.reason)
        # 0.3 * 10/30 + 0.3 * 5/10 + 0.4 * 1/2
        self.assertAlmostEqual(signal.confidence, 0.45)
        self.assertFalse(signal.is_actionable(0.7))

    def test_buy_when_price_near_lower_band(self) -> None:
        # 91.5 <= 90 * 1.02
        signal = self.generator.evaluate("X", 91.5, snapshot(rsi=50.0))
        self.assertEqual(signal.action, BUY)
        self.assertIn("lower Bollinger Band", signal.reason)
        self.assertNotIn("RSI", signal.reason.split(",", 1)[1])

    def test_no_buy_in_uptrend_without_trigger(self) -> None:
        self.assertIsNone(self.generator.evaluate("X", 100.0, snapshot(rsi=50.0)))

    def test_uptrend_never_sells(self) -> None:
        self.assertIsNone(self.generator.evaluate("X", 109.0, snapshot(rsi=90.0)))

    def test_sell_on_overbought_downtrend(self) -> None:
        signal = self.generator.evaluate("X", 105.0, snapshot(short=95.0, rsi=80.0, histogram=-1.0))
        self.assertEqual(signal.action, SELL)
        self.assertIn("RSI overbought", signal.reason)
        self.assertAlmostEqual(signal.confidence, 0.45)

    def test_sell_when_price_near_upper_band(self) -> None:
        # 108 >= 110 * 0.98
        signal = self.generator.evaluate("X", 108.0, snapshot(short=95.0, rsi=50.0))
        self.assertEqual(signal.action, SELL)

    def test_equal_emas_count_as_bearish(self) -> None:
        signal = self.generator.evaluate("X", 110.0, snapshot(short=100.0, medium=100.0))
        self.assertEqual(signal.action, SELL)

    def test_macd_confirmation(self) -> None:
        generator = SignalGenerator(SignalConfig(require_macd_confirmation=True))
        self.assertIsNone(generator.evaluate("X", 95.0, snapshot(rsi=20.0, histogram=-0.5)))
        self.assertIsNone(generator.evaluate("X", 95.0, snapshot(rsi=20.0, histogram=0.0)))
        signal = generator.evaluate("X", 95.0, snapshot(rsi=20.0, histogram=0.5))
        self.assertEqual(signal.action, BUY)
        self.assertIn("MACD", signal.reason)
        self.assertIsNone(generator.evaluate("X", 105.0, snapshot(short=95.0, rsi=80.0, histogram=0.5)))


class TestConfidence(unittest.TestCase):
    def setUp(self) -> None:
        self.generator = SignalGenerator(SignalConfig())

    def test_extreme_readings_reach_full_confidence(self) -> None:
        signal = self.generator.evaluate("X", 90.0, snapshot(rsi=0.0, histogram=3.0))
        self.assertAlmostEqual(signal.confidence, 1.0)
        self.assertTrue(signal.is_actionable(0.7))

    def test_more_oversold_means_more_confident(self) -> None:
        mild = self.generator.evaluate("X", 95.0, snapshot(rsi=25.0, histogram=0.5))
        deep = self.generator.evaluate("X", 95.0, snapshot(rsi=10.0, histogram=0.5))
        self.assertGreater(deep.confidence, mild.confidence)

    def test_closer_to_band_means_more_confident(self) -> None:
        far = self.generator.evaluate("X", 95.0, snapshot(rsi=20.0))
        near = self.generator.evaluate("X", 91.0, snapshot(rsi=20.0))
        self.assertGreater(near.confidence, far.confidence)

    def test_weights_are_normalised(self) -> None:
        generator = SignalGenerator(SignalConfig(rsi_weight=3.0, band_weight=3.0, momentum_weight=4.0))
        signal = generator.evaluate("X", 95.0, snapshot(rsi=20.0, histogram=1.0))
        self.assertAlmostEqual(signal.confidence, 0.45)

    def test_degenerate_band(self) -> None:
        flat = snapshot(rsi=50.0, upper=100.0, middle=100.0, lower=100.0)
        signal = self.generator.evaluate("X", 100.0, flat)
        self.assertEqual(signal.action, BUY)
        # band component saturates, RSI and momentum are zero
        self.assertAlmostEqual(signal.confidence, 0.3)

    def test_confidence_stays_in_unit_interval(self) -> None:
        rng = random.Random(7)
        for _ in range(500):
            middle = rng.uniform(50, 150)
            width = rng.uniform(0, 20)
            snap = snapshot(
                short=rng.uniform(50, 150),
                medium=rng.uniform(50, 150),
                rsi=rng.uniform(0, 100),
                upper=middle + width,
                middle=middle,
                lower=middle - width,
                histogram=rng.uniform(-10, 10),
            )
            signal = self.generator.evaluate("X", rng.uniform(20, 200), snap)
            if signal is not None:
                self.assertGreaterEqual(signal.confidence, 0.0)
                self.assertLessEqual(signal.confidence, 1.0)


if __name__ == '__main__':
    unittest.main()
