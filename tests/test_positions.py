import os
import random
import sys
import threading

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from signalbot.execution.models import CLOSED, LONG, SHORT, STOP_LOSS, TAKE_PROFIT, UNKNOWN
from signalbot.execution.positions import PositionManager, bracket_hit
from signalbot.execution.sizing import bracket_prices, size_position
from signalbot.strategy.signal_generator import Signal

import unittest


def open_example(manager, symbol="BTCUSDT", action="BUY", price=100.0, leverage=5.0):
    """Entry 100, stop 2 %, take profit 5 %, capital 1000, risk 5 %."""
    side = LONG if action == "BUY" else SHORT
    stop, take = bracket_prices(price, side, 0.02, 0.05)
    sizing = size_position(1000.0, price, stop, 0.05, leverage)
    signal = Signal(symbol=symbol, action=action, confidence=0.9, reason="test", price=price)
    return manager.open(signal, sizing, stop, take, leverage=leverage)


class TestPositionLifecycle(unittest.TestCase):
    def setUp(self) -> None:
        self.manager = PositionManager()

    def test_open_long(self) -> None:
        position = open_example(self.manager)
        self.assertTrue(position.is_open)
        self.assertEqual(position.side, LONG)
        self.assertTrue(position.simulated)
        self.assertTrue(position.id.startswith("sim-"))
        self.assertAlmostEqual(position.quantity, 50.0)
        self.assertAlmostEqual(position.notional_size, 5000.0)
        self.assertLess(position.stop_loss_price, position.entry_price)
        self.assertLess(position.entry_price, position.take_profit_price)
        self.assertEqual(self.manager.active_positions(), [position])

    def test_stop_loss_closes_at_bracket(self) -> None:
        position = open_example(self.manager)
        self.assertEqual(self.manager.monitor("BTCUSDT", 99.0), [])
        closed = self.manager.monitor("BTCUSDT", 98.0)
        self.assertEqual(closed, [position])
        self.assertEqual(position.status, CLOSED)
        self.assertEqual(position.result, STOP_LOSS)
        self.assertAlmostEqual(position.close_price, 98.0)
        # (98 - 100) * 50 * 5
        self.assertAlmostEqual(position.realized_pnl, -500.0)
        self.assertIsNotNone(position.closed_at)
        self.assertEqual(self.manager.active_positions(), [])
        self.assertEqual(self.manager.history(), [position])

    def test_gap_through_stop_fills_at_stop_price(self) -> None:
        position = open_example(self.manager)
        self.manager.monitor("BTCUSDT", 90.0)
        self.assertAlmostEqual(position.close_price, 98.0)

    def test_take_profit_long(self) -> None:
        position = open_example(self.manager)
        self.manager.monitor("BTCUSDT", 105.0)
        self.assertEqual(position.result, TAKE_PROFIT)
        self.assertAlmostEqual(position.realized_pnl, (105.0 - 100.0) * 50 * 5)

    def test_short_brackets_are_mirrored(self) -> None:
        position = open_example(self.manager, action="SELL")
        self.assertEqual(position.side, SHORT)
        self.assertAlmostEqual(position.stop_loss_price, 102.0)
        self.assertAlmostEqual(position.take_profit_price, 95.0)
        self.assertEqual(self.manager.monitor("BTCUSDT", 97.0), [])
        self.manager.monitor("BTCUSDT", 94.0)
        self.assertEqual(position.result, TAKE_PROFIT)
        self.assertAlmostEqual(position.realized_pnl, (100.0 - 95.0) * 50 * 5)

    def test_short_stop_loss(self) -> None:
        position = open_example(self.manager, action="SELL")
        self.manager.monitor("BTCUSDT", 102.0)
        self.assertEqual(position.result, STOP_LOSS)
        self.assertAlmostEqual(position.realized_pnl, -500.0)

    def test_unrealized_pnl_does_not_close(self) -> None:
        position = open_example(self.manager)
        self.manager.monitor("BTCUSDT", 99.0)
        self.assertTrue(position.is_open)
        self.assertAlmostEqual(position.current_price, 99.0)
        self.assertAlmostEqual(position.unrealized_pnl, -250.0)
        self.assertAlmostEqual(position.unrealized_pnl_pct, -5.0)
        self.manager.monitor("BTCUSDT", 101.0)
        self.assertAlmostEqual(position.unrealized_pnl, 250.0)

    def test_monitor_other_symbol_is_ignored(self) -> None:
        position = open_example(self.manager)
        self.assertEqual(self.manager.monitor("ETHUSDT", 1.0), [])
        self.assertTrue(position.is_open)

    def test_duplicate_open_is_rejected(self) -> None:
        first = open_example(self.manager)
        self.assertIsNone(open_example(self.manager))
        self.assertIsNone(open_example(self.manager, action="SELL"))
        self.assertEqual(self.manager.active_positions(), [first])

    def test_other_symbols_can_open(self) -> None:
        open_example(self.manager, symbol="BTCUSDT")
        self.assertIsNotNone(open_example(self.manager, symbol="ETHUSDT"))
        self.assertEqual(len(self.manager.active_positions()), 2)

    def test_reopen_after_close_creates_new_position(self) -> None:
        first = open_example(self.manager)
        self.manager.monitor("BTCUSDT", 98.0)
        second = open_example(self.manager)
        self.assertIsNotNone(second)
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(first.status, CLOSED)

    def test_external_close_without_result(self) -> None:
        position = open_example(self.manager)
        closed = self.manager.close(position.id, 101.0)
        self.assertEqual(closed.result, UNKNOWN)
        self.assertAlmostEqual(closed.realized_pnl, 250.0)
        self.assertIsNone(self.manager.close(position.id, 101.0))

    def test_reset(self) -> None:
        open_example(self.manager)
        self.manager.reset()
        self.assertEqual(self.manager.active_positions(), [])
        self.assertEqual(self.manager.history(), [])


class TestSlippageTolerance(unittest.TestCase):
    def test_long_stop_needs_price_past_tolerance(self) -> None:
        manager = PositionManager()
        position = open_example(manager)
        # 98 * 0.99 = 97.02
        self.assertEqual(manager.monitor("BTCUSDT", 97.5, tolerance=0.01), [])
        manager.monitor("BTCUSDT", 97.0, tolerance=0.01)
        self.assertEqual(position.result, STOP_LOSS)
        self.assertAlmostEqual(position.close_price, 98.0)

    def test_bracket_hit_mirrors_for_short(self) -> None:
        manager = PositionManager()
        position = open_example(manager, action="SELL")
        # stop 102 -> 103.02, take profit 95 -> 94.05
        self.assertIsNone(bracket_hit(position, 103.0, 0.01))
        self.assertEqual(bracket_hit(position, 103.1, 0.01)[0], STOP_LOSS)
        self.assertIsNone(bracket_hit(position, 94.5, 0.01))
        result, fill = bracket_hit(position, 94.0, 0.01)
        self.assertEqual(result, TAKE_PROFIT)
        self.assertAlmostEqual(fill, 95.0)


class TestOnePositionPerInstrument(unittest.TestCase):
    def test_randomised_open_and_monitor_sequence(self) -> None:
        rng = random.Random(42)
        manager = PositionManager()
        symbols = ["AAA", "BBB", "CCC"]
        for _ in range(2000):
            symbol = rng.choice(symbols)
            price = rng.uniform(90.0, 110.0)
            if rng.random() < 0.5:
                open_example(manager, symbol=symbol, action=rng.choice(["BUY", "SELL"]), price=price)
            else:
                manager.monitor(symbol, price, tolerance=rng.choice([0.0, 0.01]))
            for sym in symbols:
                self.assertLessEqual(len(manager.active_positions(sym)), 1)

        self.assertTrue(manager.history())
        for position in manager.history():
            move = position.close_price - position.entry_price
            if position.side == SHORT:
                move = -move
            if move > 0:
                self.assertGreater(position.realized_pnl, 0)
            elif move < 0:
                self.assertLess(position.realized_pnl, 0)

    def test_concurrent_opens(self) -> None:
        manager = PositionManager()
        barrier = threading.Barrier(8)
        results = []

        def worker() -> None:
            barrier.wait()
            results.append(open_example(manager))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len([r for r in results if r is not None]), 1)
        self.assertEqual(len(manager.active_positions("BTCUSDT")), 1)


if __name__ == '__main__':
    unittest.main()
