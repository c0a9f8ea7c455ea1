import json
import os
import sys
import tempfile
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from signalbot.execution.positions import PositionManager
from signalbot.execution.sizing import bracket_prices, size_position
from signalbot.reporting.report import generate_report
from signalbot.strategy.signal_generator import Signal

import unittest


class TestGenerateReport(unittest.TestCase):
    def test_writes_all_artefacts(self) -> None:
        manager = PositionManager()
        for exit_price in (105.0, 98.0):
            stop, take = bracket_prices(100.0, 'LONG', 0.02, 0.05)
            sizing = size_position(1000.0, 100.0, stop, 0.05, 1.0)
            manager.open(Signal("TEST", "BUY", 0.9, "test", 100.0), sizing, stop, take, leverage=1.0)
            manager.monitor("TEST", exit_price)

        with tempfile.TemporaryDirectory() as tmp:
            out_dir = os.path.join(tmp, "results")
            generate_report(manager.history(), out_dir=out_dir)
            for name in ('trades.csv', 'summary.json', 'pnl_curve.png'):
                self.assertTrue(os.path.exists(os.path.join(out_dir, name)), name)

            trades = pd.read_csv(os.path.join(out_dir, 'trades.csv'))
            self.assertEqual(trades['result'].tolist(), ['TAKE_PROFIT', 'STOP_LOSS'])
            with open(os.path.join(out_dir, 'summary.json'), encoding='utf-8') as fh:
                summary = json.load(fh)
            self.assertEqual(summary['total_trades'], 2)
            self.assertAlmostEqual(summary['win_rate'], 50.0)

    def test_empty_session(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            generate_report([], out_dir=tmp)
            with open(os.path.join(tmp, 'summary.json'), encoding='utf-8') as fh:
                self.assertEqual(json.load(fh)['total_trades'], 0)
            self.assertTrue(os.path.exists(os.path.join(tmp, 'pnl_curve.png')))


if __name__ == '__main__':
    unittest.main()
