"""
Report generation utilities.

This module turns a trading session's closed positions into
human-readable artefacts: a CSV file of trades, a JSON summary of
performance metrics and a PNG chart of cumulative realized P&L.
"""

from __future__ import annotations

import os
import json
from typing import List
import pandas as pd
import matplotlib

# Use non-interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.models import Position
from .metrics import summarize


def _ts(value) -> str:
    return value.isoformat() if value is not None else ""


def generate_report(history: List[Position], out_dir: str = "results") -> None:
    """Generate report files for a trading session.

    Creates the output directory if it does not exist and writes the
    following files:

    - `trades.csv` – one row per closed position
    - `summary.json` – performance metrics
    - `pnl_curve.png` – cumulative realized P&L over time
    """
    os.makedirs(out_dir, exist_ok=True)

    trades_data = [
        {
            'id': p.id,
            'symbol': p.symbol,
            'side': p.side,
            'quantity': p.quantity,
            'notional': p.notional_size,
            'leverage': p.leverage,
            'entry': p.entry_price,
            'stop_loss': p.stop_loss_price,
            'take_profit': p.take_profit_price,
            'exit': p.close_price,
            'opened_at': _ts(p.opened_at),
            'closed_at': _ts(p.closed_at),
            'result': p.result,
            'pnl': p.realized_pnl,
            'simulated': p.simulated,
        }
        for p in history
    ]
    df_trades = pd.DataFrame(trades_data)
    df_trades.to_csv(os.path.join(out_dir, 'trades.csv'), index=False)

    summary_path = os.path.join(out_dir, 'summary.json')
    with open(summary_path, 'w', encoding='utf-8') as fh:
        json.dump(summarize(history).to_dict(), fh, indent=2, ensure_ascii=False)

    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_trades.empty:
        curve = df_trades['pnl'].cumsum()
        ax.plot(pd.to_datetime(df_trades['closed_at']), curve, linewidth=1.5)
        ax.axhline(0.0, color='grey', linewidth=0.8)
        ax.set_title('Cumulative realized P&L')
        ax.set_xlabel('Time')
        ax.set_ylabel('P&L')
        fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'pnl_curve.png'))
    plt.close(fig)
