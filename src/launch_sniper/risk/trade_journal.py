from dataclasses import asdict, fields
from typing import Dict, Any
import os
import pandas as pd

from launch_sniper.core.types import TradeRecord

COLUMNS = [f.name for f in fields(TradeRecord)]

class TradeJournal:
    """Append-only CSV log of completed trades"""

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._initialize_csv()

    def _initialize_csv(self):
        """Create CSV with headers if it doesn't exist"""
        if not os.path.exists(self.csv_path):
            directory = os.path.dirname(self.csv_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            pd.DataFrame(columns=COLUMNS).to_csv(self.csv_path, index=False)

    def append(self, record: TradeRecord) -> None:
        df = pd.DataFrame([asdict(record)], columns=COLUMNS)
        df.to_csv(self.csv_path, mode='a', header=False, index=False)

    def load(self) -> pd.DataFrame:
        return pd.read_csv(self.csv_path)

    def summarize(self) -> Dict[str, Any]:
        """Closed-trade performance across the whole journal"""
        df = self.load()
        sells = df[df['type'] == 'sell']
        if len(sells) == 0:
            return {"message": "No trades recorded yet"}

        pnl = pd.to_numeric(sells['pnl'], errors='coerce').fillna(0.0)
        winners = pnl[pnl > 0]
        losers = pnl[pnl <= 0]
        return {
            "total_trades": int(len(sells)),
            "total_pnl": float(pnl.sum()),
            "win_rate": float(len(winners) / len(sells) * 100),
            "avg_win": float(winners.mean()) if len(winners) else 0.0,
            "avg_loss": float(losers.mean()) if len(losers) else 0.0,
            "exit_reasons": sells['reason'].value_counts().to_dict(),
        }
