"""
Metrics Collector

Aggregates closed trades into performance metrics: win rate, average and
total PnL, best/worst trade, hold time, exit reason counts, fees.
"""

from dataclasses import asdict, dataclass
from typing import List

import pandas as pd

from trend_rider.core.models import TrendTrade


@dataclass
class TrendRiderMetrics:
    total_trades: int = 0
    win_rate: float = 0.0  # percent
    avg_profit_per_trade: float = 0.0
    total_pnl: float = 0.0
    best_trade: float = 0.0
    worst_trade: float = 0.0
    avg_hold_time_ms: float = 0.0
    profit_target_hits: int = 0
    stop_loss_hits: int = 0
    total_fees: float = 0.0


class MetricsCollector:
    """Collects closed trades and summarises them."""

    def __init__(self):
        self.trades: List[TrendTrade] = []

    def record_trade(self, trade: TrendTrade):
        self.trades.append(trade)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(t) for t in self.trades])

    def snapshot(self) -> TrendRiderMetrics:
        if not self.trades:
            return TrendRiderMetrics()

        df = self.to_frame()
        reasons = df["exit_reason"]

        return TrendRiderMetrics(
            total_trades=len(df),
            win_rate=float((df["profit"] > 0).mean() * 100),
            avg_profit_per_trade=float(df["profit"].mean()),
            total_pnl=float(df["profit"].sum()),
            best_trade=float(df["profit"].max()),
            worst_trade=float(df["profit"].min()),
            avg_hold_time_ms=float(df["duration_ms"].mean()),
            profit_target_hits=int((reasons == "profit_target").sum()),
            stop_loss_hits=int((reasons == "stop_loss").sum()),
            total_fees=float(df["fees"].sum()),
        )
