"""CLI reports — prints backtest KPIs and trade plans to the console."""

from priceaction.backtest.models import BacktestResult, ExitEvent, PredictionResult
from priceaction.backtest.stats import max_drawdown_from_pnls


def _money(value) -> str:
    return f"${value:,.2f}" if value is not None else "N/A"


def format_report(result: BacktestResult) -> str:
    """Format and print a backtest summary.

    Args:
        result: The finished ``BacktestResult``.

    Returns:
        The formatted string (also printed to stdout).
    """
    k = result.kpis
    pnls = [e.profit for e in result.trade_log if isinstance(e, ExitEvent)]
    pf_str = f"{k.profit_factor:.2f}" if k.profit_factor is not None else "N/A"

    lines = [
        "──────────────── Backtest Report ─────────────────",
        f"  Final Equity:    {_money(result.final_equity)}",
        f"  Net Profit:      {_money(k.net_profit)} ({k.net_profit_pct:+.2f}%)",
        f"  Trades:          {k.total_trades} ({k.winning_trades} W / {k.losing_trades} L)",
        f"  Win Rate:        {k.win_rate * 100:.1f}%",
        f"  Profit Factor:   {pf_str}",
        f"  Avg Trade:       {_money(k.avg_trade_pnl)}",
        f"  Avg Win / Loss:  {_money(k.avg_win)} / {_money(k.avg_loss)}",
        f"  Expectancy:      {_money(k.expectancy)}",
        f"  Max Drawdown:    {_money(k.max_drawdown)} ({k.max_drawdown_pct:.2f}%)",
        f"  Closed-Trade DD: {_money(max_drawdown_from_pnls(pnls))}",
        f"  Sharpe:          {k.sharpe_ratio:.2f}",
        f"  S/R Zones:       {len(result.sr_zones)}",
        "──────────────────────────────────────────────────",
    ]
    output = "\n".join(lines)
    print(output)
    return output


def format_prediction(result: PredictionResult) -> str:
    """Format and print a trade plan or the reason no trade is planned."""
    lines = ["──────────────── Trade Plan ──────────────────────"]
    if result.status == "PLAN_TRADE":
        lines += [
            f"  Direction:       {result.direction}",
            f"  Model:           {result.model}",
            f"  Entry:           {result.entry_price:.5f}",
            f"  Stop Loss:       {result.stop_loss:.5f}",
            f"  Take Profit:     {result.take_profit:.5f}",
            f"  Risk/Reward:     1:{result.risk_reward:g}",
            f"  Reason:          {result.reason}",
        ]
    else:
        lines.append(f"  No trade:        {result.reason}")
    lines.append("──────────────────────────────────────────────────")
    output = "\n".join(lines)
    print(output)
    return output
