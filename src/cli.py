"""
CLI entry point: calculate-trades USER_ID [--recalculate].

Runs one trade-building pass for a user against DATABASE_URL and prints the
run summary followed by the trades it produced.
"""

import logging

import click

from src.config import REPORT_TIMEZONE, configure_logging
from src.db.session import get_session, init_db
from src.domain.metrics import MetricsCalculator
from src.domain.trade_builder import process_user_orders, recalculate_user_trades

logger = logging.getLogger(__name__)


@click.command()
@click.argument("user_id")
@click.option(
    "--recalculate",
    is_flag=True,
    help="Delete the user's calculated trades and rebuild them from every order.",
)
@click.option("--timezone", "report_timezone", default=REPORT_TIMEZONE, show_default=True,
              help="Timezone used to classify market sessions.")
@click.option("--log-level", default="INFO", show_default=True)
def main(user_id: str, recalculate: bool, report_timezone: str, log_level: str) -> None:
    """Build trades from USER_ID's unprocessed orders."""
    configure_logging(log_level)
    init_db()

    with get_session() as session:
        if recalculate:
            trades = recalculate_user_trades(session, user_id, report_timezone)
        else:
            trades = process_user_orders(session, user_id, report_timezone)

    summary = MetricsCalculator.summarize_trades(trades)
    click.echo(
        f"Processed {summary['total_trades']} trades: "
        f"{summary['completed_trades']} closed, {summary['open_trades']} open, "
        f"P&L {summary['total_pnl']:.2f}, win rate {summary['win_rate']:.1f}%"
    )
    if trades:
        click.echo(MetricsCalculator.trades_frame(trades).to_string(index=False))


if __name__ == "__main__":
    main()
