"""CLI command for simulating a market order against a snapshot.

Run the matching engine for a bet and show how it splits between the
resting limit orders and the pool.
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from manifolio.cli._helpers import configure_verbose_logging, fail
from manifolio.core.exceptions import ManifolioError
from manifolio.core.models import OrderFill, Outcome
from manifolio.data.snapshot_file import SnapshotFileSource


def simulate(
    market: Annotated[str, typer.Argument(help="Market slug in the snapshot file")],
    snapshot: Annotated[
        Path, typer.Option(help="YAML or JSON snapshot with markets and users", exists=True)
    ],
    amount: Annotated[float, typer.Option(help="Amount to bet")],
    outcome: Annotated[
        Outcome, typer.Option(help="Side to buy", case_sensitive=False)
    ] = Outcome.YES,
    limit: Annotated[float | None, typer.Option(help="Optional limit probability")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log fills")] = False,
) -> None:
    """Simulate a bet and print the resulting fills and price."""
    if verbose:
        configure_verbose_logging()
    asyncio.run(
        _simulate(market=market, snapshot=snapshot, amount=amount, outcome=outcome, limit=limit)
    )


async def _simulate(
    *,
    market: str,
    snapshot: Path,
    amount: float,
    outcome: Outcome,
    limit: float | None,
) -> None:
    """Load the market and print the bet info.

    Args:
        market: Market slug.
        snapshot: Snapshot file path.
        amount: Amount to bet.
        outcome: Side to buy.
        limit: Optional limit probability.

    """
    try:
        market_model = await SnapshotFileSource(snapshot).get_market_model(market)
        info = market_model.get_bet_info(outcome, amount, limit)
    except (ManifolioError, ValueError) as exc:
        fail(exc)

    typer.echo(f"Probability: {info.prob_before:.2%} -> {info.prob_after:.2%}")
    typer.echo(f"Filled:      {info.amount:,.2f} of {info.order_amount:,.2f}")
    typer.echo(f"Shares:      {info.shares:,.2f}")
    if info.shares > 0:
        typer.echo(f"Avg price:   {info.amount / info.shares:.4f}")
    typer.echo("")
    typer.echo(f"{'Against':<12} {'Amount':>12} {'Shares':>12}")
    typer.echo("-" * 38)
    for fill in info.fills:
        against = fill.matched_order_id if isinstance(fill, OrderFill) else "pool"
        typer.echo(f"{against:<12} {fill.amount:>12.2f} {fill.shares:>12.2f}")
    if info.orders_to_cancel:
        cancelled = ", ".join(order.id for order in info.orders_to_cancel)
        typer.echo(f"\nOrders skipped for insufficient balance: {cancelled}")
