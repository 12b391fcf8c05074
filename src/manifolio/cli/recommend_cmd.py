"""CLI command for recommending a Kelly-optimal bet.

Load a market and a user from a snapshot file, size the bet for the
given probability estimate and print the stake, side and simulated
execution.
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from manifolio.cli._helpers import configure_verbose_logging, fail, load_settings
from manifolio.core.exceptions import ManifolioError
from manifolio.data.snapshot_file import SnapshotFileSource
from manifolio.market.cache import MarketModelCache
from manifolio.sizing.kelly import KellyStrategy, recommend_bet


def recommend(  # noqa: PLR0913
    market: Annotated[str, typer.Argument(help="Market slug in the snapshot file")],
    username: Annotated[str, typer.Argument(help="User in the snapshot file")],
    snapshot: Annotated[
        Path, typer.Option(help="YAML or JSON snapshot with markets and users", exists=True)
    ],
    estimate: Annotated[float, typer.Option(help="Your probability that the market resolves YES")],
    deference: Annotated[
        float | None,
        typer.Option(help="Weight on your estimate versus the market (default from settings)"),
    ] = None,
    strategy: Annotated[
        KellyStrategy, typer.Option(help="naive ignores price impact, full accounts for it")
    ] = KellyStrategy.FULL,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log solver progress")] = False,
) -> None:
    """Recommend a bet size and direction for a market."""
    if verbose:
        configure_verbose_logging()
    asyncio.run(
        _recommend(
            market=market,
            username=username,
            snapshot=snapshot,
            estimate=estimate,
            deference=deference,
            strategy=strategy,
        )
    )


async def _recommend(  # noqa: PLR0913
    *,
    market: str,
    username: str,
    snapshot: Path,
    estimate: float,
    deference: float | None,
    strategy: KellyStrategy,
) -> None:
    """Fetch both snapshots concurrently and print the recommendation.

    Args:
        market: Market slug.
        username: User identifier.
        snapshot: Snapshot file path.
        estimate: Estimated YES probability.
        deference: Deference factor, or ``None`` for the configured default.
        strategy: Sizing strategy.

    """
    try:
        settings = load_settings()
        source = SnapshotFileSource(snapshot, settings)
        cache = MarketModelCache(source, settings.cache_ttl_seconds)
        market_model, user_model = await asyncio.gather(
            cache.get(market), source.get_user_model(username)
        )
        recommendation = recommend_bet(
            estimate,
            settings.deference_factor if deference is None else deference,
            market_model,
            user_model,
            strategy=strategy,
            iterations=settings.iterations,
            excluding_market_id=market,
        )
        prob_before = market_model.probability
    except (ManifolioError, ValueError) as exc:
        fail(exc)

    typer.echo(f"Market:            {market} ({prob_before:.2%})")
    typer.echo(f"Effective bankroll: {user_model.effective_bankroll:,.2f}")
    typer.echo(f"Outcome:           {recommendation.outcome.value}")
    typer.echo(f"Amount:            {recommendation.amount:,.2f}")
    typer.echo(f"Shares:            {recommendation.shares:,.2f}")
    typer.echo(f"Probability after: {recommendation.probability_after:.2%}")
