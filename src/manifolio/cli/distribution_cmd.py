"""CLI command for showing the payout distribution of a set of positions."""

from typing import Annotated

import typer

from manifolio.cli._helpers import fail, load_settings, parse_position
from manifolio.core.exceptions import ManifolioError
from manifolio.portfolio.distribution import (
    PmfMethod,
    compute_payout_distribution,
    cumulative_distribution,
    expected_value,
    variance,
)


def distribution(
    positions: Annotated[
        list[str], typer.Argument(help="Positions as probability:payout pairs, e.g. 0.3:20")
    ],
    method: Annotated[
        PmfMethod, typer.Option(help="Construction strategy")
    ] = PmfMethod.CARTESIAN,
    samples: Annotated[
        int | None, typer.Option(help="Monte Carlo draws (default from settings)")
    ] = None,
) -> None:
    """Print the payout PMF, expected value and variance of independent positions."""
    parsed = [parse_position(value) for value in positions]
    try:
        settings = load_settings()
        pmf = compute_payout_distribution(
            parsed,
            method,
            samples=settings.monte_carlo_samples if samples is None else samples,
            seed=settings.seed,
        )
        cdf = cumulative_distribution(parsed) if method is PmfMethod.CARTESIAN else None
    except (ManifolioError, ValueError) as exc:
        fail(exc)

    typer.echo(f"{'Payout':>12} {'Probability':>12} {'Cumulative':>12}")
    typer.echo("-" * 38)
    for payout in sorted(pmf):
        cumulative = f"{cdf[payout]:>12.4f}" if cdf is not None else f"{'':>12}"
        typer.echo(f"{payout:>12.2f} {pmf[payout]:>12.4f} {cumulative}")
    typer.echo("")
    typer.echo(f"Expected value: {expected_value(pmf):,.4f}")
    typer.echo(f"Variance:       {variance(pmf):,.4f}")
