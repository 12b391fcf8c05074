"""Conversion between the common formulations of betting odds.

- Decimal odds: total return per unit staked, stake included. Decimal
  odds of 2.5 return 2.5 for every 1 bet.
- English odds: net profit per unit staked, i.e. decimal odds minus one.
- Implied probability: the reciprocal of the decimal odds.
"""

from enum import Enum


class OddsType(Enum):
    """Representation of a price on a binary outcome."""

    DECIMAL = "decimal"
    ENGLISH = "english"
    IMPLIED_PROBABILITY = "implied-probability"


def _to_decimal(value: float, odds_type: OddsType) -> float:
    if odds_type is OddsType.DECIMAL:
        return value
    if odds_type is OddsType.ENGLISH:
        return value + 1
    return 1 / value


def _from_decimal(decimal_odds: float, odds_type: OddsType) -> float:
    if odds_type is OddsType.DECIMAL:
        return decimal_odds
    if odds_type is OddsType.ENGLISH:
        return decimal_odds - 1
    return 1 / decimal_odds


def convert_odds(value: float, from_type: OddsType, to_type: OddsType) -> float:
    """Convert ``value`` from one odds representation to another.

    Args:
        value: Odds expressed as ``from_type``.
        from_type: Representation of ``value``.
        to_type: Desired representation.

    Returns:
        The same price expressed as ``to_type``.

    Raises:
        ZeroDivisionError: If an implied probability of 0 or decimal odds
            of 0 are converted.

    """
    if from_type is to_type:
        return value
    return _from_decimal(_to_decimal(value, from_type), to_type)
