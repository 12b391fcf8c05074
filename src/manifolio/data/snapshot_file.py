"""File-based market and user snapshots for offline use.

Read markets and users from a local YAML or JSON document instead of a
live API. This makes recommendations reproducible and lets the CLI run
without network access. The document has two top-level sections::

    markets:
      will-it-rain:
        pool: {YES: 150, NO: 100}
        p: 0.5
        orders:
          - {id: o1, user_id: bob, outcome: NO, order_amount: 50, limit_prob: 0.45}
        balances: {bob: 500}
    users:
      alice:
        balance: 1000
        loans: 25
        positions:
          - {probability: 0.7, payout: 200, contract_id: other-market}

A market may give ``probability`` and ``liquidity`` instead of ``pool``.
"""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

import yaml

from manifolio.core.config import KellySettings
from manifolio.core.exceptions import SnapshotError
from manifolio.core.models import CpmmState, LimitOrder, Outcome, Pool, Position
from manifolio.market.model import MarketModel
from manifolio.portfolio.user_model import UserModel

_JSON_SUFFIXES = {".json"}


def _parse_outcome(raw: Any) -> Outcome:
    # YAML 1.1 reads bare YES and NO as booleans
    if isinstance(raw, bool):
        return Outcome.YES if raw else Outcome.NO
    return Outcome(str(raw).upper())


def _parse_order(raw: Mapping[str, Any]) -> LimitOrder:
    return LimitOrder(
        id=str(raw["id"]),
        user_id=str(raw["user_id"]),
        outcome=_parse_outcome(raw["outcome"]),
        order_amount=float(raw["order_amount"]),
        limit_prob=float(raw["limit_prob"]),
        amount_filled=float(raw.get("amount_filled", 0)),
        created_time=int(raw.get("created_time", 0)),
        is_filled=bool(raw.get("is_filled", False)),
        is_cancelled=bool(raw.get("is_cancelled", False)),
    )


def _parse_state(raw: Mapping[str, Any]) -> CpmmState:
    p = float(raw.get("p", 0.5))
    if "pool" in raw:
        raw_pool = cast("Mapping[Any, Any]", raw["pool"])
        pool = {_parse_outcome(key): float(value) for key, value in raw_pool.items()}
        return CpmmState(pool=Pool(yes=pool[Outcome.YES], no=pool[Outcome.NO]), p=p)
    return CpmmState.from_probability(float(raw["probability"]), float(raw["liquidity"]), p)


def _parse_position(raw: Mapping[str, Any]) -> Position:
    contract_id = raw.get("contract_id")
    return Position(
        probability=float(raw["probability"]),
        payout=float(raw["payout"]),
        loan=float(raw.get("loan", 0)),
        contract_id=None if contract_id is None else str(contract_id),
    )


class SnapshotFileSource:
    """Load market and user snapshots from a local YAML or JSON file.

    Implement both the ``MarketDataSource`` and ``UserDataSource``
    protocols. The file is read on first access and kept in memory.
    """

    def __init__(self, file_path: Path, settings: KellySettings | None = None) -> None:
        """Initialize the source with the path to the snapshot document.

        Args:
            file_path: Path to a ``.yaml``, ``.yml`` or ``.json`` file.
            settings: Portfolio valuation settings passed to every ``UserModel``.

        """
        self._file_path = file_path
        self._settings = settings or KellySettings()
        self._document: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._document is None:
            try:
                with self._file_path.open() as f:
                    if self._file_path.suffix.lower() in _JSON_SUFFIXES:
                        document = json.load(f)
                    else:
                        document = yaml.safe_load(f)
            except OSError as exc:
                msg = f"cannot read snapshot file {self._file_path}: {exc}"
                raise SnapshotError(msg) from exc
            except (json.JSONDecodeError, yaml.YAMLError) as exc:
                msg = f"malformed snapshot file {self._file_path}: {exc}"
                raise SnapshotError(msg) from exc
            if not isinstance(document, dict):
                msg = f"snapshot file {self._file_path} must contain a mapping"
                raise SnapshotError(msg)
            self._document = cast("dict[str, Any]", document)
        return self._document

    def _section(self, section: str, key: str) -> Mapping[str, Any]:
        entries = self._load().get(section) or {}
        if not isinstance(entries, dict) or key not in entries:
            msg = f"{key!r} not found in {section} of {self._file_path}"
            raise SnapshotError(msg)
        return cast("Mapping[str, Any]", entries[key])

    async def get_market_model(self, slug: str) -> MarketModel:
        """Build the ``MarketModel`` for ``slug`` from the ``markets`` section.

        Args:
            slug: Key of the market in the document.

        Returns:
            The market snapshot with its open orders and maker balances.

        Raises:
            SnapshotError: If the market is missing or malformed.

        """
        raw = self._section("markets", slug)
        try:
            state = _parse_state(raw)
            orders = [_parse_order(order) for order in raw.get("orders") or []]
            balances = {
                str(user_id): float(balance)
                for user_id, balance in (raw.get("balances") or {}).items()
            }
            total_liquidity = float(raw.get("total_liquidity", 0))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            msg = f"malformed market {slug!r}: {exc}"
            raise SnapshotError(msg) from exc
        return MarketModel(
            state,
            orders,
            balances,
            slug=slug,
            total_liquidity=total_liquidity,
        )

    async def get_user_model(self, username: str) -> UserModel:
        """Build the ``UserModel`` for ``username`` from the ``users`` section.

        Args:
            username: Key of the user in the document.

        Returns:
            The user's balance, loans and positions.

        Raises:
            SnapshotError: If the user is missing or malformed.

        """
        raw = self._section("users", username)
        try:
            positions = [_parse_position(position) for position in raw.get("positions") or []]
            balance = float(raw["balance"])
            loans = raw.get("loans")
            loans = None if loans is None else float(loans)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            msg = f"malformed user {username!r}: {exc}"
            raise SnapshotError(msg) from exc
        return UserModel(
            balance,
            positions,
            loans,
            username=username,
            exact_position_limit=self._settings.exact_position_limit,
            samples=self._settings.monte_carlo_samples,
            seed=self._settings.seed,
        )
