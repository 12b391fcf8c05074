"""Configuration management for manifolio."""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

from manifolio.core.exceptions import ManifolioError


class ConfigError(ManifolioError):
    """Raise when configuration loading or validation fails."""


@dataclass(frozen=True)
class KellySettings:
    """Tunables for bet sizing and portfolio valuation.

    Args:
        deference_factor: Default weight on the user's own estimate.
        iterations: Bisection steps of the full Kelly solver.
        monte_carlo_samples: Draws per Monte Carlo payout distribution.
        seed: Seed of the Monte Carlo generator.
        exact_position_limit: Largest portfolio enumerated exactly.
        cache_ttl_seconds: Lifetime of cached market snapshots.

    """

    deference_factor: float = 0.5
    iterations: int = 10
    monte_carlo_samples: int = 50_000
    seed: int = 42
    exact_position_limit: int = 12
    cache_ttl_seconds: float = 30.0


class ConfigLoader:
    """Load and manage configuration from YAML files with environment variable substitution."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the config loader.

        Load environment variables from a ``.env`` file (if present) and
        then read YAML configuration from the given directory.

        Args:
            config_dir: Directory containing config files. Defaults to src/manifolio/config.

        """
        load_dotenv()
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)
        self._config: dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load settings.yaml, overlay settings.local.yaml, then resolve env vars."""
        settings_file = self.config_dir / "settings.yaml"
        if settings_file.exists():
            with settings_file.open() as f:
                self._config = yaml.safe_load(f) or {}

        local_settings = self.config_dir / "settings.local.yaml"
        if local_settings.exists():
            with local_settings.open() as f:
                local_config = cast("dict[str, Any]", yaml.safe_load(f) or {})
                self._deep_merge(self._config, local_config)

        self._config = self._substitute_env_vars(self._config)

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> None:
        """Deep merge override dict into base dict.

        Args:
            base: Base dictionary to merge into (modified in place).
            override: Dictionary with values to override.

        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], cast("dict[str, Any]", value))
            else:
                base[key] = value

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in config.

        Supports format: ${VAR_NAME:default_value} or ${VAR_NAME}

        Args:
            config: Configuration value (dict, list, or str).

        Returns:
            Configuration with environment variables substituted.

        Raises:
            ConfigError: If a variable without default is unset, or a
                reference is embedded in a longer string.

        """
        if isinstance(config, dict):
            return {
                k: self._substitute_env_vars(v)
                for k, v in config.items()  # pyright: ignore[reportUnknownVariableType]
            }
        if isinstance(config, list):
            return [
                self._substitute_env_vars(item)
                for item in config  # pyright: ignore[reportUnknownVariableType]
            ]
        if isinstance(config, str) and config.startswith("${") and config.endswith("}"):
            var_expr = config[2:-1]
            if ":" in var_expr:
                var_name, default = var_expr.split(":", 1)
            else:
                var_name, default = var_expr, None

            value = os.getenv(var_name, default)
            if value is None:
                msg = f"Required environment variable ${{{var_name}}} is not set and has no default"
                raise ConfigError(msg)
            return value

        if isinstance(config, str) and re.search(r"\$\{[^}]+\}", config):
            msg = f"Unresolved environment variable reference in: {config}"
            raise ConfigError(msg)

        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Args:
            key: Configuration key in dot notation (e.g., 'kelly.iterations').
            default: Default value if key not found.

        Returns:
            Configuration value.

        """
        current: Any = self._config
        for k in key.split("."):
            if isinstance(current, dict):
                current = cast("dict[str, Any]", current).get(k)
                if current is None:
                    return default
            else:
                return default
        return current  # pyright: ignore[reportReturnType]

    def _get_number(self, key: str, default: float) -> float:
        """Read ``key`` and coerce it to a float.

        Environment substitution yields strings, so numeric settings are
        converted here rather than trusted as-is.

        Raises:
            ConfigError: If the value cannot be converted.

        """
        raw = self.get(key, default)
        try:
            return float(raw)
        except (TypeError, ValueError) as exc:
            msg = f"{key} must be a number, got {raw!r}"
            raise ConfigError(msg) from exc

    def get_kelly_settings(self) -> KellySettings:
        """Assemble bet sizing settings from the kelly, distribution and market keys.

        Returns:
            A ``KellySettings`` with defaults for any missing key.

        Raises:
            ConfigError: If a value has the wrong type or is out of range.

        """
        defaults = KellySettings()
        settings = KellySettings(
            deference_factor=self._get_number("kelly.deference_factor", defaults.deference_factor),
            iterations=int(self._get_number("kelly.iterations", defaults.iterations)),
            monte_carlo_samples=int(
                self._get_number("distribution.monte_carlo_samples", defaults.monte_carlo_samples)
            ),
            seed=int(self._get_number("distribution.seed", defaults.seed)),
            exact_position_limit=int(
                self._get_number("distribution.exact_position_limit", defaults.exact_position_limit)
            ),
            cache_ttl_seconds=self._get_number(
                "market.cache_ttl_seconds", defaults.cache_ttl_seconds
            ),
        )
        if not (0 <= settings.deference_factor <= 1):
            msg = f"kelly.deference_factor must be between 0 and 1, got {settings.deference_factor}"
            raise ConfigError(msg)
        if settings.iterations <= 0 or settings.monte_carlo_samples <= 0:
            msg = "kelly.iterations and distribution.monte_carlo_samples must be positive"
            raise ConfigError(msg)
        return settings


_config: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Return the global ``ConfigLoader`` singleton, creating it on first use.

    Lazy initialisation avoids side effects (file I/O, ``load_dotenv``)
    at import time and makes testing easier.

    Returns:
        The shared ``ConfigLoader`` instance.

    """
    global _config  # noqa: PLW0603
    if _config is None:
        _config = ConfigLoader()
    return _config


def reset_config() -> None:
    """Forget the global ``ConfigLoader`` so the next ``get_config`` reloads."""
    global _config  # noqa: PLW0603
    _config = None
