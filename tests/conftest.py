"""Shared test configuration and fixtures."""

from collections.abc import Iterator

import pytest

from manifolio.core import config


@pytest.fixture(autouse=True)
def _reset_config() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    """Forget the global ``ConfigLoader`` before and after every test.

    Tests that patch environment variables or point the loader at a
    temporary directory must not leak a cached configuration into the
    next test.
    """
    config.reset_config()
    yield
    config.reset_config()
