"""Exception hierarchy for the manifolio kernel.

A single base class lets callers catch every kernel failure at once,
while the specialised subclasses keep the distinguishable conditions
(bad probabilities, unsupported distribution methods, malformed
snapshots) separate.
"""


class ManifolioError(Exception):
    """Base exception for all manifolio errors."""


class InvalidProbabilityError(ManifolioError, ValueError):
    """A probability was NaN or outside the open interval (0, 1).

    Args:
        value: The offending probability.
        name: Which quantity the probability described.

    """

    def __init__(self, value: float, name: str = "probability") -> None:
        """Initialize the error with the offending value.

        Args:
            value: The offending probability.
            name: Which quantity the probability described.

        """
        super().__init__(f"{name} must be between 0 and 1 (exclusive), got {value}")
        self.value = value
        self.name = name


class UnsupportedMethodError(ManifolioError, NotImplementedError):
    """A distribution construction method is not implemented.

    Raised instead of silently approximating, e.g. for a
    convolution-based cumulative distribution.

    Args:
        method: Name of the requested method.
        operation: The operation that does not support it.

    """

    def __init__(self, method: str, operation: str) -> None:
        """Initialize the error with the unsupported method name.

        Args:
            method: Name of the requested method.
            operation: The operation that does not support it.

        """
        super().__init__(f"{operation} does not support method {method!r}")
        self.method = method
        self.operation = operation


class SnapshotError(ManifolioError):
    """A market or user snapshot is missing or malformed."""
