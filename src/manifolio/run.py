"""CLI entry point for manifolio.

All command logic lives in the cli subpackage.
"""

from manifolio.cli import app

__all__ = ["app", "main"]


def main() -> None:
    """Run the manifolio CLI application."""
    app()


if __name__ == "__main__":
    main()
