"""CLI entry point for the up/down paper trader."""

from updown_trader.apps.cli import app

__all__ = ["app", "main"]


def main() -> None:
    """Run the paper trader CLI application."""
    app()


if __name__ == "__main__":
    main()
