"""Paper trading engine for recurring up/down binary prediction markets."""

__version__ = "0.1.0"
