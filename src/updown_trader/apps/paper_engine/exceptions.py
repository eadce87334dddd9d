"""Exception hierarchy for the paper trading engine."""


class PaperTraderError(Exception):
    """Base exception for all paper trading engine errors."""


class StateSchemaError(PaperTraderError):
    """Persisted ledger document is malformed or from an unsupported schema version."""
