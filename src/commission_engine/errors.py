"""Error types raised by the commission engine."""


class CommissionEngineError(Exception):
    """Base class for all engine errors."""


class NotFound(CommissionEngineError):
    """A referenced agent, lead, commission or batch does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class ValidationError(CommissionEngineError):
    """Input is malformed or violates a domain rule."""


class ConfigurationError(CommissionEngineError):
    """The tier catalog or engine configuration is inconsistent."""


class ConcurrencyConflict(CommissionEngineError):
    """A payout batch for the same agent and period was already claimed."""

    def __init__(self, batch_key: str, detail: str = ""):
        self.batch_key = batch_key
        message = f"Payout batch {batch_key} already claimed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
