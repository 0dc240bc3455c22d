"""Generation error taxonomy. All terminal at the invoker boundary."""


class GenerationError(Exception):
    """Base exception for generation dispatch."""
    kind = "generation"


class ConfigurationError(GenerationError):
    """Provider mapping/settings problem: surfaced as a plain message."""
    kind = "configuration"


class TransportError(GenerationError):
    """The bridge call itself failed (raised, not reported)."""
    kind = "transport"


class APIError(GenerationError):
    """The bridge reported success=false."""
    kind = "api"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class CancellationError(GenerationError):
    """Caller aborted before the result was used."""
    kind = "cancelled"
