"""
Custom Exceptions
Error hierarchy shared by stores, resolver and orchestrator.
"""


class PricingAgentError(Exception):
    """Base class for pricing agent errors."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PricingAgentError):
    """Invalid runtime configuration."""
    pass


class ValidationError(PricingAgentError):
    """Rejected settings update. `details` maps field paths to messages."""

    def __init__(self, message: str, errors: dict = None):
        super().__init__(message, errors)
        self.errors = dict(errors or {})


class ConflictError(PricingAgentError):
    """A pricing run is already in progress."""

    def __init__(self, message: str, run_id: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.run_id = run_id


class StorageError(PricingAgentError):
    """Persistence failure in a settings/report/catalog store."""
    pass


class ResolverTransientError(PricingAgentError):
    """A single search strategy or domain lookup failed."""

    def __init__(self, message: str, domain: str = None, strategy: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.domain = domain
        self.strategy = strategy


class SearchUnavailableError(PricingAgentError):
    """Every fallback search layer failed for every vendor domain."""
    pass


class LLMError(PricingAgentError):
    """LLM call failed or returned an unusable answer."""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class RunFatalError(PricingAgentError):
    """Uncaught failure inside a pricing run."""

    def __init__(self, message: str, run_id: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.run_id = run_id


class RunCancelledError(RunFatalError):
    """Cancellation has been requested for an active run."""
    pass
