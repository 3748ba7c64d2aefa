"""
Utils Module
Logging setup and the shared exception hierarchy.
"""
from .logger import setup_logger, configure_from_settings
from .exceptions import (
    PricingAgentError,
    ConfigurationError,
    ValidationError,
    ConflictError,
    StorageError,
    ResolverTransientError,
    SearchUnavailableError,
    LLMError,
    RunFatalError,
    RunCancelledError,
)

__all__ = [
    "setup_logger",
    "configure_from_settings",
    "PricingAgentError",
    "ConfigurationError",
    "ValidationError",
    "ConflictError",
    "StorageError",
    "ResolverTransientError",
    "SearchUnavailableError",
    "LLMError",
    "RunFatalError",
    "RunCancelledError",
]
