"""Error taxonomy shared across the evaluation package.

Fatal errors (`ConfigurationError`, `LoadError`) always propagate to the caller.
Recoverable errors (`LocationError`, `ValidationError`) are raised close to the
offending input and caught by the component that owns the skip counter.
"""
from __future__ import annotations


class RetrievalEvalError(Exception):
    """Base class for every error raised by retrieval_eval."""


class ConfigurationError(RetrievalEvalError, ValueError):
    """Invalid component parameters, raised at construction time."""


class LocationError(RetrievalEvalError, LookupError):
    """Text could not be located inside its source document."""


class LoadError(RetrievalEvalError, RuntimeError):
    """Ground truth could not be loaded; aborts the evaluation run."""


class ValidationError(RetrievalEvalError, ValueError):
    """A span or record failed structural validation."""
