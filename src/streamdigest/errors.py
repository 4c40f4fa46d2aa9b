from __future__ import annotations


class TDigestError(ValueError):
    """Base class for t-digest failures."""


class InvalidInputError(TDigestError):
    """A sample, count, quantile level or snapshot is not acceptable."""


class EmptyDigestError(TDigestError):
    """A quantile was requested from a digest holding no samples."""


class ConfigurationError(TDigestError):
    """A digest was configured with an invalid compression or cap."""
