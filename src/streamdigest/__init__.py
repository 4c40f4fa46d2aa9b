from .errors import (
    ConfigurationError,
    EmptyDigestError,
    InvalidInputError,
    TDigestError,
)
from .models import Centroid, DigestConfig
from .tdigest import Quantiles, TDigest, TDigestBuilder

__all__ = [
    "Centroid",
    "ConfigurationError",
    "DigestConfig",
    "EmptyDigestError",
    "InvalidInputError",
    "Quantiles",
    "TDigest",
    "TDigestBuilder",
    "TDigestError",
]
