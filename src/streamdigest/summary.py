from __future__ import annotations

from collections.abc import Sequence

from streamdigest.models import DigestSummary
from streamdigest.tdigest import TDigest

DEFAULT_LEVELS: tuple[float, ...] = (0.0, 0.01, 0.05, 0.5, 0.95, 0.99, 1.0)


def level_label(level: float) -> str:
    """Render a quantile level as a percentile label, e.g. 0.999 -> ``p99.9``."""
    return f"p{level * 100:g}"


def summarize_digest(
    digest: TDigest, source: str, levels: Sequence[float] = DEFAULT_LEVELS
) -> DigestSummary:
    quantiles = digest.quantiles()
    return DigestSummary(
        source=source,
        count=digest.count,
        centroid_count=len(digest.centroids),
        compression=digest.compression,
        quantiles={level_label(level): quantiles.get(level) for level in levels},
    )
