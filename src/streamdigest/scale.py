from __future__ import annotations


def size_limit(q: float, total: float, compression: float) -> float:
    """Return the largest weight a centroid may hold at rank fraction *q*.

    The bound ``4 * total * q * (1 - q) / compression`` peaks at the median
    and falls to zero at both tails, so extreme quantiles keep fine
    resolution while the bulk of the mass is summarized by few centroids.
    It never drops below one sample.
    """
    return max(1.0, 4.0 * total * q * (1.0 - q) / compression)
