from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from numbers import Integral, Real

import numpy as np
from numpy.typing import NDArray

from streamdigest.errors import EmptyDigestError, InvalidInputError
from streamdigest.models import DEFAULT_COMPRESSION, Centroid, DigestConfig
from streamdigest.scale import size_limit

logger = logging.getLogger(__name__)


def _mean_key(centroid: Centroid) -> float:
    return centroid.mean


def _check_sample(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidInputError(f"sample must be a real number, got {value!r}")
    try:
        sample = float(value)
    except OverflowError:
        raise InvalidInputError(
            f"sample must be finite, got {value!r:.40}"
        ) from None
    if not math.isfinite(sample):
        raise InvalidInputError(f"sample must be finite, got {sample}")
    return sample


def _check_level(q: object) -> float:
    if isinstance(q, bool) or not isinstance(q, Real):
        raise InvalidInputError(f"quantile level must be a real number, got {q!r}")
    try:
        level = float(q)
    except OverflowError:
        raise InvalidInputError(
            f"quantile level must be in [0, 1], got {q!r:.40}"
        ) from None
    if not 0.0 <= level <= 1.0:
        raise InvalidInputError(f"quantile level must be in [0, 1], got {level}")
    return level


def _fold_mean(
    mean: float, weight: int, other_mean: float, other_weight: int
) -> float:
    # convex form stays finite for finite inputs of opposite sign
    total = weight + other_weight
    return mean * (weight / total) + other_mean * (other_weight / total)


def compress_centroids(
    centroids: Sequence[Centroid], compression: float
) -> list[Centroid]:
    """Greedily merge adjacent centroids under the rank-dependent size limit.

    Returns a fresh list sorted by mean with the same total weight. Each
    pair is checked against the tighter of the limits at the left
    centroid's rank midpoint and the right centroid's rank midpoint, which
    makes a second pass over the output a no-op.
    """
    if not centroids:
        return []

    ordered = sorted(centroids, key=_mean_key)
    total = sum(centroid.weight for centroid in ordered)
    compressed: list[Centroid] = []
    emitted = 0
    l_mean = ordered[0].mean
    l_weight = ordered[0].weight

    for right in ordered[1:]:
        q_left = (emitted + l_weight * 0.5) / total
        q_right = (emitted + l_weight + right.weight * 0.5) / total
        limit = min(
            size_limit(q_left, total, compression),
            size_limit(q_right, total, compression),
        )
        if l_weight + right.weight <= limit:
            if right.mean != l_mean:
                # rounding must not push the mean past the right centroid
                l_mean = min(
                    _fold_mean(l_mean, l_weight, right.mean, right.weight),
                    right.mean,
                )
            l_weight += right.weight
            continue

        compressed.append(Centroid(l_mean, l_weight))
        emitted += l_weight
        l_mean = right.mean
        l_weight = right.weight

    compressed.append(Centroid(l_mean, l_weight))
    return compressed


def cap_centroids(centroids: Sequence[Centroid], max_centroids: int) -> list[Centroid]:
    """Merge fixed-size runs so at most *max_centroids* centroids remain."""
    if len(centroids) <= max_centroids:
        return list(centroids)

    batch_size = math.ceil(len(centroids) / max_centroids)
    capped: list[Centroid] = []
    for start in range(0, len(centroids), batch_size):
        batch = centroids[start : start + batch_size]
        mean = batch[0].mean
        weight = batch[0].weight
        for centroid in batch[1:]:
            mean = _fold_mean(mean, weight, centroid.mean, centroid.weight)
            weight += centroid.weight
        mean = min(max(mean, batch[0].mean), batch[-1].mean)
        capped.append(Centroid(mean, weight))
    return capped


def _interpolate(x: float, x1: float, y1: float, x2: float, y2: float) -> float:
    k = (x - x1) / (x2 - x1)
    return (1.0 - k) * y1 + k * y2


def _estimate(centroids: Sequence[Centroid], total: int, level: float) -> float:
    if len(centroids) == 1:
        return centroids[0].mean

    target = level * total
    emitted = 0
    previous = centroids[0]
    previous_mid = 0.0

    for current in centroids:
        mid = emitted + current.weight * 0.5
        if mid >= target:
            # A singleton is a point, not a spread of samples.
            left = previous_mid + 0.5 if previous.weight == 1 else previous_mid
            right = mid - 0.5 if current.weight == 1 else mid
            if target <= left:
                return previous.mean
            if target >= right:
                return current.mean
            return _interpolate(target, left, previous.mean, right, current.mean)

        emitted += current.weight
        previous = current
        previous_mid = mid

    return centroids[-1].mean


class TDigest:
    """Bounded-memory quantile sketch that can be merged with other sketches.

    Samples are appended as singleton centroids and compacted in batches
    once more than ``max_unmerged`` are pending; every read compacts first.
    Instances are not thread-safe: callers must serialize writers.

    Example::

        digest = TDigest()
        digest.extend([1.0, 2.0, 3.0])
        digest.quantile(0.5)  # 2.0
    """

    def __init__(
        self,
        compression: float = DEFAULT_COMPRESSION,
        *,
        max_unmerged: int | None = None,
        max_centroids: int | None = None,
    ) -> None:
        self._config = DigestConfig.create(
            compression,
            max_unmerged=max_unmerged,
            max_centroids=max_centroids,
        )
        self._centroids: list[Centroid] = []
        self._count = 0
        self._unmerged = 0

    @staticmethod
    def builder() -> TDigestBuilder:
        return TDigestBuilder()

    @classmethod
    def from_config(cls, config: DigestConfig) -> TDigest:
        return cls(
            config.compression,
            max_unmerged=config.max_unmerged,
            max_centroids=config.max_centroids,
        )

    @classmethod
    def from_iterable(
        cls,
        values: Iterable[float] | NDArray[np.number],
        compression: float = DEFAULT_COMPRESSION,
    ) -> TDigest:
        digest = cls(compression)
        digest.extend(values)
        return digest

    @classmethod
    def from_centroids(
        cls, centroids: Iterable[Centroid], config: DigestConfig | None = None
    ) -> TDigest:
        """Rebuild a digest from exported centroids, compacting them once."""
        digest = cls() if config is None else cls.from_config(config)
        restored = list(centroids)
        for centroid in restored:
            _check_sample(centroid.mean)
        if restored:
            digest._centroids = restored
            digest._count = sum(centroid.weight for centroid in restored)
            digest._unmerged = len(restored)
            digest._compact()
        return digest

    @property
    def config(self) -> DigestConfig:
        return self._config

    @property
    def compression(self) -> float:
        return self._config.compression

    @property
    def count(self) -> int:
        return self._count

    @property
    def centroids(self) -> tuple[Centroid, ...]:
        """Compacted centroids, ascending by mean."""
        self.compress()
        return tuple(self._centroids)

    def __len__(self) -> int:
        return self._count

    def is_empty(self) -> bool:
        return self._count == 0

    def clear(self) -> None:
        self._centroids = []
        self._count = 0
        self._unmerged = 0

    def copy(self) -> TDigest:
        duplicate = TDigest.from_config(self._config)
        duplicate._centroids = list(self._centroids)
        duplicate._count = self._count
        duplicate._unmerged = self._unmerged
        return duplicate

    def insert(self, value: float) -> None:
        self.insert_many(value, 1)

    def insert_many(self, value: float, count: int) -> None:
        """Add *count* copies of *value* as a single centroid."""
        sample = _check_sample(value)
        if isinstance(count, bool) or not isinstance(count, Integral) or count < 1:
            raise InvalidInputError(f"count must be a positive integer, got {count!r}")
        self._push(Centroid(sample, int(count)))

    def extend(self, values: Iterable[float] | NDArray[np.number]) -> None:
        """Insert every value; nothing is inserted if any value is rejected."""
        if isinstance(values, np.ndarray):
            if not np.issubdtype(values.dtype, np.integer) and not np.issubdtype(
                values.dtype, np.floating
            ):
                raise InvalidInputError(
                    f"samples must be real numbers, got dtype {values.dtype}"
                )
            samples = values.astype(np.float64, copy=False).ravel()
            if not bool(np.all(np.isfinite(samples))):
                raise InvalidInputError("samples must be finite")
            batch: list[float] = samples.tolist()
        else:
            batch = [_check_sample(value) for value in values]

        for sample in batch:
            self._push(Centroid(sample, 1))

    def merge(self, other: TDigest) -> None:
        """Absorb every centroid of *other*, leaving *other* untouched.

        Both centroid lists are concatenated and compacted in a single pass,
        so neither side is summarized twice.
        """
        if not isinstance(other, TDigest):
            raise TypeError(f"can only merge a TDigest, got {type(other).__name__}")
        if other.is_empty():
            return

        incoming = list(other._centroids)
        self._centroids.extend(incoming)
        self._count += other._count
        self._unmerged += len(incoming)
        logger.debug(
            "Merging %d centroids (count=%d) into digest.",
            len(incoming),
            other._count,
        )
        self._compact()

    def append(self, other: TDigest) -> None:
        """Merge *other* into this digest and leave *other* empty."""
        if other is self:
            raise InvalidInputError("cannot append a digest to itself")
        self.merge(other)
        other.clear()

    def compress(self) -> None:
        if self._unmerged == 0 and len(self._centroids) <= self._config.max_centroids:
            return
        self._compact()

    def quantile(self, q: float) -> float:
        """Estimate the value at rank fraction *q* in ``[0, 1]``.

        Pending centroids are compacted first, so the call may reorganize
        the internal centroid list without changing the summarized data.
        """
        level = _check_level(q)
        if self._count == 0:
            raise EmptyDigestError("cannot estimate a quantile of an empty digest")
        self.compress()
        return _estimate(self._centroids, self._count, level)

    def quantiles(self) -> Quantiles:
        """Compact once and return a read-only estimator over the result."""
        self.compress()
        return Quantiles(tuple(self._centroids), self._count)

    def _push(self, centroid: Centroid) -> None:
        self._centroids.append(centroid)
        self._count += centroid.weight
        self._unmerged += 1
        if self._unmerged > self._config.max_unmerged:
            self._compact()

    def _compact(self) -> None:
        before = len(self._centroids)
        compressed = compress_centroids(self._centroids, self._config.compression)
        self._centroids = cap_centroids(compressed, self._config.max_centroids)
        self._unmerged = 0
        logger.debug(
            "Compressed %d centroids into %d (count=%d).",
            before,
            len(self._centroids),
            self._count,
        )

    def __or__(self, other: object) -> TDigest:
        if not isinstance(other, TDigest):
            return NotImplemented
        result = self.copy()
        result.merge(other)
        return result

    def __ior__(self, other: object) -> TDigest:
        if not isinstance(other, TDigest):
            return NotImplemented
        self.merge(other)
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TDigest):
            return NotImplemented
        return (
            self._config == other._config
            and self._centroids == other._centroids
            and self._count == other._count
            and self._unmerged == other._unmerged
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"TDigest(compression={self._config.compression}, "
            f"centroids={len(self._centroids)}, count={self._count})"
        )


class TDigestBuilder:
    """Configure a TDigest step by step.

    Example::

        digest = TDigest.builder().compression(200).max_unmerged(1024).build()
    """

    def __init__(self) -> None:
        self._compression = DEFAULT_COMPRESSION
        self._max_unmerged: int | None = None
        self._max_centroids: int | None = None

    def compression(self, compression: float) -> TDigestBuilder:
        self._compression = compression
        return self

    def max_unmerged(self, max_unmerged: int) -> TDigestBuilder:
        self._max_unmerged = max_unmerged
        return self

    def max_centroids(self, max_centroids: int) -> TDigestBuilder:
        self._max_centroids = max_centroids
        return self

    def build(self) -> TDigest:
        return TDigest(
            self._compression,
            max_unmerged=self._max_unmerged,
            max_centroids=self._max_centroids,
        )


class Quantiles:
    """Read-only quantile estimator over a compacted centroid snapshot.

    Created by :meth:`TDigest.quantiles`. It holds its own copy of the
    centroids, so it can be shared between reader threads and is not
    affected by later writes to the digest.
    """

    def __init__(self, centroids: tuple[Centroid, ...], count: int) -> None:
        self._centroids = centroids
        self._count = count

    def __len__(self) -> int:
        return self._count

    def get(self, q: float) -> float:
        level = _check_level(q)
        if self._count == 0:
            raise EmptyDigestError("cannot estimate a quantile of an empty digest")
        return _estimate(self._centroids, self._count, level)
