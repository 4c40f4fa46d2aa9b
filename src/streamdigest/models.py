from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from streamdigest.errors import ConfigurationError, InvalidInputError

DEFAULT_COMPRESSION = 100.0
_CAP_FACTOR = 20


@dataclass(frozen=True)
class Centroid:
    """Weighted mean standing in for one or more samples."""

    mean: float
    weight: int

    def __post_init__(self) -> None:
        if self.weight <= 0:
            raise InvalidInputError(
                f"centroid weight must be positive, got {self.weight}"
            )


class DigestConfig(BaseModel):
    """Accuracy and memory settings of a digest."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    compression: float = Field(default=DEFAULT_COMPRESSION, gt=0, allow_inf_nan=False)
    max_unmerged: int = Field(gt=0)
    max_centroids: int = Field(gt=0)

    @classmethod
    def create(
        cls,
        compression: float = DEFAULT_COMPRESSION,
        *,
        max_unmerged: int | None = None,
        max_centroids: int | None = None,
    ) -> DigestConfig:
        """Build a config, deriving the caps from *compression* when omitted.

        Both caps default to ``20 * compression`` so compaction cost is
        amortized over a batch proportional to the expected centroid count.
        """
        if isinstance(compression, bool) or not isinstance(compression, Real):
            raise ConfigurationError(
                f"compression must be a real number, got {compression!r}"
            )
        try:
            finite = math.isfinite(compression)
        except OverflowError:
            finite = False
        if not finite or compression <= 0:
            raise ConfigurationError(
                f"compression must be positive and finite, got {compression!r:.40}"
            )
        default_cap = max(1, int(_CAP_FACTOR * compression))
        try:
            return cls(
                compression=float(compression),
                max_unmerged=default_cap if max_unmerged is None else max_unmerged,
                max_centroids=default_cap if max_centroids is None else max_centroids,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"invalid digest configuration: {exc}") from exc


class DigestSnapshot(BaseModel):
    """Serializable state of a compacted digest."""

    model_config = ConfigDict(extra="forbid", strict=True)

    config: DigestConfig
    centroids: list[tuple[float, int]]
    count: int

    @model_validator(mode="after")
    def _check_consistency(self) -> DigestSnapshot:
        previous = -math.inf
        for mean, weight in self.centroids:
            if not math.isfinite(mean):
                raise ValueError(f"centroid mean must be finite, got {mean}")
            if weight <= 0:
                raise ValueError(f"centroid weight must be positive, got {weight}")
            if mean < previous:
                raise ValueError("centroids must be sorted by mean")
            previous = mean
        total = sum(weight for _, weight in self.centroids)
        if total != self.count:
            raise ValueError(
                f"centroid weights sum to {total} but count is {self.count}"
            )
        return self


class DigestSummary(BaseModel):
    """Quantile report for one digest."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    source: str
    count: int
    centroid_count: int
    compression: float
    quantiles: dict[str, float]
