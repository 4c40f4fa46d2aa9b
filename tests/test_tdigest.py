from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from streamdigest import (
    ConfigurationError,
    EmptyDigestError,
    InvalidInputError,
    TDigest,
)


def _assert_sorted(digest: TDigest) -> None:
    means = [centroid.mean for centroid in digest.centroids]
    assert all(left <= right for left, right in zip(means, means[1:]))


def test_median_of_three_samples_is_middle_sample() -> None:
    digest = TDigest()
    digest.insert(1.0)
    digest.insert(2.0)
    digest.insert(3.0)

    assert digest.quantile(0.5) == 2.0
    assert len(digest) == 3


def test_median_of_negative_samples() -> None:
    digest = TDigest.from_iterable([-1.0, -2.0, -3.0])

    assert digest.quantile(0.5) == -2.0


def test_quantile_of_empty_digest_raises() -> None:
    digest = TDigest()

    assert digest.is_empty()
    with pytest.raises(EmptyDigestError, match="empty digest"):
        digest.quantile(0.5)


def test_small_digest_matches_rank_positions() -> None:
    digest = TDigest.from_iterable(float(value) for value in range(1, 11))

    for level, expected in [(0.0, 1.0), (0.1, 1.0), (0.5, 5.0), (0.9, 9.0), (1.0, 10.0)]:
        assert digest.quantile(level) == expected


def test_repeated_values_resolve_to_shared_mean() -> None:
    values = [1.0, 2.0, 2.0, 2.0, 2.0, 2.0, 2.0, 2.0, 3.0]
    digest = TDigest.from_iterable(values)
    assert digest.quantile(0.5) == 2.0
    assert len(digest) == len(values)

    digest = TDigest.from_iterable([1.0, 1.0, 2.0, 2.0, 3.0, 4.0, 4.0, 4.0, 5.0, 5.0])
    assert digest.quantile(0.3) == 2.0
    assert digest.quantile(0.4) == 2.0


def test_single_centroid_returns_its_mean_for_every_level() -> None:
    digest = TDigest()
    digest.insert_many(7.5, 5)

    assert len(digest) == 5
    assert len(digest.centroids) == 1
    for level in (0.0, 0.25, 0.5, 0.75, 1.0):
        assert digest.quantile(level) == 7.5


def test_thousand_integers_stay_compact_and_accurate() -> None:
    digest = TDigest(compression=100)
    digest.extend(float(value) for value in range(1, 1001))

    assert len(digest.centroids) <= 300
    assert abs(digest.quantile(0.5) - 500.5) <= 2.0


def test_sequential_integers_interpolate_linearly() -> None:
    digest = TDigest()
    digest.extend(np.arange(1, 100_001, dtype=np.float64))

    assert len(digest) == 100_000
    assert digest.quantile(0.0) == 1.0
    assert digest.quantile(1.0) == 100_000.0
    for level, expected in [(0.1, 10_000.5), (0.5, 50_000.5), (0.9, 90_000.5)]:
        np.testing.assert_allclose(digest.quantile(level), expected, atol=1e-6)


def test_uniform_stream_is_accurate_at_the_tails() -> None:
    rng = np.random.default_rng(7)
    digest = TDigest()
    digest.extend(rng.random(100_000))

    for level, tolerance in [
        (0.5, 0.01),
        (0.1, 0.01),
        (0.9, 0.01),
        (0.01, 0.005),
        (0.99, 0.005),
        (0.001, 0.001),
        (0.999, 0.001),
    ]:
        assert abs(digest.quantile(level) - level) < tolerance, level


def test_centroid_count_is_bounded_by_compression() -> None:
    rng = np.random.default_rng(11)
    digest = TDigest(compression=100)
    config = digest.config
    for value in rng.normal(0.0, 1.0, 100_000):
        digest.insert(float(value))
        assert len(digest._centroids) <= config.max_centroids + config.max_unmerged + 1

    assert len(digest.centroids) <= config.max_centroids
    assert config.max_centroids == 20 * 100


def test_weight_is_conserved_across_inserts_and_merges() -> None:
    rng = np.random.default_rng(3)
    first = TDigest(compression=50)
    second = TDigest(compression=50)
    first.extend(rng.exponential(2.0, 3_000))
    first.insert_many(4.0, 17)
    second.extend(rng.normal(5.0, 1.0, 2_500))

    first.merge(second)

    assert len(first) == 3_000 + 17 + 2_500
    assert sum(centroid.weight for centroid in first.centroids) == len(first)
    _assert_sorted(first)
    assert len(second) == 2_500


def test_boundaries_return_extremes() -> None:
    rng = np.random.default_rng(5)
    values = rng.normal(100.0, 15.0, 10_000)
    digest = TDigest.from_iterable(values)

    assert digest.quantile(0.0) == float(np.min(values))
    assert digest.quantile(1.0) == float(np.max(values))


def test_quantile_is_monotone_in_level() -> None:
    rng = np.random.default_rng(13)
    digest = TDigest.from_iterable(rng.lognormal(0.0, 1.0, 5_000))

    estimates = np.array([digest.quantile(level) for level in np.linspace(0, 1, 201)])

    assert np.all(np.diff(estimates) >= -1e-9)


def test_quantile_is_repeatable_after_compaction() -> None:
    rng = np.random.default_rng(17)
    digest = TDigest.from_iterable(rng.random(4_000))
    first = [digest.quantile(level) for level in (0.1, 0.5, 0.9)]
    centroids = digest.centroids

    second = [digest.quantile(level) for level in (0.1, 0.5, 0.9)]

    assert first == second
    assert digest.centroids == centroids


def test_compress_without_new_samples_keeps_centroids() -> None:
    rng = np.random.default_rng(19)
    digest = TDigest.from_iterable(rng.random(10_000))
    before = digest.centroids

    digest.compress()

    assert digest.centroids == before


@pytest.mark.parametrize(
    "value", [math.nan, math.inf, -math.inf, "1.0", True, None, 10**400, -(10**400)]
)
def test_insert_rejects_invalid_samples(value: object) -> None:
    digest = TDigest()
    digest.insert(1.0)

    with pytest.raises(InvalidInputError):
        digest.insert(value)  # type: ignore[arg-type]

    assert len(digest) == 1
    assert digest.centroids[0].mean == 1.0


def test_insert_many_rejects_non_positive_count() -> None:
    digest = TDigest()

    with pytest.raises(InvalidInputError, match="count"):
        digest.insert_many(1.0, 0)
    with pytest.raises(InvalidInputError, match="count"):
        digest.insert_many(1.0, 1.5)  # type: ignore[arg-type]

    assert digest.is_empty()


def test_extend_is_all_or_nothing() -> None:
    digest = TDigest()

    with pytest.raises(InvalidInputError):
        digest.extend([1.0, 2.0, math.nan])
    with pytest.raises(InvalidInputError):
        digest.extend(np.array([1.0, np.inf]))

    assert digest.is_empty()


@pytest.mark.parametrize("level", [-0.1, 1.1, math.nan, math.inf, "0.5", 10**400])
def test_quantile_rejects_out_of_range_levels(level: object) -> None:
    digest = TDigest.from_iterable([1.0, 2.0, 3.0])

    with pytest.raises(InvalidInputError):
        digest.quantile(level)  # type: ignore[arg-type]


@pytest.mark.parametrize("compression", [0, -10.0, math.nan, math.inf, 10**400])
def test_rejects_invalid_compression(compression: float) -> None:
    with pytest.raises(ConfigurationError, match="compression"):
        TDigest(compression)


def test_rejects_invalid_caps() -> None:
    with pytest.raises(ConfigurationError):
        TDigest(max_unmerged=0)
    with pytest.raises(ConfigurationError):
        TDigest(max_centroids=-1)


def test_configuration_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        TDigest(0)


def test_extend_rejects_non_real_arrays() -> None:
    digest = TDigest()

    with pytest.raises(InvalidInputError, match="dtype"):
        digest.extend(np.array([True, False]))
    with pytest.raises(InvalidInputError, match="dtype"):
        digest.extend(np.array([1.0 + 2.0j, 3.0]))

    assert digest.is_empty()


def test_extreme_samples_keep_a_finite_median() -> None:
    digest = TDigest(compression=0.01)
    digest.extend([-1e308] * 5 + [1e308] * 5)

    assert len(digest.centroids) == 1
    assert abs(digest.quantile(0.5)) <= 1e296


def test_capped_digest_with_samples_near_float_max() -> None:
    digest = TDigest.builder().max_centroids(1).max_unmerged(100).build()
    digest.extend([1e308, 1.5e308])

    assert digest.quantile(0.5) == pytest.approx(1.25e308)


def test_builder_applies_configuration() -> None:
    digest = TDigest.builder().compression(200).max_unmerged(16).max_centroids(64).build()

    assert digest.compression == 200.0
    assert digest.config.max_unmerged == 16
    assert digest.config.max_centroids == 64

    digest.extend(float(value) for value in range(1_000))
    assert len(digest.centroids) <= 64
    assert len(digest) == 1_000
    _assert_sorted(digest)


def test_quantiles_view_is_a_stable_snapshot() -> None:
    digest = TDigest.from_iterable([1.0, 2.0, 3.0, 4.0, 5.0])
    quantiles = digest.quantiles()
    digest.insert(1_000.0)

    assert len(quantiles) == 5
    assert quantiles.get(0.0) == 1.0
    assert quantiles.get(0.5) == 3.0
    assert quantiles.get(1.0) == 5.0
    assert digest.quantile(1.0) == 1_000.0


def test_quantiles_view_serves_concurrent_readers() -> None:
    rng = np.random.default_rng(23)
    digest = TDigest.from_iterable(rng.random(20_000))
    quantiles = digest.quantiles()
    levels = list(np.linspace(0.0, 1.0, 101))
    expected = [quantiles.get(level) for level in levels]

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(quantiles.get, levels))

    assert results == expected


def test_quantiles_view_of_empty_digest_raises() -> None:
    quantiles = TDigest().quantiles()

    with pytest.raises(EmptyDigestError):
        quantiles.get(0.5)


def test_clear_resets_samples_but_keeps_configuration() -> None:
    digest = TDigest(compression=42)
    digest.extend([1.0, 2.0])

    digest.clear()

    assert digest.is_empty()
    assert digest.centroids == ()
    assert digest.compression == 42.0


def test_equal_inputs_produce_equal_digests() -> None:
    assert TDigest.from_iterable([1.0, 2.0, 3.0, 4.0]) == TDigest.from_iterable(
        [1.0, 2.0, 3.0, 4.0]
    )
    assert TDigest.from_iterable([1.0, 2.0]) != TDigest.from_iterable([1.0, 3.0])


def test_repr_reports_size() -> None:
    digest = TDigest.from_iterable([1.0, 2.0])

    assert repr(digest) == "TDigest(compression=100.0, centroids=2, count=2)"
