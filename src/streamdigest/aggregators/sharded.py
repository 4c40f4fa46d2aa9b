from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor

from streamdigest.contracts import SampleSource
from streamdigest.models import DigestConfig
from streamdigest.tdigest import TDigest

logger = logging.getLogger(__name__)

_AUTO_MAX_WORKERS = 4
"""Ceiling for auto-detected worker counts."""


def merge_digests(config: DigestConfig, digests: Iterable[TDigest]) -> TDigest:
    """Reduce partial digests into a fresh digest using *config*."""
    merged = TDigest.from_config(config)
    shard_count = 0
    for digest in digests:
        merged.merge(digest)
        shard_count += 1
    logger.debug(
        "Merged %d partial digests: count=%d.", shard_count, merged.count
    )
    return merged


class ShardedDigestBuilder:
    """Build one digest per sample source, then reduce them with merge.

    Each shard digest is created and filled by a single worker thread and
    only handed back once complete, so no digest is ever shared between
    writers.
    """

    def __init__(
        self, config: DigestConfig | None = None, num_workers: int | None = None
    ) -> None:
        self._config = config or DigestConfig.create()
        self._num_workers = num_workers

    @property
    def config(self) -> DigestConfig:
        return self._config

    def build(self, sources: Sequence[SampleSource]) -> TDigest:
        return merge_digests(self._config, self.build_shards(sources))

    def build_shards(self, sources: Sequence[SampleSource]) -> list[TDigest]:
        """Return one digest per source, in source order."""
        if not sources:
            return []
        num_workers = self._resolve_workers(len(sources))
        logger.info(
            "Building %d shard digests with %d workers.", len(sources), num_workers
        )
        if num_workers == 1:
            return [self._build_one(source) for source in sources]
        with ThreadPoolExecutor(max_workers=num_workers) as pool:
            return list(pool.map(self._build_one, sources))

    def _build_one(self, source: SampleSource) -> TDigest:
        digest = TDigest.from_config(self._config)
        for chunk in source.iter_chunks():
            digest.extend(chunk)
        logger.debug(
            "Built shard digest for %s: count=%d.", source.label, digest.count
        )
        return digest

    def _resolve_workers(self, shard_count: int) -> int:
        cpu_count = os.cpu_count() or 1
        workers = max(1, min(shard_count, cpu_count, _AUTO_MAX_WORKERS))
        if self._num_workers is not None:
            workers = min(workers, max(1, self._num_workers))
        return workers
