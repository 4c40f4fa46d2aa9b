from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from streamdigest.errors import InvalidInputError
from streamdigest.models import Centroid, DigestSnapshot
from streamdigest.tdigest import TDigest

logger = logging.getLogger(__name__)


def to_snapshot(digest: TDigest) -> DigestSnapshot:
    """Capture *digest* after compacting any pending centroids."""
    centroids = digest.centroids
    return DigestSnapshot(
        config=digest.config,
        centroids=[(centroid.mean, centroid.weight) for centroid in centroids],
        count=digest.count,
    )


def from_snapshot(snapshot: DigestSnapshot) -> TDigest:
    return TDigest.from_centroids(
        (Centroid(mean, weight) for mean, weight in snapshot.centroids),
        config=snapshot.config,
    )


def to_json(digest: TDigest) -> str:
    return to_snapshot(digest).model_dump_json()


def from_json(payload: str | bytes) -> TDigest:
    try:
        snapshot = DigestSnapshot.model_validate_json(payload)
    except ValidationError as exc:
        logger.error("Rejected digest snapshot: %s", exc)
        raise InvalidInputError(f"invalid digest snapshot: {exc}") from exc
    return from_snapshot(snapshot)


def save(digest: TDigest, path: str | Path) -> None:
    target = Path(path)
    target.write_text(to_json(digest), encoding="utf-8")
    logger.info("Saved digest snapshot count=%d to %s.", digest.count, target)


def load(path: str | Path) -> TDigest:
    source = Path(path)
    digest = from_json(source.read_bytes())
    logger.info("Loaded digest snapshot count=%d from %s.", digest.count, source)
    return digest
