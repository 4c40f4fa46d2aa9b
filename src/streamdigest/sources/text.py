from __future__ import annotations

import contextlib
import errno
import logging
import math
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import TextIO

import numpy as np
from numpy.typing import NDArray

from streamdigest.contracts import SampleSource
from streamdigest.errors import InvalidInputError

logger = logging.getLogger(__name__)

STDIN_PATH = "-"


class TextSampleSource(SampleSource):
    """Stream newline-delimited numbers from a file or stdin.

    Blank lines and lines starting with ``#`` are skipped. Each chunk holds
    at most *chunk_size* samples, so memory stays bounded for large files.
    """

    def __init__(self, path: str | Path, chunk_size: int = 4096) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive.")
        self._path = path if path == STDIN_PATH else Path(path)
        self._chunk_size = chunk_size

    @property
    def label(self) -> str:
        return "<stdin>" if self._path == STDIN_PATH else str(self._path)

    def iter_chunks(self) -> Iterator[NDArray[np.float64]]:
        with self._open() as handle:
            logger.info("Starting sample stream for %s.", self.label)
            chunk: list[float] = []
            sample_count = 0
            try:
                for line_number, line in enumerate(handle, start=1):
                    token = line.strip()
                    if not token or token.startswith("#"):
                        continue
                    chunk.append(self._parse(token, line_number))
                    if len(chunk) >= self._chunk_size:
                        sample_count += len(chunk)
                        yield self._emit(chunk)
                        chunk = []
            except UnicodeDecodeError as exc:
                logger.error("Undecodable text in %s: %s.", self.label, exc)
                raise InvalidInputError(f"{self.label}: not valid UTF-8 text") from exc
            if chunk:
                sample_count += len(chunk)
                yield self._emit(chunk)
            logger.info(
                "Finished sample stream for %s: %d samples.", self.label, sample_count
            )

    def _open(self) -> contextlib.AbstractContextManager[TextIO]:
        if self._path == STDIN_PATH:
            return contextlib.nullcontext(sys.stdin)
        path = Path(self._path)
        if not path.is_file():
            logger.error("Sample file not found: %s.", path)
            raise FileNotFoundError(errno.ENOENT, "Sample file not found", str(path))
        return path.open("r", encoding="utf-8")

    def _parse(self, token: str, line_number: int) -> float:
        try:
            value = float(token)
        except ValueError:
            logger.error(
                "Unparsable sample %r at %s:%d.", token, self.label, line_number
            )
            raise InvalidInputError(
                f"{self.label}:{line_number}: not a number: {token!r}"
            ) from None
        if not math.isfinite(value):
            logger.error(
                "Non-finite sample %r at %s:%d.", token, self.label, line_number
            )
            raise InvalidInputError(
                f"{self.label}:{line_number}: sample must be finite, got {token!r}"
            )
        return value

    def _emit(self, chunk: list[float]) -> NDArray[np.float64]:
        values = np.asarray(chunk, dtype=np.float64)
        logger.debug("Yielding chunk of %d samples from %s.", values.size, self.label)
        return values
