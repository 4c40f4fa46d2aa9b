from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    import numpy as np
    from numpy.typing import NDArray


class SampleSource(ABC):
    """Stream numeric samples in bounded chunks."""

    @property
    @abstractmethod
    def label(self) -> str:
        """Human-readable name of the source."""
        raise NotImplementedError

    @abstractmethod
    def iter_chunks(self) -> Iterator[NDArray[np.float64]]:
        """Yield one-dimensional float64 arrays of samples."""
        raise NotImplementedError
