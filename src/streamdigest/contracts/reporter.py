from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from streamdigest.models import DigestSummary


class Reporter(ABC):
    """Render digest summaries for presentation."""

    @abstractmethod
    def render(self, summaries: Sequence[DigestSummary]) -> None:
        """Render the summaries to the configured output."""
        raise NotImplementedError
