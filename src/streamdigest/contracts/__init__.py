from .reporter import Reporter
from .sample_source import SampleSource

__all__ = [
    "Reporter",
    "SampleSource",
]
