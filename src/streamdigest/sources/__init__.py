from .text import TextSampleSource

__all__ = ["TextSampleSource"]
