"""Store implementations package."""
from .memory import (
    InMemoryContentStore,
    InMemoryExperimentStore,
    InMemoryTelemetrySink,
    InMemoryTrendingStore,
)

__all__ = [
    "InMemoryContentStore",
    "InMemoryExperimentStore",
    "InMemoryTelemetrySink",
    "InMemoryTrendingStore",
]
