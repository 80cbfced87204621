"""Discovery ranking, trending and experimentation engine."""

__version__ = "2.0.0"
