"""MovieVerse favorites backend and client sync library."""

__version__ = "0.1.0"
