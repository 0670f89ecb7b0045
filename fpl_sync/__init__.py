"""FPL sync and cache-consistency pipeline."""

__version__ = "1.0.0"
