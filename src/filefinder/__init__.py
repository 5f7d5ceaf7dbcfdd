"""FileFinder - incremental local filename search."""

__version__ = "0.1.0"
