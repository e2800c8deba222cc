"""In-memory DIMM error database with threshold triggers."""

__version__ = "0.1.0"
