"""memweave - Memory orchestration across metadata, vector and graph stores."""

__version__ = "0.1.0"
