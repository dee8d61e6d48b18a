"""Code context engine: incremental semantic indexing and ranked context assembly."""

__version__ = "0.1.0"
