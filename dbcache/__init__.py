"""Read-through caching between a relational query executor and a key-value store."""

__version__ = "1.0.0"
