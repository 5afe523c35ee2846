# common/__init__.py
# Shared plumbing: error taxonomy, pub/sub, background queue, small io helpers.

__all__ = ["broadcast", "errors", "utils", "workers"]
