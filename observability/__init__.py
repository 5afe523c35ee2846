# observability/__init__.py
# structlog setup and Prometheus metrics.

__all__ = ["log", "metrics"]
