# memory/__init__.py
# Stream memory: tiered retrieval over per-simulation frame logs.

__all__ = ["config", "models", "streams", "store"]
