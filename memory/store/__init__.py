# memory/store/__init__.py
# Key-value persistence backends.

from .base import KeyValueStore
from .filekv import FileKV
from .inmem import InMemoryKV

__all__ = ["KeyValueStore", "FileKV", "InMemoryKV"]
