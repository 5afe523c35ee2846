# memory/store/base.py
# Key-value persistence interface (Protocol) shared by stream memory, meta-policies, and the training log.

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Durable string key -> string value store.

    Values are whole JSON documents (the full stream map, the policy list, ...).
    set() must be durable once it returns; callers treat any exception as a
    persistence failure and keep their in-memory state authoritative.
    """

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key was never set."""

    def set(self, key: str, value: str) -> None:
        """Replace the value for key."""

    def delete(self, key: str) -> None:
        """Remove key if present (no error when absent)."""
