# gateway/schema.py
# JSON Schema validation for structured gateway replies (strict callers only).

from __future__ import annotations

from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator

from common.errors import MalformedResponse

MAX_REPORTED = 5


def schema_errors(schema: Dict[str, Any], instance: Any) -> List[str]:
    """Readable `$.path: message` lines, ordered by path."""
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in e.path])
    out: List[str] = []
    for e in errors:
        path = "$" + "".join(f"[{p!r}]" if isinstance(p, int) else f".{p}" for p in e.path)
        out.append(f"{path}: {e.message}")
    return out


def validate_reply(schema: Dict[str, Any], instance: Any, *, raw: Optional[str] = None) -> None:
    """Raise MalformedResponse when `instance` does not satisfy `schema`."""
    msgs = schema_errors(schema, instance)
    if not msgs:
        return
    more = "" if len(msgs) <= MAX_REPORTED else f" (+{len(msgs) - MAX_REPORTED} more)"
    raise MalformedResponse("schema validation failed: " + "; ".join(msgs[:MAX_REPORTED]) + more, raw=raw)


__all__ = ["schema_errors", "validate_reply"]
