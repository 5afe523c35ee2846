# gateway/__init__.py
# Reasoning gateway contract, timeout/retry wrapper and the scripted offline gateway.

from .base import CallableGateway, GenerateOptions, ReasoningGateway
from .client import StructuredGateway, parse_json_object
from .schema import validate_reply
from .scripted import ScriptedGateway

__all__ = [
    "CallableGateway", "GenerateOptions", "ReasoningGateway",
    "StructuredGateway", "parse_json_object", "validate_reply", "ScriptedGateway",
]
