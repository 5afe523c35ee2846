# gateway/base.py
# Reasoning gateway contract: prompt + options in, text out. Providers live outside this repo.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable


@dataclass
class GenerateOptions:
    temperature: Optional[float] = None
    system_instruction: Optional[str] = None
    response_schema: Optional[Dict[str, Any]] = None   # when set, the reply must be a JSON object
    max_tokens: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ReasoningGateway(Protocol):
    """
    Opaque, fallible function from prompt to text.

    Implementations raise common.errors.GatewayError subclasses for provider
    failures (GatewayAuthError for rejected credentials); any other exception is
    treated as a retriable transport failure by StructuredGateway.
    """

    model_name: str

    def generate(self, prompt: str, options: GenerateOptions) -> str:
        ...


class CallableGateway:
    """Adapts a plain `fn(prompt, options) -> str` to the gateway contract."""

    def __init__(self, fn: Callable[[str, GenerateOptions], str], *, model_name: str = "callable") -> None:
        self._fn = fn
        self.model_name = model_name

    def generate(self, prompt: str, options: GenerateOptions) -> str:
        return self._fn(prompt, options)


__all__ = ["GenerateOptions", "ReasoningGateway", "CallableGateway"]
