# gateway/client.py
# Wraps a ReasoningGateway with a per-attempt timeout, bounded exponential-backoff retries, and JSON decoding.

from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.errors import GatewayAuthError, GatewayError, GatewayTimeout, MalformedResponse
from observability.log import get_logger
from observability.metrics import note_gateway

from .base import GenerateOptions, ReasoningGateway
from .config import GATEWAYCFG, GatewayConfig
from .schema import validate_reply

log = get_logger(__name__)

# Failures retrying can't fix
NON_RETRIABLE = (GatewayAuthError, MalformedResponse)


def _strip_fences(text: str) -> str:
    """Some providers wrap JSON in ``` fences even in JSON mode."""
    s = text.strip()
    if s.startswith("```"):
        s = s.split("\n", 1)[1] if "\n" in s else ""
        if s.rstrip().endswith("```"):
            s = s.rstrip()[:-3]
    return s.strip()


def parse_json_object(text: Optional[str]) -> Dict[str, Any]:
    """Decode a gateway reply that must be a JSON object; anything else is MalformedResponse."""
    if text is None or not str(text).strip():
        raise MalformedResponse("empty response", raw=text)
    try:
        obj = json.loads(_strip_fences(str(text)))
    except ValueError as e:
        raise MalformedResponse(f"invalid JSON: {e}", raw=text) from e
    if not isinstance(obj, dict):
        raise MalformedResponse(f"expected JSON object, got {type(obj).__name__}", raw=text)
    return obj


class StructuredGateway:
    """
    Caller-facing gateway used by the dispatcher and the supervisor.

      - every attempt runs on its own daemon thread bounded by cfg.TIMEOUT_S; a hung
        call keeps only that thread, the caller gets GatewayTimeout and the late
        result is dropped. Later attempts never queue behind it.
      - up to cfg.RETRIES extra attempts with exponential backoff
      - generate_json() decodes the reply and raises MalformedResponse (no retry)
    """

    def __init__(
        self,
        gateway: ReasoningGateway,
        *,
        cfg: GatewayConfig = GATEWAYCFG,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.gateway = gateway
        self.cfg = cfg
        self._mu = threading.Lock()
        self._abandoned: List[threading.Thread] = []
        self._sleep = sleep

    @property
    def model_name(self) -> str:
        return str(getattr(self.gateway, "model_name", "unknown"))

    @property
    def hung_calls(self) -> int:
        """Timed-out provider calls whose threads are still running."""
        with self._mu:
            self._abandoned = [t for t in self._abandoned if t.is_alive()]
            return len(self._abandoned)

    def close(self) -> None:
        hung = self.hung_calls
        if hung:
            log.warning("gateway_close_with_hung_calls", hung=hung)

    # ----------------- Public API -----------------

    def generate(self, prompt: str, options: Optional[GenerateOptions] = None, *, timeout_s: Optional[float] = None) -> str:
        opts = options or GenerateOptions()
        attempts = max(0, int(self.cfg.RETRIES)) + 1
        delay = float(self.cfg.BACKOFF_S)
        last: Optional[BaseException] = None

        for i in range(1, attempts + 1):
            try:
                return self._attempt(prompt, opts, timeout_s)
            except NON_RETRIABLE:
                raise
            except GatewayError as e:
                last = e
            except Exception as e:
                last = GatewayError(f"{type(e).__name__}: {e}")
                last.__cause__ = e
            if i < attempts:
                log.warning("gateway_retry", attempt=i, attempts_left=attempts - i, error=str(last))
                self._sleep(delay)
                delay *= float(self.cfg.BACKOFF_FACTOR)

        assert last is not None
        raise last

    def generate_json(self, prompt: str, options: Optional[GenerateOptions] = None, *,
                      timeout_s: Optional[float] = None, strict: bool = False) -> Tuple[Dict[str, Any], str]:
        """
        Returns (decoded object, raw text). With strict=True the object must also
        satisfy options.response_schema.
        """
        raw = self.generate(prompt, options, timeout_s=timeout_s)
        try:
            obj = parse_json_object(raw)
            if strict and options is not None and options.response_schema:
                validate_reply(options.response_schema, obj, raw=raw)
        except MalformedResponse:
            note_gateway("malformed")
            raise
        return obj, raw

    # ----------------- Internals -----------------

    def _attempt(self, prompt: str, opts: GenerateOptions, timeout_s: Optional[float]) -> str:
        limit = float(timeout_s if timeout_s is not None else self.cfg.TIMEOUT_S)
        t0 = time.perf_counter()
        done = threading.Event()
        box: Dict[str, Any] = {}

        def _call() -> None:
            try:
                box["text"] = self.gateway.generate(prompt, opts)
            except Exception as e:
                box["error"] = e
            finally:
                done.set()

        worker = threading.Thread(target=_call, name="gateway-call", daemon=True)
        worker.start()
        if not done.wait(limit):
            with self._mu:
                self._abandoned.append(worker)
            note_gateway("timeout", time.perf_counter() - t0)
            raise GatewayTimeout(f"gateway call exceeded {limit:.1f}s")

        err = box.get("error")
        if isinstance(err, GatewayAuthError):
            note_gateway("auth_error", time.perf_counter() - t0)
            raise err
        if err is not None:
            note_gateway("error", time.perf_counter() - t0)
            raise err
        note_gateway("ok", time.perf_counter() - t0)
        text = box.get("text")
        return "" if text is None else str(text)


__all__ = ["StructuredGateway", "parse_json_object", "NON_RETRIABLE"]
