from __future__ import annotations

import json
import socket
import ssl
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..errors import UpstreamError, UpstreamTimeout

JSON_ONLY_INSTRUCTION = (
    "Respond with a single JSON object and nothing else. "
    "It must match this JSON schema:\n"
)


class BaseAdapter(ABC):
    """Adapter interface for remote or local generative-model backends."""

    label = "Provider"

    def __init__(self, name: str, settings: Optional[Dict] = None) -> None:
        self.name = name
        self.settings = settings or {}

    @property
    @abstractmethod
    def type(self) -> str:
        raise NotImplementedError

    def is_available(self) -> bool:
        return True

    def resource_hint(self) -> str:
        return "remote"

    @abstractmethod
    def complete(self, prompt: str, system: str | None = None) -> str:
        raise NotImplementedError

    def complete_json(self, prompt: str, schema: Dict[str, Any], system: str | None = None) -> str:
        """Ask for a JSON object matching ``schema``; returns the raw text.

        Providers with a native JSON mode override this.
        """
        guided = f"{prompt}\n\n{JSON_ONLY_INSTRUCTION}{json.dumps(schema, indent=2)}"
        return self.complete(guided, system=system)

    def _timeout(self) -> float:
        return float(self.settings.get("timeout") or 60)

    def _post_json(self, url: str, payload: dict, headers: Dict[str, str]) -> dict:
        data = json.dumps(payload).encode("utf-8")
        all_headers = {"Content-Type": "application/json", **headers}
        req = urllib.request.Request(url, data=data, headers=all_headers, method="POST")
        timeout = self._timeout()
        try:
            with urllib.request.urlopen(req, context=ssl.create_default_context(), timeout=timeout) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
            raise UpstreamError(f"{self.label} request failed: {exc.code} {detail}") from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, (socket.timeout, TimeoutError)):
                raise UpstreamTimeout(f"{self.label} request timed out after {timeout:g}s") from exc
            raise UpstreamError(f"{self.label} unreachable: {exc.reason}") from exc
        except (socket.timeout, TimeoutError) as exc:
            raise UpstreamTimeout(f"{self.label} request timed out after {timeout:g}s") from exc
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise UpstreamError(f"{self.label} returned invalid JSON: {exc}") from exc
