from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlparse

from ..errors import UpstreamError
from .base import BaseAdapter


class OpenAIAdapter(BaseAdapter):
    """Chat-completions adapter; also works with OpenAI-compatible local servers."""

    label = "OpenAI"

    @property
    def type(self) -> str:
        return "openai"

    def is_available(self) -> bool:
        if self._requires_api_key():
            return bool(self._api_key())
        return True

    def resource_hint(self) -> str:
        return "local" if self._is_local_base_url() else "remote"

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        payload = self._build_payload(prompt, system=system)
        return self._extract_text(self._chat(payload))

    def complete_json(self, prompt: str, schema: Dict[str, Any], system: Optional[str] = None) -> str:
        payload = self._build_payload(prompt, system=system)
        payload["response_format"] = {
            "type": "json_schema",
            "json_schema": {"name": "architect_plan", "schema": schema},
        }
        return self._extract_text(self._chat(payload))

    def _api_key(self) -> Optional[str]:
        return self.settings.get("api_key")

    def _base_url(self) -> str:
        return str(self.settings.get("base_url") or "https://api.openai.com/v1").rstrip("/")

    def _model(self) -> str:
        return str(self.settings.get("model") or "gpt-4o-mini")

    def _build_payload(self, prompt: str, system: Optional[str]) -> dict:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {"model": self._model(), "messages": messages}
        temperature = self.settings.get("temperature")
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    def _chat(self, payload: dict) -> dict:
        api_key = self._api_key()
        if self._requires_api_key() and not api_key:
            raise UpstreamError("OpenAI API key missing (set OPENAI_API_KEY)")
        headers = {}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        headers.update(self._extra_headers())
        return self._post_json(f"{self._base_url()}/chat/completions", payload, headers)

    def _extra_headers(self) -> dict:
        extra = self.settings.get("headers") or {}
        if not isinstance(extra, dict):
            return {}
        return {str(k): str(v) for k, v in extra.items() if v is not None}

    def _requires_api_key(self) -> bool:
        # Local base URLs don't need a key unless explicitly required.
        setting = self.settings.get("require_api_key")
        if setting is not None:
            return bool(setting)
        return not self._is_local_base_url()

    def _is_local_base_url(self) -> bool:
        try:
            parsed = urlparse(self._base_url())
        except ValueError:
            return False
        host = (parsed.hostname or "").lower()
        return host in {"localhost", "0.0.0.0", "::1"} or host.startswith("127.")

    @staticmethod
    def _extract_text(data: dict) -> str:
        choices = data.get("choices") or []
        if not choices:
            raise UpstreamError("OpenAI returned no choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if isinstance(content, list):
            return "".join(
                item.get("text", "")
                for item in content
                if isinstance(item, dict) and item.get("type") == "text"
            )
        return str(content or "")
