from __future__ import annotations

from typing import Any, Dict, Optional

from ..errors import UpstreamError
from .base import BaseAdapter

# Keys the Gemini responseSchema (OpenAPI subset) understands.
_SCHEMA_KEYS = {"type", "properties", "required", "items", "description", "enum", "nullable"}


class GeminiAdapter(BaseAdapter):
    label = "Gemini"

    @property
    def type(self) -> str:
        return "gemini"

    def is_available(self) -> bool:
        return bool(self._api_key())

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        payload = self._build_payload(prompt, system=system)
        return self._extract_text(self._generate(payload))

    def complete_json(self, prompt: str, schema: Dict[str, Any], system: Optional[str] = None) -> str:
        payload = self._build_payload(prompt, system=system)
        payload["generationConfig"]["responseMimeType"] = "application/json"
        payload["generationConfig"]["responseSchema"] = self._to_gemini_schema(schema)
        return self._extract_text(self._generate(payload))

    def _api_key(self) -> Optional[str]:
        return self.settings.get("api_key")

    def _base_url(self) -> str:
        return str(
            self.settings.get("base_url") or "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")

    def _model(self) -> str:
        return str(self.settings.get("model") or "gemini-2.5-flash")

    def _build_payload(self, prompt: str, system: Optional[str]) -> dict:
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        temperature = self.settings.get("temperature")
        if temperature is not None:
            payload["generationConfig"]["temperature"] = temperature
        return payload

    def _generate(self, payload: dict) -> dict:
        api_key = self._api_key()
        if not api_key:
            raise UpstreamError("Gemini API key missing (set GEMINI_API_KEY)")
        url = f"{self._base_url()}/models/{self._model()}:generateContent"
        return self._post_json(url, payload, {"x-goog-api-key": api_key})

    @classmethod
    def _to_gemini_schema(cls, schema: Dict[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key, value in schema.items():
            if key not in _SCHEMA_KEYS:
                continue
            if key == "type":
                out["type"] = str(value).upper()
            elif key == "properties":
                out["properties"] = {k: cls._to_gemini_schema(v) for k, v in value.items()}
            elif key == "items":
                out["items"] = cls._to_gemini_schema(value)
            else:
                out[key] = value
        return out

    @staticmethod
    def _extract_text(data: dict) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            reason = feedback.get("blockReason") or "no candidates returned"
            raise UpstreamError(f"Gemini returned no answer: {reason}")
        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        text = "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict))
        if not text:
            reason = candidates[0].get("finishReason") or "empty response"
            raise UpstreamError(f"Gemini returned no text: {reason}")
        return text
