from __future__ import annotations

import json
from typing import Any, Dict

from .base import BaseAdapter


class EchoAdapter(BaseAdapter):
    """Offline adapter: answers with a canned reply or the prompt itself.

    Settings: ``reply`` (text answer), ``json_reply`` (object returned in
    structured mode), ``prefix`` (prepended to echoed prompts).
    """

    label = "Echo"

    @property
    def type(self) -> str:
        return "echo"

    def complete(self, prompt: str, system: str | None = None) -> str:
        reply = self.settings.get("reply")
        if reply is not None:
            return str(reply)
        prefix = str(self.settings.get("prefix", ""))
        if system:
            return f"{prefix}{system}\n{prompt}"
        return f"{prefix}{prompt}"

    def complete_json(self, prompt: str, schema: Dict[str, Any], system: str | None = None) -> str:
        canned = self.settings.get("json_reply")
        if canned is not None:
            return json.dumps(canned)
        return super().complete_json(prompt, schema, system=system)

    def resource_hint(self) -> str:
        return "local"
