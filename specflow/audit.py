from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, List


class AuditLog:
    """Append-only JSON-lines ledger of server events."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def event(self, event: str, payload: Dict[str, Any]) -> None:
        record = {
            "ts": time.time(),
            "event": event,
            **payload,
        }
        with self._lock:
            # The ledger is best-effort; a full disk must not fail the request.
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(record, ensure_ascii=True, default=str) + "\n")
            except OSError:
                pass

    def tail(self, limit: int) -> List[Dict[str, Any]]:
        if limit <= 0:
            return []
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError:
            return []
        out = []
        for line in lines[-limit:]:
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return out
