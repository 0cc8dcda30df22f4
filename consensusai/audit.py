"""Structured JSONL transcript of a negotiation session."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List
import json
import threading
import time


@dataclass
class TranscriptLog:
    path: Path
    session_id: str = ""

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def log(self, event: str, data: Dict[str, Any] | None = None) -> None:
        payload = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "session_id": self.session_id,
            "event": event,
            "data": data or {},
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload) + "\n")

    def events(self, event: str | None = None) -> Iterator[Dict[str, Any]]:
        if not self.path.exists():
            return
        for line in self.path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            entry = json.loads(line)
            if event is None or entry.get("event") == event:
                yield entry

    def tail(self, limit: int = 20) -> List[Dict[str, Any]]:
        return list(self.events())[-limit:]
