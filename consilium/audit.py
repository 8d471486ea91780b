"""Append-only JSONL audit trail of model calls."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
import json

MODEL_CALL = "model.call"


@dataclass(frozen=True)
class ModelCallEvent:
    """One provider call as recorded in the audit trail."""

    model_id: str
    ok: bool
    duration_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.duration_ms is not None:
            data["duration_ms"] = round(self.duration_ms, 2)
        return data


@dataclass
class AuditLog:
    path: Path

    def log(self, event: str, data: Dict[str, Any] | None = None) -> None:
        """Append one line. Blocking file I/O; async callers go through a thread."""
        line = json.dumps({
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "event": event,
            "data": data or {},
        })
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def record(self, call: ModelCallEvent) -> None:
        self.log(MODEL_CALL, call.to_dict())

    def read(self, event: str | None = None) -> list[Dict[str, Any]]:
        if not self.path.exists():
            return []
        entries = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            entry = json.loads(line)
            if event is None or entry.get("event") == event:
                entries.append(entry)
        return entries
