"""
Interaction audit log — one row per answered request.

Hosts that must keep a record of who asked what (course staff, compliance)
enable `logging.audit_enabled`. The CompletionService hands every
answered request to an AuditLogSink: provider answers, cache hits and
provider failures (the failure is stored as the result JSON). Requests
rejected before a provider is resolved are not recorded. Sink failures
are logged and never affect the response.

JSONLinesAuditLog appends one JSON object per line to a file per UTC day:

    logs/audit/interactions-2026-10-18.jsonl
"""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class InteractionLog:
    """Audit row for one question/answer exchange."""

    message: str
    response: str
    provider: str
    model: str
    user_id: Optional[int] = None
    course_id: Optional[int] = None
    context_id: Optional[int] = None
    instance_id: Optional[int] = None
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_context(
        cls,
        context: Optional[dict[str, Any]],
        **values: Any,
    ) -> InteractionLog:
        """Build a row from caller-supplied ids plus the exchange itself."""
        context = context or {}
        return cls(
            user_id=context.get("user_id"),
            course_id=context.get("course_id"),
            context_id=context.get("context_id"),
            instance_id=context.get("instance_id"),
            **values,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AuditLogSink(ABC):
    """Destination for interaction rows."""

    @abstractmethod
    def record(self, entry: InteractionLog) -> None:
        """Persist one row. May raise; callers treat failures as non-fatal."""


class JSONLinesAuditLog(AuditLogSink):
    """Appends rows to a dated JSON-lines file under `log_dir`."""

    def __init__(self, log_dir: str | Path = "logs/audit"):
        self.log_dir = Path(log_dir)
        self._lock = threading.Lock()

    def path_for(self, created_at: float) -> Path:
        day = datetime.fromtimestamp(created_at, tz=timezone.utc).strftime("%Y-%m-%d")
        return self.log_dir / f"interactions-{day}.jsonl"

    def record(self, entry: InteractionLog) -> None:
        path = self.path_for(entry.created_at)
        line = json.dumps(entry.to_dict(), default=str, ensure_ascii=False)
        with self._lock:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        logger.debug("audit_recorded", extra={"path": str(path)})
