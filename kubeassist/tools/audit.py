"""Append-only JSONL audit log for mutating tool calls, with size-based rotation."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from kubeassist.config import AuditConfig

logger = logging.getLogger(__name__)


class AuditLog:
    def __init__(
        self,
        path: str | Path,
        *,
        max_size_mb: int = 10,
        keep_files: int = 5,
    ):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max_size_mb * 1024 * 1024
        self.keep_files = keep_files
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, cfg: AuditConfig) -> AuditLog | None:
        if not cfg.enabled:
            return None
        return cls(cfg.path, max_size_mb=cfg.max_size_mb, keep_files=cfg.keep_files)

    async def record(
        self,
        *,
        actor: str,
        cluster_id: str,
        action: str,
        target: str,
        parameters: dict[str, Any],
        outcome: str,
        error: str | None = None,
        duration_ms: int = 0,
        tool_call_id: str = "",
    ) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "actor": actor,
            "cluster_id": cluster_id,
            "action": action,
            "target": target,
            "parameters": parameters,
            "outcome": outcome,
            "error": error,
            "duration_ms": duration_ms,
            "tool_call_id": tool_call_id,
        }
        line = json.dumps(entry, sort_keys=True, default=str) + "\n"
        async with self._lock:
            self._rotate_if_needed()
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.flush()

    def _rotate_if_needed(self) -> None:
        if not self.path.exists() or self.path.stat().st_size < self.max_bytes:
            return

        for i in range(self.keep_files - 1, 0, -1):
            src = self.path.with_suffix(self.path.suffix + f".{i}")
            dst = self.path.with_suffix(self.path.suffix + f".{i + 1}")
            if src.exists():
                src.replace(dst)

        self.path.replace(self.path.with_suffix(self.path.suffix + ".1"))
        logger.debug("Rotated audit log %s", self.path)
