"""Durable per-conversation message history as JSONL files.

The conversation store evicts idle threads after a day; this store keeps an
append-only audit copy that survives eviction. It is written on every append
and read only on request, never while classifying a turn.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from core.conversation_memory import Message

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class JsonlHistoryStore:
    """One ``<conversation_id>.jsonl`` file per conversation under ``base_dir``."""

    def __init__(self, base_dir: Path | str) -> None:
        self._base_dir = Path(base_dir)

    def path_for(self, conversation_id: str) -> Path:
        name = conversation_id if _SAFE_ID.match(conversation_id or "") else hashlib.sha256(conversation_id.encode("utf-8")).hexdigest()[:32]
        return self._base_dir / f"{name}.jsonl"

    async def append(self, conversation_id: str, role: str, content: Any) -> None:
        record = {
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        }
        await asyncio.to_thread(self._append_line, self.path_for(conversation_id), record)

    async def list(self, conversation_id: str) -> List[Message]:
        rows = await asyncio.to_thread(self._read_lines, self.path_for(conversation_id))
        return [Message.from_dict(row) for row in rows]

    @staticmethod
    def _append_line(path: Path, record: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, ensure_ascii=False, default=str))
            handle.write("\n")

    @staticmethod
    def _read_lines(path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        rows: List[Dict[str, Any]] = []
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    rows.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning("Skipping unreadable history line in %s", path)
                    continue
        return rows


__all__ = ["JsonlHistoryStore"]
