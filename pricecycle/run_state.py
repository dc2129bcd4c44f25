"""Resumable batch record (runstate.json): which items of the current batch are already resolved."""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .metrics import STATUS_NOT_RUN

log = logging.getLogger(__name__)

RUN_STATE_FILENAME = "runstate.json"


@dataclass
class RunItemState:
    item_id: str
    title: str = ""
    status: str = STATUS_NOT_RUN
    message: str = ""
    executed_at: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status != STATUS_NOT_RUN

    def resolve(self, status: str, message: str, executed_at: Optional[str] = None) -> None:
        self.status = status
        self.message = message
        if executed_at is not None:
            self.executed_at = executed_at

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "title": self.title,
            "status": self.status,
            "message": self.message,
            "executedAt": self.executed_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RunItemState":
        return cls(
            item_id=str(d.get("itemId") or ""),
            title=str(d.get("title") or ""),
            status=str(d.get("status") or STATUS_NOT_RUN),
            message=str(d.get("message") or ""),
            executed_at=d.get("executedAt"),
        )


@dataclass
class RunState:
    session_id: str
    started_at: str
    target_count: int = 0
    current_index: int = 0
    is_completed: bool = False
    items: list[RunItemState] = field(default_factory=list)

    @classmethod
    def create_new(cls, selection: Iterable[tuple[str, str]], now: Optional[datetime] = None) -> "RunState":
        """Fresh state over (item_id, title) pairs, every item not-run."""
        now = now or datetime.now()
        items = [RunItemState(item_id=item_id, title=title or "") for item_id, title in selection]
        return cls(
            session_id=now.strftime("%Y%m%d%H%M%S"),
            started_at=now.strftime("%Y-%m-%d %H:%M:%S"),
            target_count=len(items),
            items=items,
        )

    def find(self, item_id: str) -> Optional[RunItemState]:
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None

    def ensure_item(self, item_id: str, title: str) -> RunItemState:
        """Entry for item_id; selected items missing from a resumed state are appended as not-run."""
        found = self.find(item_id)
        if found is None:
            found = RunItemState(item_id=item_id, title=title or "")
            self.items.append(found)
            self.target_count = len(self.items)
        return found

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "startedAt": self.started_at,
            "targetCount": self.target_count,
            "currentIndex": self.current_index,
            "isCompleted": self.is_completed,
            "items": [i.to_dict() for i in self.items],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RunState":
        items = [RunItemState.from_dict(i) for i in (d.get("items") or []) if isinstance(i, dict)]
        return cls(
            session_id=str(d.get("sessionId") or ""),
            started_at=str(d.get("startedAt") or ""),
            target_count=int(d.get("targetCount") or len(items)),
            current_index=int(d.get("currentIndex") or 0),
            is_completed=bool(d.get("isCompleted")),
            items=items,
        )


class RunStateStore:
    """Single-writer JSON document; saves replace the whole file atomically."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> Optional[RunState]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("run state document is not an object")
            return RunState.from_dict(data)
        except (OSError, ValueError) as e:
            log.warning("runstate load failed: %s", e)
            return None

    def save(self, state: RunState) -> bool:
        """Write via temp file + os.replace. Failures are logged, never raised."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            log.warning("runstate save failed: %s", e)
            return False

    def load_or_create(self, selection: list[tuple[str, str]], now: Optional[datetime] = None) -> tuple[RunState, bool]:
        """
        Resume the stored state unless it is absent or completed; otherwise start fresh.
        Returns (state, resumed).
        """
        existing = self.load()
        if existing is None or existing.is_completed:
            return RunState.create_new(selection, now=now), False
        for item_id, title in selection:
            existing.ensure_item(item_id, title)
        return existing, True
