"""Cycle options/results, per-item outcomes, batch summary and the CSV result log."""
import csv
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

log = logging.getLogger(__name__)

STATUS_NOT_RUN = "not-run"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"
STATUS_CANCELED = "canceled"

RESULT_LOG_HEADER = [
    "ItemId", "Title", "ItemUrl", "BasePrice", "NewPrice", "Result",
    "Message", "ExecutedAt", "Step", "RetryUsed", "EvidencePath",
]


@dataclass
class PriceUpdateOptions:
    wait_after_pause_sec: int = 30
    wait_after_resume_sec: int = 10


@dataclass
class PriceUpdateResult:
    last_step: str = "Init"
    retry_used: int = 0


@dataclass
class ItemOutcome:
    """Tagged per-item result handed from the cycle to the batch loop."""
    status: str  # success, failed, skipped, canceled
    message: str
    base_price: int
    new_price: int
    step: str
    retry_used: int = 0
    evidence_path: str = ""


@dataclass
class BatchSummary:
    session_id: str
    started_at: str
    finished_at: str = ""
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    canceled: int = 0
    completed: bool = False
    result_log: Optional[str] = None
    failures: list[dict] = field(default_factory=list)

    def count(self, status: str) -> None:
        if status == STATUS_SUCCESS:
            self.success += 1
        elif status == STATUS_SKIPPED:
            self.skipped += 1
        elif status == STATUS_CANCELED:
            self.canceled += 1
        else:
            self.failed += 1

    def line(self) -> str:
        return (
            f"Total:{self.total} / Success:{self.success} / Fail:{self.failed} "
            f"/ Skip:{self.skipped} / Cancel:{self.canceled}"
        )

    def to_dict(self) -> dict:
        return asdict(self)


def write_summary(out_dir: Path, summary: BatchSummary) -> Path:
    """Write <session>_summary.json next to the CSV logs."""
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"{summary.session_id}_summary.json"
    with open(path, "w", encoding="utf-8") as f:
        json.dump(summary.to_dict(), f, indent=2, ensure_ascii=False)
    log.debug("Wrote %s", path)
    return path


def _text(value: Optional[str]) -> str:
    return (value or "").replace("\r", " ").replace("\n", " ")


class ResultLog:
    """One CSV per batch: header first, then one quoted line per item outcome."""

    def __init__(self, path: Path):
        self.path = path
        self._fh: Optional[TextIO] = None
        self._writer = None

    def open(self) -> "ResultLog":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "w", encoding="utf-8", newline="")
        self._writer = csv.writer(self._fh, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
        self._writer.writerow(RESULT_LOG_HEADER)
        self._fh.flush()
        return self

    def write(
        self,
        item_id: str,
        title: str,
        item_url: str,
        outcome: ItemOutcome,
        executed_at: datetime,
    ) -> None:
        if self._writer is None:
            raise RuntimeError("result log is not open")
        self._writer.writerow([
            _text(item_id),
            _text(title),
            _text(item_url),
            int(outcome.base_price),
            int(outcome.new_price),
            _text(outcome.status),
            _text(outcome.message),
            executed_at.strftime("%Y-%m-%d %H:%M:%S"),
            _text(outcome.step),
            int(outcome.retry_used),
            _text(outcome.evidence_path),
        ])
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._writer = None

    def __enter__(self) -> "ResultLog":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
