"""Persisted user settings (settings.json) and data-directory layout."""
import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

log = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(".local")
DATA_DIR_ENV = "PRICECYCLE_HOME"
SETTINGS_FILENAME = "settings.json"

# Fixed pause after a failed / skipped / last item, seconds
COOLDOWN_SECONDS = 10


@dataclass
class AppSettings:
    start_row: int = 1
    end_row: int = 500
    search_text: str = ""
    rate_percent: int = 10
    daily_down_yen: int = 100
    wait_after_pause_sec: int = 30
    wait_after_resume_sec: int = 10
    item_gap_sec: int = 250
    retry_count: int = 2
    retry_wait_sec: int = 2

    def with_overrides(self, **overrides: Any) -> "AppSettings":
        """Copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in overrides.items() if v is not None and k in known})


@dataclass(frozen=True)
class DataPaths:
    root: Path

    @property
    def database(self) -> Path:
        return self.root / "app.db"

    @property
    def run_state(self) -> Path:
        return self.root / "runstate.json"

    @property
    def settings(self) -> Path:
        return self.root / SETTINGS_FILENAME

    @property
    def storage_state(self) -> Path:
        return self.root / "storageState.json"

    @property
    def listings(self) -> Path:
        return self.root / "listings.json"

    @property
    def operation_lock(self) -> Path:
        return self.root / ".operation.lock"

    @property
    def logs(self) -> Path:
        return self.root / "logs"

    @property
    def evidence(self) -> Path:
        return self.root / "logs" / "evidence"

    def ensure(self) -> "DataPaths":
        self.evidence.mkdir(parents=True, exist_ok=True)
        return self


def resolve_data_dir(explicit: Optional[Path] = None) -> DataPaths:
    """--data-dir wins, then $PRICECYCLE_HOME, then ./.local"""
    if explicit is not None:
        return DataPaths(explicit)
    env = (os.environ.get(DATA_DIR_ENV) or "").strip()
    return DataPaths(Path(env) if env else DEFAULT_DATA_DIR)


def load_settings(path: Path) -> AppSettings:
    """settings.json, or defaults when missing/corrupt. Unknown keys are ignored."""
    if not path.exists():
        return AppSettings()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        known = {f.name for f in fields(AppSettings)}
        return AppSettings(**{k: v for k, v in data.items() if k in known})
    except (OSError, ValueError, TypeError, AttributeError) as e:
        log.warning("settings load failed, using defaults: %s", e)
        return AppSettings()


def save_settings(path: Path, settings: AppSettings) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(settings), f, indent=2, ensure_ascii=False)
    except OSError as e:
        log.warning("settings save failed: %s", e)
