"""
tests/test_settings.py

settings.json persistence and data-directory resolution.
"""

from __future__ import annotations

import json
from pathlib import Path

from pricecycle.settings import AppSettings, DataPaths, load_settings, resolve_data_dir, save_settings


class TestAppSettings:
    def test_defaults(self) -> None:
        s = AppSettings()
        assert (s.rate_percent, s.daily_down_yen) == (10, 100)
        assert (s.wait_after_pause_sec, s.wait_after_resume_sec, s.item_gap_sec) == (30, 10, 250)
        assert (s.retry_count, s.retry_wait_sec) == (2, 2)
        assert (s.start_row, s.end_row) == (1, 500)

    def test_overrides_skip_none_and_unknown(self) -> None:
        s = AppSettings().with_overrides(rate_percent=15, item_gap_sec=None, bogus=1)
        assert s.rate_percent == 15
        assert s.item_gap_sec == 250
        assert not hasattr(s, "bogus")

    def test_save_then_load(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        save_settings(path, AppSettings(rate_percent=20, retry_count=4))
        loaded = load_settings(path)
        assert loaded.rate_percent == 20
        assert loaded.retry_count == 4

    def test_missing_corrupt_and_unknown_keys(self, tmp_path: Path) -> None:
        assert load_settings(tmp_path / "none.json") == AppSettings()
        bad = tmp_path / "bad.json"
        bad.write_text("{", encoding="utf-8")
        assert load_settings(bad) == AppSettings()
        extra = tmp_path / "extra.json"
        extra.write_text(json.dumps({"rate_percent": 5, "theme": "dark"}), encoding="utf-8")
        assert load_settings(extra).rate_percent == 5


class TestDataPaths:
    def test_explicit_wins(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("PRICECYCLE_HOME", str(tmp_path / "env"))
        assert resolve_data_dir(tmp_path / "cli").root == tmp_path / "cli"

    def test_env_then_default(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("PRICECYCLE_HOME", str(tmp_path / "env"))
        assert resolve_data_dir().root == tmp_path / "env"
        monkeypatch.delenv("PRICECYCLE_HOME")
        assert resolve_data_dir().root == Path(".local")

    def test_layout(self, tmp_path: Path) -> None:
        paths = DataPaths(tmp_path).ensure()
        assert paths.database == tmp_path / "app.db"
        assert paths.run_state == tmp_path / "runstate.json"
        assert paths.storage_state == tmp_path / "storageState.json"
        assert paths.evidence.is_dir()
        assert paths.logs == tmp_path / "logs"
        assert paths.operation_lock == tmp_path / ".operation.lock"
