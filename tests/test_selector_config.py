"""
tests/test_selector_config.py

SELECTORS.md parsing and the resolver's fallback to built-in defaults.

Coverage
--------
- Section bullets, trailing comments, section end at "## "
- Missing file / missing section -> defaults
- Data-directory document wins over the project document
- Resolved lists are cached
- Shipped docs/SELECTORS.md parses for every action
- Built-in defaults and action headings line up one to one
"""

from __future__ import annotations

from pathlib import Path

from pricecycle.selector_config import ACTION_HEADINGS, SelectorResolver, default_search_paths, parse_section
from pricecycle.site import DEFAULT_SELECTORS

DOC = """# SELECTORS

## Item page

### EditButtonSelectors
- a.edit   # preferred
- button.edit

not a bullet
- [data-testid="edit"]

### pauseselectors
- button.pause

## Popups
- stray bullet

### PopupCloseSelectors
-
- button.close
"""


# ---------------------------------------------------------------------------
# parse_section
# ---------------------------------------------------------------------------


class TestParseSection:
    def test_bullets_and_comments(self) -> None:
        assert parse_section(DOC.splitlines(), "EditButtonSelectors") == [
            "a.edit",
            "button.edit",
            '[data-testid="edit"]',
        ]

    def test_heading_is_case_insensitive(self) -> None:
        assert parse_section(DOC.splitlines(), "PauseSelectors") == ["button.pause"]

    def test_level_two_heading_ends_section(self) -> None:
        assert "stray bullet" not in parse_section(DOC.splitlines(), "PauseSelectors")

    def test_empty_bullets_ignored(self) -> None:
        assert parse_section(DOC.splitlines(), "PopupCloseSelectors") == ["button.close"]

    def test_missing_section(self) -> None:
        assert parse_section(DOC.splitlines(), "ResumeSelectors") == []


# ---------------------------------------------------------------------------
# SelectorResolver
# ---------------------------------------------------------------------------


class TestSelectorResolver:
    def test_document_section(self, tmp_path: Path) -> None:
        doc = tmp_path / "SELECTORS.md"
        doc.write_text(DOC, encoding="utf-8")
        resolver = SelectorResolver([doc])
        assert resolver.resolve("edit") == ["a.edit", "button.edit", '[data-testid="edit"]']

    def test_missing_section_uses_defaults(self, tmp_path: Path) -> None:
        doc = tmp_path / "SELECTORS.md"
        doc.write_text(DOC, encoding="utf-8")
        assert SelectorResolver([doc]).resolve("resume") == DEFAULT_SELECTORS["ResumeSelectors"]

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        resolver = SelectorResolver([tmp_path / "nope.md"])
        assert resolver.resolve("price_input") == DEFAULT_SELECTORS["PriceInputSelectors"]

    def test_unknown_action_is_empty(self, tmp_path: Path) -> None:
        assert SelectorResolver([tmp_path / "nope.md"]).resolve("does_not_exist") == []

    def test_first_existing_document_wins(self, tmp_path: Path) -> None:
        local = tmp_path / "local.md"
        project = tmp_path / "project.md"
        project.write_text("### EditButtonSelectors\n- from.project\n", encoding="utf-8")
        resolver = SelectorResolver([local, project])
        assert resolver.resolve("edit") == ["from.project"]

        local.write_text("### EditButtonSelectors\n- from.local\n", encoding="utf-8")
        assert SelectorResolver([local, project]).resolve("edit") == ["from.local"]

    def test_cached_per_resolver(self, tmp_path: Path) -> None:
        doc = tmp_path / "SELECTORS.md"
        doc.write_text("### PauseSelectors\n- first\n", encoding="utf-8")
        resolver = SelectorResolver([doc])
        assert resolver.resolve("pause") == ["first"]
        doc.write_text("### PauseSelectors\n- second\n", encoding="utf-8")
        assert resolver.resolve("pause") == ["first"]

    def test_returned_list_is_a_copy(self, tmp_path: Path) -> None:
        resolver = SelectorResolver([tmp_path / "nope.md"])
        resolver.resolve("pause").append("mutated")
        assert "mutated" not in resolver.resolve("pause")

    def test_shipped_document_covers_every_action(self) -> None:
        paths = default_search_paths()
        assert paths[-1].name == "SELECTORS.md"
        lines = paths[-1].read_text(encoding="utf-8").splitlines()
        for heading in ACTION_HEADINGS.values():
            assert parse_section(lines, heading), heading

    def test_every_default_belongs_to_an_action(self) -> None:
        assert set(DEFAULT_SELECTORS) == set(ACTION_HEADINGS.values())

    def test_data_dir_searched_first(self, tmp_path: Path) -> None:
        assert default_search_paths(tmp_path)[0] == tmp_path / "SELECTORS.md"
