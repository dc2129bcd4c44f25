"""Load ordered selector candidates per action from SELECTORS.md, falling back to built-in defaults."""
import logging
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .site import DEFAULT_SELECTORS

log = logging.getLogger(__name__)

SELECTORS_FILENAME = "SELECTORS.md"

# Logical action name -> SELECTORS.md heading
ACTION_HEADINGS = {
    "paused_text": "PausedTextCandidates",
    "edit": "EditButtonSelectors",
    "price_input": "PriceInputSelectors",
    "pause": "PauseSelectors",
    "resume": "ResumeSelectors",
    "popup_close": "PopupCloseSelectors",
}


def parse_section(lines: Iterable[str], heading: str) -> list[str]:
    """
    Collect "- value" bullets under "### <heading>" (case-insensitive).
    A "## " heading ends the section; "#" starts a trailing comment.
    """
    results: list[str] = []
    in_section = False
    for raw in lines:
        line = raw.strip()
        if line.startswith("### "):
            in_section = line[4:].strip().lower() == heading.lower()
            continue
        if line.startswith("## "):
            if in_section:
                break
            continue
        if in_section and line.startswith("-"):
            value = line.lstrip("-").strip()
            if "#" in value:
                value = value[: value.index("#")].strip()
            if value:
                results.append(value)
    return results


def default_search_paths(data_dir: Optional[Path] = None) -> list[Path]:
    paths: list[Path] = []
    if data_dir is not None:
        paths.append(data_dir / SELECTORS_FILENAME)
    paths.append(Path(__file__).resolve().parent.parent / "docs" / SELECTORS_FILENAME)
    return paths


class SelectorResolver:
    """resolve(action) -> ordered selector strings. Never raises; missing config means defaults."""

    def __init__(self, search_paths: Optional[Sequence[Path]] = None):
        self._paths = list(search_paths) if search_paths is not None else default_search_paths()
        self._cache: dict[str, list[str]] = {}

    def _document_lines(self) -> Optional[list[str]]:
        for path in self._paths:
            try:
                if path.is_file():
                    return path.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError) as e:
                log.debug("Selector document %s unreadable: %s", path, e)
        return None

    def resolve(self, action: str) -> list[str]:
        heading = ACTION_HEADINGS.get(action, action)
        if heading in self._cache:
            return list(self._cache[heading])
        defaults = list(DEFAULT_SELECTORS.get(heading, []))
        try:
            lines = self._document_lines()
            found = parse_section(lines, heading) if lines is not None else []
        except Exception as e:
            log.debug("Selector section %s parse failed: %s", heading, e)
            found = []
        resolved = found or defaults
        self._cache[heading] = resolved
        log.debug("Selectors for %s: %d candidates (%s)", heading, len(resolved), "config" if found else "defaults")
        return list(resolved)
