"""Failure evidence: full-page screenshot + HTML under a deterministic timestamped name."""
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from playwright.async_api import Page

log = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._\-]+")


def evidence_base_name(*parts: str, now: Optional[datetime] = None, fmt: str = "%Y%m%d-%H%M") -> str:
    """'<timestamp>_<part>_<part>' with filesystem-unsafe characters replaced."""
    ts = (now or datetime.now()).strftime(fmt)
    cleaned = [_UNSAFE_CHARS.sub("-", p).strip("-") for p in parts if p]
    return "_".join([ts] + [c for c in cleaned if c])


def evidence_paths(evidence_dir: Path, base_name: str) -> tuple[Path, Path]:
    return evidence_dir / f"{base_name}.png", evidence_dir / f"{base_name}.html"


async def save_evidence(page: Page, evidence_dir: Path, base_name: str) -> str:
    """Write <base>.png and <base>.html; return 'png;html'."""
    evidence_dir.mkdir(parents=True, exist_ok=True)
    png_path, html_path = evidence_paths(evidence_dir, base_name)
    await page.screenshot(path=str(png_path), full_page=True)
    html = await page.content()
    html_path.write_text(html, encoding="utf-8")
    log.debug("Evidence saved: %s", base_name)
    return f"{png_path};{html_path}"


async def try_save_evidence(page: Optional[Page], evidence_dir: Path, base_name: str) -> str:
    """Best-effort save_evidence; returns '' when the capture itself fails."""
    if page is None:
        return ""
    try:
        return await save_evidence(page, evidence_dir, base_name)
    except Exception as e:
        log.warning("Evidence capture failed (%s): %s", base_name, e)
        return ""
