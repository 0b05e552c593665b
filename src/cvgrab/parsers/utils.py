from __future__ import annotations

import re

from bs4 import BeautifulSoup

BLANK_LINES = re.compile(r"\n\s*\n+")


def html_to_text(html: str | None) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    text = soup.get_text("\n")
    lines = [line.strip() for line in text.splitlines()]
    return BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def split_lines(text: str) -> list[str]:
    """Non-empty, stripped lines in document order."""
    return [line.strip() for line in re.split(r"\r?\n", text) if line.strip()]
