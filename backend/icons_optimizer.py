"""
icons_optimizer.py
------------------
Lightweight size/cleanup pass applied to upstream SVG text before caching.

Actions performed:
 - Normalize line endings
 - Drop the XML declaration and any DOCTYPE
 - Strip comments, except license/copyright notices
 - Drop <metadata> blocks (editor bookkeeping, never rendered)
 - Collapse whitespace between tags and trailing spaces

IDs, classes, styles and the viewBox are left alone; namespacing happens later
and needs them intact.
"""

from __future__ import annotations

import re

XML_DECL_RE = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
DOCTYPE_RE = re.compile(r"<!DOCTYPE[^>\[]*(\[[^\]]*\])?\s*>", re.IGNORECASE)
COMMENT_RE = re.compile(r"<!--(.*?)-->", re.DOTALL)
METADATA_RE = re.compile(r"<(?:[\w-]+:)?metadata\b[^>]*?(?:/>|>.*?</(?:[\w-]+:)?metadata\s*>)", re.DOTALL | re.IGNORECASE)
WHITESPACE_BETWEEN_TAGS = re.compile(r">\s+<")

LICENSE_KEEP_WORDS = {"copyright", "license", "licence"}


def _drop_comment(match: re.Match) -> str:
    lowered = match.group(1).lower()
    if any(word in lowered for word in LICENSE_KEEP_WORDS):
        return match.group(0)
    return ""


def optimize_svg(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = XML_DECL_RE.sub("", text, count=1)
    text = DOCTYPE_RE.sub("", text)
    text = COMMENT_RE.sub(_drop_comment, text)
    text = METADATA_RE.sub("", text)
    text = WHITESPACE_BETWEEN_TAGS.sub("><", text)
    lines = [ln.rstrip() for ln in text.split("\n")]
    return "\n".join(ln for ln in lines if ln).strip()
