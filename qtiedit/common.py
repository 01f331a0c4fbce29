"""
Shared helpers for qtiedit.

Identifier generation, HTML-to-preview text, and namespace-agnostic access to
ElementTree nodes. Canvas exports put everything in the QTI default namespace
while older packages use none, so element lookups here compare local names
only.
"""

from __future__ import annotations
import html
import re
import uuid
from typing import List, Optional
import xml.etree.ElementTree as ET

RE_HTML_TAG = re.compile(r"<[^>]+>")
RE_WHITESPACE = re.compile(r"\s+")

# ---------- Identifiers ----------

def new_internal_id() -> str:
    return str(uuid.uuid4())

def new_question_identifier() -> str:
    """Canvas style item/assessment ident: 32 hex chars, no hyphens."""
    return uuid.uuid4().hex

def new_answer_identifier() -> str:
    return str(uuid.uuid4()).lower()

# ---------- HTML text ----------

def strip_html(s: str) -> str:
    return RE_HTML_TAG.sub("", s or "")

def html_to_plain(s: str) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    text = html.unescape(strip_html(s)).replace("\xa0", " ")
    return RE_WHITESPACE.sub(" ", text).strip()

def preview(s: str, max_length: int = 100, empty: str = "") -> str:
    """Plain-text preview truncated at a word boundary with a trailing '...'."""
    cleaned = html_to_plain(s)
    if not cleaned:
        return empty
    if len(cleaned) <= max_length:
        return cleaned
    truncated = cleaned[:max_length]
    cut = truncated.rfind(" ")
    if cut > 0:
        truncated = truncated[:cut]
    return truncated + "..."

# ---------- ElementTree helpers ----------

def local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]

def children(el: ET.Element, name: str) -> List[ET.Element]:
    return [c for c in el if local_name(c.tag) == name]

def child(el: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if el is None:
        return None
    for c in el:
        if local_name(c.tag) == name:
            return c
    return None

def text_of(el: Optional[ET.Element]) -> str:
    if el is None:
        return ""
    return "".join(el.itertext())

def format_points(points: float) -> str:
    """One decimal place ("2.0", "1.5") unless that would round the value."""
    points = float(points)
    if round(points, 1) == points:
        return f"{points:.1f}"
    return repr(points)
