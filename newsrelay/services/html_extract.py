"""
Pulls an HTML document out of a chat model's answer.

Models like to wrap the document in commentary or markdown fences, so the
extractors below are tried in order and the first hit wins.
"""
from __future__ import annotations

import re
from typing import Callable

_DOC_START_RE = re.compile(r"<html|<!doctype", re.IGNORECASE)
_DOC_END_RE = re.compile(r"</html>", re.IGNORECASE)
_FENCE = "```"


def extract_html_document_block(text: str) -> str | None:
    """From the first <html / <!doctype to the last </html>."""
    m = _DOC_START_RE.search(text)
    if not m:
        return None
    ends = list(_DOC_END_RE.finditer(text))
    if not ends:
        return None
    end = ends[-1].end()
    if m.start() >= end:
        return None
    return text[m.start():end].strip()


def extract_fenced_block(text: str, lang: str = "html") -> str | None:
    """Body of the first ```<lang> fence."""
    opener = f"{_FENCE}{lang}"
    start = text.find(opener)
    if start == -1:
        return None
    after = text[start + len(opener):]
    if after.startswith("\r\n"):
        after = after[2:]
    elif after.startswith("\n"):
        after = after[1:]
    end = after.find(_FENCE)
    if end == -1:
        return None
    return after[:end].strip()


def extract_any_fenced_block(text: str) -> str | None:
    """Body of the first fence of any language (the info line is skipped)."""
    start = text.find(_FENCE)
    if start == -1:
        return None
    after = text[start + len(_FENCE):]
    nl = after.find("\n")
    if nl != -1:
        after = after[nl + 1:]
    end = after.find(_FENCE)
    if end == -1:
        return None
    return after[:end].strip()


Extractor = Callable[[str], "str | None"]

HTML_EXTRACTORS: tuple[Extractor, ...] = (
    extract_html_document_block,
    extract_fenced_block,
    extract_any_fenced_block,
)


def extract_html(text: str, extractors: tuple[Extractor, ...] = HTML_EXTRACTORS) -> str:
    text = text.strip()
    for extractor in extractors:
        found = extractor(text)
        if found is not None:
            return found
    return text


def looks_like_html(text: str) -> bool:
    lower = text.lower()
    return (
        ("<html" in lower and "</html>" in lower)
        or ("<body" in lower and "</body>" in lower)
        or ("<!doctype html" in lower and "</html>" in lower)
    )
