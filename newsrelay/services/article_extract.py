from __future__ import annotations

import html
import logging

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

NOISE_TAGS = ("script", "style", "nav", "header", "footer", "aside", "form", "noscript", "iframe", "svg")
CONTENT_CONTAINERS = ("article", "main", "body")


def find_main_content(soup: BeautifulSoup) -> Tag:
    for name in CONTENT_CONTAINERS:
        found = soup.find(name)
        if isinstance(found, Tag):
            return found
    return soup


def extract_article(raw_html: str, title: str) -> str:
    """
    Reduce a downloaded page to its main content, wrapped in a small
    standalone document headed by the item title.
    """
    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup.find_all(list(NOISE_TAGS)):
        tag.decompose()

    content = find_main_content(soup)
    inner = content.decode_contents().strip()
    if not inner:
        logger.warning("No main content found for '%s'", title)

    safe_title = html.escape(title, quote=False)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        f"<head><meta charset=\"utf-8\"><title>{safe_title}</title></head>\n"
        "<body>\n"
        f"<h1>{safe_title}</h1>\n"
        f"{inner}\n"
        "</body>\n"
        "</html>\n"
    )
