"""
HTML -> constrained markup for the publishing surfaces.

Two targets:
  * rich text for Telegram's HTML parse mode (b, a and line breaks only),
    measured in UTF-16 code units after tags are stripped;
  * a Telegraph node tree for articles that do not fit in one message,
    truncated to a byte budget of its JSON serialization.
"""
from __future__ import annotations

import html
import json
import re
from typing import Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

TELEGRAM_TEXT_LIMIT = 4096
TELEGRAPH_CONTENT_BUDGET = 64 * 1024
TRUNCATION_MARKER = "…"

DROPPED_TAGS = frozenset({"head", "meta", "title", "style", "script", "noscript", "template", "svg"})
HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})
BOLD_TAGS = frozenset({"b", "strong"})
INLINE_TAGS = frozenset({
    "a", "abbr", "b", "cite", "code", "em", "font", "i", "img", "kbd", "label", "mark",
    "q", "s", "small", "span", "strong", "sub", "sup", "time", "u",
})

# tags that survive stripping as nothing; any other tag becomes a space
_PLAIN_INLINE_TAGS = frozenset({
    "a", "b", "strong", "i", "em", "u", "ins", "s", "strike", "del", "code", "span", "tg-spoiler",
})

_WS_RE = re.compile(r"\s+")

Node = Union[str, dict]


def _root(soup: BeautifulSoup) -> Tag:
    return soup.body or soup


# ---------------------------
# Rich text
# ---------------------------

class _RichTextWriter:
    def __init__(self) -> None:
        self.text = ""

    def write_text(self, raw: str) -> None:
        chunk = _WS_RE.sub(" ", raw)
        if not chunk.strip():
            if self.text and not self.text.endswith((" ", "\n")):
                self.text += " "
            return
        if not self.text or self.text.endswith((" ", "\n")):
            chunk = chunk.lstrip(" ")
        self.text += html.escape(chunk, quote=False)

    def open(self, tag: str) -> None:
        self.text += tag

    def close(self, opener: str, closer: str) -> None:
        head, found, tail = self.text.rpartition(opener)
        if found and not tail.strip():
            # nothing but whitespace inside: drop the element, keep one space
            self.text = head
            if tail and head and not head.endswith((" ", "\n")):
                self.text += " "
            return
        # keep a trailing space outside the closing tag
        trailing = self.text.endswith(" ")
        self.text = self.text.rstrip(" ") + closer
        if trailing:
            self.text += " "

    def line_break(self) -> None:
        self.text = self.text.rstrip(" ") + "\n"

    def end_block(self) -> None:
        self.text = self.text.rstrip(" ")
        if not self.text or self.text.endswith("\n\n"):
            return
        self.text += "\n" if self.text.endswith("\n") else "\n\n"


def _walk_rich(writer: _RichTextWriter, tag: Tag) -> None:
    for child in tag.children:
        if isinstance(child, PreformattedString):
            continue
        if isinstance(child, NavigableString):
            writer.write_text(str(child))
        elif isinstance(child, Tag):
            _write_element(writer, child)


def _write_element(writer: _RichTextWriter, el: Tag) -> None:
    name = (el.name or "").lower()

    if name in DROPPED_TAGS:
        return

    if name in HEADING_TAGS:
        writer.open("<b>")
        _walk_rich(writer, el)
        writer.close("<b>", "</b>")
        writer.end_block()
    elif name in BOLD_TAGS:
        writer.open("<b>")
        _walk_rich(writer, el)
        writer.close("<b>", "</b>")
    elif name == "a":
        href = el.get("href")
        if href:
            opener = f'<a href="{html.escape(str(href), quote=True)}">'
            writer.open(opener)
            _walk_rich(writer, el)
            writer.close(opener, "</a>")
        else:
            _walk_rich(writer, el)
    elif name == "br":
        writer.line_break()
    elif name == "p":
        _walk_rich(writer, el)
        writer.end_block()
    else:
        _walk_rich(writer, el)
        if name not in INLINE_TAGS:
            writer.end_block()


def normalize_rich_text(text: str) -> str:
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n[ \t]+", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r" {2,}", " ", text)
    return text.lstrip()


def html_to_rich_text(document: str) -> str:
    """
    Headings and b/strong become <b>, links keep their href, paragraphs and other
    blocks end with a blank line, br becomes a newline. Everything else is text.
    """
    soup = BeautifulSoup(document, "html.parser")
    writer = _RichTextWriter()
    _walk_rich(writer, _root(soup))
    return normalize_rich_text(writer.text)


# ---------------------------
# Length budget
# ---------------------------

def strip_html_to_text(markup: str) -> str:
    """
    Rough plain-text view of rich text, as the messaging surface will count it:
    inline tags vanish, other tags turn into a space, entities are decoded and
    whitespace runs collapse to one space.
    """
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(True):
        if tag.name.lower() not in _PLAIN_INLINE_TAGS:
            tag.insert_before(" ")
            tag.insert_after(" ")
    plain = soup.get_text()
    return _WS_RE.sub(" ", plain).strip()


def utf16_len(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def rich_text_length(markup: str) -> int:
    return utf16_len(strip_html_to_text(markup))


def fits_text_limit(markup: str, limit: int = TELEGRAM_TEXT_LIMIT) -> bool:
    return rich_text_length(markup) <= limit


# ---------------------------
# Long-form node tree
# ---------------------------

TELEGRAPH_TAGS = frozenset({
    "a", "aside", "b", "blockquote", "br", "code", "em", "figcaption", "figure",
    "h3", "h4", "hr", "i", "iframe", "img", "li", "ol", "p", "pre", "s", "strong",
    "u", "ul", "video",
})
TELEGRAPH_ATTRS = ("href", "src")
TAG_ALIASES = {"h1": "h3", "h2": "h3", "h5": "h4", "h6": "h4"}
_BLOCK_NODE_TAGS = frozenset({
    "aside", "blockquote", "figcaption", "figure", "h3", "h4", "hr", "iframe",
    "li", "ol", "p", "pre", "ul", "video",
})


def _is_block(node: Node) -> bool:
    return isinstance(node, dict) and node.get("tag") in _BLOCK_NODE_TAGS


def _convert_children(el: Tag, preformatted: bool = False) -> list[Node]:
    nodes: list[Node] = []
    for child in el.children:
        if isinstance(child, PreformattedString):
            continue
        if isinstance(child, NavigableString):
            raw = str(child)
            if preformatted:
                if raw:
                    nodes.append(raw)
                continue
            text = _WS_RE.sub(" ", raw)
            if text.strip():
                nodes.append(text)
            elif nodes and not _is_block(nodes[-1]):
                nodes.append(" ")
        elif isinstance(child, Tag):
            nodes.extend(_convert_element(child, preformatted))
    return nodes


def _convert_element(el: Tag, preformatted: bool = False) -> list[Node]:
    name = (el.name or "").lower()
    if name in DROPPED_TAGS:
        return []
    name = TAG_ALIASES.get(name, name)
    children = _convert_children(el, preformatted or name == "pre")

    if name in TELEGRAPH_TAGS:
        node: dict = {"tag": name}
        attrs = {k: str(el.get(k)) for k in TELEGRAPH_ATTRS if el.get(k)}
        if attrs:
            node["attrs"] = attrs
        if children:
            node["children"] = children
        return [node]

    if name in INLINE_TAGS:
        return children
    if not children:
        return []
    # a wrapper around blocks is just dropped, otherwise it becomes a paragraph
    if any(_is_block(c) for c in children):
        return children
    return [{"tag": "p", "children": children}]


def html_to_nodes(document: str) -> list[Node]:
    soup = BeautifulSoup(document, "html.parser")
    nodes = _convert_children(_root(soup))
    # stray whitespace between top-level blocks
    return [n for n in nodes if not (isinstance(n, str) and not n.strip())]


def serialize_nodes(nodes: list[Node] | Node) -> str:
    return json.dumps(nodes, ensure_ascii=False, separators=(",", ":"))


def node_size(nodes: list[Node] | Node) -> int:
    return len(serialize_nodes(nodes).encode("utf-8"))


def _shrink_text(text: str, avail: int) -> str | None:
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if node_size(text[:mid]) <= avail:
            lo = mid
        else:
            hi = mid - 1
    return text[:lo] if lo > 0 and text[:lo].strip() else None


def _shrink(node: Node, avail: int) -> Node | None:
    if avail <= 0:
        return None
    if isinstance(node, str):
        return _shrink_text(node, avail)

    shell = {k: v for k, v in node.items() if k != "children"}
    shell["children"] = []
    room = avail - node_size(shell)
    if room <= 0:
        return None

    kept: list[Node] = []
    for child in node.get("children", []):
        comma = 1 if kept else 0
        cost = node_size(child) + comma
        if cost <= room:
            kept.append(child)
            room -= cost
            continue
        partial = _shrink(child, room - comma)
        if partial is not None:
            kept.append(partial)
        break

    if not kept:
        return None
    shell["children"] = kept
    return shell


def truncate_nodes(
    nodes: list[Node],
    budget: int = TELEGRAPH_CONTENT_BUDGET,
    marker: str = TRUNCATION_MARKER,
) -> list[Node]:
    """
    Keep the leading part of the tree whose JSON fits in `budget` bytes,
    ending with a paragraph holding the truncation marker.
    """
    if node_size(nodes) <= budget:
        return nodes

    marker_node = {"tag": "p", "children": [marker]}
    room = budget - node_size([marker_node])
    if room < 0:
        return []

    kept: list[Node] = []
    for node in nodes:
        cost = node_size(node) + 1
        if cost <= room:
            kept.append(node)
            room -= cost
            continue
        partial = _shrink(node, room - 1)
        if partial is not None:
            kept.append(partial)
        break

    kept.append(marker_node)
    return kept
