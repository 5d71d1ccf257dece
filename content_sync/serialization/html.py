"""HTML serialization for CMS bodies (Shopify body_html, WordPress content)."""

import html
import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from .content import ContentNode, NodeBuilder, empty_document, render_with_builder

logger = logging.getLogger(__name__)

INLINE_TYPES = {"text", "hardBreak"}
MARK_TAGS = {
    "strong": "bold",
    "b": "bold",
    "em": "italic",
    "i": "italic",
}
CONTAINER_TAGS = {"div", "section", "article", "main", "header", "footer", "span", "code", "body", "html"}
SKIPPED_TAGS = {"script", "style", "head", "template", "noscript"}

_WHITESPACE = re.compile(r"\s+")


class HTMLBuilder(NodeBuilder[str]):
    """Renders document trees as HTML fragments."""

    def text(self, content: str) -> str:
        return html.escape(content, quote=False)

    def bold(self, content: str) -> str:
        return f"<strong>{content}</strong>"

    def italic(self, content: str) -> str:
        return f"<em>{content}</em>"

    def link(self, content, href=None, rel=None, target=None) -> str:
        if not href:
            return content
        attrs = f' href="{html.escape(href)}"'
        if rel:
            attrs += f' rel="{html.escape(rel)}"'
        if target:
            attrs += f' target="{html.escape(target)}"'
        return f"<a{attrs}>{content}</a>"

    def doc(self, children: List[str]) -> str:
        return "".join(children)

    def paragraph(self, children: List[str]) -> str:
        return f"<p>{''.join(children)}</p>"

    def heading(self, level: int, children: List[str]) -> str:
        level = min(max(int(level), 1), 6)
        return f"<h{level}>{''.join(children)}</h{level}>"

    def bullet_list(self, children: List[str]) -> str:
        return f"<ul>{''.join(children)}</ul>"

    def ordered_list(self, children: List[str], start: Optional[int] = None) -> str:
        if isinstance(start, int) and start != 1:
            return f'<ol start="{start}">{"".join(children)}</ol>'
        return f"<ol>{''.join(children)}</ol>"

    def list_item(self, children: List[str]) -> str:
        return f"<li>{''.join(children)}</li>"

    def horizontal_rule(self) -> str:
        return "<hr>"

    def hard_break(self) -> str:
        return "<br>"

    def custom_block(self, name: str, properties: Dict[str, Any]) -> str:
        attrs = "".join(
            f' data-{html.escape(str(key))}="{html.escape(str(value))}"'
            for key, value in properties.items()
        )
        return f'<div data-component="{html.escape(name)}"{attrs}></div>'

    def empty(self) -> str:
        return ""


def serialize_to_html(content: ContentNode) -> str:
    """Render a document tree as an HTML fragment."""
    return render_with_builder(content, HTMLBuilder())


def _is_inline(node: ContentNode) -> bool:
    return node.get("type") in INLINE_TYPES


def _group_blocks(nodes: List[ContentNode]) -> List[ContentNode]:
    """Wrap runs of inline nodes into paragraphs, dropping blank runs."""
    blocks: List[ContentNode] = []
    run: List[ContentNode] = []

    def flush():
        if any(n.get("type") == "hardBreak" or n.get("text", "").strip() for n in run):
            blocks.append({"type": "paragraph", "content": _trim(run)})
        run.clear()

    for node in nodes:
        if _is_inline(node):
            run.append(node)
        else:
            flush()
            blocks.append(node)
    flush()
    return blocks


def _trim(nodes: List[ContentNode]) -> List[ContentNode]:
    """Strip whitespace at the edges of an inline run and around hard breaks."""
    nodes = [dict(n) for n in nodes]
    for index, node in enumerate(nodes):
        if node.get("type") != "text":
            continue
        if index == 0 or nodes[index - 1].get("type") == "hardBreak":
            node["text"] = node["text"].lstrip()
        if index == len(nodes) - 1 or nodes[index + 1].get("type") == "hardBreak":
            node["text"] = node["text"].rstrip()
    return [n for n in nodes if n.get("type") != "text" or n["text"]]


def _preformatted(element: Tag) -> ContentNode:
    """Keep preformatted lines verbatim, one hard break per line."""
    content: List[ContentNode] = []
    for line in element.get_text().rstrip("\n").split("\n"):
        if content:
            content.append({"type": "hardBreak"})
        if line:
            content.append({"type": "text", "text": line})
    return {"type": "paragraph", "content": content}


def _inline_only(nodes: List[ContentNode]) -> List[ContentNode]:
    """Flatten block children into their inline content."""
    inline: List[ContentNode] = []
    for node in nodes:
        if _is_inline(node):
            inline.append(node)
        else:
            inline.extend(_inline_only(node.get("content", [])))
    return inline


def _convert(element, marks: List[Dict[str, Any]]) -> List[ContentNode]:
    if isinstance(element, Comment):
        return []

    if isinstance(element, NavigableString):
        text = str(element)
        if not text.strip() and "\n" in text:
            return []
        text = _WHITESPACE.sub(" ", text)
        node: ContentNode = {"type": "text", "text": text}
        if marks:
            node["marks"] = [dict(m) for m in marks]
        return [node]

    if not isinstance(element, Tag):
        return []

    name = element.name.lower()

    if name in SKIPPED_TAGS:
        return []

    def children(child_marks=marks) -> List[ContentNode]:
        converted: List[ContentNode] = []
        for child in element.children:
            converted.extend(_convert(child, child_marks))
        return converted

    if name in MARK_TAGS:
        return children(marks + [{"type": MARK_TAGS[name]}])

    if name == "a":
        attrs: Dict[str, Any] = {"href": element.get("href")}
        if element.get("target"):
            attrs["target"] = element.get("target")
        if element.get("rel"):
            rel = element.get("rel")
            attrs["rel"] = " ".join(rel) if isinstance(rel, list) else rel
        return children(marks + [{"type": "link", "attrs": attrs}])

    if name == "br":
        return [{"type": "hardBreak"}]

    if name == "hr":
        return [{"type": "horizontalRule"}]

    if name == "pre":
        return [_preformatted(element)]

    if name == "p":
        return [{"type": "paragraph", "content": _trim(_inline_only(children()))}]

    if re.fullmatch(r"h[1-6]", name):
        return [{
            "type": "heading",
            "attrs": {"level": int(name[1])},
            "content": _trim(_inline_only(children())),
        }]

    if name in ("ul", "ol"):
        items = [
            node for node in children()
            if node.get("type") == "listItem"
        ]
        if name == "ul":
            return [{"type": "bulletList", "content": items}]
        try:
            start = int(element.get("start", 1))
        except (TypeError, ValueError):
            start = 1
        return [{"type": "orderedList", "attrs": {"start": start}, "content": items}]

    if name == "li":
        return [{"type": "listItem", "content": _group_blocks(children()) or [{"type": "paragraph", "content": []}]}]

    if name == "div" and element.get("data-component"):
        properties = {
            key[len("data-"):]: value
            for key, value in element.attrs.items()
            if key.startswith("data-") and key != "data-component"
        }
        return [{
            "type": "documentComponent",
            "attrs": {"name": element["data-component"], "properties": properties},
        }]

    if name not in CONTAINER_TAGS:
        logger.debug(f"Treating unknown HTML tag <{name}> as a container")
    return children()


def deserialize_from_html(markup: str) -> ContentNode:
    """Parse an HTML fragment into a document tree."""
    if not markup or not markup.strip():
        return empty_document()

    soup = BeautifulSoup(markup, "html.parser")
    nodes: List[ContentNode] = []
    for child in soup.children:
        nodes.extend(_convert(child, []))

    blocks = _group_blocks(nodes)
    if not blocks:
        return empty_document()
    return {"type": "doc", "content": blocks}
