"""Plain text serialization."""

import re
from typing import Any, Dict, List, Optional

from .content import ContentNode, NodeBuilder, empty_document, render_with_builder

_BLANK_LINES = re.compile(r"\n\s*\n")


class PlainTextBuilder(NodeBuilder[str]):
    """Renders document trees as plain text, dropping all formatting."""

    def text(self, content: str) -> str:
        return content

    def bold(self, content: str) -> str:
        return content

    def italic(self, content: str) -> str:
        return content

    def link(self, content, href=None, rel=None, target=None) -> str:
        return content

    def doc(self, children: List[str]) -> str:
        return "\n\n".join(child for child in children if child).strip()

    def paragraph(self, children: List[str]) -> str:
        return "".join(children)

    def heading(self, level: int, children: List[str]) -> str:
        return "".join(children)

    def bullet_list(self, children: List[str]) -> str:
        return "\n".join(children)

    def ordered_list(self, children: List[str], start: Optional[int] = None) -> str:
        return "\n".join(children)

    def list_item(self, children: List[str]) -> str:
        return "\n".join(child for child in children if child)

    def horizontal_rule(self) -> str:
        return ""

    def hard_break(self) -> str:
        return "\n"

    def custom_block(self, name: str, properties: Dict[str, Any]) -> str:
        return ""

    def empty(self) -> str:
        return ""


def serialize_to_plain_text(content: ContentNode) -> str:
    return render_with_builder(content, PlainTextBuilder())


def deserialize_from_text(text: str) -> ContentNode:
    """Blank lines separate paragraphs; single newlines become hard breaks."""
    normalized = text.replace("\r\n", "\n").strip()
    if not normalized:
        return empty_document()

    paragraphs = []
    for block in _BLANK_LINES.split(normalized):
        content: List[ContentNode] = []
        for index, line in enumerate(block.split("\n")):
            if index > 0:
                content.append({"type": "hardBreak"})
            if line:
                content.append({"type": "text", "text": line})
        paragraphs.append({"type": "paragraph", "content": content})
    return {"type": "doc", "content": paragraphs}
