"""Markdown serialization with optional YAML frontmatter.

Reading goes through Python-Markdown: the body is rendered to HTML and the
HTML deserializer builds the document tree.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import markdown
import yaml

from .content import ContentNode, NodeBuilder, empty_document, render_with_builder
from .html import deserialize_from_html

MARKDOWN_EXTENSIONS = ["fenced_code", "sane_lists"]

# Nested list content must sit one tab stop under its marker.
LIST_INDENT = " " * 4

_ESCAPE_PATTERN = re.compile(r"([\\\[\]*])")
_ATTRIBUTE_ESCAPE_PATTERN = re.compile(r'(["\\])')


def escape_markdown(text: str) -> str:
    return _ESCAPE_PATTERN.sub(r"\\\1", text)


def escape_attribute(value: str) -> str:
    return _ATTRIBUTE_ESCAPE_PATTERN.sub(r"\\\1", value)


class MarkdownBuilder(NodeBuilder[str]):
    """Renders document trees as Markdown text."""

    def text(self, content: str) -> str:
        return escape_markdown(content)

    def bold(self, content: str) -> str:
        return f"**{content}**"

    def italic(self, content: str) -> str:
        return f"*{content}*"

    def link(self, content, href=None, rel=None, target=None) -> str:
        if not href:
            return content
        return f"[{content}]({href})"

    def doc(self, children: List[str]) -> str:
        return "\n\n".join(child for child in children if child).strip()

    def paragraph(self, children: List[str]) -> str:
        return "".join(children)

    def heading(self, level: int, children: List[str]) -> str:
        level = min(max(int(level), 1), 6)
        return f"{'#' * level} {''.join(children)}"

    def bullet_list(self, children: List[str]) -> str:
        return "\n".join(f"- {child}" for child in children)

    def ordered_list(self, children: List[str], start: Optional[int] = None) -> str:
        first = start if isinstance(start, int) else 1
        return "\n".join(f"{first + i}. {child}" for i, child in enumerate(children))

    def list_item(self, children: List[str]) -> str:
        text = "\n".join(child for child in children if child)
        # continuation lines of nested content are indented under the marker
        return text.replace("\n", "\n" + LIST_INDENT)

    def horizontal_rule(self) -> str:
        return "---"

    def hard_break(self) -> str:
        return "  \n"

    def custom_block(self, name: str, properties: Dict[str, Any]) -> str:
        return render_component_tag(name, properties)

    def empty(self) -> str:
        return ""


def render_component_tag(name: str, properties: Dict[str, Any]) -> str:
    """Render a self-closing MDX-style component tag."""
    props = []
    for key, value in properties.items():
        if isinstance(value, str):
            props.append(f'{key}="{escape_attribute(value)}"')
        else:
            props.append(f"{key}={{{json.dumps(value)}}}")
    joined = " ".join(props)
    return f"<{name} {joined} />" if joined else f"<{name} />"


def serialize_to_markdown(content: ContentNode) -> str:
    """Render a document tree as Markdown."""
    return render_with_builder(content, MarkdownBuilder())


def render_markdown_html(text: str) -> str:
    return markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS)


def _plain_text(block: ContentNode) -> Optional[str]:
    children = block.get("content", [])
    if block.get("type") != "paragraph" or not children:
        return None
    if any(child.get("type") != "text" or child.get("marks") for child in children):
        return None
    return "".join(child["text"] for child in children).strip()


BlockHook = Callable[[str], Optional[ContentNode]]


def parse_markdown_blocks(text: str, block_hook: Optional[BlockHook] = None) -> ContentNode:
    """Parse Markdown body text into a document tree.

    ``block_hook`` is offered the text of every unformatted top-level
    paragraph; returning a node replaces the paragraph.
    """
    document = deserialize_from_html(render_markdown_html(text.replace("\r\n", "\n")))
    if block_hook is None:
        return document

    blocks: List[ContentNode] = []
    for block in document["content"]:
        line = _plain_text(block)
        replacement = block_hook(line) if line else None
        blocks.append(replacement if replacement is not None else block)

    if not blocks:
        return empty_document()
    return {"type": "doc", "content": blocks}


def parse_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """Split a leading YAML frontmatter block from the body.

    Raises:
        ValueError: If the frontmatter is not valid YAML or not a mapping.
    """
    normalized = text.replace("\r\n", "\n")
    if not normalized.startswith("---\n"):
        return {}, normalized

    lines = normalized.split("\n")
    for index in range(1, len(lines)):
        if lines[index].strip() == "---":
            raw = "\n".join(lines[1:index])
            body = "\n".join(lines[index + 1:])
            break
    else:
        return {}, normalized

    try:
        fields = yaml.safe_load(raw) if raw.strip() else {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid frontmatter: {e}") from e

    if fields is None:
        fields = {}
    if not isinstance(fields, dict):
        raise ValueError("Invalid frontmatter: expected a mapping")

    return fields, body.lstrip("\n")


def build_frontmatter(fields: Dict[str, Any]) -> str:
    """Render fields as a YAML frontmatter block, or an empty string."""
    if not fields:
        return ""
    dumped = yaml.safe_dump(dict(fields), sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"---\n{dumped}---\n\n"


def deserialize_from_markdown(text: str) -> Tuple[ContentNode, Dict[str, Any]]:
    """Parse a Markdown file into a document tree and its frontmatter fields."""
    fields, body = parse_frontmatter(text)
    return parse_markdown_blocks(body), fields
