"""Conversion between structured document bodies and platform formats."""

import posixpath
from typing import Any, Dict, Tuple

from .content import ContentNode, NodeBuilder, empty_document, render_with_builder
from .html import deserialize_from_html, serialize_to_html
from .markdown import (
    build_frontmatter,
    deserialize_from_markdown,
    parse_frontmatter,
    serialize_to_markdown,
)
from .mdx import deserialize_from_mdx, serialize_to_mdx
from .text import deserialize_from_text, serialize_to_plain_text


def deserialize_from_file(text: str, filename: str) -> Tuple[ContentNode, Dict[str, Any]]:
    """Parse file contents by extension.

    Returns the document tree and any frontmatter fields. ``.mdx`` files keep
    their components; unknown extensions are read as plain text.

    Raises:
        ValueError: If the frontmatter is malformed.
    """
    extension = posixpath.splitext(filename)[1].lower()
    if extension == ".mdx":
        return deserialize_from_mdx(text)
    if extension in (".md", ".markdown"):
        return deserialize_from_markdown(text)
    return deserialize_from_text(text), {}


def serialize_for_file(filename: str, content: ContentNode, fields: Dict[str, Any] = None) -> str:
    """Render a document for a file, with a frontmatter block when fields are given."""
    extension = posixpath.splitext(filename)[1].lower()
    if extension == ".txt":
        return serialize_to_plain_text(content)
    if extension == ".mdx":
        body = serialize_to_mdx(content)
    else:
        body = serialize_to_markdown(content)
    return f"{build_frontmatter(fields or {})}{body}\n"


__all__ = [
    "ContentNode",
    "NodeBuilder",
    "build_frontmatter",
    "deserialize_from_file",
    "deserialize_from_html",
    "deserialize_from_markdown",
    "deserialize_from_mdx",
    "deserialize_from_text",
    "empty_document",
    "parse_frontmatter",
    "render_with_builder",
    "serialize_for_file",
    "serialize_to_html",
    "serialize_to_markdown",
    "serialize_to_mdx",
    "serialize_to_plain_text",
]
