"""Structured document body rendering.

Document bodies are TipTap-style JSON trees::

    {"type": "doc", "content": [
        {"type": "heading", "attrs": {"level": 1},
         "content": [{"type": "text", "text": "Hello"}]},
    ]}

Serializers implement :class:`NodeBuilder` and are driven by
:func:`render_with_builder`, which walks the tree once for every output format.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TypeVar, Generic

logger = logging.getLogger(__name__)

T = TypeVar("T")

ContentNode = Dict[str, Any]


def empty_document() -> ContentNode:
    """Return a document with a single empty paragraph."""
    return {"type": "doc", "content": [{"type": "paragraph", "content": []}]}


class NodeBuilder(ABC, Generic[T]):
    """Builds one output format from rendered children."""

    @abstractmethod
    def text(self, content: str) -> T: ...

    @abstractmethod
    def bold(self, content: T) -> T: ...

    @abstractmethod
    def italic(self, content: T) -> T: ...

    @abstractmethod
    def link(self, content: T, href: Optional[str] = None,
             rel: Optional[str] = None, target: Optional[str] = None) -> T: ...

    @abstractmethod
    def doc(self, children: List[T]) -> T: ...

    @abstractmethod
    def paragraph(self, children: List[T]) -> T: ...

    @abstractmethod
    def heading(self, level: int, children: List[T]) -> T: ...

    @abstractmethod
    def bullet_list(self, children: List[T]) -> T: ...

    @abstractmethod
    def ordered_list(self, children: List[T], start: Optional[int] = None) -> T: ...

    @abstractmethod
    def list_item(self, children: List[T]) -> T: ...

    @abstractmethod
    def horizontal_rule(self) -> T: ...

    @abstractmethod
    def hard_break(self) -> T: ...

    @abstractmethod
    def custom_block(self, name: str, properties: Dict[str, Any]) -> T: ...

    @abstractmethod
    def empty(self) -> T: ...


def render_with_builder(content: ContentNode, builder: NodeBuilder[T]) -> T:
    """Render a document tree with the given builder.

    Malformed or unknown nodes render as ``builder.empty()`` instead of failing
    the whole document.
    """

    def render_marks(text: str, marks: Optional[List[Dict[str, Any]]]) -> T:
        rendered = builder.text(text)
        for mark in marks or []:
            if not isinstance(mark, dict):
                continue
            mark_type = mark.get("type")
            attrs = mark.get("attrs") or {}
            if mark_type == "bold":
                rendered = builder.bold(rendered)
            elif mark_type == "italic":
                rendered = builder.italic(rendered)
            elif mark_type == "link":
                rendered = builder.link(
                    rendered, attrs.get("href"), attrs.get("rel"), attrs.get("target")
                )
        return rendered

    def render_children(node: ContentNode) -> List[T]:
        children = node.get("content")
        if not isinstance(children, list):
            return []
        return [render_node(child) for child in children]

    def render_node(node: Any) -> T:
        if not isinstance(node, dict) or not node.get("type"):
            return builder.empty()

        node_type = node["type"]
        attrs = node.get("attrs") or {}

        if node_type == "text":
            text = node.get("text")
            if not isinstance(text, str):
                return builder.empty()
            return render_marks(text, node.get("marks"))
        if node_type == "doc":
            return builder.doc(render_children(node))
        if node_type == "paragraph":
            return builder.paragraph(render_children(node))
        if node_type == "heading":
            return builder.heading(attrs.get("level") or 1, render_children(node))
        if node_type == "bulletList":
            return builder.bullet_list(render_children(node))
        if node_type == "orderedList":
            return builder.ordered_list(render_children(node), attrs.get("start"))
        if node_type == "listItem":
            return builder.list_item(render_children(node))
        if node_type == "horizontalRule":
            return builder.horizontal_rule()
        if node_type == "hardBreak":
            return builder.hard_break()
        if node_type in ("customBlock", "documentComponent"):
            name = attrs.get("name")
            if isinstance(name, str) and name:
                return builder.custom_block(name, attrs.get("properties") or {})
            return builder.empty()

        logger.debug(f"Unknown content node type: {node_type}")
        return builder.empty()

    return render_node(content)
