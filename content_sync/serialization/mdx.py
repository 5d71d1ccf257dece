"""MDX support: Markdown plus JSX-style components."""

import json
import re
from typing import Any, Dict, List, Tuple

from .content import ContentNode
from .markdown import parse_frontmatter, parse_markdown_blocks, serialize_to_markdown

# <Callout type="info">...</Callout> or <Chart data={[1, 2]} />
COMPONENT_PATTERN = re.compile(
    r"<([A-Z][\w.]*)([^<>]*?)>(.*?)</\1>|<([A-Z][\w.]*)([^<>]*?)/>",
    re.DOTALL,
)
PROP_PATTERN = re.compile(r"""(\w+)=(?:\{([^}]*)\}|"((?:\\.|[^"\\])*)"|'((?:\\.|[^'\\])*)')""")
_UNESCAPE_PATTERN = re.compile(r"\\(.)")
PLACEHOLDER_PATTERN = re.compile(r"^\[COMPONENT:(\d+)\]$")


def parse_props(raw: str) -> Dict[str, Any]:
    """Parse component attributes; ``{...}`` values are read as JSON when possible."""
    properties: Dict[str, Any] = {}
    for match in PROP_PATTERN.finditer(raw):
        name, expression, double_quoted, single_quoted = match.groups()
        if expression is not None:
            try:
                properties[name] = json.loads(expression)
            except ValueError:
                properties[name] = expression.strip()
        elif double_quoted is not None:
            properties[name] = _UNESCAPE_PATTERN.sub(r"\1", double_quoted)
        else:
            properties[name] = _UNESCAPE_PATTERN.sub(r"\1", single_quoted)
    return properties


def extract_components(body: str) -> Tuple[str, List[ContentNode]]:
    """Replace components with placeholders on their own lines."""
    components: List[ContentNode] = []

    def replace(match: re.Match) -> str:
        if match.group(1):
            name, raw_props, children = match.group(1), match.group(2), match.group(3)
        else:
            name, raw_props, children = match.group(4), match.group(5), None
        properties = parse_props(raw_props)
        if children and children.strip() and "children" not in properties:
            properties["children"] = children.strip()
        components.append({
            "type": "documentComponent",
            "attrs": {"name": name, "properties": properties},
        })
        return f"\n\n[COMPONENT:{len(components) - 1}]\n\n"

    return COMPONENT_PATTERN.sub(replace, body), components


def deserialize_from_mdx(text: str) -> Tuple[ContentNode, Dict[str, Any]]:
    """Parse an MDX file into a document tree and its frontmatter fields."""
    fields, body = parse_frontmatter(text)
    stripped, components = extract_components(body)

    def component_block(line: str):
        match = PLACEHOLDER_PATTERN.match(line)
        if match and int(match.group(1)) < len(components):
            return components[int(match.group(1))]
        return None

    return parse_markdown_blocks(stripped, block_hook=component_block), fields


def serialize_to_mdx(content: ContentNode) -> str:
    """Render a document tree as MDX; custom blocks become component tags."""
    return serialize_to_markdown(content)
