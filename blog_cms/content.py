"""
Plain-text helpers over the opaque post document.

The editor stores posts as a node tree (``{"type": ..., "content": [...]}``
with ``{"type": "text", "text": ...}`` leaves).  Nothing here validates
that shape; unknown or malformed nodes simply contribute no text.
"""
from typing import Any


def _node_text(node: Any) -> str:
    if not isinstance(node, dict):
        return ""
    if node.get("type") == "text" and isinstance(node.get("text"), str):
        return node["text"]
    children = node.get("content")
    if isinstance(children, list):
        return " ".join(_node_text(child) for child in children)
    return ""


def extract_text(content: Any) -> str:
    """Return the visible text of *content*, one line per top-level block."""
    if isinstance(content, str):
        return content.strip()
    if not isinstance(content, dict):
        return ""
    blocks = content.get("content")
    if not isinstance(blocks, list):
        return ""
    return "\n".join(_node_text(block) for block in blocks).strip()


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def generate_excerpt(content: Any, max_length: int = 300) -> str:
    return truncate(extract_text(content), max_length)
