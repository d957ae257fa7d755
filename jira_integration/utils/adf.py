"""Atlassian Document Format helpers.

REST v3 exchanges rich text (descriptions, comments) as ADF documents,
REST v2 as plain strings. Local entities only store plain text.
"""

from typing import Any, Dict, List, Optional

_BLOCK_TYPES = {"paragraph", "heading", "codeBlock"}


def text_to_adf(text: str) -> Dict[str, Any]:
    """Wrap plain text in an ADF document, one paragraph per line."""
    content = []
    for line in text.split("\n"):
        paragraph: Dict[str, Any] = {"type": "paragraph", "content": []}
        if line:
            paragraph["content"].append({"type": "text", "text": line})
        content.append(paragraph)
    return {"type": "doc", "version": 1, "content": content}


def adf_to_text(node: Any) -> str:
    """Flatten an ADF document (or a plain string) into text."""
    if node is None:
        return ""
    if isinstance(node, str):
        return node

    blocks: List[str] = []
    current: List[str] = []

    def _walk(item: Any) -> None:
        if isinstance(item, list):
            for child in item:
                _walk(child)
            return
        if not isinstance(item, dict):
            return

        node_type = item.get("type")
        if node_type == "text":
            current.append(item.get("text", ""))
        elif node_type == "hardBreak":
            current.append("\n")

        _walk(item.get("content", []))

        if node_type in _BLOCK_TYPES:
            blocks.append("".join(current))
            current.clear()

    _walk(node)
    if current:
        blocks.append("".join(current))
    return "\n".join(blocks)


def to_rich_text(text: Optional[str], api_version: str) -> Any:
    """Encode text for the given REST version."""
    if text is None:
        return None
    return text_to_adf(text) if api_version == "3" else text
