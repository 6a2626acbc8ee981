"""Shared utility functions used across the engine."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


# --- Text Utilities -----------------------------------------------------------

def truncate_text(text: str, max_chars: int = 300) -> str:
    """Truncate text for display purposes."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


def make_excerpt(summary: str | None, text: str, max_chars: int = 300) -> str:
    """Result excerpt: the summary when there is one, else the head of the body."""
    return summary or text[:max_chars]


# --- Rich content flattening ------------------------------------------------

def _inline_text(block: dict[str, Any]) -> str:
    parts: list[str] = []
    for item in block.get("content") or []:
        if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
            parts.append(item["text"])
        elif isinstance(item, str):
            parts.append(item)
    return "".join(parts)


def _render_block(block: Any, out: list[str]) -> None:
    if not isinstance(block, dict):
        return

    text = _inline_text(block)
    block_type = block.get("type")

    if block_type == "heading":
        level = (block.get("props") or {}).get("level", 1)
        level = level if isinstance(level, int) and 1 <= level <= 6 else 1
        out.append(f"{'#' * level} {text}")
    elif block_type == "bulletListItem":
        out.append(f"- {text}")
    elif block_type == "numberedListItem":
        out.append(f"1. {text}")
    elif block_type == "codeBlock":
        out.append(f"```\n{text}\n```")
    elif text:
        out.append(text)

    for child in block.get("children") or []:
        _render_block(child, out)


def flatten_blocks(content: Any) -> str:
    """
    Flatten block-structured rich content into Markdown-ish plain text.

    Each block becomes one paragraph (blank-line separated) so the chunker
    can split on paragraph boundaries. Headings keep their ``#`` markers and
    code blocks their fences.
    """
    if not isinstance(content, list):
        return ""
    rendered: list[str] = []
    for block in content:
        _render_block(block, rendered)
    return "\n\n".join(part for part in rendered if part.strip()).strip()


# --- File I/O -----------------------------------------------------------------

def save_json(data: Any, path: str | Path) -> None:
    """Serialise data to JSON using orjson (fast, handles datetime/UUID)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS))


def load_json(path: str | Path) -> Any:
    """Load JSON data from file."""
    with open(Path(path), "rb") as f:
        return orjson.loads(f.read())
