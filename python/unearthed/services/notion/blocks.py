"""Notion block and property builders for a source page."""

from typing import Any

MAX_TEXT_LENGTH = 2000
QUOTES_HEADING = "Quotes and Notes"

NOTION_COLORS = ("grey", "yellow", "blue", "pink", "orange")


def notion_color(color: str | None) -> str:
    """Map a highlight color ("Yellow highlight") to a Notion text color."""
    lowered = (color or "").lower()
    for name in NOTION_COLORS:
        if name in lowered:
            return "gray" if name == "grey" else name
    return "gray"


def split_long_content(content: str, max_length: int = MAX_TEXT_LENGTH) -> list[str]:
    """Split text into chunks Notion accepts in one rich_text item.

    A chunk breaks at its last space when that space lies past 80% of
    ``max_length``; otherwise it is cut hard at ``max_length``.
    """
    chunks: list[str] = []
    remaining = content
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break
        chunk = remaining[:max_length]
        last_space = chunk.rfind(" ")
        if last_space > max_length * 0.8:
            chunk = chunk[:last_space]
        chunks.append(chunk)
        remaining = remaining[len(chunk) :].strip()
    return chunks


def _rich_text(content: str) -> list[dict[str, Any]]:
    return [{"type": "text", "text": {"content": content}}]


def quote_blocks(content: str, color: str | None) -> list[dict[str, Any]]:
    tint = notion_color(color)
    return [
        {"type": "quote", "quote": {"rich_text": _rich_text(chunk), "color": tint}}
        for chunk in split_long_content(content or "No quote...")
    ]


def note_blocks(note: str) -> list[dict[str, Any]]:
    return [
        {
            "type": "callout",
            "callout": {
                "rich_text": _rich_text(chunk),
                "icon": {"type": "emoji", "emoji": "📝" if index == 0 else "➡️"},
                "color": "default",
            },
        }
        for index, chunk in enumerate(split_long_content(note))
    ]


def location_block(location: str | None) -> dict[str, Any]:
    return {
        "type": "paragraph",
        "paragraph": {"rich_text": _rich_text(f"📍 {location or ''}"), "color": "gray"},
    }


def heading_block() -> dict[str, Any]:
    return {"type": "heading_2", "heading_2": {"rich_text": _rich_text(QUOTES_HEADING)}}


def divider_block() -> dict[str, Any]:
    return {"type": "divider", "divider": {}}


def blocks_for_quote(
    content: str, note: str, color: str | None, location: str | None
) -> list[dict[str, Any]]:
    """Quote, optional note callout, location and divider for one highlight."""
    blocks = quote_blocks(content, color)
    if note:
        blocks.extend(note_blocks(note))
    blocks.append(location_block(location))
    blocks.append(divider_block())
    return blocks


def page_properties(
    title: str,
    subtitle: str | None,
    author: str | None,
    origin: str | None,
    image_url: str | None,
) -> dict[str, Any]:
    """Properties for a page in the "Sources" database."""
    properties: dict[str, Any] = {
        "Title": {"title": _rich_text(title or "Untitled")},
        "Subtitle": {"rich_text": _rich_text(subtitle or "")},
        "Author": {"rich_text": _rich_text(author or "Unknown")},
        "Origin": {"rich_text": _rich_text(origin or "")},
    }
    if image_url:
        properties["Image"] = {
            "files": [{"name": "Book Cover", "type": "external", "external": {"url": image_url}}]
        }
    return properties


def plain_text(rich_text: list[dict[str, Any]] | None) -> str:
    return "".join(item.get("plain_text", "") for item in rich_text or [])


def page_key(page: dict[str, Any]) -> str:
    """"title author" of a Sources database page, for matching local sources."""
    props = page.get("properties", {})
    title = plain_text(props.get("Title", {}).get("title"))
    author = plain_text(props.get("Author", {}).get("rich_text"))
    return f"{title} {author}"


def source_key(title: str, author: str | None) -> str:
    return f"{title or 'Untitled'} {author or 'Unknown'}"
