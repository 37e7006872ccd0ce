"""Plain-text views of a board and of single posts."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from blogboard.board import CARD_ERROR_LABELS, BoardState, Card, Column


def render_card(card: Card) -> list[str]:
    if card.error is not None:
        label = CARD_ERROR_LABELS.get(card.error.type, card.error.type.value)
        lines = [f"  [{card.id}] {label}: {card.error.message}"]
        lines.append(f"      🔄 retries: {card.error.retry_count}")
        return lines

    if card.title:
        lines = [f"  [{card.id}] {card.title}"]
    else:
        lines = [f"  [{card.id}] {card.summary or '…'}"]
    if card.reading_time:
        lines.append(f"      ⏱️ {card.reading_time} min")
    if card.tags:
        lines.append("      " + " ".join(f"#{t}" for t in card.tags))
    return lines


def render_column(index: int, column: Column) -> list[str]:
    lines = [f"▌{index + 1}. {column.subtopic or '…'} ({len(column.cards)})"]
    if column.description:
        lines.append(f"  {column.description}")
    if column.error:
        lines.append(f"  ❌ {column.error}")
    elif column.is_loading:
        lines.append("  loading…")
    for card in column.cards:
        lines.extend(render_card(card))
    return lines


def render_board(state: BoardState) -> str:
    """Render the whole board, one column after another."""
    lines = [f"📊 {state.topic or 'Kanban Board'} — {state.total_cards} cards"]
    if state.is_generating:
        lines[0] += " (generating…)"
    if state.error:
        lines.append(f"Error: {state.error}")
    for index, column in enumerate(state.columns):
        lines.append("")
        lines.extend(render_column(index, column))
    return "\n".join(lines)


def render_post(post: Mapping[str, Any]) -> str:
    """Render one (possibly partial) BlogPost dict."""
    lines = [f"# {post.get('title') or '…'}"]
    if post.get("readingTime"):
        lines.append(f"⏱️ {post['readingTime']} min")
    if post.get("summary"):
        lines += ["", post["summary"]]
    if post.get("mainPoints"):
        lines.append("")
        lines.extend(f"- {point}" for point in post["mainPoints"])
    if post.get("tags"):
        lines += ["", " ".join(f"#{t}" for t in post["tags"])]
    if post.get("content"):
        lines += ["", post["content"]]
    return "\n".join(lines)
