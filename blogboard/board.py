"""Kanban board state and the pure reducers that update it.

The board is a single immutable ``BoardState`` value. Every event the
orchestrator sees (a subtopics chunk, a summaries chunk, a post chunk, a
card failure, a retry, a dismiss) maps to one reducer here that takes the
current state and returns a new one. Nothing is mutated in place, so any
state handed to a view stays valid.

Column/card layout
──────────────────
BoardState.columns   one Column per subtopic, in subtopic order
Column.cards         one Card per post summary, keyed by the summary id
Card.error           set when the card's post generation failed
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


# ── Error classification ───────────────────────────────────────────────────


class CardErrorType(str, Enum):
    """Failure categories shown on a card."""

    SUMMARY = "summary"
    POST = "post"
    NETWORK = "network"
    VALIDATION = "validation"
    TIMEOUT = "timeout"


#: Human-readable labels for each error type.
CARD_ERROR_LABELS: dict[CardErrorType, str] = {
    CardErrorType.NETWORK: "🌐 Connection Error",
    CardErrorType.TIMEOUT: "⏱️ Timeout",
    CardErrorType.VALIDATION: "⚠️ Invalid Response",
    CardErrorType.POST: "❌ Generation Failed",
    CardErrorType.SUMMARY: "❌ Summary Failed",
}

#: Fallback messages used when an exception carries no text.
DEFAULT_ERROR_MESSAGES: dict[CardErrorType, str] = {
    CardErrorType.NETWORK: "Network connection failed. Check your internet connection.",
    CardErrorType.TIMEOUT: "Request timed out. Please try again.",
    CardErrorType.POST: "Failed to generate blog post. Please retry.",
    CardErrorType.VALIDATION: "Server returned invalid data. Please retry.",
    CardErrorType.SUMMARY: "Failed to fetch summary. Please retry.",
}

_KEYWORDS: tuple[tuple[CardErrorType, tuple[str, ...]], ...] = (
    (CardErrorType.TIMEOUT, ("timeout", "timed out")),
    (CardErrorType.NETWORK, ("network", "connection", "fetch")),
    (CardErrorType.VALIDATION, ("validation", "schema")),
)

#: ``(message, default) -> type``; swap in a code-based classifier here.
ErrorClassifier = Callable[[str, CardErrorType], CardErrorType]


def classify_error(
    message: str,
    default: CardErrorType = CardErrorType.POST,
) -> CardErrorType:
    """Classify a failure by keywords in its message.

    Examples:
        >>> classify_error("Read timeout after 30s")
        <CardErrorType.TIMEOUT: 'timeout'>
        >>> classify_error("Connection refused")
        <CardErrorType.NETWORK: 'network'>
        >>> classify_error("boom")
        <CardErrorType.POST: 'post'>
    """
    lowered = (message or "").lower()
    for error_type, keywords in _KEYWORDS:
        if any(k in lowered for k in keywords):
            return error_type
    return default


# ── State ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CardError:
    type: CardErrorType
    message: str
    timestamp: datetime
    retry_count: int = 0


@dataclass(frozen=True)
class Card:
    """A (possibly partial) blog post keyed by its summary id."""

    id: str
    title: Optional[str] = None
    summary: Optional[str] = None
    reading_time: Optional[int] = None
    tags: Optional[tuple[str, ...]] = None
    main_points: Optional[tuple[str, ...]] = None
    error: Optional[CardError] = None
    #: Summary text from the summaries step; the post request is built from it.
    source_summary: Optional[str] = None


@dataclass(frozen=True)
class Column:
    subtopic: str
    description: str
    cards: tuple[Card, ...] = ()
    is_loading: bool = True
    #: Set when this column's summaries could not be fetched.
    error: Optional[str] = None


@dataclass(frozen=True)
class BoardState:
    #: Bumped by every ``start_generation``; used to discard stale updates.
    generation: int = 0
    topic: str = ""
    audience: Optional[str] = None
    columns: tuple[Column, ...] = field(default_factory=tuple)
    is_generating: bool = False
    error: str = ""

    @property
    def total_cards(self) -> int:
        return sum(len(col.cards) for col in self.columns)

    def find_card(self, column_index: int, card_id: str) -> Optional[Card]:
        if not 0 <= column_index < len(self.columns):
            return None
        for card in self.columns[column_index].cards:
            if card.id == card_id:
                return card
        return None

    def failed_columns(self) -> list[int]:
        return [i for i, column in enumerate(self.columns) if column.error]

    def failed_cards(self) -> list[tuple[int, str]]:
        """(column index, card id) of every card showing an error."""
        return [
            (index, card.id)
            for index, column in enumerate(self.columns)
            for card in column.cards
            if card.error is not None
        ]


# ── Helpers ────────────────────────────────────────────────────────────────


def _optional_tuple(value: Any) -> Optional[tuple[str, ...]]:
    if value is None:
        return None
    return tuple(value)


def _replace_column(state: BoardState, index: int, column: Column) -> BoardState:
    columns = list(state.columns)
    columns[index] = column
    return replace(state, columns=tuple(columns))


def _update_card(
    state: BoardState,
    column_index: int,
    card_id: str,
    update: Callable[[Card], Card],
) -> BoardState:
    """Apply ``update`` to one card; a no-op if the card does not exist."""
    if not 0 <= column_index < len(state.columns):
        return state
    column = state.columns[column_index]
    cards = list(column.cards)
    for i, card in enumerate(cards):
        if card.id == card_id:
            cards[i] = update(card)
            return _replace_column(state, column_index, replace(column, cards=tuple(cards)))
    return state


# ── Reducers: board lifecycle ──────────────────────────────────────────────


def start_generation(
    state: BoardState, topic: str, audience: Optional[str] = None
) -> BoardState:
    """Clear the board for a new run and issue a fresh generation token."""
    return BoardState(
        generation=state.generation + 1,
        topic=topic,
        audience=audience,
        is_generating=True,
    )


def generation_failed(state: BoardState, message: str) -> BoardState:
    return replace(state, error=message)


def generation_finished(state: BoardState) -> BoardState:
    return replace(state, is_generating=False)


def reject_topic(state: BoardState, message: str = "Please enter a topic") -> BoardState:
    return replace(state, error=message)


# ── Reducers: streamed content ─────────────────────────────────────────────


def subtopics_received(
    state: BoardState, subtopics: Iterable[Mapping[str, Any]]
) -> BoardState:
    """Replace all columns with fresh placeholders, one per subtopic."""
    columns = tuple(
        Column(
            subtopic=sub.get("title") or "",
            description=sub.get("description") or "",
        )
        for sub in subtopics
    )
    return replace(state, columns=columns)


def summaries_received(
    state: BoardState,
    column_index: int,
    summaries: Iterable[Mapping[str, Any]],
) -> BoardState:
    """Replace a column's cards with placeholders built from summaries."""
    if not 0 <= column_index < len(state.columns):
        return state
    cards = tuple(
        Card(
            id=s.get("id") or "",
            summary=s.get("summary"),
            source_summary=s.get("summary"),
        )
        for s in summaries
    )
    column = replace(state.columns[column_index], cards=cards, is_loading=False)
    return _replace_column(state, column_index, column)


def post_received(
    state: BoardState,
    column_index: int,
    card_id: str,
    post: Mapping[str, Any],
    final: bool = False,
) -> BoardState:
    """Replace the card's content with ``post``.

    The card is rebuilt from this chunk alone; fields from earlier chunks
    are not merged in, except ``source_summary``. A pending error stays
    visible until the final value arrives, which clears it. Unknown ids are
    appended.
    """
    if not 0 <= column_index < len(state.columns):
        return state
    column = state.columns[column_index]
    cards = list(column.cards)
    index = next((i for i, c in enumerate(cards) if c.id == card_id), -1)

    error = None
    source_summary = None
    if index >= 0:
        source_summary = cards[index].source_summary
        if not final:
            error = cards[index].error

    card = Card(
        id=card_id,
        title=post.get("title"),
        summary=post.get("summary"),
        reading_time=post.get("readingTime"),
        tags=_optional_tuple(post.get("tags")),
        main_points=_optional_tuple(post.get("mainPoints")),
        error=error,
        source_summary=source_summary,
    )
    if index >= 0:
        cards[index] = card
    else:
        logger.debug("Card %s not found in column %d; appending", card_id, column_index)
        cards.append(card)
    return _replace_column(state, column_index, replace(column, cards=tuple(cards)))


def column_failed(state: BoardState, column_index: int, message: str) -> BoardState:
    if not 0 <= column_index < len(state.columns):
        return state
    column = replace(state.columns[column_index], is_loading=False, error=message)
    return _replace_column(state, column_index, column)


def column_retry_started(state: BoardState, column_index: int) -> BoardState:
    """Put a column back into its loading state, clearing error and cards."""
    if not 0 <= column_index < len(state.columns):
        return state
    column = replace(state.columns[column_index], cards=(), is_loading=True, error=None)
    return _replace_column(state, column_index, column)


# ── Reducers: card errors ──────────────────────────────────────────────────


def card_failed(
    state: BoardState,
    column_index: int,
    card_id: str,
    error_type: CardErrorType,
    message: str,
    now: Optional[datetime] = None,
) -> BoardState:
    """Attach an error to a card, keeping its fields and retry count."""
    timestamp = now or datetime.now(timezone.utc)

    def attach(card: Card) -> Card:
        retry_count = card.error.retry_count if card.error else 0
        return replace(
            card,
            error=CardError(
                type=error_type,
                message=message,
                timestamp=timestamp,
                retry_count=retry_count,
            ),
        )

    return _update_card(state, column_index, card_id, attach)


def retry_started(state: BoardState, column_index: int, card_id: str) -> BoardState:
    """Bump the retry count of a failed card by one."""

    def bump(card: Card) -> Card:
        if card.error is None:
            return card
        return replace(card, error=replace(card.error, retry_count=card.error.retry_count + 1))

    return _update_card(state, column_index, card_id, bump)


def error_dismissed(state: BoardState, column_index: int, card_id: str) -> BoardState:
    return _update_card(
        state, column_index, card_id, lambda card: replace(card, error=None)
    )
