"""
Kanban orchestrator: topic → columns of subtopics → cards of posts.

Flow
────
1. Stream subtopics; every chunk rebuilds the column list.
2. One task per column (concurrently): stream that subtopic's summaries;
   every chunk rebuilds the column's placeholder cards.
3. Once a column's summaries are final, one task per card (concurrently):
   stream the complete post; every chunk replaces the card in place.

Only step 1 can fail the whole board. A failed summaries call marks its
column, which can be refetched alone; a failed post call marks its card,
which can be retried alone.

All updates go through ``_apply``, which drops any update produced by a run
older than the current one (``BoardState.generation``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional

from blogboard import board
from blogboard.board import BoardState, CardErrorType, ErrorClassifier, classify_error
from blogboard.client import (
    POST_PATH,
    POST_SUMMARIES_PATH,
    SUBTOPICS_PATH,
    FlowClient,
)

logger = logging.getLogger(__name__)


def _error_message(exc: BaseException, error_type: CardErrorType) -> str:
    return str(exc) or board.DEFAULT_ERROR_MESSAGES[error_type]


class KanbanOrchestrator:
    """Drives a board generation and owns the resulting ``BoardState``.

    Args:
        client: Flow client bound to the API.
        on_change: Called with the new state after every applied update.
        classify: Maps ``(message, default)`` to a ``CardErrorType``.
    """

    def __init__(
        self,
        client: FlowClient,
        on_change: Optional[Callable[[BoardState], None]] = None,
        classify: ErrorClassifier = classify_error,
    ) -> None:
        self.client = client
        self.on_change = on_change
        self.classify = classify
        self._state = BoardState()

    @property
    def state(self) -> BoardState:
        return self._state

    def _apply(self, token: int, reducer: Callable[..., BoardState], *args: Any) -> bool:
        """Run ``reducer`` unless ``token`` belongs to a superseded run."""
        if token != self._state.generation:
            logger.debug("Dropping stale %s for generation %d", reducer.__name__, token)
            return False
        self._state = reducer(self._state, *args)
        if self.on_change is not None:
            self.on_change(self._state)
        return True

    # ── Board ──────────────────────────────────────────────────────────────

    async def generate(self, topic: Optional[str], audience: Optional[str] = None) -> BoardState:
        """Build a full board for ``topic``; returns the final state."""
        topic = (topic or "").strip()
        if not topic:
            self._apply(self._state.generation, board.reject_topic)
            return self._state

        audience = (audience or "").strip() or None
        self._apply(self._state.generation, board.start_generation, topic, audience)
        token = self._state.generation
        logger.info("Generating board %d for topic=%r", token, topic)

        try:
            subtopics: list[Mapping[str, Any]] = []
            async for event_type, payload in self.client.stream(
                SUBTOPICS_PATH, {"topic": topic}
            ):
                if event_type == "result":
                    subtopics = payload or []
                self._apply(token, board.subtopics_received, payload or [])

            async with asyncio.TaskGroup() as group:
                for index, subtopic in enumerate(subtopics):
                    group.create_task(
                        self._fill_column(token, index, subtopic),
                        name=f"column-{index}",
                    )
        except Exception as exc:
            logger.exception("Board generation failed for topic=%r", topic)
            self._apply(token, board.generation_failed, str(exc) or "Unknown error occurred")
        finally:
            self._apply(token, board.generation_finished)

        return self._state

    async def _fill_column(
        self, token: int, column_index: int, subtopic: Mapping[str, Any]
    ) -> None:
        if token != self._state.generation:
            return
        title = subtopic.get("title") or ""
        summaries: list[Mapping[str, Any]] = []
        try:
            async for _event_type, payload in self.client.stream(
                POST_SUMMARIES_PATH,
                {
                    "topic": self._state.topic,
                    "subtopic": title,
                    "description": subtopic.get("description") or "",
                },
            ):
                summaries = payload or []
                self._apply(token, board.summaries_received, column_index, summaries)
        except Exception as exc:
            logger.exception("Summaries failed for column %d (%r)", column_index, title)
            message = _error_message(exc, CardErrorType.SUMMARY)
            self._apply(token, board.column_failed, column_index, message)
            return

        async with asyncio.TaskGroup() as group:
            for summary in summaries:
                card_id = summary.get("id")
                if not card_id:
                    continue
                group.create_task(
                    self._fill_card(
                        token, column_index, title, card_id, summary.get("summary") or ""
                    ),
                    name=f"card-{column_index}-{card_id}",
                )

    async def _fill_card(
        self,
        token: int,
        column_index: int,
        subtopic_title: str,
        card_id: str,
        summary: str,
    ) -> None:
        if token != self._state.generation:
            return
        flow_input: dict[str, Any] = {
            "topic": self._state.topic,
            "subtopic": subtopic_title,
            "summary": summary,
        }
        if self._state.audience:
            flow_input["audience"] = self._state.audience

        try:
            async for event_type, payload in self.client.stream(POST_PATH, flow_input):
                self._apply(
                    token,
                    board.post_received,
                    column_index,
                    card_id,
                    payload or {},
                    event_type == "result",
                )
        except Exception as exc:
            error_type = self.classify(str(exc), CardErrorType.POST)
            message = _error_message(exc, error_type)
            logger.error("[%s] post phase failed (%s): %s", card_id, error_type.value, message)
            self._apply(token, board.card_failed, column_index, card_id, error_type, message)

    # ── Card actions ───────────────────────────────────────────────────────

    async def retry_card(self, column_index: int, card_id: str) -> None:
        """Regenerate one card's post from its existing summary."""
        card = self._state.find_card(column_index, card_id)
        if card is None:
            return
        token = self._state.generation
        self._apply(token, board.retry_started, column_index, card_id)

        column = self._state.columns[column_index]
        logger.info("Retrying card %s in column %d", card_id, column_index)
        summary = card.source_summary or card.summary or ""
        await self._fill_card(token, column_index, column.subtopic, card_id, summary)

    async def retry_failed_cards(self) -> int:
        """Retry every card currently showing an error; returns how many."""
        failed = self._state.failed_cards()
        if failed:
            async with asyncio.TaskGroup() as group:
                for column_index, card_id in failed:
                    group.create_task(
                        self.retry_card(column_index, card_id),
                        name=f"retry-{column_index}-{card_id}",
                    )
        return len(failed)

    def dismiss_card_error(self, column_index: int, card_id: str) -> None:
        self._apply(self._state.generation, board.error_dismissed, column_index, card_id)

    def dismiss_all_errors(self) -> None:
        for column_index, card_id in self._state.failed_cards():
            self.dismiss_card_error(column_index, card_id)

    # ── Column actions ─────────────────────────────────────────────────────

    async def retry_column(self, column_index: int) -> None:
        """Refetch one column's summaries, then its posts."""
        if not 0 <= column_index < len(self._state.columns):
            return
        column = self._state.columns[column_index]
        token = self._state.generation
        self._apply(token, board.column_retry_started, column_index)
        logger.info("Retrying column %d (%r)", column_index, column.subtopic)
        await self._fill_column(
            token,
            column_index,
            {"title": column.subtopic, "description": column.description},
        )
