"""
Structured JSON generation over the Anthropic Messages API.

Flow
────
1. stream_json(prompt, output_model)
     → streams the model's response with a JSON-schema output format
     → after every text delta, decodes the text so far as partial JSON and
       yields it when it has grown
     → validates the complete text against ``output_model`` and yields it

2. parse(prompt, output_model)
     → single non-streaming call through the SDK's ``messages.parse`` helper

Partial decoding uses ``pydantic_core.from_json(..., allow_partial=...)``,
which closes any open arrays/objects/strings in an incomplete document.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic_core import from_json

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SYSTEM_PROMPT = (
    "You are a professional blog editor and content strategist. "
    "Answer with JSON matching the provided schema only. "
    "No commentary, no markdown fences."
)


class GenerationError(RuntimeError):
    """The provider returned no output or output that fails the schema."""


def parse_partial(text: str) -> Optional[Any]:
    """Decode a possibly incomplete JSON document.

    Returns ``None`` while nothing decodable has arrived yet.

    Examples:
        >>> parse_partial('{"items": [{"id": "s1", "title": "Exec')
        {'items': [{'id': 's1', 'title': 'Exec'}]}
    """
    if not text.strip():
        return None
    try:
        return from_json(text, allow_partial="trailing-strings")
    except ValueError:
        return None


class StructuredGenerator:
    """Runs prompts against Claude and returns schema-shaped JSON.

    The Anthropic client is lazy-initialised so that the class can be
    instantiated in tests without requiring a live API key.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(
                api_key=self.settings.anthropic_api_key,
                max_retries=self.settings.max_retries,
            )
        return self._client

    # ── Streaming ──────────────────────────────────────────────────────────

    def stream_json(
        self,
        prompt: str,
        output_model: type[ModelT],
    ) -> Generator[tuple[str, object], None, None]:
        """Stream a structured response.

        Yields ``(event_type, payload)`` tuples:

        * ``("chunk",  dict | list)`` — the partial JSON value decoded so far
        * ``("result", ModelT)``      — the validated final value (last event)

        Raises:
            GenerationError: If the final text does not validate.
            anthropic.APIError: On API errors.
        """
        schema = output_model.model_json_schema()
        text = ""
        last: Optional[Any] = None

        with self.client.messages.stream(
            model=self.settings.model,
            max_tokens=self.settings.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
            output_config={"format": {"type": "json_schema", "schema": schema}},
        ) as stream:
            for event in stream:
                if getattr(event, "type", None) != "content_block_delta":
                    continue
                delta = getattr(event, "delta", None)
                if not delta or getattr(delta, "type", None) != "text_delta":
                    continue

                text += delta.text
                partial = parse_partial(text)
                if partial and partial != last:
                    last = partial
                    yield ("chunk", partial)

        yield ("result", self._validate(text, output_model))

    # ── One-shot ───────────────────────────────────────────────────────────

    def parse(self, prompt: str, output_model: type[ModelT]) -> ModelT:
        """Blocking structured call; returns a validated ``output_model``.

        Raises:
            GenerationError: If the SDK could not produce a parsed object.
        """
        response = self.client.messages.parse(
            model=self.settings.model,
            max_tokens=self.settings.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
            output_format=output_model,
        )
        parsed = response.parsed_output
        if parsed is None:
            raise GenerationError(
                f"Model returned no {output_model.__name__} output."
            )
        return parsed

    @staticmethod
    def _validate(text: str, output_model: type[ModelT]) -> ModelT:
        if not text.strip():
            raise GenerationError(
                f"Model returned no {output_model.__name__} output."
            )
        try:
            return output_model.model_validate_json(text)
        except ValidationError as exc:
            logger.warning("Schema validation failed for %s: %s", output_model.__name__, exc)
            raise GenerationError(
                f"Model output failed {output_model.__name__} schema validation: "
                f"{exc.error_count()} error(s)"
            ) from exc
