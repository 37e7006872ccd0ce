"""
Generation flows — one prompt template + one output schema per endpoint.

Every flow has the same shape: validate the request body, build a prompt
from the validated fields, stream the model's structured output, relay each
partial value, and finish with the validated final value. The only
branching is interpolation of optional fields into the prompt.

Flows
─────
generateSubtopics          {topic}                          → Subtopic[]
generateBlogPostSummaries  {topic, subtopic, description}   → PostSummary[]
generateCompleteBlogPost   {topic, subtopic, summary, …}    → BlogPost
analyzeBlogPost (legacy)   {topic, audience?}               → BlogPost[]

``generate_structured_output`` is the legacy non-streaming single post.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel

from blogboard.generator import StructuredGenerator
from blogboard.models import (
    BlogPost,
    BlogPostList,
    GenerateCompletePostRequest,
    GeneratePostSummariesRequest,
    GenerateSubtopicsRequest,
    PostSummaryList,
    SubtopicList,
    TopicRequest,
)

logger = logging.getLogger(__name__)


def _dump(value: Any) -> Any:
    """Convert validated output into JSON-ready data with camelCase keys."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


@dataclass(frozen=True)
class Flow:
    """A named, schema-validated unit of model invocation."""

    name: str
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    prompt: Callable[[Any], str]
    #: Envelope key holding the list for array-shaped outputs.
    unwrap: Optional[str] = None

    def validate(self, data: object) -> BaseModel:
        """Validate a request body. Raises ``pydantic.ValidationError``."""
        return self.input_model.model_validate(data)

    def stream(
        self,
        generator: StructuredGenerator,
        request: BaseModel,
    ) -> Generator[tuple[str, object], None, None]:
        """Yield ``("chunk", partial)`` events then one ``("result", final)``.

        Payloads are JSON-ready. Empty partials are not relayed.
        """
        logger.info("Flow %s started", self.name)
        for event_type, payload in generator.stream_json(
            self.prompt(request), self.output_model
        ):
            if event_type == "chunk":
                partial = self._unwrap_partial(payload)
                if partial:
                    yield ("chunk", partial)
            else:
                final = getattr(payload, self.unwrap) if self.unwrap else payload
                logger.info("Flow %s finished", self.name)
                yield ("result", _dump(final))

    def run(self, generator: StructuredGenerator, request: BaseModel) -> Any:
        """Drain the stream and return only the final value."""
        result = None
        for event_type, payload in self.stream(generator, request):
            if event_type == "result":
                result = payload
        return result

    def _unwrap_partial(self, partial: Any) -> Any:
        if not self.unwrap:
            return partial
        if isinstance(partial, dict):
            return partial.get(self.unwrap)
        return None


# ── Prompts ────────────────────────────────────────────────────────────────


def _subtopics_prompt(req: GenerateSubtopicsRequest) -> str:
    return (
        f'Generate 5-7 unique and compelling subtopics for the main topic: "{req.topic}".\n'
        "For each subtopic, provide a clear title and a brief description that "
        "explains how it relates to the main topic.\n"
        "Ensure the subtopics are diverse, cover different aspects of the topic, "
        "and would appeal to a general audience."
    )


def _summaries_prompt(req: GeneratePostSummariesRequest) -> str:
    return (
        f'Generate 4-6 blog post ideas for the topic "{req.topic}" with a focus on '
        f'the subtopic "{req.subtopic}".\n\n'
        f'Subtopic Description: "{req.description}"\n\n'
        "For each blog post, provide:\n"
        "- A compelling and SEO-friendly title\n"
        "- A captivating 2-3 sentence summary that hooks the reader\n"
        "- An estimated reading time in minutes (realistic for the content described)\n\n"
        "Make sure the blog posts are diverse and cover different angles of the subtopic.\n"
        "Each post should be unique and provide distinct value to the reader."
    )


def _complete_post_prompt(req: GenerateCompletePostRequest) -> str:
    lines = [
        "Create a complete, well-structured blog post based on the following:",
        f'Main Topic: "{req.topic}"',
        f'Subtopic: "{req.subtopic}"',
        f'Summary: "{req.summary}"',
    ]
    if req.audience:
        lines.append(f'Target Audience: "{req.audience}"')
    if req.reading_time:
        lines.append(f"Target Reading Time: {req.reading_time} minutes")

    length = (
        f"approximately {req.reading_time} minutes" if req.reading_time
        else "a realistic estimate for the content"
    )
    lines += [
        "",
        "Structure the blog post with:",
        "- A compelling and SEO-optimized title",
        "- An engaging 2-3 sentence summary",
        "- 5-7 main points or sections with detailed explanations",
        f"- Estimated reading time in minutes ({length})",
        "- 5-8 relevant tags",
        "- Well-written content that is informative, engaging, and reader-friendly",
        "",
        "Make the content original, valuable, and suitable for publishing on a professional blog.",
        "Ensure the writing style is clear, accessible, and maintains reader engagement throughout.",
    ]
    return "\n".join(lines)


def _for_audience(audience: Optional[str]) -> str:
    return f" for {audience}" if audience else ""


def _analyze_prompt(req: TopicRequest) -> str:
    return (
        f'Create six detailed blog post outlines about "{req.topic}"'
        f"{_for_audience(req.audience)}. Structure each with a compelling title, "
        "summary, main points, reading time estimate, and tags."
    )


def _structured_output_prompt(req: TopicRequest) -> str:
    return (
        f'Create a detailed blog post outline about "{req.topic}"'
        f"{_for_audience(req.audience)}. Structure it with a compelling title, "
        "summary, main points, reading time estimate, and tags."
    )


# ── Registry ───────────────────────────────────────────────────────────────

SUBTOPICS = Flow(
    name="generateSubtopics",
    input_model=GenerateSubtopicsRequest,
    output_model=SubtopicList,
    prompt=_subtopics_prompt,
    unwrap="items",
)

POST_SUMMARIES = Flow(
    name="generateBlogPostSummaries",
    input_model=GeneratePostSummariesRequest,
    output_model=PostSummaryList,
    prompt=_summaries_prompt,
    unwrap="items",
)

COMPLETE_POST = Flow(
    name="generateCompleteBlogPost",
    input_model=GenerateCompletePostRequest,
    output_model=BlogPost,
    prompt=_complete_post_prompt,
)

ANALYZE_BLOG_POST = Flow(
    name="analyzeBlogPost",
    input_model=TopicRequest,
    output_model=BlogPostList,
    prompt=_analyze_prompt,
    unwrap="items",
)

#: URL path segment (under ``/api/blog``) → flow.
FLOWS: dict[str, Flow] = {
    "subtopics": SUBTOPICS,
    "post-summaries": POST_SUMMARIES,
    "post": COMPLETE_POST,
    "analyze-blog-post": ANALYZE_BLOG_POST,
}


def generate_structured_output(
    generator: StructuredGenerator,
    request: TopicRequest,
) -> BlogPost:
    """Legacy one-shot post outline (no streaming)."""
    logger.info("Structured output requested for topic=%r", request.topic)
    return generator.parse(_structured_output_prompt(request), BlogPost)
