"""
Pydantic models shared across blogboard.

Output models describe what the LLM is asked to produce; every field carries
a natural-language description that ends up in the JSON schema sent to the
provider. Request models validate the bodies accepted by the HTTP flows.

JSON field names are camelCase (``readingTime``, ``mainPoints``); Python
attributes stay snake_case.
"""

from __future__ import annotations

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _OutputModel(_CamelModel):
    # Structured outputs require closed object schemas.
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


# ── Generated content ──────────────────────────────────────────────────────


class Subtopic(_OutputModel):
    """One angle on the main topic; becomes a board column."""

    id: str = Field(description="Unique identifier for the subtopic")
    title: str = Field(description="The subtopic title")
    description: str = Field(description="Brief description of the subtopic")


class PostSummary(_OutputModel):
    """A pitch for a single post within a subtopic; becomes a card."""

    id: str = Field(description="Unique identifier for the blog post")
    summary: str = Field(description="Compelling 2-3 sentence summary")
    title: Optional[str] = Field(default=None, description="The blog post title")
    reading_time: Optional[int] = Field(
        default=None, description="Estimated reading time in minutes"
    )


class BlogPost(_OutputModel):
    """A complete generated article."""

    title: str = Field(description="The blog post title")
    summary: str = Field(description="Compelling 2-3 sentence summary")
    main_points: list[str] = Field(description="5-7 main points from the post")
    reading_time: int = Field(description="Estimated reading time in minutes")
    tags: list[str] = Field(description="Relevant tags for the post")
    content: Optional[str] = Field(
        default=None, description="The complete blog post content"
    )


# List outputs travel inside an object envelope; structured-output schemas
# must have an object at the root.


class SubtopicList(_OutputModel):
    items: list[Subtopic] = Field(description="5-7 distinct subtopics")


class PostSummaryList(_OutputModel):
    items: list[PostSummary] = Field(description="4-6 distinct blog post ideas")


class BlogPostList(_OutputModel):
    items: list[BlogPost] = Field(description="Detailed blog post outlines")


# ── Requests ───────────────────────────────────────────────────────────────

Topic = Annotated[str, Field(min_length=1, max_length=500, description="Blog post topic")]
SubtopicTitle = Annotated[str, Field(min_length=1, max_length=500)]
Audience = Optional[Annotated[str, Field(max_length=500, description="Target audience")]]


class GenerateSubtopicsRequest(_CamelModel):
    topic: Topic


class GeneratePostSummariesRequest(_CamelModel):
    topic: Topic
    subtopic: SubtopicTitle
    description: str = Field(
        min_length=1, max_length=1000, description="Subtopic description for context"
    )


class GenerateCompletePostRequest(_CamelModel):
    """Input for a full post.

    Accepts either ``audience`` (sent by the board) or ``readingTime``
    (target length); both are optional.
    """

    topic: Topic
    subtopic: SubtopicTitle
    summary: str = Field(min_length=1, max_length=1000)
    audience: Audience = None
    reading_time: Optional[int] = Field(
        default=None, ge=1, le=60, description="Estimated reading time in minutes"
    )


class TopicRequest(_CamelModel):
    """Input of the legacy analyze / structured-output endpoints."""

    topic: Topic
    audience: Audience = None
