"""
blogboard core package.

Modules
───────
models     — Pydantic schemas (Subtopic, PostSummary, BlogPost, request bodies)
generator  — Claude structured-output calls with partial-JSON streaming
flows      — one Flow per endpoint: prompt + input/output schema
client     — async httpx client for the streaming flow protocol
board      — immutable board state, reducers, error classification
kanban     — orchestrator fanning subtopics → summaries → posts into the board
render     — plain-text board/post views used by the CLI
"""
