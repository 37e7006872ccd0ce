"""
Tests for blogboard/kanban.py — orchestration against a scripted flow client.

Run with: pytest tests/test_kanban.py
"""

from __future__ import annotations

import asyncio

import pytest

from blogboard import board
from blogboard.__main__ import build_parser, drive_board
from blogboard.board import CardErrorType
from blogboard.client import POST_PATH, POST_SUMMARIES_PATH, SUBTOPICS_PATH, FlowError
from blogboard.kanban import KanbanOrchestrator


class FakeFlowClient:
    """Replays scripted stream events per path.

    A script is a list of ``(event_type, payload)`` tuples, or a callable
    taking the flow input and returning one. Inside a script, an exception
    is raised, an ``asyncio.Event`` is awaited, and a zero-arg callable is
    called.
    """

    def __init__(self, scripts: dict):
        self.scripts = scripts
        self.calls: list[tuple[str, dict]] = []

    async def stream(self, path, flow_input):
        self.calls.append((path, flow_input))
        script = self.scripts[path]
        if callable(script):
            script = script(flow_input)
        for step in script:
            if isinstance(step, BaseException):
                raise step
            if isinstance(step, asyncio.Event):
                await step.wait()
                continue
            if callable(step):
                step()
                continue
            yield step

    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]


FULL_POST = {
    "title": "Inside an executor",
    "summary": "How polling works.",
    "mainPoints": ["Futures", "Polling", "Wakers"],
    "readingTime": 7,
    "tags": ["rust", "async"],
}


def happy_scripts(post_script=None) -> dict:
    return {
        SUBTOPICS_PATH: [
            ("chunk", [{"id": "s1"}]),
            ("chunk", [{"id": "s1", "title": "Executors"}]),
            ("result", [{"id": "s1", "title": "Executors", "description": "Run tasks"}]),
        ],
        POST_SUMMARIES_PATH: [
            ("chunk", [{"id": "p1"}]),
            ("result", [{"id": "p1", "summary": "Polling explained"}]),
        ],
        POST_PATH: post_script or [
            ("chunk", {"title": "Inside"}),
            ("chunk", {"title": "Inside an executor", "summary": "How polling works."}),
            ("result", FULL_POST),
        ],
    }


# ── Board generation ───────────────────────────────────────────────────────────


class TestGenerate:
    @pytest.mark.asyncio
    async def test_end_to_end(self):
        client = FakeFlowClient(happy_scripts())
        orchestrator = KanbanOrchestrator(client)

        state = await orchestrator.generate("Rust async runtimes")

        assert state.error == ""
        assert state.is_generating is False
        assert len(state.columns) == 1
        column = state.columns[0]
        assert column.subtopic == "Executors"
        assert column.description == "Run tasks"
        assert column.is_loading is False
        assert len(column.cards) == 1
        card = column.cards[0]
        assert card.id == "p1"
        assert card.title == "Inside an executor"
        assert card.reading_time == 7
        assert card.tags == ("rust", "async")
        assert card.main_points == ("Futures", "Polling", "Wakers")
        assert card.error is None
        assert client.paths() == [SUBTOPICS_PATH, POST_SUMMARIES_PATH, POST_PATH]

    @pytest.mark.asyncio
    async def test_requests_carry_context(self):
        client = FakeFlowClient(happy_scripts())
        await KanbanOrchestrator(client).generate("Rust", audience="backend devs")

        _, summaries_input = client.calls[1]
        assert summaries_input == {
            "topic": "Rust", "subtopic": "Executors", "description": "Run tasks",
        }
        _, post_input = client.calls[2]
        assert post_input == {
            "topic": "Rust",
            "subtopic": "Executors",
            "summary": "Polling explained",
            "audience": "backend devs",
        }

    @pytest.mark.asyncio
    async def test_audience_omitted_when_blank(self):
        client = FakeFlowClient(happy_scripts())
        await KanbanOrchestrator(client).generate("Rust", audience="  ")
        assert "audience" not in client.calls[2][1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("topic", ["", "   ", None])
    async def test_empty_topic(self, topic):
        client = FakeFlowClient({})
        state = await KanbanOrchestrator(client).generate(topic)

        assert state.error == "Please enter a topic"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_progressive_states_reported(self):
        seen = []
        client = FakeFlowClient(happy_scripts())
        await KanbanOrchestrator(client, on_change=seen.append).generate("Rust")

        assert seen[0].is_generating is True
        assert seen[0].columns == ()
        # placeholder column before the title arrived
        assert seen[1].columns[0].subtopic == ""
        assert any(s.columns and s.columns[0].is_loading for s in seen)
        assert seen[-1].is_generating is False

    @pytest.mark.asyncio
    async def test_resubmit_clears_previous_board(self):
        scripts = happy_scripts()
        client = FakeFlowClient(scripts)
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")

        scripts[SUBTOPICS_PATH] = [
            ("result", [{"id": "g1", "title": "Goroutines", "description": "d"}]),
        ]
        scripts[POST_SUMMARIES_PATH] = [("result", [])]
        state = await orchestrator.generate("Go")

        assert [c.subtopic for c in state.columns] == ["Goroutines"]
        assert state.total_cards == 0
        assert state.topic == "Go"

    @pytest.mark.asyncio
    async def test_columns_fill_independently(self):
        def summaries(flow_input):
            if flow_input["subtopic"] == "B":
                return [("result", [{"id": "b1", "summary": "bee"}])]
            return [("result", [{"id": "a1", "summary": "ay"}, {"id": "a2", "summary": "ay2"}])]

        client = FakeFlowClient({
            SUBTOPICS_PATH: [("result", [
                {"id": "1", "title": "A", "description": "a"},
                {"id": "2", "title": "B", "description": "b"},
            ])],
            POST_SUMMARIES_PATH: summaries,
            POST_PATH: lambda flow_input: [("result", {"title": flow_input["summary"].upper()})],
        })

        state = await KanbanOrchestrator(client).generate("letters")

        assert [c.title for c in state.columns[0].cards] == ["AY", "AY2"]
        assert [c.title for c in state.columns[1].cards] == ["BEE"]


# ── Failure policy ─────────────────────────────────────────────────────────────


class TestFailures:
    @pytest.mark.asyncio
    async def test_subtopics_failure_is_fatal(self):
        client = FakeFlowClient({
            SUBTOPICS_PATH: [FlowError("topic: String should have at most 500 characters", 400)],
        })
        state = await KanbanOrchestrator(client).generate("x" * 501)

        assert "at most 500" in state.error
        assert state.is_generating is False
        assert client.paths() == [SUBTOPICS_PATH]

    @pytest.mark.asyncio
    async def test_summary_failure_marks_column_only(self):
        def summaries(flow_input):
            if flow_input["subtopic"] == "Broken":
                return [ConnectionError("Connection reset")]
            return [("result", [{"id": "p1", "summary": "ok"}])]

        client = FakeFlowClient({
            SUBTOPICS_PATH: [("result", [
                {"id": "1", "title": "Broken", "description": "d"},
                {"id": "2", "title": "Fine", "description": "d"},
            ])],
            POST_SUMMARIES_PATH: summaries,
            POST_PATH: [("result", FULL_POST)],
        })

        state = await KanbanOrchestrator(client).generate("Rust")

        assert state.error == ""
        broken, fine = state.columns
        assert broken.error == "Connection reset"
        assert broken.cards == ()
        assert broken.is_loading is False
        assert fine.error is None
        assert fine.cards[0].title == "Inside an executor"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc, expected", [
        (FlowError("Request timeout"), CardErrorType.TIMEOUT),
        (ConnectionError("connection refused"), CardErrorType.NETWORK),
        (FlowError("Model output failed BlogPost schema validation"), CardErrorType.VALIDATION),
        (FlowError("quota exceeded"), CardErrorType.POST),
    ])
    async def test_post_failure_becomes_card_error(self, exc, expected):
        client = FakeFlowClient(happy_scripts(post_script=[
            ("chunk", {"title": "Half", "summary": "Partial"}),
            exc,
        ]))

        state = await KanbanOrchestrator(client).generate("Rust")

        assert state.error == ""
        card = state.columns[0].cards[0]
        assert card.error.type == expected
        assert card.error.message == str(exc)
        assert card.error.retry_count == 0
        assert card.title == "Half"

    @pytest.mark.asyncio
    async def test_empty_message_uses_default_text(self):
        client = FakeFlowClient(happy_scripts(post_script=[RuntimeError()]))
        state = await KanbanOrchestrator(client).generate("Rust")

        error = state.columns[0].cards[0].error
        assert error.type == CardErrorType.POST
        assert error.message == board.DEFAULT_ERROR_MESSAGES[CardErrorType.POST]

    @pytest.mark.asyncio
    async def test_custom_classifier(self):
        client = FakeFlowClient(happy_scripts(post_script=[FlowError("E_NET_42")]))

        def by_code(message, default):
            return CardErrorType.NETWORK if message.startswith("E_NET") else default

        state = await KanbanOrchestrator(client, classify=by_code).generate("Rust")
        assert state.columns[0].cards[0].error.type == CardErrorType.NETWORK


# ── Card actions ───────────────────────────────────────────────────────────────


class TestRetryAndDismiss:
    @pytest.mark.asyncio
    async def test_retry_success_clears_error(self):
        scripts = happy_scripts(post_script=[FlowError("network down")])
        client = FakeFlowClient(scripts)
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")

        scripts[POST_PATH] = [("result", FULL_POST)]
        await orchestrator.retry_card(0, "p1")

        card = orchestrator.state.find_card(0, "p1")
        assert card.error is None
        assert card.title == "Inside an executor"
        # only the post step reran, with the stored summary
        assert client.paths()[-1] == POST_PATH
        assert client.calls[-1][1]["summary"] == "Polling explained"
        assert client.paths().count(SUBTOPICS_PATH) == 1

    @pytest.mark.asyncio
    async def test_retry_failure_increments_count(self):
        client = FakeFlowClient(happy_scripts(post_script=[FlowError("network down")]))
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")

        await orchestrator.retry_card(0, "p1")
        assert orchestrator.state.find_card(0, "p1").error.retry_count == 1

        await orchestrator.retry_card(0, "p1")
        assert orchestrator.state.find_card(0, "p1").error.retry_count == 2
        assert len(orchestrator.state.columns[0].cards) == 1

    @pytest.mark.asyncio
    async def test_retry_unknown_card_does_nothing(self):
        client = FakeFlowClient(happy_scripts())
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")
        calls = len(client.calls)

        await orchestrator.retry_card(0, "missing")
        assert len(client.calls) == calls

    @pytest.mark.asyncio
    async def test_dismiss_clears_error(self):
        client = FakeFlowClient(happy_scripts(post_script=[FlowError("boom")]))
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")

        orchestrator.dismiss_card_error(0, "p1")

        card = orchestrator.state.find_card(0, "p1")
        assert card.error is None
        assert card.summary == "Polling explained"

    @pytest.mark.asyncio
    async def test_retry_after_title_only_chunk_sends_original_summary(self):
        scripts = happy_scripts(post_script=[
            ("chunk", {"title": "Inside"}),
            FlowError("Read timeout"),
        ])
        client = FakeFlowClient(scripts)
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")

        failed = orchestrator.state.find_card(0, "p1")
        assert failed.summary is None
        assert failed.error.type == CardErrorType.TIMEOUT

        scripts[POST_PATH] = [("result", FULL_POST)]
        await orchestrator.retry_card(0, "p1")

        assert client.calls[-1][1]["summary"] == "Polling explained"
        card = orchestrator.state.find_card(0, "p1")
        assert card.error is None
        assert card.title == "Inside an executor"

    @pytest.mark.asyncio
    async def test_retry_failed_cards_retries_each_once(self):
        def posts(flow_input):
            if flow_input["summary"] == "second":
                return [FlowError("network down")]
            return [("result", {"title": flow_input["summary"]})]

        scripts = happy_scripts(post_script=posts)
        scripts[POST_SUMMARIES_PATH] = [
            ("result", [{"id": "p1", "summary": "first"}, {"id": "p2", "summary": "second"}]),
        ]
        client = FakeFlowClient(scripts)
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")
        assert orchestrator.state.failed_cards() == [(0, "p2")]

        scripts[POST_PATH] = [("result", {"title": "Recovered"})]
        assert await orchestrator.retry_failed_cards() == 1

        assert orchestrator.state.failed_cards() == []
        assert orchestrator.state.find_card(0, "p2").title == "Recovered"
        assert await orchestrator.retry_failed_cards() == 0

    @pytest.mark.asyncio
    async def test_dismiss_all_errors(self):
        scripts = happy_scripts(post_script=[FlowError("boom")])
        scripts[POST_SUMMARIES_PATH] = [
            ("result", [{"id": "p1", "summary": "a"}, {"id": "p2", "summary": "b"}]),
        ]
        orchestrator = KanbanOrchestrator(FakeFlowClient(scripts))
        await orchestrator.generate("Rust")
        assert len(orchestrator.state.failed_cards()) == 2

        orchestrator.dismiss_all_errors()
        assert orchestrator.state.failed_cards() == []


class TestRetryColumn:
    @pytest.mark.asyncio
    async def test_refetches_failed_column(self):
        scripts = happy_scripts()
        scripts[POST_SUMMARIES_PATH] = [ConnectionError("Connection reset")]
        client = FakeFlowClient(scripts)
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")
        assert orchestrator.state.failed_columns() == [0]

        scripts[POST_SUMMARIES_PATH] = [("result", [{"id": "p1", "summary": "Polling explained"}])]
        await orchestrator.retry_column(0)

        column = orchestrator.state.columns[0]
        assert column.error is None
        assert column.is_loading is False
        assert column.cards[0].title == "Inside an executor"
        _, summaries_input = client.calls[-2]
        assert summaries_input == {
            "topic": "Rust", "subtopic": "Executors", "description": "Run tasks",
        }

    @pytest.mark.asyncio
    async def test_unknown_column_does_nothing(self):
        client = FakeFlowClient(happy_scripts())
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")
        calls = len(client.calls)

        await orchestrator.retry_column(3)
        assert len(client.calls) == calls


# ── Command line ───────────────────────────────────────────────────────────────


class TestDriveBoard:
    @pytest.mark.asyncio
    async def test_retries_failed_cards(self):
        attempts = []

        def posts(flow_input):
            attempts.append(flow_input)
            if len(attempts) == 1:
                return [("chunk", {"title": "Inside"}), FlowError("Read timeout")]
            return [("result", FULL_POST)]

        client = FakeFlowClient(happy_scripts(post_script=posts))
        state = await drive_board(KanbanOrchestrator(client), "Rust", None, retries=2)

        assert state.failed_cards() == []
        assert state.columns[0].cards[0].title == "Inside an executor"
        assert [a["summary"] for a in attempts] == ["Polling explained"] * 2

    @pytest.mark.asyncio
    async def test_stops_after_retry_rounds_then_dismisses(self):
        client = FakeFlowClient(happy_scripts(post_script=[FlowError("boom")]))
        state = await drive_board(
            KanbanOrchestrator(client), "Rust", None, retries=2, dismiss=True
        )

        assert client.paths().count(POST_PATH) == 3
        assert state.failed_cards() == []

    @pytest.mark.asyncio
    async def test_no_retries_by_default(self):
        client = FakeFlowClient(happy_scripts(post_script=[FlowError("boom")]))
        state = await drive_board(KanbanOrchestrator(client), "Rust", None)

        assert client.paths().count(POST_PATH) == 1
        assert state.failed_cards() == [(0, "p1")]

    def test_parser_options(self):
        args = build_parser().parse_args(
            ["board", "Rust", "--retry-failed", "3", "--dismiss-failed"]
        )
        assert (args.topic, args.retry_failed, args.dismiss_failed) == ("Rust", 3, True)

        args = build_parser().parse_args(["board", "Rust"])
        assert (args.retry_failed, args.dismiss_failed) == (0, False)


# ── Superseded runs ────────────────────────────────────────────────────────────


class TestGenerationToken:
    @pytest.mark.asyncio
    async def test_stale_updates_are_dropped(self):
        reached = asyncio.Event()
        gate = asyncio.Event()

        def subtopics(flow_input):
            title = "Old col" if flow_input["topic"] == "first" else "New col"
            return [("result", [{"id": "1", "title": title, "description": "d"}])]

        def summaries(flow_input):
            if flow_input["subtopic"] == "Old col":
                return [reached.set, gate, ("result", [{"id": "old", "summary": "stale"}])]
            return [("result", [{"id": "new", "summary": "fresh"}])]

        client = FakeFlowClient({
            SUBTOPICS_PATH: subtopics,
            POST_SUMMARIES_PATH: summaries,
            POST_PATH: [("result", {"title": "Fresh post"})],
        })
        orchestrator = KanbanOrchestrator(client)

        first = asyncio.create_task(orchestrator.generate("first"))
        await reached.wait()
        await orchestrator.generate("second")
        gate.set()
        await first

        state = orchestrator.state
        assert state.topic == "second"
        assert [c.subtopic for c in state.columns] == ["New col"]
        assert [c.id for c in state.columns[0].cards] == ["new"]
        assert state.columns[0].cards[0].title == "Fresh post"
        # the superseded run never asked for the stale card's post
        post_calls = [i for p, i in client.calls if p == POST_PATH]
        assert [i["summary"] for i in post_calls] == ["fresh"]

    @pytest.mark.asyncio
    async def test_apply_rejects_old_token(self):
        client = FakeFlowClient(happy_scripts())
        orchestrator = KanbanOrchestrator(client)
        await orchestrator.generate("Rust")
        old = orchestrator.state.generation
        await orchestrator.generate("Rust")

        assert orchestrator._apply(old, board.subtopics_received, [{"title": "x"}]) is False
        assert orchestrator.state.columns[0].subtopic == "Executors"
