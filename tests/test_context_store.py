"""Tests for the per-conversation context store."""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tenshi_bot.core.content import ContentPart
from tenshi_bot.core.context_store import ContextStore, Role, Turn


def user_turn(text: str, author: str = "user-1") -> Turn:
    return Turn.user([ContentPart.text(text)], author)


class TestTurn:
    """Tests for Turn construction."""

    def test_user_turn(self):
        turn = user_turn("alice: hi")
        assert turn.role == Role.USER
        assert turn.author_id == "user-1"
        assert turn.text == "alice: hi"

    def test_assistant_turn(self):
        turn = Turn.assistant("hello!")
        assert turn.role == Role.ASSISTANT
        assert turn.author_id is None
        assert turn.text == "hello!"

    def test_text_skips_media(self):
        turn = Turn.user([ContentPart.text("look"), ContentPart.image("http://x/a.png")], "u")
        assert turn.text == "look"


class TestContextStore:
    """Tests for ContextStore."""

    def test_rejects_zero_cap(self):
        with pytest.raises(ValueError):
            ContextStore(max_turns=0)

    @pytest.mark.asyncio
    async def test_append_and_get(self):
        store = ContextStore()
        await store.append("c1", user_turn("one"))
        await store.append("c1", Turn.assistant("two"))

        turns = await store.get_turns("c1")
        assert [t.text for t in turns] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_unknown_conversation_is_empty_and_not_created(self):
        store = ContextStore()
        assert await store.get_turns("nope") == []
        assert "nope" not in store

    @pytest.mark.asyncio
    async def test_evicts_oldest_first(self):
        store = ContextStore(max_turns=3)
        for i in range(5):
            await store.append("c1", user_turn(str(i)))

        turns = await store.get_turns("c1")
        assert [t.text for t in turns] == ["2", "3", "4"]

    @pytest.mark.asyncio
    async def test_conversations_are_isolated(self):
        store = ContextStore()
        await store.append("c1", user_turn("in c1"))
        await store.append("c2", user_turn("in c2"))

        assert [t.text for t in await store.get_turns("c1")] == ["in c1"]
        assert [t.text for t in await store.get_turns("c2")] == ["in c2"]

    @pytest.mark.asyncio
    async def test_clear_reports_existence(self):
        store = ContextStore()
        assert await store.clear("c1") is False

        await store.append("c1", user_turn("hi"))
        assert await store.clear("c1") is True
        assert await store.get_turns("c1") == []

    @pytest.mark.asyncio
    async def test_concurrent_appends_keep_every_turn(self):
        store = ContextStore(max_turns=100)
        await asyncio.gather(*(store.append("c1", user_turn(str(i))) for i in range(50)))

        turns = await store.get_turns("c1")
        assert sorted(int(t.text) for t in turns) == list(range(50))

    @given(
        cap=st.integers(min_value=1, max_value=15),
        count=st.integers(min_value=0, max_value=40),
    )
    @settings(max_examples=100)
    def test_length_never_exceeds_cap(self, cap: int, count: int):
        """Property: after any number of appends, length is min(count, cap)."""

        async def run() -> list[Turn]:
            store = ContextStore(max_turns=cap)
            for i in range(count):
                await store.append("c", user_turn(str(i)))
            return await store.get_turns("c")

        turns = asyncio.run(run())
        assert len(turns) == min(count, cap)
        assert [t.text for t in turns] == [str(i) for i in range(max(0, count - cap), count)]
