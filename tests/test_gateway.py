"""Tests for the gateway boundary helpers."""

from hypothesis import given
from hypothesis import strategies as st

from tenshi_bot.gateway import MAX_MESSAGE_LENGTH, IncomingMessage, split_message


class TestSplitMessage:
    """Tests for split_message."""

    def test_short_message_untouched(self):
        assert split_message("hello") == ["hello"]

    def test_splits_at_word_boundary(self):
        chunks = split_message("aaaa bbbb cccc", max_length=10)
        assert chunks == ["aaaa bbbb", "cccc"]

    def test_hard_split_without_spaces(self):
        chunks = split_message("x" * 25, max_length=10)
        assert chunks == ["x" * 10, "x" * 10, "x" * 5]

    def test_default_limit(self):
        assert MAX_MESSAGE_LENGTH == 2000
        chunks = split_message("y" * 4500)
        assert [len(c) for c in chunks] == [2000, 2000, 500]

    @given(text=st.text(alphabet="ab ", min_size=1, max_size=300))
    def test_chunks_fit(self, text: str):
        """Property: every chunk fits the limit."""
        for chunk in split_message(text, max_length=20):
            assert len(chunk) <= 20


class TestIncomingMessage:
    """Tests for IncomingMessage."""

    def test_defaults(self):
        msg = IncomingMessage("1", "u", "hi", "c", "alice")
        assert msg.author_is_bot is False
        assert msg.mentions == []
        assert msg.attachments == []

    def test_str(self):
        msg = IncomingMessage("1", "u", "hi", "c", "alice", channel_name="general")
        assert str(msg) == "[general] <alice> hi"
