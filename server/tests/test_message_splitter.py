"""Tests for the reply splitter."""

from __future__ import annotations

import pytest

from ade_gateway.utils.message_splitter import MAX_MESSAGE_LENGTH, split_message


def _squash(text: str) -> str:
    return "".join(text.split())


def test_short_text_is_one_chunk():
    assert split_message("hello") == ["hello"]


def test_text_at_limit_is_one_chunk():
    text = "a" * MAX_MESSAGE_LENGTH
    assert split_message(text) == [text]


@pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
def test_blank_text_gives_no_chunks(text):
    assert split_message(text) == []


def test_invalid_limit():
    with pytest.raises(ValueError):
        split_message("text", 0)


def test_long_text_respects_limit_and_keeps_content():
    paragraph = "This sentence is part of a long paragraph. " * 20
    text = "\n\n".join(paragraph.strip() for _ in range(11))
    assert len(text) > 9000

    chunks = split_message(text)

    assert len(chunks) >= 3
    assert all(0 < len(c) <= MAX_MESSAGE_LENGTH for c in chunks)
    assert _squash("".join(chunks)) == _squash(text)


def test_prefers_paragraph_breaks():
    text = "first paragraph here\n\nsecond paragraph here"
    assert split_message(text, 30) == ["first paragraph here", "second paragraph here"]


def test_falls_back_to_line_breaks():
    text = "line one is here\nline two is here"
    assert split_message(text, 20) == ["line one is here", "line two is here"]


def test_falls_back_to_sentence_end():
    text = "One sentence. Another sentence follows"
    assert split_message(text, 20) == ["One sentence.", "Another sentence", "follows"]


def test_falls_back_to_whitespace():
    text = "alpha beta gamma delta"
    chunks = split_message(text, 11)
    assert chunks == ["alpha beta", "gamma delta"]


def test_hard_cut_without_whitespace():
    text = "x" * 25
    assert split_message(text, 10) == ["x" * 10, "x" * 10, "x" * 5]


def test_no_empty_chunks_with_runs_of_whitespace():
    text = "word " * 10 + "\n\n\n\n" + "word " * 10
    chunks = split_message(text, 12)
    assert all(c.strip() for c in chunks)
    assert all(len(c) <= 12 for c in chunks)
    assert _squash("".join(chunks)) == _squash(text)
