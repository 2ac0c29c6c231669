from __future__ import annotations

import pytest

from docuground.ingestion.chunking import chunk_text, split_sentences


def test_short_text_stays_in_one_chunk() -> None:
    assert chunk_text("One. Two. Three.") == ["One. Two. Three."]


def test_blank_text_yields_no_chunks() -> None:
    assert chunk_text("") == []
    assert chunk_text("   \n\t ") == []
    assert chunk_text("...!!!???") == []


def test_split_sentences_normalizes_terminal_punctuation() -> None:
    assert split_sentences("Hello world! Is it? Yes...done") == [
        "Hello world.",
        "Is it.",
        "Yes.",
        "done.",
    ]


def test_chunks_respect_max_chars_and_keep_order() -> None:
    sentences = [f"Sentence number {i} talks about topic {i}" for i in range(60)]
    text = ". ".join(sentences) + "."

    chunks = chunk_text(text, max_chars=120)

    assert len(chunks) > 1
    assert all(len(chunk) <= 120 for chunk in chunks)
    # Without overlap the chunks re-join to the normalized sentence stream.
    assert " ".join(chunks) == " ".join(split_sentences(text))


def test_exact_fit_is_not_split() -> None:
    # "aaaa. bbbb." is 11 characters including the joining space.
    assert chunk_text("aaaa. bbbb.", max_chars=11) == ["aaaa. bbbb."]
    assert chunk_text("aaaa. bbbb.", max_chars=10) == ["aaaa.", "bbbb."]


def test_oversized_sentence_becomes_its_own_chunk() -> None:
    long_sentence = "x" * 50
    chunks = chunk_text(f"Short. {long_sentence}. Tail.", max_chars=20)

    assert chunks == ["Short.", f"{long_sentence}.", "Tail."]


def test_overlap_is_off_by_default() -> None:
    text = "Alpha one. Beta two. Gamma three. Delta four."
    chunks = chunk_text(text, max_chars=22, overlap_chars=12)

    assert chunks == ["Alpha one. Beta two.", "Gamma three.", "Delta four."]


def test_overlap_carries_trailing_sentences_when_enabled() -> None:
    text = "Alpha one. Beta two. Gamma three. Delta four."
    chunks = chunk_text(text, max_chars=30, overlap_chars=12, overlap_enabled=True)

    assert chunks[0] == "Alpha one. Beta two."
    assert chunks[1].startswith("Beta two.")
    assert all(len(chunk) <= 30 for chunk in chunks)


def test_invalid_parameters_are_rejected() -> None:
    with pytest.raises(ValueError):
        chunk_text("text.", max_chars=0)
    with pytest.raises(ValueError):
        chunk_text("text.", max_chars=100, overlap_chars=100, overlap_enabled=True)
