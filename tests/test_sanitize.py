"""Tests for the provider chunk sanitizer."""

from askrelay.providers.sanitize import sanitize_chunk

ZERO_WIDTH_SPACE = chr(0x200B)
BOM = chr(0xFEFF)


def test_control_characters_stripped():
    assert sanitize_chunk("He\x00llo") == "Hello"
    assert sanitize_chunk("a\x07b\x1bc\x7fd\x85e") == "abcde"


def test_newlines_and_tabs():
    assert sanitize_chunk("line 1\nline 2\r\n") == "line 1\nline 2\r\n"
    assert sanitize_chunk("col\tcol") == "colcol"


def test_invisible_characters_stripped():
    assert sanitize_chunk(f"{BOM}Hi{ZERO_WIDTH_SPACE} there") == "Hi there"


def test_dangling_tag_removed():
    assert sanitize_chunk("Use the <code") == "Use the "
    assert sanitize_chunk("x < y and <b>bold</b>") == "x < y and <b>bold</b>"


def test_ordinary_words_untouched():
    text = "I used it with a logged id and signed off."
    assert sanitize_chunk(text) == text


def test_empty():
    assert sanitize_chunk("") == ""
