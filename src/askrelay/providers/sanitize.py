"""Chunk sanitizer applied to every provider-native text delta."""

from __future__ import annotations

import re

# C0/C1 control characters, keeping \n and \r.
_CONTROL = re.compile(r"[\x00-\x09\x0B\x0C\x0E-\x1F\x7F-\x9F]")
# BOM and zero-width characters that leak from some transports.
_INVISIBLE = re.compile(r"[\u200b-\u200d\u2060\ufeff]")
# An HTML-like tag cut off at the end of the chunk.
_DANGLING_TAG = re.compile(r"<[^>\s][^>]*$")


def sanitize_chunk(text: str) -> str:
    if not text:
        return ""
    text = _CONTROL.sub("", text)
    text = _INVISIBLE.sub("", text)
    return _DANGLING_TAG.sub("", text)
