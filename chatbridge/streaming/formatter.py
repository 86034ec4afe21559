"""
Plain text → Document.

A Document is a list of rows `[row_type, ...payload]`; row type 0 is a text
paragraph. Every adapter renders assistant text through here so that sync and
streamed answers share one representation.
"""
from __future__ import annotations

from typing import Any

PARAGRAPH = 0

Document = list[list[Any]]


def format_document(text: str) -> Document:
    paragraphs = [p.strip() for p in text.split("\n\n")]
    blocks: Document = [[PARAGRAPH, p] for p in paragraphs if p]
    if not blocks and text.strip():
        return [[PARAGRAPH, text.strip()]]
    return blocks
