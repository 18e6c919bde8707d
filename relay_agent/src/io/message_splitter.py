# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Split chat HTML into messages that fit the chat's length limit.

Cuts prefer paragraph breaks, then line breaks, then spaces, and only then
fall back to a hard cut (never inside a tag or an HTML entity). Formatting
tags still open at a cut are closed at the end of the chunk and reopened at
the start of the next one, so every chunk is valid on its own.
"""

import re

DEFAULT_LIMIT = 4096

_TAG_RE = re.compile(r"<(/?)([a-zA-Z]+)[^>]*>")


def _update_open_tags(open_tags: list[tuple[str, str]], html: str) -> None:
    for match in _TAG_RE.finditer(html):
        closing, name = match.group(1), match.group(2).lower()
        if not closing:
            open_tags.append((name, match.group(0)))
            continue
        for i in range(len(open_tags) - 1, -1, -1):
            if open_tags[i][0] == name:
                del open_tags[i]
                break


def _closing(open_tags: list[tuple[str, str]]) -> str:
    return "".join(f"</{name}>" for name, _ in reversed(open_tags))


def _safe_hard_cut(text: str, cut: int) -> int:
    """Move ``cut`` back so it does not land inside a tag or an entity."""
    lt = text.rfind("<", 0, cut)
    if lt != -1 and text.find(">", lt, cut) == -1:
        cut = lt
    amp = text.rfind("&", 0, cut)
    if amp != -1 and cut - amp < 10 and ";" not in text[amp:cut] and re.match(r"&#?\w+;", text[amp:]):
        cut = amp
    return cut


def _find_cut(text: str, budget: int) -> int:
    window = text[:budget]
    floor = budget // 4
    for separator in ("\n\n", "\n", " "):
        index = window.rfind(separator)
        if index >= floor:
            # Never split inside a tag even at a boundary
            if _safe_hard_cut(text, index) == index:
                return index
    cut = _safe_hard_cut(text, budget)
    return cut if cut > 0 else budget


def split_message(text: str, limit: int = DEFAULT_LIMIT) -> list[str]:
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    open_tags: list[tuple[str, str]] = []
    remaining = text

    while remaining:
        prefix = "".join(tag for _, tag in open_tags)
        budget = max(limit - len(prefix), 1)

        if len(remaining) <= budget:
            chunks.append(prefix + remaining)
            break

        # Shrink the piece until it fits together with the tags it leaves open
        while True:
            cut = _find_cut(remaining, budget)
            piece = remaining[:cut]
            still_open = list(open_tags)
            _update_open_tags(still_open, piece)
            chunk = prefix + piece.rstrip() + _closing(still_open)
            if len(chunk) <= limit or budget == 1:
                break
            budget = max(budget - (len(chunk) - limit), 1)

        open_tags = still_open
        chunks.append(chunk)
        remaining = remaining[cut:].lstrip("\n ")

    return [chunk for chunk in chunks if chunk.strip()]
