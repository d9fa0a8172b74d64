"""Rewriting of internal links in the raw markdown mirror.

Links between content files are written relative to the source tree
(``[x](../top.md)``). The mirror is flat and served from the site root, so
each such link becomes a root-absolute ``.md`` URL (``[x](/top.md)``).
Fenced code is copied through untouched.
"""

from __future__ import annotations

import re
from typing import Iterator

from .paths import CONTENT_EXT, is_external_href, resolve_link_to_raw_mirror, split_href
from .utils import apply_base_path

FENCES = ("```", "~~~")
FENCE_SPLIT_RE = re.compile(r"^(```|~~~)", re.MULTILINE)
# one level of balanced parentheses is allowed inside the target
LINK_RE = re.compile(r"\[([^\]]*)\]\(([^()]*(?:\([^()]*\)[^()]*)*)\)")


def split_fences(text: str) -> Iterator[tuple[str, bool]]:
    """Yield ``(segment, in_code)`` pairs that concatenate back to ``text``.

    Fence markers themselves are yielded with ``in_code=True``. A fence only
    closes on the marker that opened it; an unclosed fence runs to the end.
    """
    parts = FENCE_SPLIT_RE.split(text)
    fence_marker = ""
    for i, part in enumerate(parts):
        if i % 2 == 1:
            if not fence_marker:
                fence_marker = part
            elif part == fence_marker:
                fence_marker = ""
            yield part, True
            continue
        if part:
            yield part, bool(fence_marker)


def rewrite_href(src_dir: str, href: str, base_path: str = "") -> str:
    if href.startswith("http") or is_external_href(href):
        return href
    path, _ = split_href(href)
    if not path.endswith(CONTENT_EXT):
        return href
    return apply_base_path(base_path, resolve_link_to_raw_mirror(src_dir, href))


def rewrite_raw_links(text: str, src_dir: str, base_path: str = "") -> str:
    def repl(match: re.Match) -> str:
        label = match.group(1)
        href = match.group(2)
        return f"[{label}]({rewrite_href(src_dir, href, base_path)})"

    return LINK_RE.sub(repl, text)


def rewrite_document(text: str, src_dir: str, base_path: str = "") -> str:
    out = []
    for segment, in_code in split_fences(text):
        out.append(segment if in_code else rewrite_raw_links(segment, src_dir, base_path))
    return "".join(out)
