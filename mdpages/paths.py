from __future__ import annotations

import posixpath
import re
from pathlib import Path
from typing import NamedTuple
from urllib.parse import quote

CONTENT_EXT = ".md"
OUTPUT_EXT = ".html"
INDEX_FILE = "index" + CONTENT_EXT

SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
CONTENT_EXT_RE = re.compile(re.escape(CONTENT_EXT) + r"$")


def normalize(rel_path: str) -> str:
    return rel_path.replace("\\", "/")


def is_index_file(rel_path: str) -> bool:
    p = normalize(rel_path)
    return p == INDEX_FILE or p.endswith("/" + INDEX_FILE)


def _collapse(p: str) -> str:
    if is_index_file(p):
        return posixpath.dirname(p)
    return CONTENT_EXT_RE.sub("", p)


def to_slug(rel_path: str) -> str:
    """Canonical slug for a content file; index files take their directory's slug."""
    return _collapse(normalize(rel_path))


def encode_path(path: str) -> str:
    # same escaping as encodeURIComponent, applied per segment
    return "/".join(quote(part, safe="!*'()") for part in path.split("/"))


def slug_to_url(slug: str) -> str:
    return "/" if slug == "" else f"/{encode_path(slug)}"


def to_url(rel_path: str) -> str:
    return slug_to_url(to_slug(rel_path))


def to_output_path(dest: Path | str, rel_path: str) -> Path:
    p = CONTENT_EXT_RE.sub(OUTPUT_EXT, normalize(rel_path))
    return Path(dest) / p


def mirror_name(slug: str) -> str:
    return slug or "index"


def to_raw_mirror_path(dest: Path | str, rel_path: str) -> Path:
    return Path(dest) / (mirror_name(to_slug(rel_path)) + CONTENT_EXT)


class Href(NamedTuple):
    path: str
    suffix: str


def split_href(href: str) -> Href:
    """Split an href at the first ``?`` or ``#``.

    The suffix keeps its delimiter, so ``path + suffix == href`` always holds.
    """
    cut = len(href)
    for delim in ("?", "#"):
        idx = href.find(delim)
        if idx >= 0:
            cut = min(cut, idx)
    return Href(href[:cut], href[cut:])


def is_external_href(href: str) -> bool:
    return href.startswith("//") or bool(SCHEME_RE.match(href))


def resolve_relative_slug(src_dir: str, href_path: str) -> str:
    """Resolve a link path found in ``src_dir`` to a slug.

    A leading ``/`` makes the path relative to the content root. Anything that
    normalizes to a ``.`` or ``..`` segment (an escape above the root) yields
    the empty string.
    """
    href_path = normalize(href_path)
    if href_path.startswith("/"):
        base = ""
        href_path = href_path.lstrip("/")
    else:
        base = normalize(src_dir).strip("/")
        if base == ".":
            base = ""
    joined = posixpath.join(base, href_path) if base else href_path
    resolved = posixpath.normpath(joined) if joined else "."
    parts = resolved.split("/")
    if any(part in (".", "..") for part in parts):
        return ""
    return _collapse(resolved)


def resolve_link_to_url(src_dir: str, href: str) -> str:
    path, suffix = split_href(href)
    return slug_to_url(resolve_relative_slug(src_dir, path)) + suffix


def resolve_link_to_raw_mirror(src_dir: str, href: str) -> str:
    path, suffix = split_href(href)
    slug = resolve_relative_slug(src_dir, path)
    return f"/{encode_path(mirror_name(slug))}{CONTENT_EXT}{suffix}"


def source_dir(rel_path: str) -> str:
    return posixpath.dirname(normalize(rel_path))
