from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence, TypeVar

import yaml

from .paths import CONTENT_EXT, is_index_file, normalize, to_slug, to_url
from .utils import parse_bool

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="ContentItem | Page")


@dataclass(frozen=True, slots=True)
class ContentItem:
    relative_path: str
    slug: str
    url: str

    @classmethod
    def from_path(cls, rel_path: str) -> "ContentItem":
        rel = normalize(rel_path)
        return cls(relative_path=rel, slug=to_slug(rel), url=to_url(rel))

    @property
    def is_index(self) -> bool:
        return is_index_file(self.relative_path)


@dataclass(slots=True)
class Page:
    item: ContentItem
    meta: dict = field(default_factory=dict)
    raw: str = ""
    body: str = ""
    html: str = ""

    @property
    def relative_path(self) -> str:
        return self.item.relative_path

    @property
    def slug(self) -> str:
        return self.item.slug

    @property
    def url(self) -> str:
        return self.item.url

    @property
    def is_index(self) -> bool:
        return self.item.is_index

    @property
    def title(self) -> str | None:
        return self.meta.get("title")

    @property
    def description(self) -> str | None:
        return self.meta.get("description")


@dataclass(frozen=True, slots=True)
class DiscoveredContent:
    pages: list[str]
    assets: list[str]


def parse_front_matter(text: str) -> tuple[dict, str]:
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines(keepends=True)
    if not lines or lines[0].strip() != "---":
        return {}, clean_text

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            end = i
            break
    if end is None:
        return {}, clean_text

    try:
        meta = yaml.safe_load("".join(lines[1:end]))
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid front matter: {exc}") from exc
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise ValueError("front matter must be a mapping")
    body = "".join(lines[end + 1 :])
    return normalize_meta(meta), body


def normalize_meta(meta: dict) -> dict:
    meta = dict(meta)
    tags = meta.get("tags")
    if tags is not None and not isinstance(tags, list):
        meta["tags"] = [str(tags)]
    elif tags is not None:
        meta["tags"] = [str(tag) for tag in tags]
    for key in ("title", "description", "author", "image"):
        value = meta.get(key)
        if value is not None and not isinstance(value, str):
            meta[key] = str(value)
    if "draft" in meta:
        meta["draft"] = parse_bool(meta["draft"])
    return meta


def discover(src: Path) -> DiscoveredContent:
    """Walk ``src`` once, splitting files into content pages and static assets."""
    pages: list[str] = []
    assets: list[str] = []
    for path in sorted(src.rglob("*"), key=lambda p: p.as_posix()):
        if not path.is_file():
            continue
        rel = path.relative_to(src).as_posix()
        if path.suffix == CONTENT_EXT:
            pages.append(rel)
        else:
            assets.append(rel)
    return DiscoveredContent(pages=pages, assets=assets)


def load_page(src: Path, rel_path: str) -> Page | None:
    """Read one content file; drafts come back as None."""
    raw = (src / rel_path).read_text(encoding="utf-8")
    try:
        meta, body = parse_front_matter(raw)
    except ValueError as exc:
        raise ValueError(f"{rel_path}: {exc}") from exc
    if meta.get("draft"):
        logger.info("Skipping draft: %s", rel_path)
        return None
    return Page(item=ContentItem.from_path(rel_path), meta=meta, raw=raw, body=body)


@dataclass(frozen=True, slots=True)
class SlugConflict:
    slug: str
    winner: str
    dropped: tuple[str, ...]

    def message(self) -> str:
        dropped = ", ".join(self.dropped)
        return (
            f"conflict at /{self.slug} -- {self.winner} takes precedence, dropped: {dropped}"
        )


def resolve_slug_conflicts(items: Sequence[T]) -> tuple[list[T], list[SlugConflict]]:
    """Keep one item per slug.

    Index files beat plain files; ties are broken by relative path so the
    outcome does not depend on discovery order. Survivors keep their input
    order.
    """
    groups: dict[str, list[T]] = {}
    for item in items:
        groups.setdefault(item.slug, []).append(item)

    dropped_ids: set[int] = set()
    conflicts: list[SlugConflict] = []
    for slug, members in groups.items():
        if len(members) < 2:
            continue
        ranked = sorted(members, key=lambda m: (not m.is_index, m.relative_path))
        winner, losers = ranked[0], ranked[1:]
        dropped_ids.update(id(loser) for loser in losers)
        conflicts.append(
            SlugConflict(
                slug=slug,
                winner=winner.relative_path,
                dropped=tuple(loser.relative_path for loser in losers),
            )
        )
    kept = [item for item in items if id(item) not in dropped_ids]
    return kept, conflicts


def listed_pages(pages: Iterable[Page]) -> list[Page]:
    return [page for page in pages if page.slug != "404"]
