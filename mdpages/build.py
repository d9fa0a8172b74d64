from __future__ import annotations

import logging
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Sequence, TypeVar

from .config import SiteConfig
from .content import (
    ContentItem,
    Page,
    SlugConflict,
    discover,
    listed_pages,
    load_page,
    resolve_slug_conflicts,
)
from .links import rewrite_document
from .pages import (
    DEFAULT_404_MD,
    NOT_FOUND_SLUG,
    SITE_CSS,
    build_llms,
    build_llms_full,
    build_robots,
    build_sitemap,
    render_page,
)
from .paths import source_dir, to_output_path, to_raw_mirror_path
from .render import MarkdownRenderer, RenderContext, Renderer, copy_file, write_text
from .security import resolve_under, validate_slug
from .utils import write_nojekyll

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

RENDER_LIMIT = 16
PAGE_WRITE_LIMIT = 32
MIRROR_WRITE_LIMIT = 32
ASSET_COPY_LIMIT = 32


class BuildError(Exception):
    """A build step failed; the output directory is not usable."""


@dataclass(slots=True)
class BuildResult:
    dest: Path
    pages: list[Page]
    assets: list[str]
    conflicts: list[SlugConflict] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    elapsed: float = 0.0

    def summary(self) -> str:
        return (
            f"built {len(self.pages)} pages + {len(self.assets)} assets "
            f"in {self.elapsed:.2f}s -> {self.dest.as_posix()}/"
        )


def run_limited(items: Sequence[T], limit: int, fn: Callable[[T], R]) -> list[R]:
    """Apply ``fn`` to every item with at most ``limit`` running at once.

    Results come back in input order. The first exception raised by any item
    propagates once the pool has drained.
    """
    if not items:
        return []
    workers = max(1, min(limit, len(items)))
    if workers == 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(fn, items))


def sandboxed(dest: Path, target: Path) -> Path:
    rel = os.path.relpath(target, dest)
    resolved = resolve_under(dest, rel)
    if resolved is None:
        raise BuildError(f"refusing to write outside {dest}: {rel}")
    return resolved


def prepare_dest(dest: Path, src: Path, project_root: Path) -> None:
    dest_resolved = dest.resolve()
    root_resolved = project_root.resolve()
    if dest_resolved == root_resolved:
        raise BuildError("refusing to clean project root")
    if not dest_resolved.is_relative_to(root_resolved):
        raise BuildError(f"refusing to clean output directory outside project root: {dest}")
    src_resolved = src.resolve()
    if src_resolved == dest_resolved or src_resolved.is_relative_to(dest_resolved):
        raise BuildError(f"output directory {dest} contains the source directory")
    if dest.exists():
        shutil.rmtree(dest)
    dest.mkdir(parents=True, exist_ok=True)


def load_pages(src: Path, rel_paths: Sequence[str]) -> list[Page]:
    def load_one(rel: str) -> Page | None:
        if validate_slug(rel) is None:
            raise BuildError(f"unusable content path: {rel}")
        return load_page(src, rel)

    loaded = run_limited(rel_paths, RENDER_LIMIT, load_one)
    return [page for page in loaded if page is not None]


def render_pages(pages: Sequence[Page], renderer: Renderer, base_path: str) -> None:
    def render_one(page: Page) -> None:
        context = RenderContext(source_dir(page.relative_path), base_path)
        page.html = renderer.render(page.body, context)

    run_limited(pages, RENDER_LIMIT, render_one)


def write_rendered_pages(pages: Sequence[Page], cfg: SiteConfig, dest: Path) -> list[Path]:
    def write_one(page: Page) -> Path:
        out_path = sandboxed(dest, to_output_path(dest, page.relative_path))
        write_text(out_path, render_page(page, cfg))
        return out_path

    return run_limited(pages, PAGE_WRITE_LIMIT, write_one)


def write_raw_mirrors(pages: Sequence[Page], dest: Path, base_path: str) -> list[Path]:
    def write_one(page: Page) -> Path:
        out_path = sandboxed(dest, to_raw_mirror_path(dest, page.relative_path))
        write_text(out_path, rewrite_document(page.raw, source_dir(page.relative_path), base_path))
        return out_path

    return run_limited(pages, MIRROR_WRITE_LIMIT, write_one)


def copy_static_assets(assets: Sequence[str], src: Path, dest: Path) -> list[Path]:
    def copy_one(rel: str) -> Path:
        source = resolve_under(src, rel)
        if source is None:
            raise BuildError(f"asset path escapes source directory: {rel}")
        out_path = sandboxed(dest, dest / rel)
        copy_file(source, out_path)
        return out_path

    return run_limited(assets, ASSET_COPY_LIMIT, copy_one)


def drop_shadowed_assets(assets: Sequence[str], pages: Sequence[Page]) -> list[str]:
    """Static files that would land on a rendered page's output are skipped."""
    page_outputs = {to_output_path("", page.relative_path).as_posix(): page.relative_path for page in pages}
    kept = []
    for rel in assets:
        owner = page_outputs.get(rel)
        if owner is not None:
            logger.warning("Skipping static file %s: it has the same output path as %s", rel, owner)
            continue
        kept.append(rel)
    return kept


def write_site_assets(dest: Path, renderer: Renderer) -> list[Path]:
    asset_dir = dest / "assets"
    code_css = renderer.code_css() if hasattr(renderer, "code_css") else ""
    written = []
    for name, text in (("site.css", SITE_CSS), ("code.css", code_css)):
        path = sandboxed(dest, asset_dir / name)
        write_text(path, text)
        written.append(path)
    return written


def write_not_found(pages: Iterable[Page], cfg: SiteConfig, dest: Path, renderer: Renderer) -> list[Path]:
    if any(page.slug == NOT_FOUND_SLUG for page in pages):
        return []
    page = Page(item=ContentItem.from_path(f"{NOT_FOUND_SLUG}.md"), raw=DEFAULT_404_MD, body=DEFAULT_404_MD)
    page.html = renderer.render(page.body, RenderContext("", cfg.base_path))
    html_path = sandboxed(dest, dest / f"{NOT_FOUND_SLUG}.html")
    md_path = sandboxed(dest, dest / f"{NOT_FOUND_SLUG}.md")
    write_text(html_path, render_page(page, cfg))
    write_text(md_path, page.raw)
    return [html_path, md_path]


def write_metadata(pages: list[Page], cfg: SiteConfig, dest: Path) -> list[Path]:
    outputs = {
        "sitemap.xml": build_sitemap(pages, cfg),
        "robots.txt": build_robots(cfg),
        "llms.txt": build_llms(pages, cfg),
        "llms-full.txt": build_llms_full(pages, cfg),
    }
    written = []
    for name, text in outputs.items():
        path = sandboxed(dest, dest / name)
        write_text(path, text)
        written.append(path)
    return written


def build_site(
    cfg: SiteConfig,
    renderer: Renderer | None = None,
    project_root: Path | None = None,
) -> BuildResult:
    start = time.perf_counter()
    renderer = renderer or MarkdownRenderer()
    project_root = project_root or Path.cwd()
    src = Path(cfg.src)
    dest = Path(cfg.dest)
    base_path = cfg.base_path

    if not src.is_dir():
        raise BuildError(f"source directory not found: {src}")
    prepare_dest(dest, src, project_root)

    discovered = discover(src)
    loaded = load_pages(src, discovered.pages)
    pages, conflicts = resolve_slug_conflicts(loaded)
    for conflict in conflicts:
        logger.warning(conflict.message())
    render_pages(pages, renderer, base_path)
    assets = drop_shadowed_assets(discovered.assets, pages)

    written = write_site_assets(dest, renderer)
    # the three stages write disjoint sets of files
    with ThreadPoolExecutor(max_workers=3) as executor:
        futures = [
            executor.submit(write_rendered_pages, pages, cfg, dest),
            executor.submit(write_raw_mirrors, pages, dest, base_path),
            executor.submit(copy_static_assets, assets, src, dest),
        ]
        for future in futures:
            written.extend(future.result())

    written.extend(write_not_found(pages, cfg, dest, renderer))
    written.extend(write_metadata(listed_pages(pages), cfg, dest))
    write_nojekyll(dest)
    written.append(dest / ".nojekyll")

    return BuildResult(
        dest=dest,
        pages=pages,
        assets=assets,
        conflicts=conflicts,
        written=written,
        elapsed=time.perf_counter() - start,
    )
