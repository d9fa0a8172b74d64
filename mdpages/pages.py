from __future__ import annotations

from .config import SiteConfig
from .content import Page
from .paths import mirror_name
from .render import render_template
from .security import escape_attr, escape_html, escape_xml, sanitize_href
from .utils import apply_base_path, format_date

NOT_FOUND_SLUG = "404"

BASE_TEMPLATE = """<!doctype html>
<html lang="{{lang}}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{title}}</title>
{{head}}
<link rel="stylesheet" href="{{assets}}/code.css">
<link rel="stylesheet" href="{{assets}}/site.css">
</head>
<body>
<a class="skip-link" href="#content">skip to content</a>
<header>
<nav class="site">
<a class="site-title" href="{{root}}">{{site_title}}</a>
<nav class="top-links">{{nav}}</nav>
</nav>
</header>
<main id="content" tabindex="-1">
<article>
{{content}}
</article>
</main>
{{footer}}
</body>
</html>
"""

SITE_CSS = """:root { color-scheme: light dark; }
body { max-width: 46rem; margin: 0 auto; padding: 1rem; font-family: ui-monospace, monospace; line-height: 1.6; }
.skip-link { position: absolute; left: -999px; }
.skip-link:focus { left: 1rem; }
nav.site { display: flex; justify-content: space-between; align-items: baseline; gap: 1rem; }
.top-links a { margin-left: 0.75rem; }
pre { overflow-x: auto; padding: 0.75rem; }
footer { margin-top: 3rem; font-size: 0.875rem; }
"""

DEFAULT_404_MD = """# Not Found

The page you requested does not exist.
"""


def build_nav(cfg: SiteConfig, base_path: str) -> str:
    links = []
    for item in cfg.nav_bar:
        if isinstance(item, dict):
            if len(item) != 1:
                continue
            (label, target), = item.items()
            safe_href = sanitize_href(str(target))
            if not safe_href:
                continue
            attrs = ""
            if safe_href.startswith(("http://", "https://")):
                attrs = ' target="_blank" rel="noopener noreferrer"'
            links.append(
                f'<a class="top-link" href="{escape_attr(safe_href)}"{attrs}>{escape_html(str(label))}</a>'
            )
            continue
        slug = str(item).strip().lower()
        label = slug.replace("_", " ").replace("-", " ")
        href = apply_base_path(base_path, f"/{slug}")
        links.append(f'<a class="top-link" href="{escape_attr(href)}">{escape_html(label)}</a>')
    return "".join(links)


def build_head(page: Page, cfg: SiteConfig, base_path: str) -> str:
    site_url = cfg.site_url
    is_404 = page.slug == NOT_FOUND_SLUG
    desc = page.description or cfg.description
    lines = [f'<meta name="description" content="{escape_attr(desc)}">']
    tags = page.meta.get("tags") or []
    if tags:
        lines.append(f'<meta name="keywords" content="{escape_attr(", ".join(tags))}">')
    robots = "noindex, nofollow" if is_404 else cfg.robots
    lines.append(f'<meta name="robots" content="{escape_attr(robots)}">')
    if cfg.author:
        lines.append(f'<meta name="author" content="{escape_attr(cfg.author)}">')
    if not is_404:
        canonical = f"{site_url}{page.url}"
        raw_url = f"{site_url}/{mirror_name(page.slug)}.md"
        lines.append(f'<link rel="canonical" href="{escape_attr(canonical)}">')
        lines.append(f'<link rel="alternate" type="text/markdown" href="{escape_attr(raw_url)}">')
        date = format_date(page.meta.get("date"))
        if date:
            lines.append(f'<meta property="article:published_time" content="{escape_attr(date)}">')
        lines.append(f'<meta property="og:title" content="{escape_attr(page.title or cfg.title)}">')
        lines.append(f'<meta property="og:description" content="{escape_attr(desc)}">')
        lines.append(f'<meta property="og:url" content="{escape_attr(canonical)}">')
    return "\n".join(lines)


def build_footer(page: Page, cfg: SiteConfig) -> str:
    if page.slug == NOT_FOUND_SLUG:
        return ""
    raw_url = f"{cfg.site_url}/{mirror_name(page.slug)}.md"
    parts = [f'<a class="md-link" href="{escape_attr(raw_url)}">raw .md</a>']
    if cfg.github:
        github_url = f"https://github.com/{cfg.github}"
        parts.append(f'<a class="social-link" href="{escape_attr(github_url)}">github</a>')
    return "<footer>\n" + " ".join(parts) + "\n</footer>"


def render_page(page: Page, cfg: SiteConfig) -> str:
    base_path = cfg.base_path
    if page.slug == NOT_FOUND_SLUG:
        title = f"Not Found - {cfg.title}"
    elif page.title:
        title = f"{page.title} - {cfg.title}"
    else:
        title = cfg.title
    return render_template(
        BASE_TEMPLATE,
        lang=escape_attr(cfg.lang),
        title=escape_html(title),
        head=build_head(page, cfg, base_path),
        assets=escape_attr(apply_base_path(base_path, "/assets")),
        root=escape_attr(apply_base_path(base_path, "/")),
        site_title=escape_html(cfg.title),
        nav=build_nav(cfg, base_path),
        footer=build_footer(page, cfg),
        content=page.html,
    )


def build_sitemap(pages: list[Page], cfg: SiteConfig) -> str:
    site_url = escape_xml(cfg.site_url)
    items = []
    for page in pages:
        lastmod = format_date(page.meta.get("date"))
        entry = f"<url><loc>{site_url}{escape_xml(page.url)}</loc>"
        if lastmod:
            entry += f"<lastmod>{escape_xml(lastmod)}</lastmod>"
        items.append(entry + "</url>")
    return "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
        ]
    )


def build_robots(cfg: SiteConfig) -> str:
    return f"User-agent: *\nAllow: /\n\nSitemap: {cfg.site_url}/sitemap.xml\n"


def build_llms(pages: list[Page], cfg: SiteConfig) -> str:
    rows = []
    for page in pages:
        name = mirror_name(page.slug)
        label = page.title or name
        link = f"{cfg.site_url}/{name}.md"
        if page.description:
            rows.append(f"- [{label}]({link}): {page.description}")
        else:
            rows.append(f"- [{label}]({link})")
    return f"# {cfg.title}\n\n> {cfg.description}\n\n" + "\n".join(rows) + "\n"


def build_llms_full(pages: list[Page], cfg: SiteConfig) -> str:
    sections = []
    for page in pages:
        name = mirror_name(page.slug)
        sections.append(f"# {page.title or name}\nSource: {cfg.site_url}/{name}.md\n\n{page.raw}")
    return "\n\n---\n\n".join(sections)
