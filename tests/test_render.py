from __future__ import annotations

from mdpages.config import SiteConfig
from mdpages.content import ContentItem, Page
from mdpages.pages import build_llms, build_nav, render_page
from mdpages.render import MarkdownRenderer, RenderContext, render_template


def render(text: str, src_dir: str = "", base_path: str = "") -> str:
    return MarkdownRenderer().render(text, RenderContext(src_dir, base_path))


def test_content_links_become_site_urls() -> None:
    html = render("[up](../top.md#part) [same](post.md) [home](index.md)", "blog")
    assert 'href="/top#part"' in html
    assert 'href="/blog/post"' in html
    assert 'href="/blog"' in html


def test_base_path_prefixes_site_links() -> None:
    html = render("[a](a.md) [b](/b) ![c](/img/c.png)", "", "/docs")
    assert 'href="/docs/a"' in html
    assert 'href="/docs/b"' in html
    assert 'src="/docs/img/c.png"' in html


def test_external_links_are_left_alone() -> None:
    html = render("[x](https://example.com/readme.md) [y](mailto:a@b.com)")
    assert 'href="https://example.com/readme.md"' in html
    assert 'href="mailto:a@b.com"' in html


def test_unsafe_links_lose_their_href() -> None:
    html = render("[click](javascript:alert(1)) ![i](data:image/png;base64,xx)")
    assert "javascript:" not in html
    assert "<span>click</span>" in html
    assert "data:image" not in html


def test_images_are_lazy() -> None:
    html = render("![logo](img/logo.png)")
    assert 'loading="lazy"' in html
    assert 'decoding="async"' in html


def test_raw_html_is_escaped() -> None:
    html = render("<script>alert(1)</script>\n\ntext <b>bold</b>")
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "<b>" not in html


def test_fenced_code_is_highlighted() -> None:
    html = render("```python\nprint('hi')\n```\n")
    assert 'class="codehilite"' in html


def test_code_css_targets_highlight_class() -> None:
    assert ".codehilite" in MarkdownRenderer().code_css()


def test_render_template_inserts_content_last() -> None:
    out = render_template("<t>{{title}}</t>{{content}}", title="T", content="{{title}}")
    assert out == "<t>T</t>{{title}}"


def make_page(rel: str, meta: dict | None = None, html: str = "<p>x</p>") -> Page:
    return Page(item=ContentItem.from_path(rel), meta=meta or {}, raw="raw", body="raw", html=html)


def test_render_page_head_and_title() -> None:
    cfg = SiteConfig(url="https://example.com/docs", title="Site", author="Ann", github="someone")
    page = make_page("guide/setup.md", {"title": "Setup <1>", "tags": ["a", "b"], "date": "2024-01-02"})
    html = render_page(page, cfg)
    assert "<title>Setup &lt;1&gt; - Site</title>" in html
    assert '<link rel="canonical" href="https://example.com/docs/guide/setup">' in html
    assert '<meta name="keywords" content="a, b">' in html
    assert '<meta property="article:published_time" content="2024-01-02">' in html
    assert 'href="/docs/assets/site.css"' in html
    assert 'href="https://example.com/docs/guide/setup.md"' in html
    assert 'href="https://github.com/someone"' in html
    assert "<p>x</p>" in html


def test_nav_links() -> None:
    cfg = SiteConfig(nav_bar=["about_me", {"Repo": "https://github.com/x"}, {"Bad": "javascript:x"}])
    nav = build_nav(cfg, "/docs")
    assert '<a class="top-link" href="/docs/about_me">about me</a>' in nav
    assert 'target="_blank"' in nav
    assert "javascript" not in nav


def test_llms_uses_root_mirror_name() -> None:
    cfg = SiteConfig(url="https://example.com", title="T", description="D")
    text = build_llms([make_page("index.md", {"title": "Home"}), make_page("a/index.md")], cfg)
    assert text == "# T\n\n> D\n\n- [Home](https://example.com/index.md)\n- [a](https://example.com/a.md)\n"


def test_dropped_images_keep_following_text() -> None:
    html = render("before ![x](javascript:evil) after words")
    assert "javascript" not in html
    assert "after words" in html
    assert "<img" not in html

    html = render("start ![x]() middle ![ok](a.png) end")
    assert "middle" in html
    assert 'src="a.png"' in html
    assert html.rstrip().endswith("end</p>")


def test_safe_void_tags_pass_through() -> None:
    html = render("line one<br>line two<BR/>three\n\nrule <hr> here")
    assert "&lt;br" not in html
    assert html.count("<br") == 2
    assert "<hr" in html
    assert "line two" in html


def test_void_tags_with_attributes_are_escaped() -> None:
    html = render('a <br onclick="x()"> b')
    assert "<br" not in html
    assert "&lt;br" in html
