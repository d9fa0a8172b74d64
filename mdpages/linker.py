from __future__ import annotations

import xml.etree.ElementTree as etree

from markdown.extensions import Extension
from markdown.inlinepatterns import InlineProcessor
from markdown.treeprocessors import Treeprocessor

from .paths import CONTENT_EXT, resolve_link_to_url, split_href
from .security import sanitize_href
from .utils import apply_base_path

# void tags kept when raw HTML is otherwise escaped
SAFE_VOID_TAG_RE = r"<(?i:(br|hr|wbr))\s*/?>"


def _site_href(href: str, base_path: str) -> str:
    if href.startswith("/") and not href.startswith("//"):
        return apply_base_path(base_path, href)
    return href


def _remove_keeping_tail(parent: etree.Element, el: etree.Element) -> None:
    if el.tail:
        children = list(parent)
        index = children.index(el)
        if index > 0:
            previous = children[index - 1]
            previous.tail = (previous.tail or "") + el.tail
        else:
            parent.text = (parent.text or "") + el.tail
    parent.remove(el)


class LinkRewriteProcessor(Treeprocessor):
    def __init__(self, md, src_dir: str, base_path: str):
        super().__init__(md)
        self.src_dir = src_dir
        self.base_path = base_path

    def run(self, root: etree.Element) -> None:
        for parent in list(root.iter()):
            for el in list(parent):
                if el.tag == "a":
                    self.rewrite_anchor(el)
                elif el.tag == "img" and not self.rewrite_image(el):
                    _remove_keeping_tail(parent, el)

    def rewrite_anchor(self, el: etree.Element) -> None:
        href = el.get("href")
        if href is None:
            return
        path, _ = split_href(href)
        if path.endswith(CONTENT_EXT) and not href.startswith("http"):
            el.set("href", apply_base_path(self.base_path, resolve_link_to_url(self.src_dir, href)))
            return
        safe_href = sanitize_href(href)
        if safe_href is None:
            # keep the label, drop the link
            el.tag = "span"
            el.attrib.pop("href", None)
            el.attrib.pop("title", None)
            return
        el.set("href", _site_href(safe_href, self.base_path))

    def rewrite_image(self, el: etree.Element) -> bool:
        safe_src = sanitize_href(el.get("src", ""))
        if safe_src is None:
            return False
        el.set("src", _site_href(safe_src, self.base_path))
        el.set("loading", "lazy")
        el.set("decoding", "async")
        return True


class LinkRewriteExtension(Extension):
    def __init__(self, src_dir: str = "", base_path: str = "", **kwargs):
        super().__init__(**kwargs)
        self.src_dir = src_dir
        self.base_path = base_path

    def extendMarkdown(self, md):
        # after the inline processor (priority 20) has produced <a>/<img>
        md.treeprocessors.register(
            LinkRewriteProcessor(md, self.src_dir, self.base_path),
            "link_rewrite",
            5,
        )


class SafeVoidTagProcessor(InlineProcessor):
    def handleMatch(self, m, data):
        return etree.Element(m.group(1).lower()), m.start(0), m.end(0)


class EscapeRawHtmlExtension(Extension):
    """Render raw HTML in content as text, except ``<br>``, ``<hr>`` and ``<wbr>``."""

    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")
        md.inlinePatterns.register(SafeVoidTagProcessor(SAFE_VOID_TAG_RE, md), "safe_void_tag", 90)
