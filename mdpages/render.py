from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import markdown
from pygments.formatters import HtmlFormatter

from .linker import EscapeRawHtmlExtension, LinkRewriteExtension

CODE_CSS_CLASS = "codehilite"


@dataclass(frozen=True, slots=True)
class RenderContext:
    src_dir: str
    base_path: str = ""


class Renderer(Protocol):
    def render(self, text: str, context: RenderContext) -> str: ...


class MarkdownRenderer:
    """Python-Markdown with fenced code, tables, TOC anchors and Pygments highlighting."""

    extensions = ["fenced_code", "tables", "toc", "codehilite"]

    def __init__(self, code_style: str = "default"):
        self.code_style = code_style

    def render(self, text: str, context: RenderContext) -> str:
        md = markdown.Markdown(
            extensions=[
                *self.extensions,
                EscapeRawHtmlExtension(),
                LinkRewriteExtension(src_dir=context.src_dir, base_path=context.base_path),
            ],
            extension_configs={
                "codehilite": {"css_class": CODE_CSS_CLASS, "guess_lang": False},
            },
        )
        html_content = md.convert(text)
        md.reset()
        return html_content

    def code_css(self) -> str:
        return HtmlFormatter(style=self.code_style).get_style_defs(f".{CODE_CSS_CLASS}")


def render_template(template: str, **context: str) -> str:
    output = template
    late_keys = {"content"}
    for key, value in context.items():
        if key in late_keys:
            continue
        output = output.replace(f"{{{{{key}}}}}", value)
    for key in late_keys:
        if key in context:
            output = output.replace(f"{{{{{key}}}}}", context[key])
    return output


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def copy_file(src: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dest)
