"""Serving a built site.

``FileRouter`` maps one request path to a response without touching any
shared state; ``create_app`` exposes it through a single Flask catch-all
route.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote, unquote, urlsplit

from flask import Flask, Response, request
from werkzeug.exceptions import HTTPException

from .security import is_subpath, resolve_under, security_headers
from .utils import apply_base_path, base_path_from_url

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".xml": "application/xml",
    ".txt": "text/plain; charset=utf-8",
    ".md": "text/markdown; charset=utf-8",
    ".json": "application/json",
    ".css": "text/css",
    ".js": "application/javascript",
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"

ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
NOT_FOUND_PATHS = {"/404", "/404.md", "/404.html"}
BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
LOC_RE = re.compile(r"<loc>([^<]+)</loc>")


class PathDecodeError(ValueError):
    pass


@dataclass(slots=True)
class RouteResult:
    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def text(cls, body: str, status: int) -> "RouteResult":
        return cls(status, body.encode("utf-8"), security_headers({"content-type": TEXT_CONTENT_TYPE}))

    @classmethod
    def redirect(cls, location: str, status: int) -> "RouteResult":
        return cls(status, b"", security_headers({"location": location}))

    @classmethod
    def file(cls, body: bytes, content_type: str, status: int = 200) -> "RouteResult":
        return cls(status, body, security_headers({"content-type": content_type}))


def decode_path(raw_path: str) -> str:
    """Strict percent-decoding: malformed escapes or invalid UTF-8 raise."""
    if BAD_ESCAPE_RE.search(raw_path):
        raise PathDecodeError(raw_path)
    try:
        return unquote(raw_path, errors="strict")
    except UnicodeDecodeError as exc:
        raise PathDecodeError(raw_path) from exc


def content_type_for(path: Path | str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(os.fspath(path))[1].lower(), DEFAULT_CONTENT_TYPE)


def infer_base_path(root: Path) -> str:
    """Base path taken from the shortest ``<loc>`` in a built sitemap."""
    try:
        text = (root / "sitemap.xml").read_text(encoding="utf-8")
    except OSError:
        return ""
    locs = LOC_RE.findall(text)
    if not locs:
        return ""
    shortest = min(locs, key=lambda value: len(urlsplit(value).path))
    return base_path_from_url(shortest)


class FileRouter:
    def __init__(self, root: Path | str, base_path: str = ""):
        self.root = Path(os.path.abspath(root))
        try:
            self.real_root = Path(os.path.realpath(self.root))
        except OSError:
            self.real_root = self.root
        self.base_path = base_path.rstrip("/")

    def handle(self, raw_path: str, query: str = "") -> RouteResult:
        search = f"?{query}" if query else ""
        try:
            path = decode_path(raw_path or "/")
        except PathDecodeError:
            logger.debug("Undecodable request path: %r", raw_path)
            return RouteResult.text("bad request", 400)
        if "\0" in path:
            return RouteResult.text("bad request", 400)

        if self.base_path:
            if path == self.base_path:
                return RouteResult.redirect(f"{self.base_path}/{search}", 302)
            if not path.startswith(self.base_path + "/"):
                return self.not_found(path)
            path = path[len(self.base_path) :] or "/"

        parts = [part for part in path.split("/") if part]
        if any(part in (".", "..") for part in parts):
            return RouteResult.text("bad request", 400)
        if any(part.startswith(".") for part in parts):
            return self.not_found(path)

        if path != "/" and path.endswith("/"):
            location = path.rstrip("/") or "/"
            if location.startswith("//"):
                location = "/"
            return RouteResult.redirect(f"{apply_base_path(self.base_path, location)}{search}", 301)

        if path not in NOT_FOUND_PATHS:
            for rel in self.candidates(path):
                result = self.serve_file(rel)
                if result is not None:
                    return result
        return self.not_found(path)

    def candidates(self, path: str) -> list[str]:
        if path == "/":
            return ["index.html"]
        name = path[1:]
        return [name, f"{name}.html", f"{name}/index.html"]

    def serve_file(self, rel: str, status: int = 200, content_type: str | None = None) -> RouteResult | None:
        full = resolve_under(self.root, rel)
        if full is None:
            return None
        try:
            real = os.path.realpath(full, strict=True)
        except OSError:
            return None
        if not is_subpath(self.real_root, real) or not os.path.isfile(real):
            return None
        try:
            body = Path(real).read_bytes()
        except OSError:
            return None
        return RouteResult.file(body, content_type or content_type_for(full), status)

    def not_found(self, path: str) -> RouteResult:
        if path.endswith(".md"):
            result = self.serve_file("404.md", 404, CONTENT_TYPES[".md"])
        else:
            result = self.serve_file("404.html", 404, CONTENT_TYPES[".html"])
        return result or RouteResult.text("not found", 404)


def raw_request_path(environ: dict) -> tuple[str, str]:
    raw_uri = environ.get("RAW_URI") or environ.get("REQUEST_URI")
    if raw_uri:
        parts = urlsplit(raw_uri)
        return parts.path or "/", environ.get("QUERY_STRING") or parts.query
    # PATH_INFO is already decoded by the WSGI server
    path = environ.get("PATH_INFO", "/").encode("latin-1").decode("utf-8", "replace")
    return quote(path), environ.get("QUERY_STRING", "")


def create_app(router: FileRouter) -> Flask:
    app = Flask(__name__)
    app.url_map.merge_slashes = False
    app.url_map.strict_slashes = False

    def dispatch(*_args, **_kwargs) -> Response:
        raw_path, query = raw_request_path(request.environ)
        result = router.handle(raw_path, query)
        return Response(result.body, status=result.status, headers=result.headers)

    for rule, defaults in (("/", {"path": ""}), ("/<path:path>", None)):
        app.add_url_rule(
            rule,
            "catch_all",
            dispatch,
            defaults=defaults,
            methods=ROUTED_METHODS,
            provide_automatic_options=False,
        )
    # requests the rules cannot express (e.g. "//x", TRACE) still go through the router
    app.register_error_handler(HTTPException, dispatch)

    return app


def serve(root: Path | str, port: int, base_path: str = "") -> None:
    root = Path(root)
    base_path = base_path or infer_base_path(root)
    router = FileRouter(root, base_path)
    app = create_app(router)
    print(f"serving {root.as_posix()}/ at http://localhost:{port}{base_path}/")
    app.run(host="127.0.0.1", port=port, threaded=True)
