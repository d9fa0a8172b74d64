from __future__ import annotations

import os
from pathlib import Path

import pytest

from mdpages.serve import FileRouter, content_type_for, create_app, decode_path, infer_base_path, PathDecodeError


def write(path: Path, data: bytes | str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        data = data.encode("utf-8")
    path.write_bytes(data)


@pytest.fixture()
def dist(tmp_path: Path) -> Path:
    root = tmp_path / "dist"
    write(root / "index.html", "<h1>home</h1>")
    write(root / "index.md", "# home")
    write(root / "about.html", "<h1>about</h1>")
    write(root / "blog" / "index.html", "<h1>blog</h1>")
    write(root / "blog" / "post.html", "<h1>post</h1>")
    write(root / "blog.md", "# blog")
    write(root / "assets" / "site.css", "body{}")
    write(root / "data.bin", b"\x00\x01")
    write(root / "404.html", "<h1>missing</h1>")
    write(root / "404.md", "# missing")
    write(root / ".secret", "hidden")
    return root


def assert_security_headers(headers: dict[str, str]) -> None:
    assert headers["x-content-type-options"] == "nosniff"
    assert headers["referrer-policy"] == "no-referrer"
    assert "permissions-policy" in headers
    assert "base-uri 'none'" in headers["content-security-policy"]


def test_root_serves_index(dist: Path) -> None:
    result = FileRouter(dist).handle("/")
    assert result.status == 200
    assert result.body == b"<h1>home</h1>"
    assert result.headers["content-type"] == "text/html; charset=utf-8"
    assert_security_headers(result.headers)


def test_candidate_order(dist: Path) -> None:
    router = FileRouter(dist)
    assert router.handle("/about").body == b"<h1>about</h1>"
    assert router.handle("/about.html").body == b"<h1>about</h1>"
    assert router.handle("/blog/post").body == b"<h1>post</h1>"
    assert router.handle("/blog.md").headers["content-type"] == "text/markdown; charset=utf-8"
    assert router.handle("/assets/site.css").headers["content-type"] == "text/css"
    assert router.handle("/data.bin").headers["content-type"] == "application/octet-stream"


def test_directory_index_fallback(dist: Path) -> None:
    (dist / "blog.html").unlink(missing_ok=True)
    result = FileRouter(dist).handle("/blog")
    assert result.status == 200
    assert result.body == b"<h1>blog</h1>"
    assert result.headers["content-type"] == "text/html; charset=utf-8"


def test_trailing_slash_redirects_to_canonical_form(dist: Path) -> None:
    result = FileRouter(dist).handle("/blog/", "page=2")
    assert result.status == 301
    assert result.headers["location"] == "/blog?page=2"
    assert_security_headers(result.headers)


def test_double_slash_redirect_stays_on_site(dist: Path) -> None:
    result = FileRouter(dist).handle("//evil.example.com/")
    assert result.status == 301
    assert result.headers["location"] == "/"


@pytest.mark.parametrize("raw", ["/%E0%A4%A", "/%zz", "/%ff", "/a%00b"])
def test_bad_encoding_is_rejected(dist: Path, raw: str) -> None:
    result = FileRouter(dist).handle(raw)
    assert result.status == 400
    assert result.body == b"bad request"


@pytest.mark.parametrize("raw", ["/../etc/passwd", "/blog/../about", "/%2e%2e/secret", "/./index.html"])
def test_dot_segments_are_rejected(dist: Path, raw: str) -> None:
    assert FileRouter(dist).handle(raw).status == 400


def test_hidden_files_are_not_found(dist: Path) -> None:
    result = FileRouter(dist).handle("/.secret")
    assert result.status == 404
    assert b"hidden" not in result.body


def test_not_found_document_matches_request_type(dist: Path) -> None:
    router = FileRouter(dist)
    html_result = router.handle("/nope")
    assert html_result.status == 404
    assert html_result.body == b"<h1>missing</h1>"
    md_result = router.handle("/nope.md")
    assert md_result.status == 404
    assert md_result.body == b"# missing"
    assert md_result.headers["content-type"] == "text/markdown; charset=utf-8"


def test_reserved_not_found_paths_return_404(dist: Path) -> None:
    router = FileRouter(dist)
    for path in ("/404", "/404.html"):
        result = router.handle(path)
        assert result.status == 404
        assert result.body == b"<h1>missing</h1>"
    assert router.handle("/404.md").body == b"# missing"


def test_generic_not_found_without_document(tmp_path: Path) -> None:
    write(tmp_path / "index.html", "home")
    result = FileRouter(tmp_path).handle("/missing")
    assert result.status == 404
    assert result.body == b"not found"
    assert str(tmp_path).encode() not in result.body


def test_base_path_handling(dist: Path) -> None:
    router = FileRouter(dist, "/docs")
    redirect = router.handle("/docs", "x=1")
    assert redirect.status == 302
    assert redirect.headers["location"] == "/docs/?x=1"
    assert router.handle("/docs/").body == b"<h1>home</h1>"
    assert router.handle("/docs/about").body == b"<h1>about</h1>"
    assert router.handle("/about").status == 404
    assert router.handle("/docsabout").status == 404
    slash = router.handle("/docs/blog/")
    assert slash.status == 301
    assert slash.headers["location"] == "/docs/blog"


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_symlink_escape_is_not_served(tmp_path: Path) -> None:
    root = tmp_path / "site"
    write(root / "index.html", "home")
    outside = tmp_path / "outside.html"
    write(outside, "secret")
    (root / "leak.html").symlink_to(outside)
    result = FileRouter(root).handle("/leak")
    assert result.status == 404
    assert result.body != b"secret"


def test_sibling_prefix_directory_is_not_served(tmp_path: Path) -> None:
    root = tmp_path / "site"
    write(root / "index.html", "home")
    write(tmp_path / "site-evil" / "index.html", "evil")
    router = FileRouter(root)
    assert router.serve_file("../site-evil/index.html") is None


def test_decode_path() -> None:
    assert decode_path("/hello%20world") == "/hello world"
    assert decode_path("/caf%C3%A9") == "/café"
    with pytest.raises(PathDecodeError):
        decode_path("/%C3")


def test_content_type_table() -> None:
    assert content_type_for("a.JSON") == "application/json"
    assert content_type_for("a.webp") == "image/webp"
    assert content_type_for("a.unknown") == "application/octet-stream"
    assert content_type_for("noext") == "application/octet-stream"


def test_infer_base_path_from_sitemap(tmp_path: Path) -> None:
    write(
        tmp_path / "sitemap.xml",
        "<urlset><url><loc>https://example.com/docs/a/b</loc></url>"
        "<url><loc>https://example.com/docs/</loc></url></urlset>",
    )
    assert infer_base_path(tmp_path) == "/docs"
    assert infer_base_path(tmp_path / "missing") == ""


def test_flask_app_routes_everything_through_router(dist: Path) -> None:
    app = create_app(FileRouter(dist))
    client = app.test_client()

    home = client.get("/")
    assert home.status_code == 200
    assert home.data == b"<h1>home</h1>"
    assert home.headers["X-Content-Type-Options"] == "nosniff"

    redirect = client.get("/blog/?a=1")
    assert redirect.status_code == 301
    assert redirect.headers["Location"] == "/blog?a=1"

    missing = client.get("/nothing/here")
    assert missing.status_code == 404
    assert missing.data == b"<h1>missing</h1>"
    assert "content-security-policy" in {key.lower() for key in missing.headers.keys()}


@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "OPTIONS", "TRACE"])
def test_every_method_goes_through_router(dist: Path, method: str) -> None:
    client = create_app(FileRouter(dist)).test_client()
    response = client.open("/", method=method)
    assert response.status_code in {200, 301, 302, 400, 404}
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "base-uri 'none'" in response.headers["Content-Security-Policy"]


def test_post_serves_same_document_as_get(dist: Path) -> None:
    client = create_app(FileRouter(dist)).test_client()
    response = client.post("/")
    assert response.status_code == 200
    assert response.data == b"<h1>home</h1>"
    assert response.headers["Referrer-Policy"] == "no-referrer"


def test_unreadable_file_falls_through(dist: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    original = Path.read_bytes

    def read_bytes(self: Path) -> bytes:
        if self.name == "about.html":
            raise PermissionError(self)
        return original(self)

    monkeypatch.setattr(Path, "read_bytes", read_bytes)
    result = FileRouter(dist).handle("/about")
    assert result.status == 404
    assert result.body == b"<h1>missing</h1>"
