from __future__ import annotations

import html
import logging
import os
import re
import unicodedata
from pathlib import Path

from .paths import CONTENT_EXT, SCHEME_RE

logger = logging.getLogger(__name__)

DRIVE_RE = re.compile(r"^[a-zA-Z]:[\\/]")
SAFE_SCHEMES = {"http", "https", "mailto", "tel"}

CSP_POLICY = (
    "default-src 'self'; img-src 'self' https:; style-src 'self' https://cdn.jsdelivr.net; "
    "font-src 'self' https://cdn.jsdelivr.net data:; script-src 'self'; connect-src 'self'; "
    "base-uri 'none'; form-action 'self'"
)

SECURITY_HEADERS = {
    "x-content-type-options": "nosniff",
    "referrer-policy": "no-referrer",
    "permissions-policy": "interest-cohort=()",
    "content-security-policy": CSP_POLICY,
}


def security_headers(extra: dict[str, str] | None = None) -> dict[str, str]:
    headers = dict(extra or {})
    headers.update(SECURITY_HEADERS)
    return headers


def escape_html(text: str) -> str:
    return html.escape(text, quote=True)


def escape_attr(text: str) -> str:
    return html.escape(text, quote=True).replace("&#x27;", "&#39;")


def escape_xml(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def sanitize_href(raw_href: str) -> str | None:
    href = raw_href.strip()
    if not href:
        return None
    if href.startswith(("#", "/")):
        return href
    match = SCHEME_RE.match(href)
    if match:
        scheme = match.group(0)[:-1].lower()
        return href if scheme in SAFE_SCHEMES else None
    return href


def is_subpath(root: str | os.PathLike, full: str | os.PathLike) -> bool:
    """Literal prefix containment on NFC-normalized paths.

    ``/site-evil`` is not under ``/site``: the prefix has to end at a separator.
    """
    base = unicodedata.normalize("NFC", os.fspath(root).rstrip("/\\"))
    norm = unicodedata.normalize("NFC", os.fspath(full))
    return norm == base or norm.startswith(base + "/") or norm.startswith(base + "\\")


def resolve_under(root: str | os.PathLike, rel: str) -> Path | None:
    """Join an untrusted relative path onto ``root``, or return None.

    Every file read or write driven by link targets, slugs or request paths
    goes through here. The check is purely lexical and touches no files.
    """
    if "\0" in rel:
        return None
    if rel.startswith(("/", "\\")) or DRIVE_RE.match(rel):
        return None
    root_abs = os.path.abspath(os.fspath(root))
    full = os.path.normpath(os.path.join(root_abs, rel))
    if not is_subpath(root_abs, full):
        logger.debug("Rejected path outside %s: %r", root_abs, rel)
        return None
    return Path(full)


def validate_slug(slug: str) -> str | None:
    cleaned = slug.strip().replace("\\", "/")
    if not cleaned.endswith(CONTENT_EXT):
        return None
    if cleaned.startswith("/") or "\0" in cleaned:
        return None
    if any(part in ("", ".", "..") for part in cleaned.split("/")):
        return None
    return cleaned
