from __future__ import annotations

import datetime as dt
from pathlib import Path
from urllib.parse import urlsplit


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def base_path_from_url(url: str) -> str:
    """Path component of a site URL without its trailing slash ("" for a bare origin)."""
    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    return parts.path.rstrip("/")


def apply_base_path(base_path: str, path: str) -> str:
    if not base_path or base_path == "/":
        return path
    if not path.startswith("/"):
        return path
    if path == base_path or path.startswith(base_path + "/"):
        return path
    return f"{base_path}{path}"


def format_date(value: object) -> str:
    if isinstance(value, dt.datetime):
        return value.date().isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    if value is None:
        return ""
    return str(value).strip()


def write_nojekyll(output_dir: Path) -> None:
    output_dir.joinpath(".nojekyll").write_text("", encoding="utf-8")
