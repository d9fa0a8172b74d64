from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

try:
    import tomllib as toml
except ImportError:
    import tomli as toml

from .utils import base_path_from_url

DEFAULT_CONFIG_PATH = "config.yaml"


class ConfigError(Exception):
    """Missing or invalid site configuration."""


@dataclass(slots=True)
class SiteConfig:
    # paths
    src: str = "src"
    dest: str = "dist"
    port: int = 8000
    url: str = ""
    # site
    title: str = "My Site"
    description: str = "A static site built with mdpages"
    lang: str = "en"
    author: str = ""
    github: str = ""
    # seo
    robots: str = "index, follow"
    # navigation
    nav_bar: list = field(default_factory=list)

    @property
    def site_url(self) -> str:
        return resolve_url(self)

    @property
    def base_path(self) -> str:
        return base_path_from_url(self.site_url)

    def with_overrides(self, **overrides: Any) -> "SiteConfig":
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values)


FIELD_TYPES = {
    "src": str,
    "dest": str,
    "port": int,
    "url": str,
    "title": str,
    "description": str,
    "lang": str,
    "author": str,
    "github": str,
    "robots": str,
    "nav_bar": list,
}


def resolve_url(cfg: SiteConfig) -> str:
    url = cfg.url or f"http://localhost:{cfg.port}"
    return url.rstrip("/")


def parse_config_text(text: str, suffix: str) -> object:
    suffix = suffix.lower()
    if suffix == ".toml":
        try:
            return toml.loads(text)
        except toml.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML: {exc}") from exc
    if suffix in {".yml", ".yaml"}:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON: {exc}") from exc


def _check_nav_item(item: object) -> bool:
    if isinstance(item, str):
        return True
    if isinstance(item, dict) and len(item) == 1:
        (label, target), = item.items()
        return isinstance(label, str) and isinstance(target, str)
    return False


def build_config(data: Mapping[str, Any]) -> SiteConfig:
    errors = []
    for key, value in data.items():
        expected = FIELD_TYPES.get(key)
        if expected is None:
            errors.append(f"{key} is not a known setting")
            continue
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            errors.append(f"{key} must be an integer")
        elif expected is not int and not isinstance(value, expected):
            errors.append(f"{key} must be a {expected.__name__}")
        elif key == "nav_bar":
            for index, item in enumerate(value):
                if not _check_nav_item(item):
                    errors.append(f"nav_bar/{index} must be a string or a single-entry mapping")
    if errors:
        raise ConfigError("invalid config:\n- " + "\n- ".join(errors))
    return SiteConfig(**data)


def load_config(path: Path) -> SiteConfig:
    if not path.exists():
        raise ConfigError(f"{path} not found. Run 'mdpages config' to create one.")
    data = parse_config_text(path.read_text(encoding="utf-8"), path.suffix)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must be a mapping")
    return build_config(data)


def write_default_config(path: Path, force: bool = False) -> None:
    if path.exists() and not force:
        raise ConfigError(f"{path} already exists")
    defaults = asdict(SiteConfig())
    suffix = path.suffix.lower()
    if suffix in {".yml", ".yaml"}:
        text = yaml.safe_dump(defaults, sort_keys=False, allow_unicode=True)
    elif suffix == ".toml":
        raise ConfigError("writing TOML config is not supported; use .yaml or .json")
    else:
        text = json.dumps(defaults, indent=2, ensure_ascii=False) + "\n"
    path.write_text(text, encoding="utf-8")
