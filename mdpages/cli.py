from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from .build import BuildError, build_site
from .config import DEFAULT_CONFIG_PATH, ConfigError, SiteConfig, load_config, write_default_config
from .serve import serve


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mdpages", description="Minimal Markdown static site generator.")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to site config file (YAML/TOML/JSON).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress at INFO level.")
    commands = parser.add_subparsers(dest="command", required=True)

    build_cmd = commands.add_parser("build", help="Build the site.")
    serve_cmd = commands.add_parser("serve", help="Serve the built site.")
    for sub in (build_cmd, serve_cmd):
        sub.add_argument("--src", default=None, help="Directory containing Markdown content.")
        sub.add_argument("--dest", default=None, help="Output directory for the site.")
        sub.add_argument("--url", default=None, help="Public site URL; its path becomes the base path.")
    serve_cmd.add_argument("-p", "--port", type=int, default=None, help="Port to listen on.")

    config_cmd = commands.add_parser("config", help="Write a default config file.")
    config_cmd.add_argument("-f", "--force", action="store_true", help="Overwrite an existing config.")
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def resolve_config(args: argparse.Namespace) -> SiteConfig:
    cfg = load_config(Path(args.config))
    return cfg.with_overrides(
        src=args.src,
        dest=args.dest,
        url=args.url,
        port=getattr(args, "port", None),
    )


def run(args: argparse.Namespace) -> int:
    try:
        if args.command == "config":
            write_default_config(Path(args.config), force=args.force)
            print(f"wrote {args.config}")
            return 0
        cfg = resolve_config(args)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.command == "build":
        try:
            result = build_site(cfg)
        except (BuildError, OSError, ValueError) as exc:
            print(f"build failed: {exc}", file=sys.stderr)
            return 1
        print(result.summary())
        return 0

    serve(cfg.dest, cfg.port, cfg.base_path if cfg.url else "")
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
