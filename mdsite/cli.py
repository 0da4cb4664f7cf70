from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from .cache import open_cache
from .config import load_config
from .errors import ConfigError, PathSafetyError, StoreError
from .generate import DEFAULT_WORKERS, generate
from .output import TemplateLayout
from .utils import parse_bool, parse_int


def build_parser(config: dict, config_path: str) -> argparse.ArgumentParser:
    def cfg_str(key: str, default: str) -> str:
        value = config.get(key)
        return default if value is None else str(value)

    def cfg_bool(key: str, default: bool) -> bool:
        value = config.get(key)
        return default if value is None else parse_bool(value)

    parser = argparse.ArgumentParser(description="Build a Markdown blog into static HTML.")
    parser.add_argument("--config", default=config_path, help="Path to site config file (TOML/YAML/JSON).")
    parser.add_argument("--articles", default=cfg_str("articles", "articles"), help="Article directory.")
    parser.add_argument("--out", default=cfg_str("out", "out"), help="Output directory.")
    parser.add_argument(
        "--root",
        default=cfg_str("root", "root"),
        help="Directory that site-root links (/style.css) are resolved against.",
    )
    parser.add_argument(
        "--clean-out",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("clean_out", False),
        help="Remove output files not produced by this build.",
    )
    parser.add_argument("--db-file", default=cfg_str("db_file", ".cache.db"), help="Build cache database.")
    parser.add_argument(
        "--template",
        default=cfg_str("template", ""),
        help="Page template with {{title}} and {{content}} placeholders (default: bare article HTML).",
    )
    parser.add_argument(
        "--workers",
        default=parse_int(config.get("workers"), DEFAULT_WORKERS),
        type=int,
        help="Number of articles built or written at the same time.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=cfg_bool("verbose", False),
        help="Log build progress.",
    )
    return parser


def run(args: argparse.Namespace) -> int:
    articles_dir = Path(args.articles)
    if not articles_dir.is_dir():
        print(f"Article directory not found: {articles_dir}", file=sys.stderr)
        return 1
    root_dir: Optional[Path] = Path(args.root)
    if not root_dir.is_dir():
        print(f"Root directory not found, using {articles_dir}: {root_dir}", file=sys.stderr)
        root_dir = None

    layout = None
    if args.template:
        template_path = Path(args.template)
        if not template_path.exists():
            print(f"Template not found: {template_path}", file=sys.stderr)
            return 1
        layout = TemplateLayout.from_file(template_path)

    try:
        cache = open_cache(args.db_file)
    except (StoreError, sqlite3.Error) as exc:
        print(f"Unable to open build cache {args.db_file}: {exc}", file=sys.stderr)
        return 1

    try:
        result = generate(
            cache,
            articles_dir,
            Path(args.out),
            root_dir=root_dir,
            clean_output=args.clean_out,
            layout=layout,
            workers=max(1, args.workers),
        )
    except StoreError as exc:
        print(f"Build cache error: {exc}", file=sys.stderr)
        return 1
    except PathSafetyError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        cache.close()

    for failure in result.failed_resources:
        print(f"Warning: resource {failure.file}: {failure.reason}", file=sys.stderr)
    if result.failed_articles:
        print("Following files failed to build:", file=sys.stderr)
        for failure in result.failed_articles:
            print(f"File: {failure.file}", file=sys.stderr)
            print(f"  {failure.reason}", file=sys.stderr)
        return 1
    print(f"All files built ({len(result.built)} rebuilt, {len(result.skipped)} up to date).")
    if result.removed_files:
        print(f"Removed {len(result.removed_files)} stale files from {args.out}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", default="site.toml")
    pre_args, _ = pre_parser.parse_known_args(argv)
    try:
        config = load_config(Path(pre_args.config))
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    args = build_parser(config, pre_args.config).parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    start = time.perf_counter()
    code = run(args)
    elapsed = time.perf_counter() - start
    print(f"Build completed in {elapsed:.2f}s.")
    return code


if __name__ == "__main__":
    sys.exit(main())
