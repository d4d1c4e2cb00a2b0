"""Entry point: python -m arcana {parse,emit,merge}

- parse FILE:               document text -> JSON {success, data, stats, preserved}
- emit DATA.json:           JSON data -> canonical markdown
- merge ORIGINAL DATA.json: write JSON data back into an existing document
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from arcana.config import ArcanaConfig, load_config
from arcana.document.emitter import emit
from arcana.document.merge import merge
from arcana.document.parser import parse, parse_document
from arcana.models import DIALECTS, data_from_dict

logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _fail(message: str) -> None:
    print(f"error: {message}", file=sys.stderr)
    raise SystemExit(1)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        _fail(f"cannot read {path}: {e}")


def _read_data(path: Path, dialect: str):
    try:
        payload = json.loads(_read_text(path))
    except json.JSONDecodeError as e:
        _fail(f"{path} is not valid JSON: {e}")
    if not isinstance(payload, dict):
        _fail(f"{path} must contain a JSON object")
    # Accept the output of `parse` as well as bare data.
    if isinstance(payload.get("data"), dict):
        payload = payload["data"]
    return data_from_dict(payload, dialect)


def _write(text: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(text)
    else:
        output.write_text(text, encoding="utf-8")
        logger.info("Wrote %s", output)


def command_parse(args: argparse.Namespace, config: ArcanaConfig) -> None:
    result = parse(
        _read_text(args.file),
        args.dialect,
        config.parser.default_dialect,
        config.emitter.title_suffixes,
    )
    if not result.success:
        _fail(result.error)
    doc = result.document
    out = {
        "success": True,
        "data": doc.data.to_dict(),
        "stats": doc.stats.to_dict(),
        "preserved": doc.ledger.to_dict(),
    }
    sys.stdout.write(json.dumps(out, indent=2, ensure_ascii=False) + "\n")


def command_emit(args: argparse.Namespace, config: ArcanaConfig) -> None:
    dialect = args.dialect or config.parser.default_dialect
    data = _read_data(args.data, dialect)
    _write(emit(data, dialect, config.emitter.options(dialect)), args.output)


def command_merge(args: argparse.Namespace, config: ArcanaConfig) -> None:
    original = _read_text(args.original)
    dialect = args.dialect or parse_document(original, None, config.parser.default_dialect).dialect
    data = _read_data(args.data, dialect)
    _write(merge(original, data, dialect, config.emitter.options(dialect)), args.output)


def build_parser() -> argparse.ArgumentParser:
    parser_obj = argparse.ArgumentParser(
        prog="arcana", description="Parse, emit and merge project documents"
    )
    parser_obj.add_argument("--config", type=Path, help="Path to arcana.toml")
    parser_obj.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser_obj.add_subparsers(dest="command")

    parse_parser = subparsers.add_parser("parse", help="Parse a markdown document to JSON")
    parse_parser.add_argument("file", type=Path)
    parse_parser.add_argument("--dialect", choices=DIALECTS, help="Skip dialect detection")
    parse_parser.set_defaults(func=command_parse)

    emit_parser = subparsers.add_parser("emit", help="Render JSON data as markdown")
    emit_parser.add_argument("data", type=Path)
    emit_parser.add_argument("--dialect", choices=DIALECTS, help="Dialect of the data")
    emit_parser.add_argument("-o", "--output", type=Path, help="Write here instead of stdout")
    emit_parser.set_defaults(func=command_emit)

    merge_parser = subparsers.add_parser("merge", help="Write JSON data into an existing document")
    merge_parser.add_argument("original", type=Path)
    merge_parser.add_argument("data", type=Path)
    merge_parser.add_argument("--dialect", choices=DIALECTS, help="Skip dialect detection")
    merge_parser.add_argument("-o", "--output", type=Path, help="Write here instead of stdout")
    merge_parser.set_defaults(func=command_merge)

    return parser_obj


def main(argv: list[str] | None = None) -> None:
    parser_obj = build_parser()
    args = parser_obj.parse_args(argv)
    if not getattr(args, "command", None):
        parser_obj.print_help()
        raise SystemExit(1)
    config = load_config(args.config)
    _setup_logging("DEBUG" if args.verbose else config.log_level)
    args.func(args, config)


if __name__ == "__main__":
    main()
