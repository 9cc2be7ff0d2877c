#!/usr/bin/env python3
"""Flow graph CLI - validate, format and serve prompt flow documents."""

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .config import HOST, PORT, configure_logging
from .models import FlowSchema
from .serialization import load_document, trim_document
from .store import FlowStore
from .validation import format_issues, format_model_errors, validate_all, validate_schema, validation_summary


def _json_out(data, code=0):
    print(json.dumps(data))
    return code


def _read_text(path):
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise SystemExit(_json_out({"status": "error", "error": f"Cannot read {path}: {e.strerror}"}, 2))


# ── Documents ────────────────────────────────────────────────────────────────

def cmd_validate(args):
    text = _read_text(args.file)
    try:
        data = trim_document(load_document(text))
    except ValueError as e:
        return _json_out({"status": "invalid", "errors": [f"Invalid JSON: {e}"]}, 1)

    structural = validate_schema(data)
    if not structural.is_valid:
        return _json_out({
            "status": "invalid",
            "errors": format_issues(structural.errors),
            "summary": validation_summary(structural),
        }, 1)

    try:
        schema = FlowSchema.model_validate(data)
    except PydanticValidationError as e:
        return _json_out({"status": "invalid", "errors": format_model_errors(e)}, 1)

    result = validate_all(schema)
    return _json_out({
        "status": "valid" if result.is_valid else "invalid",
        **result.to_dict(),
        "summary": validation_summary(result),
    }, 0 if result.is_valid else 1)


def cmd_format(args):
    store = FlowStore()
    result = store.import_json(_read_text(args.file))
    if not result.success:
        return _json_out({"status": "error", "errors": result.errors}, 1)

    output = store.export_json()
    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
        return _json_out({"status": "written", "file_path": args.output})
    print(output)
    return 0


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    from flow_backend.main import run
    run(args.host, args.port)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="flowgraph", description="Prompt flow document tools")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", help="Validate a flow document")
    p.add_argument("file")

    p = sub.add_parser("format", help="Rewrite a flow document in canonical form")
    p.add_argument("file")
    p.add_argument("-o", "--output", default=None)

    p = sub.add_parser("serve", help="Run the HTTP backend")
    p.add_argument("--host", default=HOST)
    p.add_argument("--port", type=int, default=PORT)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    cmd_map = {
        "validate": cmd_validate,
        "format": cmd_format,
        "serve": cmd_serve,
    }
    return cmd_map[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
