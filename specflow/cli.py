from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from .apply_agent import ApplyAgent
from .config import build_config
from .context_sync import ContextSynchronizer
from .errors import SpecflowError, ValidationError
from .relay import AnalysisRelay
from .service import ProviderService

# Same operations as the HTTP server, without starting it.


def _cmd_sync(config, args) -> dict:
    result = ContextSynchronizer(config.context).sync()
    return {
        "success": True,
        "path": str(result.path),
        "fileCount": result.file_count,
        "bytes": result.bytes,
        "skipped": result.skipped,
    }


def _cmd_save(config, args) -> dict:
    if args.source == "-":
        content = sys.stdin.read()
    else:
        try:
            content = Path(args.source).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ValidationError(f"Cannot read source {args.source}: {exc}") from exc
    result = ApplyAgent(config.context.project_root).write(args.path, content)
    return {
        "success": True,
        "path": result.relative_path,
        "bytes": result.bytes,
        "created": result.created,
    }


def _cmd_analyze(config, args) -> dict:
    if args.structured:
        config.analysis.response_mode = "structured"
    if args.adapter:
        config.analysis.adapter = args.adapter
    relay = AnalysisRelay(config.analysis, ContextSynchronizer(config.context), ProviderService(config))
    return relay.analyze(args.message).to_payload()


def _cmd_summary(config, args) -> dict:
    return {"success": True, **ContextSynchronizer(config.context).summary()}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="specflow", description="SpecFlow context and relay tools")
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--root", default=None, help="Project root override")
    sub = parser.add_subparsers(dest="command", required=True)

    p_sync = sub.add_parser("sync", help="Rebuild the context document")
    p_sync.set_defaults(func=_cmd_sync)

    p_save = sub.add_parser("save", help="Write a file inside the project root")
    p_save.add_argument("path", help="Target path relative to the project root")
    p_save.add_argument("--from", dest="source", default="-", help="Source file, or - for stdin")
    p_save.set_defaults(func=_cmd_save)

    p_analyze = sub.add_parser("analyze", help="Send a request with the cached context")
    p_analyze.add_argument("message")
    p_analyze.add_argument("--structured", action="store_true", help="Ask for a JSON plan")
    p_analyze.add_argument("--adapter", default=None, help="Adapter name override")
    p_analyze.set_defaults(func=_cmd_analyze)

    p_summary = sub.add_parser("summary", help="Show the persisted context document info")
    p_summary.set_defaults(func=_cmd_summary)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    env = dict(os.environ)
    if args.root:
        env["SPECFLOW_PROJECT_ROOT"] = args.root
    config = build_config(args.config, environ=env)
    try:
        payload = args.func(config, args)
    except SpecflowError as exc:
        print(json.dumps(exc.to_envelope(), indent=2), file=sys.stderr)
        return 1
    if payload.get("answer") is not None:
        print(payload["answer"])
    else:
        print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
