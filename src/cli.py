"""Command-line interface for revise-core."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING

import orjson
from pydantic import ValidationError

from config.settings import ConfigError, RevisionConfig, load_config
from contract.records import DeclarationRecord, DiffRecord
from contract.report import RevisionError
from parse.declarations import parse_file
from reconcile.diff import reconcile
from session.revisor import Revisor

if TYPE_CHECKING:
    from contract.report import Failure, RevisionReport
    from parse.relocatable import Declaration
    from snapshot.models import SignatureSet

# Longest pause between two sync points of the watch loop.
_MAX_SYNC_PERIOD = 0.5


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="revise")
    subparsers = parser.add_subparsers(dest="command", required=True)

    signatures_parser = subparsers.add_parser(
        "signatures", help="List the declarations and signatures of a file"
    )
    signatures_parser.add_argument("file", help="Python source file")
    signatures_parser.add_argument(
        "--scope",
        default=None,
        help="Scope the file is evaluated into (default: file stem)",
    )

    diff_parser = subparsers.add_parser(
        "diff", help="Show the revision needed to go from one version to another"
    )
    diff_parser.add_argument("old", help="Previous version of the file")
    diff_parser.add_argument("new", help="Current version of the file")
    diff_parser.add_argument(
        "--scope",
        default=None,
        help="Scope both versions are evaluated into (default: new file stem)",
    )

    watch_parser = subparsers.add_parser(
        "watch", help="Run scripts and keep them revised as they are edited"
    )
    watch_parser.add_argument("scripts", nargs="+", help="Scripts to run")
    watch_parser.add_argument(
        "--module",
        default="__main__",
        help="Name of the module the scripts run in (default: __main__)",
    )
    watch_parser.add_argument(
        "--manual",
        action="store_true",
        help="Revise only when a line is entered on stdin",
    )
    watch_parser.add_argument(
        "--poll", action="store_true", help="Poll instead of native notification"
    )
    watch_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between polls (default: config poll_interval)",
    )
    watch_parser.add_argument(
        "--root",
        default=".",
        help="Directory holding revise.toml (default: .)",
    )
    watch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every revision action"
    )

    return parser


def _write_failures(failures: list[Failure]) -> None:
    for failure in failures:
        sys.stderr.write(f"{failure.location()}: {failure.kind}: {failure.message}\n")


def _declaration_record(
    path: Path, scope: str, declaration: Declaration, signatures: SignatureSet
) -> DeclarationRecord:
    return DeclarationRecord(
        path=path.as_posix(),
        scope=scope,
        kind=declaration.kind,
        name=declaration.name,
        start_line=declaration.lineno,
        end_line=declaration.end_lineno,
        signatures=None if signatures is None else [str(s) for s in signatures],
    )


def _dump(payload: dict) -> None:
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS).decode())
    sys.stdout.write("\n")


def _handle_signatures(file: str, scope: str | None) -> int:
    path = Path(file)
    try:
        result = parse_file(path, scope or path.stem)
    except RevisionError as exc:
        _write_failures([exc.to_failure()])
        return 2

    for item_scope, declaration, signatures in result.scope_map.items():
        record = _declaration_record(path, item_scope, declaration, signatures)
        _dump(record.model_dump())
    _write_failures(result.failures)
    return 0 if result.ok else 1


def _handle_diff(old: str, new: str, scope: str | None) -> int:
    old_path, new_path = Path(old), Path(new)
    scope = scope or new_path.stem
    try:
        old_result = parse_file(old_path, scope)
        new_result = parse_file(new_path, scope)
    except RevisionError as exc:
        _write_failures([exc.to_failure()])
        return 2

    new_map = new_result.scope_map
    diff = reconcile(old_result.scope_map, new_map)
    record = DiffRecord(
        old_path=old_path.as_posix(),
        new_path=new_path.as_posix(),
        to_delete=[str(sig) for sig in diff.to_delete],
        to_install=[
            _declaration_record(new_path, s, decl, new_map[s][decl])
            for decl, s in diff.to_install
        ],
        unchanged=len(diff.unchanged),
        moved=len(diff.moved),
    )
    _dump(record.model_dump())
    _write_failures([*old_result.failures, *new_result.failures])
    return 0 if diff.empty else 1


def _report(report: RevisionReport | None) -> None:
    if report is not None:
        _write_failures(report.failures)


def _handle_watch(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(Path(args.root))
    except ConfigError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2

    updates: dict[str, object] = {}
    if args.manual:
        updates["mode"] = "manual"
    if args.poll:
        updates["poll"] = True
    if args.interval is not None:
        updates["poll_interval"] = args.interval
    try:
        config = RevisionConfig.model_validate({**config.model_dump(), **updates})
    except ValidationError as exc:
        sys.stderr.write(f"error: Invalid options: {exc}\n")
        return 2

    module = ModuleType(args.module)
    with Revisor(config) as revisor:
        for script in args.scripts:
            revisor.includet(Path(script), module)
        revisor.watch()
        try:
            if config.mode == "manual":
                for _ in sys.stdin:
                    _report(revisor.drain())
            else:
                while True:
                    time.sleep(min(config.poll_interval, _MAX_SYNC_PERIOD))
                    _report(revisor.sync_point())
        except KeyboardInterrupt:
            pass
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "signatures":
        return _handle_signatures(args.file, args.scope)

    if args.command == "diff":
        return _handle_diff(args.old, args.new, args.scope)

    if args.command == "watch":
        return _handle_watch(args)

    raise AssertionError


if __name__ == "__main__":
    raise SystemExit(main())
