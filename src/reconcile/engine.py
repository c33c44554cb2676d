"""Revision passes: apply the diffs of many files to the live symbol table.

A pass runs in four phases over every file it was given. First each file is
parsed and diffed against its reference snapshot. Then every scheduled
deletion of every file is applied, then every installation, so that a
declaration moving from one file to another is never live twice and never
deleted after its new copy went in. Finally the positions of declarations
that only moved are re-anchored and the new snapshots are committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from contract.logs import GROUP_ACTION, GROUP_PARSING, log_event
from contract.report import (
    DeletionTargetMissing,
    EvaluationFailure,
    Failure,
    Installed,
    ParseFailure,
    RevisionReport,
)
from parse.declarations import parse_source
from reconcile.diff import reconcile
from snapshot.models import ScopeMap

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from live.evaluator import Evaluator
    from parse.relocatable import Declaration
    from reconcile.diff import Diff
    from reconcile.reanchor import LineOffsets
    from snapshot.models import FileRecord, PackageRecord, Signature, SignatureSet

logger = logging.getLogger(__name__)

Target = tuple["PackageRecord", "FileRecord"]


def _nested(scope: str, parent: str) -> bool:
    return scope.startswith(f"{parent}.")


@dataclass
class _Plan:
    """Work scheduled for one file within a pass."""

    package: PackageRecord
    record: FileRecord
    path: Path
    new_map: ScopeMap
    diff: Diff
    parse_failures: list[Failure]
    installs: list[tuple[Declaration, str]] = field(default_factory=list)
    installed: dict[tuple[str, Declaration], SignatureSet] = field(
        default_factory=dict
    )
    failed: set[tuple[str, Declaration]] = field(default_factory=set)

    @property
    def deferred(self) -> bool:
        return bool(self.parse_failures)


class RevisionEngine:
    """Applies revision passes through an evaluator.

    Args:
        evaluator: Installs declarations and deletes signatures
        offsets: Line offsets updated for declarations that only moved
    """

    def __init__(self, evaluator: Evaluator, offsets: LineOffsets) -> None:
        self.evaluator = evaluator
        self.offsets = offsets

    def adopt(self, scope_map: ScopeMap) -> None:
        """Fill in the signatures of declarations that are already live."""
        for scope, declaration, _ in list(scope_map.items()):
            signatures = self.evaluator.adopt(declaration, scope)
            scope_map.set_signatures(scope, declaration, signatures)

    def revise(self, targets: Sequence[Target]) -> RevisionReport:
        """Run one revision pass over the given files.

        Args:
            targets: Package and file record of every file to revise, each
                at most once

        Returns:
            RevisionReport listing deletions, installations, re-anchored
            signatures and every failure. Nothing raised while revising a
            single file or declaration escapes.
        """
        report = RevisionReport()
        plans: list[_Plan] = []
        for package, record in targets:
            path = package.abspath(record.relative_path)
            report.files.append(path)
            try:
                plan = self._plan(package, record, path, report)
            except Exception as exc:  # noqa: BLE001
                failure = ParseFailure(f"{type(exc).__name__}: {exc}", path=path)
                logger.warning("Skipping %s: %s", path, failure.message)
                report.failures.append(failure.to_failure())
                # Keeps the file scheduled for the next drain.
                record.parse_failures = [failure.to_failure()]
                continue
            if plan is not None:
                plans.append(plan)

        for plan in plans:
            self._delete(plan, report)
        for plan in plans:
            self._install(plan, report)
        installed = {
            signature
            for plan in plans
            for signatures in plan.installed.values()
            for signature in signatures or ()
        }
        for plan in plans:
            self._reanchor(plan, report)
            self._commit(plan, installed)
        return report

    def reevaluate(self, targets: Sequence[Target], scope: str) -> RevisionReport:
        """Evaluate every declaration of ``scope`` and its nested scopes again.

        The snapshot is not compared with the disk. Signatures stay the same,
        so the live table ends up with the same keys bound to fresh objects.
        """
        report = RevisionReport()
        for package, record in targets:
            path = package.abspath(record.relative_path)
            report.files.append(path)
            scope_map = self._reference(record, path)
            for item_scope, declaration, _ in list(scope_map.items()):
                if item_scope != scope and not _nested(item_scope, scope):
                    continue
                signatures = self._evaluate(declaration, item_scope, path, report)
                if signatures is False:
                    record.pending.add((item_scope, declaration))
                    scope_map.set_signatures(item_scope, declaration, None)
                else:
                    record.pending.discard((item_scope, declaration))
                    scope_map.set_signatures(item_scope, declaration, signatures)
        return report

    def _reference(self, record: FileRecord, path: Path) -> ScopeMap:
        """Return the snapshot to diff against, rebuilt from cached source."""
        if record.cached_source is not None and record.scope_map.is_empty():
            result = parse_source(
                record.cached_source, record.scope, filename=str(path)
            )
            self.adopt(result.scope_map)
            record.scope_map = result.scope_map
            logger.debug("Reconstructed %s from cached source", path)
        record.cached_source = None
        return record.scope_map

    def _plan(
        self,
        package: PackageRecord,
        record: FileRecord,
        path: Path,
        report: RevisionReport,
    ) -> _Plan | None:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            failure = ParseFailure(f"Cannot read source: {exc}", path=path)
            logger.warning("Skipping %s: %s", path, failure.message)
            report.failures.append(failure.to_failure())
            return None

        old_map = self._reference(record, path)
        result = parse_source(text, record.scope, filename=str(path))
        for failure in result.failures:
            logger.warning(
                "Parse error at %s: %s", failure.location(), failure.message
            )
        report.failures.extend(result.failures)

        diff = reconcile(old_map, result.scope_map)
        log_event(
            GROUP_PARSING,
            "Diff",
            path=str(path),
            newexprs=[decl.summary() for decl, _ in diff.to_install],
            oldexprs=[decl.summary() for decl, _ in diff.removed],
        )

        plan = _Plan(
            package=package,
            record=record,
            path=path,
            new_map=result.scope_map,
            diff=diff,
            parse_failures=list(result.failures),
        )
        plan.installs = self._installs(plan)
        return plan

    def _installs(self, plan: _Plan) -> list[tuple[Declaration, str]]:
        """Order the declarations to evaluate as they appear in the new file.

        Besides the new declarations this includes pending retries that are
        still on disk and every member of a class whose header changed, since
        evaluating the header creates a fresh class.
        """
        wanted = {(scope, decl) for decl, scope in plan.diff.to_install}
        headers = [
            f"{scope}.{decl.name}"
            for decl, scope in plan.diff.to_install
            if decl.kind == "class"
        ]
        wanted |= {
            (scope, decl)
            for scope, decl in plan.record.pending
            if plan.new_map.lookup(scope, decl) is not None
        }

        installs: list[tuple[Declaration, str]] = []
        for scope, declaration, _ in plan.new_map.items():
            dependent = any(
                scope == header or _nested(scope, header) for header in headers
            )
            if (scope, declaration) in wanted or dependent:
                installs.append((declaration, scope))
        return installs

    def _delete(self, plan: _Plan, report: RevisionReport) -> None:
        if plan.deferred:
            if plan.diff.to_delete:
                logger.info(
                    "Deferring %d deletion(s) in %s until it parses",
                    len(plan.diff.to_delete),
                    plan.path,
                )
            return

        for signature in plan.diff.to_delete:
            log_event(GROUP_ACTION, "DeleteMethod", signature=str(signature))
            try:
                self.evaluator.delete(signature)
            except DeletionTargetMissing as exc:
                logger.warning("%s in %s", exc.message, plan.path)
                exc.path = plan.path
                report.failures.append(exc.to_failure())
                continue
            except Exception as exc:  # noqa: BLE001
                message = f"deleting {signature} raised {type(exc).__name__}: {exc}"
                logger.warning("%s in %s", message, plan.path)
                report.failures.append(
                    Failure(kind="deletion", message=message, path=plan.path)
                )
                continue
            self.offsets.discard(signature)
            report.deleted.append(signature)

    def _install(self, plan: _Plan, report: RevisionReport) -> None:
        for declaration, scope in plan.installs:
            signatures = self._evaluate(declaration, scope, plan.path, report)
            key = (scope, declaration)
            if signatures is False:
                plan.failed.add(key)
                plan.installed[key] = None
            else:
                plan.installed[key] = signatures

    def _evaluate(
        self,
        declaration: Declaration,
        scope: str,
        path: Path,
        report: RevisionReport,
    ) -> SignatureSet | bool:
        """Evaluate one declaration; returns False if it raised."""
        log_event(
            GROUP_ACTION,
            "Eval",
            scope=scope,
            line=declaration.lineno,
            declaration=declaration.summary(),
        )
        try:
            signatures = self.evaluator.install(
                declaration, scope, filename=str(path)
            )
        except EvaluationFailure as exc:
            failure = exc
        except Exception as exc:  # noqa: BLE001
            failure = EvaluationFailure(
                f"{type(exc).__name__}: {exc}", path=path, line=declaration.lineno
            )
        else:
            self.offsets.reset(signatures or ())
            report.installed.append(
                Installed(
                    scope=scope,
                    declaration=declaration.summary(),
                    line=declaration.lineno,
                    signatures=signatures,
                )
            )
            return signatures

        logger.warning(
            "Failed to evaluate %s at %s:%d: %s",
            declaration.summary(),
            path,
            declaration.lineno,
            failure.message,
        )
        report.failures.append(failure.to_failure())
        return False

    def _reanchor(self, plan: _Plan, report: RevisionReport) -> None:
        installed = set(plan.installed)
        for item in plan.diff.moved:
            if (item.scope, item.declaration) in installed or not item.signatures:
                continue
            shifts = self.offsets.shift(
                item.signatures, item.delta, item.declaration.lineno
            )
            for shift in shifts:
                log_event(
                    GROUP_ACTION,
                    "LineOffset",
                    signature=str(shift.signature),
                    line=shift.line,
                    offset=shift.new_offset,
                )
            report.reanchored.extend(shifts)

    def _commit(self, plan: _Plan, installed: set[Signature]) -> None:
        """Store the new snapshot of a planned file.

        ``installed`` holds every signature installed in the pass. A deferred
        file never keeps one of those in its carried-over declarations, since
        that signature now belongs to the file that installed it.
        """
        new_map = plan.new_map
        for item in plan.diff.unchanged:
            key = (item.scope, item.declaration)
            if key not in plan.installed:
                new_map.set_signatures(item.scope, item.declaration, item.signatures)
        for (scope, declaration), signatures in plan.installed.items():
            new_map.set_signatures(scope, declaration, signatures)

        if plan.deferred:
            _carry_over(new_map, plan.diff.removed, plan.record.scope_map, installed)

        plan.record.scope_map = new_map
        plan.record.pending = plan.failed
        plan.record.parse_failures = plan.parse_failures


def _carry_over(
    new_map: ScopeMap,
    removed: Iterable[tuple[Declaration, str]],
    old_map: ScopeMap,
    reinstalled: set[Signature],
) -> None:
    """Keep unmatched old declarations so their deletion runs once it parses."""
    for declaration, scope in removed:
        signatures = old_map[scope][declaration]
        kept = tuple(sig for sig in signatures or () if sig not in reinstalled)
        new_map.add(scope, declaration, kept or None)


__all__ = ["RevisionEngine", "Target"]
