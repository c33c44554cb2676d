"""Stable reporting surface of the revision engine.

Failure types and reports are imported eagerly; the serializable records and
the log capture helpers are resolved lazily so that importing the engine does
not pull in the serialization stack.
"""

from contract.report import (
    DeletionTargetMissing,
    EvaluationFailure,
    Failure,
    Installed,
    LineShift,
    ParseFailure,
    RevisionError,
    RevisionReport,
    WatchSetupFailure,
)


def __getattr__(name: str) -> object:
    if name in {"ActionRecord", "DeclarationRecord", "DiffRecord"}:
        from contract.records import ActionRecord, DeclarationRecord, DiffRecord

        return {
            "ActionRecord": ActionRecord,
            "DeclarationRecord": DeclarationRecord,
            "DiffRecord": DiffRecord,
        }[name]

    if name in {"ActionLog", "actions", "debug_logger", "diffs"}:
        from contract.logs import ActionLog, actions, debug_logger, diffs

        return {
            "ActionLog": ActionLog,
            "actions": actions,
            "debug_logger": debug_logger,
            "diffs": diffs,
        }[name]

    msg = f"module 'contract' has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "ActionLog",
    "ActionRecord",
    "DeclarationRecord",
    "DeletionTargetMissing",
    "DiffRecord",
    "EvaluationFailure",
    "Failure",
    "Installed",
    "LineShift",
    "ParseFailure",
    "RevisionError",
    "RevisionReport",
    "WatchSetupFailure",
    "actions",
    "debug_logger",
    "diffs",
]
