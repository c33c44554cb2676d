"""Grouped revision events and an in-memory handler that captures them.

Core decisions are emitted on the ``revise`` logger with a group and an
event name attached to the record:

- ``Action``: ``Eval`` (a declaration was evaluated), ``DeleteMethod`` (a
  live signature was removed) and ``LineOffset`` (a signature's position
  correction changed).
- ``Parsing``: ``Diff`` carries the declarations unique to the new and the
  old version of a file.
- ``Watching``: a file was found to need examination.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import orjson

from contract.records import ActionRecord

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

LOGGER_NAME = "revise"

GROUP_ACTION = "Action"
GROUP_PARSING = "Parsing"
GROUP_WATCHING = "Watching"

_logger = logging.getLogger(LOGGER_NAME)


def log_event(
    group: str,
    event: str,
    *,
    level: int = logging.DEBUG,
    **deltainfo: Any,
) -> None:
    """Emit a grouped event on the ``revise`` logger."""
    _logger.log(
        level,
        "%s %s",
        group,
        event,
        extra={"group": group, "event": event, "deltainfo": deltainfo},
    )


@dataclass(frozen=True)
class LogEvent:
    time: float
    level: str
    group: str
    message: str
    deltainfo: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> ActionRecord:
        return ActionRecord(
            time=self.time,
            level=self.level,
            group=self.group,
            message=self.message,
            deltainfo=self.deltainfo,
        )


class ActionLog(logging.Handler):
    """Logging handler that keeps every grouped revision event it receives."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self.events: list[LogEvent] = []

    def emit(self, record: logging.LogRecord) -> None:
        group = getattr(record, "group", None)
        if group is None:
            return
        self.events.append(
            LogEvent(
                time=record.created,
                level=record.levelname,
                group=group,
                message=getattr(record, "event", record.getMessage()),
                deltainfo=dict(getattr(record, "deltainfo", {})),
            )
        )

    def clear(self) -> None:
        self.events.clear()


def debug_logger(level: int = logging.DEBUG) -> ActionLog:
    """Attach an ActionLog to the ``revise`` logger and return it.

    Args:
        level: Minimum level to capture; ``DEBUG`` captures all actions.

    Returns:
        The attached handler. Its ``events`` list fills as revisions run;
        detach it with ``remove_debug_logger``.
    """
    handler = ActionLog(level)
    _logger.addHandler(handler)
    if _logger.level == logging.NOTSET or _logger.level > level:
        _logger.setLevel(level)
    return handler


def remove_debug_logger(handler: ActionLog) -> None:
    _logger.removeHandler(handler)


def actions(log: ActionLog, *, line: bool = False) -> list[LogEvent]:
    """Return the ``Action`` events, including ``LineOffset`` only if ``line``."""
    return [
        event
        for event in log.events
        if event.group == GROUP_ACTION and (line or event.message != "LineOffset")
    ]


def diffs(log: ActionLog) -> list[LogEvent]:
    """Return the events that encode a non-empty diff between file versions."""
    return [
        event
        for event in log.events
        if event.group == GROUP_PARSING
        and event.message == "Diff"
        and (event.deltainfo.get("newexprs") or event.deltainfo.get("oldexprs"))
    ]


def write_log_jsonl(path: Path, events: Sequence[LogEvent]) -> None:
    with path.open("wb") as f:
        for event in events:
            payload = event.to_record().model_dump()
            f.write(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS, default=str))
            f.write(b"\n")


__all__ = [
    "GROUP_ACTION",
    "GROUP_PARSING",
    "GROUP_WATCHING",
    "LOGGER_NAME",
    "ActionLog",
    "LogEvent",
    "actions",
    "debug_logger",
    "diffs",
    "log_event",
    "remove_debug_logger",
    "write_log_jsonl",
]
