"""Error-tolerant splitting of a source file into top-level constructs.

``ast.parse`` rejects a whole file on the first syntax error. When that
happens the file is segmented with Tree-sitter, which recovers from errors,
and every top-level segment is parsed on its own so that one malformed
construct does not hide the rest of the file.
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass
from pathlib import Path

from tree_sitter import Language, Node, Parser
from tree_sitter_python import language as get_python_language

from contract.report import Failure, ParseFailure

logger = logging.getLogger(__name__)

_PARSER: Parser | None = None

# Lines at column zero that continue the previous construct.
_CONTINUATIONS = ("else", "elif", "except", "finally", "case")


@dataclass(frozen=True)
class Segment:
    """Source text of one top-level construct and its first line in the file."""

    start_line: int
    text: str


def _get_parser() -> Parser:
    """Initialize and return the Tree-sitter parser with Python language."""
    global _PARSER
    if _PARSER is None:
        lang = Language(get_python_language())
        _PARSER = Parser(lang)

    return _PARSER


def _node_segment(node: Node, source: bytes) -> Segment:
    text = source[node.start_byte : node.end_byte].decode("utf8", errors="replace")
    return Segment(start_line=node.start_point[0] + 1, text=text)


def split_top_level(text: str) -> list[Segment]:
    """Split source text into top-level segments using Tree-sitter.

    Comments are dropped. A decorated definition stays one segment.
    """
    source = text.encode("utf8")
    tree = _get_parser().parse(source)
    return [
        _node_segment(child, source)
        for child in tree.root_node.children
        if child.type != "comment"
    ]


def _starts_construct(line: str) -> bool:
    if not line or line[0] in " \t#" or not line.strip():
        return False
    word = line.split(maxsplit=1)[0].rstrip(":")
    return word not in _CONTINUATIONS


def split_at_column_zero(segment: Segment) -> list[Segment]:
    """Split a segment at lines that start a new statement in column zero.

    Used for segments Tree-sitter could not separate, typically an ``ERROR``
    node that swallowed several definitions. Decorator lines stay attached
    to the definition that follows them.
    """
    chunks: list[Segment] = []
    current: list[str] = []
    start = segment.start_line
    decorating = False

    for offset, line in enumerate(segment.text.splitlines(keepends=True)):
        if current and _starts_construct(line) and not decorating:
            chunks.append(Segment(start_line=start, text="".join(current)))
            current = []
            start = segment.start_line + offset
        if _starts_construct(line):
            decorating = line.startswith("@")
        current.append(line)

    if current:
        chunks.append(Segment(start_line=start, text="".join(current)))
    return chunks


def _parse_segment(segment: Segment, filename: str) -> list[ast.stmt]:
    module = ast.parse(segment.text, filename)
    ast.increment_lineno(module, segment.start_line - 1)
    return module.body


def _failure(segment: Segment, exc: SyntaxError, filename: str) -> Failure:
    line = segment.start_line + (exc.lineno or 1) - 1
    return ParseFailure(
        exc.msg or "invalid syntax", path=Path(filename), line=line
    ).to_failure()


def _recover(
    segment: Segment,
    filename: str,
    statements: list[ast.stmt],
    failures: list[Failure],
) -> None:
    for chunk in split_at_column_zero(segment):
        try:
            statements.extend(_parse_segment(chunk, filename))
        except SyntaxError as exc:
            failure = _failure(chunk, exc, filename)
            logger.debug("Unparseable construct at %s", failure.location())
            failures.append(failure)


def parse_segments(
    text: str, filename: str = "<unknown>"
) -> tuple[list[ast.stmt], list[Failure]]:
    """Parse each top-level construct of ``text`` independently.

    Args:
        text: Source text that failed to parse as a whole
        filename: Path used in failure reports and compiled code

    Returns:
        The statements of every construct that parsed, in file order, with
        line numbers relative to the file, plus one failure per construct
        that did not.
    """
    statements: list[ast.stmt] = []
    failures: list[Failure] = []

    for segment in split_top_level(text):
        try:
            statements.extend(_parse_segment(segment, filename))
        except SyntaxError:
            _recover(segment, filename, statements, failures)

    return statements, failures


__all__ = [
    "Segment",
    "parse_segments",
    "split_at_column_zero",
    "split_top_level",
]
