"""Declaration parsing and structural comparison."""

from parse.declarations import ParseResult, class_header, parse_file, parse_source
from parse.relocatable import Declaration, first_line, relocatable_equal
from parse.segments import parse_segments, split_top_level
from parse.signatures import extract_signatures, signatures_for

__all__ = [
    "Declaration",
    "ParseResult",
    "class_header",
    "extract_signatures",
    "first_line",
    "parse_file",
    "parse_segments",
    "parse_source",
    "relocatable_equal",
    "signatures_for",
    "split_top_level",
]
