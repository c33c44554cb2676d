"""Live symbol table and the evaluator that installs declarations into it."""

from live.evaluator import Evaluator, PythonEvaluator
from live.table import LiveEntry, LiveSymbolTable

__all__ = ["Evaluator", "LiveEntry", "LiveSymbolTable", "PythonEvaluator"]
