"""Signature extraction for function definitions.

A definition yields one signature per positional arity it accepts: with
``k`` defaulted positional parameters that is ``k + 1`` signatures, from the
required parameters alone up to the full list. A ``*args`` parameter adds a
``"*"`` marker to the longest signature. Keyword-only parameters and
``**kwargs`` never add signatures, since calls are resolved by position.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING

from snapshot.models import Signature

if TYPE_CHECKING:
    from parse.relocatable import Declaration
    from snapshot.models import SignatureSet

ANY = "Any"
VARIADIC = "*"

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef


def _pattern(arg: ast.arg) -> str:
    if arg.annotation is None:
        return ANY
    return ast.unparse(arg.annotation)


def extract_signatures(node: FunctionNode, scope: str) -> tuple[Signature, ...]:
    """Enumerate the signatures produced by a function definition.

    Args:
        node: Function definition to inspect
        scope: Scope the function is evaluated into (e.g., "pkg.mod.Class")

    Returns:
        Signatures ordered from the minimal to the maximal arity.

    Examples:
        >>> import ast
        >>> fn = ast.parse("def f(x, y=1, *rest): pass").body[0]
        >>> [str(sig) for sig in extract_signatures(fn, "m")]
        ['m.f(Any)', 'm.f(Any, Any, *)']
    """
    arguments = node.args
    positional = [*arguments.posonlyargs, *arguments.args]
    patterns = tuple(_pattern(arg) for arg in positional)
    required = len(positional) - len(arguments.defaults)

    signatures = [
        Signature(scope=scope, name=node.name, params=patterns[:arity])
        for arity in range(required, len(positional) + 1)
    ]
    if arguments.vararg is not None:
        longest = signatures[-1]
        signatures[-1] = Signature(
            scope=scope, name=node.name, params=(*longest.params, VARIADIC)
        )
    return tuple(signatures)


def signatures_for(declaration: Declaration, scope: str) -> SignatureSet:
    """Return the parse-time signatures of a declaration, or None."""
    node = declaration.node
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return extract_signatures(node, scope)
    return None


__all__ = ["ANY", "VARIADIC", "extract_signatures", "signatures_for"]
