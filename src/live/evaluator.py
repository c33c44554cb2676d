"""Evaluation of declarations into live module and class namespaces."""

from __future__ import annotations

import __future__
import ast
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from contract.report import EvaluationFailure
from live.table import LiveSymbolTable
from parse.signatures import signatures_for

if TYPE_CHECKING:
    from types import ModuleType

    from parse.relocatable import Declaration
    from snapshot.models import Signature, SignatureSet

logger = logging.getLogger(__name__)

# Entries every class namespace gets from the class statement itself.
_HOLDER_KEYS = frozenset(
    {
        "__module__",
        "__qualname__",
        "__doc__",
        "__dict__",
        "__weakref__",
        "__firstlineno__",
        "__static_attributes__",
        "__classcell__",
    }
)


class Evaluator(Protocol):
    """Installs declarations into, and deletes signatures from, a live table."""

    table: LiveSymbolTable

    def install(
        self, declaration: Declaration, scope: str, *, filename: str
    ) -> SignatureSet:
        """Evaluate a declaration into a scope, raising on failure."""
        ...

    def delete(self, signature: Signature) -> None:
        """Remove a live overload, raising DeletionTargetMissing if absent."""
        ...

    def adopt(self, declaration: Declaration, scope: str) -> SignatureSet:
        """Record a declaration that is already live without evaluating it."""
        ...


def _future_flags(namespace: dict[str, object]) -> int:
    flags = 0
    for name in __future__.all_feature_names:
        feature = getattr(__future__, name)
        if namespace.get(name) is feature:
            flags |= feature.compiler_flag
    return flags


def _functions_of(value: object) -> list[object]:
    if isinstance(value, (staticmethod, classmethod)):
        return [value.__func__]
    if isinstance(value, property):
        return [fn for fn in (value.fget, value.fset, value.fdel) if fn is not None]
    return [value]


def _rebind_class_cell(value: object, cls: type) -> None:
    """Point zero-argument ``super()`` cells of ``value`` at ``cls``."""
    for fn in _functions_of(value):
        code = getattr(fn, "__code__", None)
        closure = getattr(fn, "__closure__", None)
        if code is None or not closure or "__class__" not in code.co_freevars:
            continue
        closure[code.co_freevars.index("__class__")].cell_contents = cls


class PythonEvaluator:
    """Evaluator that executes declarations into imported modules.

    A scope resolves to the longest bound or imported module prefix of its
    dotted name, followed by attribute access for nested classes. Module
    level statements run against the module globals; each one binds its
    names only if it runs to completion. Class members are compiled inside a
    stand-in class body so that name mangling and ``super()`` work, then set
    on the live class.
    """

    def __init__(self, table: LiveSymbolTable | None = None) -> None:
        self.table = table if table is not None else LiveSymbolTable()
        self._modules: dict[str, ModuleType] = {}

    def bind_scope(self, scope: str, module: ModuleType) -> None:
        """Resolve ``scope`` to ``module`` instead of looking in sys.modules."""
        self._modules[scope] = module

    def _resolve(self, scope: str) -> tuple[ModuleType, object]:
        parts = scope.split(".")
        for end in range(len(parts), 0, -1):
            prefix = ".".join(parts[:end])
            module = self._modules.get(prefix) or sys.modules.get(prefix)
            if module is not None:
                break
        else:
            msg = f"No live module for scope {scope!r}"
            raise LookupError(msg)
        target: object = module
        for attr in parts[end:]:
            target = getattr(target, attr)
        return module, target

    def resolve(self, scope: str) -> object:
        """Return the live module or class a scope refers to."""
        return self._resolve(scope)[1]

    def install(
        self, declaration: Declaration, scope: str, *, filename: str
    ) -> SignatureSet:
        """Evaluate a declaration into its scope.

        Args:
            declaration: Declaration to evaluate
            scope: Dotted scope it belongs to
            filename: Source path compiled into the code objects

        Returns:
            The signatures now live for the declaration, or None if it
            defines none.

        Raises:
            EvaluationFailure: The scope could not be resolved or the
                declaration raised while executing.
        """
        try:
            module, target = self._resolve(scope)
            if isinstance(target, type):
                bindings = self._exec_in_class(declaration, module, target, filename)
            else:
                bindings = self._exec_in_module(declaration, module, filename)
            for name, value in bindings.items():
                setattr(target, name, value)
        except Exception as exc:  # noqa: BLE001
            msg = f"{type(exc).__name__}: {exc}"
            raise EvaluationFailure(
                msg, path=Path(filename), line=declaration.lineno
            ) from exc

        signatures = signatures_for(declaration, scope)
        if signatures is not None:
            value = bindings.get(declaration.name or "")
            for signature in signatures:
                self.table.add(signature, declaration, value)
        return signatures

    def _exec_in_module(
        self, declaration: Declaration, module: ModuleType, filename: str
    ) -> dict[str, object]:
        namespace = vars(module)
        tree = ast.Module(body=[declaration.node], type_ignores=[])
        code = compile(
            tree,
            filename,
            "exec",
            flags=_future_flags(namespace),
            dont_inherit=True,
        )
        bindings: dict[str, object] = {}
        exec(code, namespace, bindings)  # noqa: S102
        return bindings

    def _exec_in_class(
        self,
        declaration: Declaration,
        module: ModuleType,
        cls: type,
        filename: str,
    ) -> dict[str, object]:
        namespace = vars(module)
        holder = ast.parse(f"class {cls.__name__}:\n    pass").body[0]
        holder.body = [declaration.node]
        ast.copy_location(holder, declaration.node)
        tree = ast.fix_missing_locations(
            ast.Module(body=[holder], type_ignores=[])
        )
        code = compile(
            tree,
            filename,
            "exec",
            flags=_future_flags(namespace),
            dont_inherit=True,
        )
        scratch: dict[str, object] = {}
        exec(code, namespace, scratch)  # noqa: S102
        built = scratch[cls.__name__]

        bindings = {
            name: value
            for name, value in vars(built).items()
            if name not in _HOLDER_KEYS
        }
        for name, value in bindings.items():
            _rebind_class_cell(value, cls)
            for fn in _functions_of(value):
                if hasattr(fn, "__qualname__"):
                    fn.__qualname__ = f"{cls.__qualname__}.{name}"
        return bindings

    def delete(self, signature: Signature) -> None:
        """Remove a signature and unbind its name once no overload is left.

        Raises:
            DeletionTargetMissing: The signature is not live.
        """
        entry = self.table.remove(signature)
        try:
            target = self.resolve(signature.scope)
        except (LookupError, AttributeError):
            logger.debug("Scope of %s is gone; nothing to unbind", signature)
            return

        if vars(target).get(signature.name) is not entry.value:
            return
        remaining = self.table.overloads(signature.scope, signature.name)
        if remaining:
            live = self.table.get(remaining[-1])
            if live is not None:
                setattr(target, signature.name, live.value)
            return
        delattr(target, signature.name)

    def adopt(self, declaration: Declaration, scope: str) -> SignatureSet:
        """Register a declaration whose definition is already live.

        Returns:
            The declaration's signatures if its name is bound in the live
            scope, otherwise None.
        """
        signatures = signatures_for(declaration, scope)
        if signatures is None:
            return None
        try:
            target = self.resolve(scope)
        except (LookupError, AttributeError):
            return None
        value = vars(target).get(declaration.name or "")
        if value is None:
            return None
        for signature in signatures:
            self.table.add(signature, declaration, value)
        return signatures


__all__ = ["Evaluator", "PythonEvaluator"]
