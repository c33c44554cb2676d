"""Shared utilities for mapping source paths to scopes."""

from __future__ import annotations

from pathlib import PurePosixPath


def module_name_for(relative_path: str, package: str = "") -> str:
    """Return the module a package-relative source path defines.

    Args:
        relative_path: Path relative to the package directory, using "/"
        package: Dotted name of the package the directory belongs to

    Returns:
        Dotted module name; ``__init__.py`` maps to the package itself.

    Examples:
        >>> module_name_for("sub/mod.py", "pkg")
        'pkg.sub.mod'
        >>> module_name_for("__init__.py", "pkg")
        'pkg'
        >>> module_name_for("tool.py")
        'tool'
    """
    parts = list(PurePosixPath(relative_path).with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join([*filter(None, [package]), *parts])


__all__ = ["module_name_for"]
