from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from scan.files import find_source_files

if TYPE_CHECKING:
    from pathlib import Path


def _write(path: Path, text: str = "x = 1\n") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _relative(root: Path, **kwargs: object) -> list[str]:
    return [p.relative_to(root).as_posix() for p in find_source_files(root, **kwargs)]


@pytest.mark.skipif(
    os.name == "nt",
    reason="Symlink semantics vary on Windows test runners.",
)
def test_find_source_files_skips_symlinked_dirs(tmp_path: Path) -> None:
    package_dir = tmp_path / "pkg"
    _write(package_dir / "module.py")
    external = tmp_path / "external"
    _write(external / "leak.py")
    (package_dir / "linked").symlink_to(external, target_is_directory=True)

    assert _relative(package_dir) == ["module.py"]


def test_caches_and_gitignored_files_are_skipped(tmp_path: Path) -> None:
    _write(tmp_path / "b.py")
    _write(tmp_path / "a.py")
    _write(tmp_path / "__pycache__" / "a.cpython-312.py")
    _write(tmp_path / "generated.py")
    (tmp_path / ".gitignore").write_text("generated.py\n", encoding="utf-8")

    assert _relative(tmp_path) == ["a.py", "b.py"]


def test_nested_gitignore_is_opt_in(tmp_path: Path) -> None:
    _write(tmp_path / "sub" / "keep.py")
    _write(tmp_path / "sub" / "local.py")
    (tmp_path / "sub" / ".gitignore").write_text("local.py\n", encoding="utf-8")

    assert _relative(tmp_path) == ["sub/keep.py", "sub/local.py"]
    assert _relative(tmp_path, nested_gitignore=True) == ["sub/keep.py"]


def test_include_and_exclude_patterns(tmp_path: Path) -> None:
    _write(tmp_path / "core.py")
    _write(tmp_path / "tests" / "test_core.py")
    _write(tmp_path / "tools" / "gen.py")

    assert _relative(tmp_path, exclude_patterns=["tests/*"]) == [
        "core.py",
        "tools/gen.py",
    ]
    assert _relative(tmp_path, include_patterns=["tools/*"]) == ["tools/gen.py"]
