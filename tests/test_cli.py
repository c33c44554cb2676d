from __future__ import annotations

import io
import sys
from typing import TYPE_CHECKING

import orjson
import pytest

from cli import main
from watch import watcher as watcher_module

if TYPE_CHECKING:
    from pathlib import Path


def _lines(out: str) -> list[dict]:
    return [orjson.loads(line) for line in out.splitlines()]


def test_signatures_lists_declarations(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "shapes.py"
    path.write_text(
        "class Box:\n    def size(self, scale=1):\n        return scale\n",
        encoding="utf-8",
    )

    exit_code = main(["signatures", str(path)])

    assert exit_code == 0
    records = _lines(capsys.readouterr().out)
    assert [(r["scope"], r["kind"], r["name"]) for r in records] == [
        ("shapes", "class", "Box"),
        ("shapes.Box", "function", "size"),
    ]
    assert records[0]["signatures"] is None
    assert records[1]["signatures"] == [
        "shapes.Box.size(Any)",
        "shapes.Box.size(Any, Any)",
    ]


def test_signatures_reports_parse_failures(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "broken.py"
    path.write_text("x = 1\n\ndef f(:\n    pass\n", encoding="utf-8")

    exit_code = main(["signatures", str(path), "--scope", "pkg.broken"])

    assert exit_code == 1
    captured = capsys.readouterr()
    assert _lines(captured.out)[0]["scope"] == "pkg.broken"
    assert f"{path}:" in captured.err
    assert "parse" in captured.err


def test_signatures_of_a_missing_file(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = main(["signatures", str(tmp_path / "missing.py")])

    assert exit_code == 2
    assert "Cannot read source" in capsys.readouterr().err


def test_diff_reports_the_revision(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    old = tmp_path / "old.py"
    new = tmp_path / "new.py"
    old.write_text("def f(x):\n    return x\n\nA = 1\n", encoding="utf-8")
    new.write_text("A = 1\n\ndef f(x):\n    return -x\n", encoding="utf-8")

    exit_code = main(["diff", str(old), str(new), "--scope", "m"])

    assert exit_code == 1
    [record] = _lines(capsys.readouterr().out)
    assert record["to_delete"] == ["m.f(Any)"]
    assert [r["start_line"] for r in record["to_install"]] == [3]
    assert record["unchanged"] == 1
    assert record["moved"] == 1


def test_diff_of_equivalent_files_is_empty(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    old = tmp_path / "old.py"
    new = tmp_path / "new.py"
    old.write_text("def f(x):\n    return x\n", encoding="utf-8")
    new.write_text("# comment\n\ndef f(x):\n    return (x)\n", encoding="utf-8")

    assert main(["diff", str(old), str(new)]) == 0
    assert _lines(capsys.readouterr().out)[0]["to_delete"] == []


def test_watch_in_manual_mode_drains_per_input_line(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    class _QuietObserver:
        def __init__(self, timeout: float | None = None) -> None:
            pass

        def schedule(self, handler: object, path: str, recursive: bool) -> None:
            pass

        def start(self) -> None:
            pass

        def stop(self) -> None:
            pass

        def join(self) -> None:
            pass

    monkeypatch.setattr(watcher_module, "Observer", _QuietObserver)
    script = tmp_path / "app.py"
    script.write_text("print('started')\n", encoding="utf-8")
    monkeypatch.setattr(sys, "stdin", io.StringIO("\n\n"))

    exit_code = main(["watch", str(script), "--manual", "--root", str(tmp_path)])

    assert exit_code == 0
    assert "started" in capsys.readouterr().out


def test_watch_rejects_invalid_config(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "revise.toml").write_text("mode = 3\n", encoding="utf-8")
    script = tmp_path / "app.py"
    script.write_text("x = 1\n", encoding="utf-8")

    exit_code = main(["watch", str(script), "--root", str(tmp_path)])

    assert exit_code == 2
    assert "Invalid config" in capsys.readouterr().err


def test_watch_rejects_a_non_positive_interval(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    script = tmp_path / "app.py"
    script.write_text("x = 1\n", encoding="utf-8")

    exit_code = main(
        ["watch", str(script), "--interval", "-1", "--root", str(tmp_path)]
    )

    assert exit_code == 2
    assert "Invalid options" in capsys.readouterr().err
