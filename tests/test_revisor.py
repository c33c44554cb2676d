from __future__ import annotations

from types import ModuleType
from typing import TYPE_CHECKING

import pytest

from config.settings import RevisionConfig
from contract.logs import actions, debug_logger, remove_debug_logger
from live.evaluator import PythonEvaluator
from session.revisor import Revisor
from snapshot.models import Signature

if TYPE_CHECKING:
    from pathlib import Path

    from contract.report import RevisionReport
    from parse.relocatable import Declaration
    from snapshot.models import SignatureSet


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def _revise(revisor: Revisor, *paths: Path) -> RevisionReport:
    for path in paths:
        assert revisor.mark_dirty(path)
    return revisor.drain()


def test_new_function_is_installed_and_unchanged_one_left_alone(
    tmp_path: Path,
) -> None:
    script = _write(tmp_path / "demo.py", "def cube(x):\n    return x ** 3\n")
    revisor = Revisor()
    module = revisor.includet(script)
    cube = module.cube

    _write(
        script,
        "def cube(x):\n    return x ** 3   \n\n\ndef fourth(x):\n    return x ** 4\n",
    )
    log = debug_logger()
    try:
        report = _revise(revisor, script)
    finally:
        remove_debug_logger(log)

    assert report.ok
    assert report.deleted == []
    assert [item.declaration for item in report.installed] == ["def fourth(x):"]
    assert module.fourth(2) == 16
    assert module.cube is cube
    assert [event.message for event in actions(log)] == ["Eval"]


@pytest.mark.parametrize("order", [("a", "b"), ("b", "a")])
def test_declaration_moved_between_files_is_live_exactly_once(
    tmp_path: Path, order: tuple[str, str]
) -> None:
    a = _write(tmp_path / "a.py", "def shared(x):\n    return 'moved'\n\nA = 1\n")
    b = _write(tmp_path / "b.py", "B = 2\n")
    revisor = Revisor()
    module = revisor.includet(a, ModuleType("mixed"))
    revisor.includet(b, module)

    _write(a, "A = 1\n")
    _write(b, "B = 2\n\n\ndef shared(x):\n    return 'moved'\n")
    report = _revise(revisor, *(tmp_path / f"{name}.py" for name in order))

    signature = Signature("mixed", "shared", ("Any",))
    assert report.ok
    assert report.deleted == [signature]
    assert module.shared(0) == "moved"
    assert revisor.table.signatures("mixed") == [signature]
    _, record_b = revisor.store.lookup(b)
    assert list(record_b.scope_map.signatures()) == [signature]


def test_failed_declaration_is_isolated_and_retried(tmp_path: Path) -> None:
    script = _write(tmp_path / "demo.py", "def f():\n    return 1\n")
    revisor = Revisor()
    module = revisor.includet(script)

    _write(
        script,
        "def f():\n    return 1\n\nboom = 1 / 0\n\ndef g():\n    return 2\n",
    )
    report = _revise(revisor, script)

    [failure] = report.failures
    assert failure.kind == "evaluation"
    assert failure.line == 4
    assert "ZeroDivisionError" in failure.message
    assert module.g() == 2
    assert not hasattr(module, "boom")
    _, record = revisor.store.lookup(script)
    assert record.needs_retry

    retry = revisor.drain()
    assert [f.kind for f in retry.failures] == ["evaluation"]

    _write(
        script,
        "def f():\n    return 1\n\nboom = 1 / 1\n\ndef g():\n    return 2\n",
    )
    fixed = _revise(revisor, script)

    assert fixed.ok
    assert module.boom == 1.0
    assert not record.needs_retry
    assert revisor.drain().files == []


def test_moved_code_reports_current_lines(tmp_path: Path) -> None:
    script = _write(
        tmp_path / "demo.py", "def boom():\n    raise ValueError('boom')\n"
    )
    revisor = Revisor()
    module = revisor.includet(script)

    _write(script, "# one\n# two\ndef boom():\n    raise ValueError('boom')\n")
    report = _revise(revisor, script)

    assert report.installed == []
    [shift] = report.reanchored
    assert (shift.line, shift.new_offset) == (3, 2)

    with pytest.raises(ValueError, match="boom") as exc_info:
        module.boom()
    summary = revisor.correct_traceback(exc_info.value.__traceback__)

    assert summary[-1].name == "boom"
    assert summary[-1].lineno == 4


def test_deletions_wait_for_the_file_to_parse(tmp_path: Path) -> None:
    script = _write(
        tmp_path / "demo.py",
        "def keep():\n    return 1\n\ndef drop():\n    return 2\n",
    )
    revisor = Revisor()
    module = revisor.includet(script)

    _write(script, "def keep():\n    return 1\n\ndef broken(:\n    pass\n")
    broken = _revise(revisor, script)

    assert broken.failures
    assert {f.kind for f in broken.failures} == {"parse"}
    assert broken.deleted == []
    assert module.drop() == 2

    _write(script, "def keep():\n    return 1\n")
    fixed = _revise(revisor, script)

    assert fixed.ok
    assert fixed.deleted == [Signature("demo", "drop", ())]
    assert not hasattr(module, "drop")


def test_dropping_a_default_leaves_only_the_new_signature(tmp_path: Path) -> None:
    script = _write(tmp_path / "demo.py", "def f(x, y=1):\n    return x + y\n")
    revisor = Revisor()
    module = revisor.includet(script)

    _write(script, "def f(x, y):\n    return x * y\n")
    report = _revise(revisor, script)

    assert report.ok
    assert sorted(report.deleted) == [
        Signature("demo", "f", ("Any",)),
        Signature("demo", "f", ("Any", "Any")),
    ]
    assert revisor.table.signatures("demo") == [Signature("demo", "f", ("Any", "Any"))]
    assert module.f(2, 3) == 6


CLASSES = """\
class Base:
    def hello(self):
        return "base"


class Child(Base):
    def hello(self):
        return "child+" + super().hello()
"""


def test_method_edit_reaches_existing_instances(tmp_path: Path) -> None:
    script = _write(tmp_path / "shapes.py", CLASSES)
    revisor = Revisor()
    module = revisor.includet(script)
    child = module.Child()

    _write(script, CLASSES.replace('"child+"', '"kid+"'))
    report = _revise(revisor, script)

    assert report.ok
    assert [item.scope for item in report.installed] == ["shapes.Child"]
    assert child.hello() == "kid+base"


def test_class_header_change_rebuilds_the_class_with_its_members(
    tmp_path: Path,
) -> None:
    script = _write(tmp_path / "shapes.py", CLASSES)
    revisor = Revisor()
    module = revisor.includet(script)
    old_class = module.Child

    header = 'class Child(Base):\n    kind = "new"\n'
    _write(script, CLASSES.replace("class Child(Base):", header))
    report = _revise(revisor, script)

    assert report.ok
    assert [item.scope for item in report.installed] == ["shapes", "shapes.Child"]
    assert module.Child is not old_class
    assert module.Child.kind == "new"
    assert module.Child().hello() == "child+base"


def test_cached_source_is_reconstructed_on_first_revision(tmp_path: Path) -> None:
    loaded = "def f():\n    return 'old'\n"
    path = _write(
        tmp_path / "cached.py", loaded + "\n\ndef g():\n    return 'g'\n"
    )
    module = ModuleType("cachedmod")
    exec(compile(loaded, str(path), "exec"), vars(module))  # noqa: S102
    evaluator = PythonEvaluator()
    evaluator.bind_scope("cachedmod", module)
    revisor = Revisor(evaluator=evaluator)

    record = revisor.register_file(
        "cachedmod", path, "cachedmod", cached_source=loaded
    )
    assert record.scope_map.is_empty()

    report = _revise(revisor, path)

    assert report.ok
    assert [item.declaration for item in report.installed] == ["def g():"]
    assert record.cached_source is None
    assert module.g() == "g"
    assert revisor.table.signatures("cachedmod") == [
        Signature("cachedmod", "f"),
        Signature("cachedmod", "g"),
    ]


def test_force_reevaluate_scope_evaluates_everything_again(tmp_path: Path) -> None:
    script = _write(
        tmp_path / "demo.py", "TOKEN = object()\n\ndef f():\n    return TOKEN\n"
    )
    revisor = Revisor()
    module = revisor.includet(script)
    token = module.TOKEN

    report = revisor.force_reevaluate_scope("demo")

    assert len(report.installed) == 2
    assert module.TOKEN is not token
    assert module.f() is module.TOKEN
    assert revisor.table.signatures("demo") == [Signature("demo", "f")]


def test_drain_while_draining_is_coalesced(tmp_path: Path) -> None:
    script = _write(tmp_path / "demo.py", "X = 1\n")
    revisor = Revisor()
    revisor.includet(script)
    _write(script, "X = 2\n")
    revisor.mark_dirty(script)

    revisor._drain_lock.acquire()
    try:
        report = revisor.drain()
    finally:
        revisor._drain_lock.release()

    assert report.coalesced
    assert not report.changed
    assert len(revisor.queue) == 1


def test_manual_mode_only_revises_on_request(tmp_path: Path) -> None:
    script = _write(tmp_path / "demo.py", "X = 1\n")
    revisor = Revisor(RevisionConfig(mode="manual"))
    module = revisor.includet(script)

    _write(script, "X = 2\n")
    revisor.mark_dirty(script)

    assert revisor.sync_point() is None
    assert module.X == 1
    revisor.drain()
    assert module.X == 2


def test_auto_mode_revises_at_sync_points(tmp_path: Path) -> None:
    script = _write(tmp_path / "demo.py", "X = 1\n")
    revisor = Revisor()
    module = revisor.includet(script)

    _write(script, "X = 2\n")
    revisor.mark_dirty(script)
    report = revisor.sync_point()

    assert report is not None
    assert report.changed
    assert module.X == 2


def test_repeated_marks_revise_a_file_once(tmp_path: Path) -> None:
    script = _write(tmp_path / "demo.py", "X = 1\n")
    revisor = Revisor()
    revisor.includet(script)

    for _ in range(3):
        revisor.mark_dirty(script)
    assert len(revisor.queue) == 1
    report = revisor.drain()

    assert len(report.files) == 1
    assert not revisor.mark_dirty(tmp_path / "untracked.py")


def test_missing_deletion_target_is_reported(tmp_path: Path) -> None:
    script = _write(tmp_path / "demo.py", "def f():\n    return 1\n")
    revisor = Revisor()
    revisor.includet(script)
    revisor.table.remove(Signature("demo", "f"))

    _write(script, "X = 1\n")
    report = _revise(revisor, script)

    assert [f.kind for f in report.failures] == ["deletion"]
    assert report.deleted == []


def test_unreadable_file_does_not_block_others(tmp_path: Path) -> None:
    gone = _write(tmp_path / "gone.py", "X = 1\n")
    kept = _write(tmp_path / "kept.py", "Y = 1\n")
    revisor = Revisor()
    revisor.includet(gone)
    module = revisor.includet(kept)

    _write(kept, "Y = 2\n")
    revisor.mark_dirty(gone)
    gone.unlink()
    report = _revise(revisor, kept)

    assert [f.kind for f in report.failures] == ["parse"]
    assert module.Y == 2


def test_moved_declaration_survives_its_old_file_parsing_again(
    tmp_path: Path,
) -> None:
    a = _write(tmp_path / "a.py", "def shared(x):\n    return 'a'\n")
    b = _write(tmp_path / "b.py", "B = 2\n")
    revisor = Revisor()
    module = revisor.includet(a, ModuleType("moving"))
    revisor.includet(b, module)

    _write(a, "A = 1\n\ndef broken(:\n    pass\n")
    _write(b, "B = 2\n\n\ndef shared(x):\n    return 'b'\n")
    first = _revise(revisor, a, b)

    assert {f.kind for f in first.failures} == {"parse"}
    assert module.shared(0) == "b"

    _write(a, "A = 1\n")
    fixed = _revise(revisor, a)

    signature = Signature("moving", "shared", ("Any",))
    assert fixed.ok
    assert fixed.deleted == []
    assert module.shared(0) == "b"
    assert revisor.table.signatures("moving") == [signature]
    _, record_a = revisor.store.lookup(a)
    _, record_b = revisor.store.lookup(b)
    assert list(record_a.scope_map.signatures()) == []
    assert list(record_b.scope_map.signatures()) == [signature]


def test_files_from_different_directories_share_a_scope(tmp_path: Path) -> None:
    (tmp_path / "x").mkdir()
    (tmp_path / "y").mkdir()
    first = _write(tmp_path / "x" / "a.py", "def fa():\n    return 1\n")
    second = _write(tmp_path / "y" / "b.py", "def fb():\n    return 2\n")
    revisor = Revisor()
    module = revisor.includet(first, ModuleType("spread"))
    revisor.mark_dirty(first)
    revisor.includet(second, module)

    package = revisor.store.packages["spread"]
    assert package.base_dir == tmp_path.resolve()
    assert sorted(package.files) == ["x/a.py", "y/b.py"]
    assert [item.relative_path for item in revisor.queue.drain_items()] == [
        "x/a.py"
    ]

    _write(first, "def fa():\n    return 10\n")
    _write(second, "def fb():\n    return 20\n")
    report = _revise(revisor, first, second)

    assert report.ok
    assert (module.fa(), module.fb()) == (10, 20)


class _CrashingEvaluator(PythonEvaluator):
    """Evaluator that fails with a plain exception for one name."""

    def install(
        self, declaration: Declaration, scope: str, *, filename: str
    ) -> SignatureSet:
        if declaration.name == "flaky":
            msg = "evaluator crashed"
            raise RuntimeError(msg)
        return super().install(declaration, scope, filename=filename)


def test_unexpected_evaluator_errors_become_failures(tmp_path: Path) -> None:
    script = _write(tmp_path / "demo.py", "X = 1\n")
    revisor = Revisor(evaluator=_CrashingEvaluator())
    module = revisor.includet(script)

    _write(
        script,
        "X = 1\n\ndef flaky():\n    return 0\n\ndef g():\n    return 2\n",
    )
    report = _revise(revisor, script)

    [failure] = report.failures
    assert failure.kind == "evaluation"
    assert "RuntimeError: evaluator crashed" in failure.message
    assert module.g() == 2
    _, record = revisor.store.lookup(script)
    assert record.needs_retry


def test_aborted_pass_keeps_its_files_queued(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    script = _write(tmp_path / "demo.py", "X = 1\n")
    revisor = Revisor()
    module = revisor.includet(script)

    def crash(targets: object) -> RevisionReport:
        msg = "pass crashed"
        raise RuntimeError(msg)

    monkeypatch.setattr(revisor.engine, "revise", crash)
    _write(script, "X = 2\n")
    report = _revise(revisor, script)

    assert [f.kind for f in report.failures] == ["evaluation"]
    assert "RuntimeError: pass crashed" in report.failures[0].message
    assert len(revisor.queue) == 1

    monkeypatch.undo()
    assert revisor.drain().ok
    assert module.X == 2
