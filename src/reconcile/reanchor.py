"""Line offsets for signatures whose source moved without changing."""

from __future__ import annotations

import traceback
from typing import TYPE_CHECKING

from contract.report import LineShift

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from types import CodeType, TracebackType

    from snapshot.models import Signature


class LineOffsets:
    """Per-signature distance between the compiled and the current position.

    The offset of a signature is reset when it is (re)installed and grows or
    shrinks each time its unchanged declaration moves in the file. Nothing is
    recompiled; the offsets only correct reported positions.
    """

    def __init__(self) -> None:
        self._offsets: dict[Signature, int] = {}

    def reset(self, signatures: Iterable[Signature]) -> None:
        for signature in signatures:
            self._offsets.pop(signature, None)

    def discard(self, signature: Signature) -> None:
        self._offsets.pop(signature, None)

    def offset(self, signature: Signature) -> int:
        return self._offsets.get(signature, 0)

    def shift(
        self, signatures: Iterable[Signature], delta: int, line: int
    ) -> list[LineShift]:
        """Move signatures by ``delta`` lines; ``line`` is their new position."""
        shifts: list[LineShift] = []
        for signature in signatures:
            old_offset = self.offset(signature)
            new_offset = old_offset + delta
            if new_offset:
                self._offsets[signature] = new_offset
            else:
                self._offsets.pop(signature, None)
            shifts.append(
                LineShift(
                    signature=signature,
                    line=line,
                    old_offset=old_offset,
                    new_offset=new_offset,
                )
            )
        return shifts

    def corrected_line(self, signature: Signature, line: int) -> int:
        return line + self.offset(signature)

    def correct_traceback(
        self,
        tb: TracebackType | None,
        lookup: Callable[[CodeType], Signature | None],
    ) -> traceback.StackSummary:
        """Extract a traceback with line numbers moved to current positions.

        Args:
            tb: Traceback to render
            lookup: Maps a code object to the signature it was installed
                under, or None for code the engine does not track

        Returns:
            StackSummary whose frames from tracked code report corrected
            line numbers; source lines are read from the current files.
        """
        frames: list[traceback.FrameSummary] = []
        for frame, lineno in traceback.walk_tb(tb):
            code = frame.f_code
            signature = lookup(code)
            if signature is not None:
                lineno = self.corrected_line(signature, lineno)
            frames.append(
                traceback.FrameSummary(code.co_filename, lineno, code.co_name)
            )
        return traceback.StackSummary.from_list(frames)

    def __len__(self) -> int:
        return len(self._offsets)


__all__ = ["LineOffsets"]
