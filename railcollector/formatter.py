"""Output of command results as boxed tables or indented JSON."""

from __future__ import annotations

import dataclasses
import json
import sys
from typing import Any, List, Optional, Sequence, TextIO

from wcwidth import wcswidth


def _width(text: str) -> int:
    width = wcswidth(text)
    return len(text) if width < 0 else width


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class Formatter:
    """Writes results either as a light-style table or as indented JSON."""

    def __init__(self, json_output: bool = False, stream: Optional[TextIO] = None) -> None:
        self.json_output = json_output
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        """The output stream; standard output unless one was given."""
        return self._stream if self._stream is not None else sys.stdout

    def write_table(self, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        """Render rows under upper-cased headers as an aligned box-drawn table."""
        header = [str(h).upper() for h in headers]
        body = [[str(cell) for cell in row] for row in rows]
        ncols = max([len(header), *(len(r) for r in body)])
        if ncols == 0:
            return

        def padded(row: List[str]) -> List[str]:
            return row + [""] * (ncols - len(row))

        all_rows = ([padded(header)] if header else []) + [padded(r) for r in body]
        widths = [max(_width(r[i]) for r in all_rows) for i in range(ncols)]

        def rule(left: str, mid: str, right: str) -> str:
            return left + mid.join("─" * (w + 2) for w in widths) + right

        def line(cells: List[str]) -> str:
            parts = (f" {c}{' ' * (w - _width(c))} " for c, w in zip(cells, widths))
            return "│" + "│".join(parts) + "│"

        out = [rule("┌", "┬", "┐")]
        if header:
            out.append(line(padded(header)))
            out.append(rule("├", "┼", "┤"))
        out.extend(line(padded(r)) for r in body)
        out.append(rule("└", "┴", "┘"))
        self.stream.write("\n".join(out) + "\n")

    def write_json(self, value: Any) -> None:
        """Write ``value`` as two-space indented JSON followed by a newline."""
        text = json.dumps(value, indent=2, ensure_ascii=False, default=_json_default)
        text = text.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")
        self.stream.write(text + "\n")