"""A collapsible coverage tree and its column-aligned terminal rendering."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Sequence, TextIO

from wcwidth import wcswidth

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[31m"
_YELLOW = "\033[33m"
_GREEN = "\033[32m"
_DIM_YELLOW = "\033[2;33m"

_ZERO = timedelta(0)


@dataclass
class NodeStats:
    """Coverage statistics for one tree node."""

    coverage: float = 0.0
    gap_count: int = 0
    largest_gap: timedelta = _ZERO
    collected: timedelta = _ZERO
    total: timedelta = _ZERO


@dataclass
class TreeNode:
    """A labelled node with optional stats and ordered children."""

    label: str = ""
    stats: Optional[NodeStats] = None
    children: List[TreeNode] = field(default_factory=list)


class TreeBuilder:
    """Builds a tree from path segments."""

    def __init__(self) -> None:
        self.root = TreeNode()

    def add(self, path: Sequence[str], stats: NodeStats) -> None:
        """Insert a node at ``path``, creating intermediate nodes; the last gets ``stats``."""
        node = self.root
        for seg in path:
            found = next((c for c in node.children if c.label == seg), None)
            if found is None:
                found = TreeNode(seg)
                node.children.append(found)
            node = found
        if path:
            node.stats = stats

    def build(self) -> TreeNode:
        """Collapse single-child chains, aggregate parent stats and sort by label."""
        _collapse(self.root)
        _aggregate(self.root)
        _sort(self.root)
        return self.root


def _collapse(node: TreeNode) -> None:
    for child in node.children:
        _collapse(child)
    while len(node.children) == 1 and node.stats is None and node.label != "":
        child = node.children[0]
        node.label += " \u00bb " + child.label
        node.stats = child.stats
        node.children = child.children


def _aggregate(node: TreeNode) -> None:
    for child in node.children:
        _aggregate(child)
    if node.stats is not None or not node.children:
        return
    agg = NodeStats()
    for child in node.children:
        if child.stats is None:
            continue
        agg.collected += child.stats.collected
        agg.total += child.stats.total
        agg.gap_count += child.stats.gap_count
        agg.largest_gap = max(agg.largest_gap, child.stats.largest_gap)
    if agg.total > _ZERO:
        agg.coverage = agg.collected / agg.total * 100
    node.stats = agg


def _sort(node: TreeNode) -> None:
    node.children.sort(key=lambda c: c.label)
    for child in node.children:
        _sort(child)


def format_duration(dur: timedelta) -> str:
    """Format a duration as days/hours/minutes, e.g. ``2h 30m`` or ``4d 1h``."""
    if dur <= _ZERO:
        return ""
    total_minutes = dur // timedelta(minutes=1)
    total_hours, minutes = divmod(total_minutes, 60)
    days, hours = divmod(total_hours, 24)
    if total_hours == 0:
        return f"{minutes}m"
    if days == 0:
        return f"{hours}h" if minutes == 0 else f"{hours}h {minutes}m"
    if days >= 100 or hours == 0:
        return f"{days}d"
    return f"{days}d {hours}h"


@dataclass
class _Line:
    prefix: str
    label: str
    is_project: bool
    has_stats: bool
    coverage: str = ""
    gaps: str = ""
    max_gap: str = ""
    pct: float = 0.0


def _width(text: str) -> int:
    width = wcswidth(text)
    return len(text) if width < 0 else width


def _format_node(node: TreeNode, prefix: str, is_project: bool) -> _Line:
    line = _Line(prefix, node.label, is_project, node.stats is not None)
    stats = node.stats
    if stats is not None:
        line.pct = stats.coverage
        line.coverage = f"{stats.coverage:.1f}%"
        if stats.gap_count > 0:
            word = "gap" if stats.gap_count == 1 else "gaps"
            line.gaps = f"{stats.gap_count} {word}"
        if stats.largest_gap > _ZERO:
            line.max_gap = format_duration(stats.largest_gap)
    return line


def _collect_children(node: TreeNode, parent_prefix: str, lines: List[_Line]) -> None:
    last = len(node.children) - 1
    for i, child in enumerate(node.children):
        connector, continuation = ("\u2514 ", "  ") if i == last else ("\u251c ", "\u2502 ")
        lines.append(_format_node(child, parent_prefix + connector, False))
        _collect_children(child, parent_prefix + continuation, lines)


def _build_lines(root: TreeNode) -> List[_Line]:
    lines: List[_Line] = []
    for project in root.children:
        lines.append(_format_node(project, " ", True))
        _collect_children(project, " ", lines)
    return lines


def _coverage_color(pct: float) -> str:
    if pct >= 75:
        return _GREEN
    if pct >= 25:
        return _YELLOW
    return _RED


def _detect_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False


def render_tree(stream: TextIO, root: TreeNode, title: str) -> None:
    """Write the tree as aligned columns, with ANSI colours on a terminal."""
    lines = _build_lines(root)
    if not lines:
        return
    color = _detect_color(stream)
    write = stream.write

    max_name = max([len("PROJECT"), *(_width(l.prefix) + _width(l.label) for l in lines)]) + 1
    max_cov = max([len("COVERAGE"), *(len(l.coverage) for l in lines)])
    max_gaps = max([len("GAPS"), *(len(l.gaps) for l in lines)])
    max_dur = max([len("MAX GAP"), *(len(l.max_gap) for l in lines)])
    total_width = max_name + 2 + max_cov + 3 + max_gaps + 3 + max_dur

    if title:
        write(f"{_BOLD}{title}{_RESET}\n\n" if color else f"{title}\n\n")

    header = (
        f" {'PROJECT'.ljust(max_name - 1)}  {'COVERAGE'.rjust(max_cov)}"
        f"   {'GAPS'.rjust(max_gaps)}   {'MAX GAP'.rjust(max_dur)}"
    )
    if color:
        write(f"{_DIM}{header}{_RESET}\n")
        write(f"{_DIM} {chr(0x2500) * total_width}{_RESET}\n")
    else:
        write(header + "\n")
        write(f" {'-' * total_width}\n")

    for i, line in enumerate(lines):
        if line.is_project and i > 0:
            write("\n")
        pad = max_name - (_width(line.prefix) + _width(line.label))

        if line.prefix:
            write(f"{_DIM}{line.prefix}{_RESET}" if color else line.prefix)
        if line.is_project and color:
            write(f"{_BOLD}{line.label}{_RESET}")
        else:
            write(line.label)
        write(" " * max(pad, 0))

        if not line.has_stats:
            blank = " " * (max_cov - 1)
            write(f"  {blank}{_DIM}\u2014{_RESET}" if color else f"  {blank}-")
        else:
            cov = line.coverage.rjust(max_cov)
            if color:
                write(f"  {_coverage_color(line.pct)}{cov}{_RESET}")
            else:
                write(f"  {cov}")
            write(f"   {line.gaps.rjust(max_gaps)}")
            if line.max_gap:
                dur = line.max_gap.rjust(max_dur)
                write(f"   {_DIM_YELLOW}{dur}{_RESET}" if color else f"   {dur}")
        write("\n")