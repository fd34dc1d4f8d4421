"""Text dumps of free lists and boundary tags of a simulated heap."""

from __future__ import annotations

import os
import sys

from heapsim.heap import State

MALLOC_COLOR = "MALLOC_DEBUG_COLOR"
_COLOR_VALUE = "1337_CoLoRs"

_COLORS = {
    State.UNALLOCATED: "\033[0;32m",
    State.ALLOCATED: "\033[0;34m",
    State.FENCEPOST: "\033[0;33m",
}
_RESET = "\033[0;0m"

_ALLOCATED_NAMES = {
    State.UNALLOCATED: "false",
    State.ALLOCATED: "true",
    State.FENCEPOST: "fencepost",
}

_STATUS_TAGS = {
    State.UNALLOCATED: "[U]",
    State.ALLOCATED: "[A]",
    State.FENCEPOST: "[F]",
}


def _stream(out):
    return sys.stdout if out is None else out


def use_color():
    """Whether coloured output is requested through the environment."""
    return os.environ.get(MALLOC_COLOR) == _COLOR_VALUE


def _print_color(heap, addr, out) -> None:
    if use_color():
        out.write(_COLORS[heap.state_of(addr)])


def _clear_color(out) -> None:
    if use_color():
        out.write(_RESET)


def format_pointer(heap, addr):
    """Render addr as SENTINEL or as a zero-padded offset from the heap base."""
    if heap.is_sentinel(addr):
        return "SENTINEL"
    return f"{heap.relative(addr):04d}"


def basic_print(heap, addr, out=None):
    """Write just the block's size, followed by an arrow."""
    _stream(out).write(f"[{heap.size_of(addr)}] -> ")


def print_list(heap, addr, out=None):
    """Write just the block's size on its own line."""
    _stream(out).write(f"[{heap.size_of(addr)}]\n")


def print_object(heap, addr, out=None):
    """Write every metadata field of the block."""
    out = _stream(out)
    state = heap.state_of(addr)
    _print_color(heap, addr, out)
    lines = [
        "[",
        f"\taddr: {format_pointer(heap, addr)}",
        f"\tsize: {heap.size_of(addr)}",
        f"\tleft_size: {heap.left_size_of(addr)}",
        f"\tallocated: {_ALLOCATED_NAMES[state]}",
    ]
    if state == State.UNALLOCATED:
        lines.append(f"\tprev: {format_pointer(heap, heap.prev_of(addr))}")
        lines.append(f"\tnext: {format_pointer(heap, heap.next_of(addr))}")
    lines.append("]")
    out.write("\n".join(lines) + "\n")
    _clear_color(out)


def print_status(heap, addr, out=None):
    """Write a one-letter allocation status of the block."""
    out = _stream(out)
    _print_color(heap, addr, out)
    out.write(_STATUS_TAGS[heap.state_of(addr)])
    _clear_color(out)


def print_sublist(heap, formatter, start, end, out=None):
    """Format every node of a free list from start up to, not including, end."""
    out = _stream(out)
    cur = start
    while cur != end:
        formatter(heap, cur, out)
        cur = heap.next_of(cur)


def freelist_print(heap, formatter, out=None):
    """Format every non-empty free list, one line per list."""
    if formatter is None:
        return
    out = _stream(out)
    for index in range(heap.n_lists):
        sentinel = heap.sentinel(index)
        if heap.next_of(sentinel) != sentinel:
            out.write(f"L{index}: ")
            print_sublist(heap, formatter, heap.next_of(sentinel), sentinel, out)
            out.write("\n")
        out.flush()


def tags_print(heap, formatter, out=None):
    """Format every header of every chunk, fenceposts included."""
    if formatter is None:
        return
    out = _stream(out)
    for chunk in heap.chunks():
        for block in heap.chunk_blocks(chunk):
            formatter(heap, block, out)
        out.flush()