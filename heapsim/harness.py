"""Helpers that drive a heap through allocation scenarios and report on it."""

from __future__ import annotations

import sys

from heapsim.heap import HEADER_SIZE
from heapsim.printing import format_pointer, freelist_print, print_object, tags_print


def _stream(out):
    return sys.stdout if out is None else out


def _dump_state(heap, title, out) -> None:
    out.write(f"{title}\n\n")
    out.write("FREELIST\n")
    freelist_print(heap, print_object, out)
    out.write("TAGS\n")
    tags_print(heap, print_object, out)


def initialize_test(heap, name, out=None):
    """Print the test's file name and the initial state of the heap."""
    out = _stream(out)
    filename = name.rsplit("/", 1)[-1]
    out.write(f"TEST: {filename}\n")
    _dump_state(heap, "INTIAL STATE", out)


def finalize_test(heap, out=None):
    """Print the final state of the heap and return whether it verifies."""
    out = _stream(out)
    _dump_state(heap, "FINAL STATE", out)
    return heap.verify()


def _malloc_and_clear(heap, size):
    ptr = heap.malloc(size)
    if ptr is not None:
        heap.write(ptr, bytes(size))
    return ptr


def mallocing_loop(heap, size, n, formatter=print_object, silent=False, out=None):
    """Make n zeroed allocations of size bytes and return their pointers."""
    out = _stream(out)
    if not silent:
        if n == 1:
            out.write(f"mallocing {size} bytes\n")
        else:
            out.write(f"mallocing {size} bytes in {n} allocations\n")
    pointers = [_malloc_and_clear(heap, size) for _ in range(n)]
    if not silent:
        tags_print(heap, formatter, out)
        out.write("\n")
    heap.verify()
    return pointers


def mallocing(heap, size, formatter=print_object, silent=False, out=None):
    """Make one zeroed allocation of size bytes and return its pointer."""
    return mallocing_loop(heap, size, 1, formatter, silent, out)[0]


def _check_and_free(heap, ptr, size) -> None:
    if ptr is not None and any(heap.read(ptr, size)):
        print("Memory Corruption Detected", file=sys.stderr)
    heap.free(ptr)


def freeing_loop(heap, pointers, size, formatter=print_object, silent=False, out=None):
    """Check that each allocation is still zeroed and free it."""
    out = _stream(out)
    pointers = list(pointers)
    if not silent:
        if len(pointers) == 1:
            out.write(f"freeing {size} bytes (")
            out.write(format_pointer(heap, pointers[0] - HEADER_SIZE))
            out.write(")\n")
        else:
            out.write(f"freeing {size} bytes from {len(pointers)} allocations\n")
    for ptr in pointers:
        _check_and_free(heap, ptr, size)
    if not silent:
        tags_print(heap, formatter, out)
        out.write("\n")
    return heap.verify()


def freeing(heap, ptr, size, formatter=print_object, silent=False, out=None):
    """Check and free a single allocation."""
    return freeing_loop(heap, [ptr], size, formatter, silent, out)