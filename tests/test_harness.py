import io

import pytest

from heapsim.harness import (
    finalize_test,
    freeing,
    freeing_loop,
    initialize_test,
    mallocing,
    mallocing_loop,
)
from heapsim.heap import ALLOC_HEADER_SIZE, DoubleFreeError, Heap, State
from heapsim.printing import MALLOC_COLOR, print_status, tags_print


@pytest.fixture(autouse=True)
def no_color(monkeypatch):
    monkeypatch.delenv(MALLOC_COLOR, raising=False)


@pytest.fixture
def heap():
    return Heap()


def _tags(heap):
    out = io.StringIO()
    tags_print(heap, print_status, out)
    return out.getvalue()


def test_initialize_test_header(heap):
    out = io.StringIO()
    initialize_test(heap, "tests/dir/test1.c", out)
    text = out.getvalue()
    assert text.startswith("TEST: test1.c\n")
    assert "INTIAL STATE\n\n" in text
    assert text.index("FREELIST") < text.index("TAGS")


def test_initialize_test_plain_name(heap):
    out = io.StringIO()
    initialize_test(heap, "plain", out)
    assert out.getvalue().splitlines()[0] == "TEST: plain"


def test_finalize_test_reports_and_verifies(heap):
    heap.malloc(40)
    out = io.StringIO()
    assert finalize_test(heap, out) is True
    text = out.getvalue()
    assert text.startswith("FINAL STATE\n\n")
    assert "\tallocated: true" in text


def test_mallocing_loop_output_and_pointers(heap):
    out = io.StringIO()
    pointers = mallocing_loop(heap, 8, 3, print_status, False, out)
    assert len(set(pointers)) == 3
    lines = out.getvalue().split("\n")
    assert lines[0] == "mallocing 8 bytes in 3 allocations"
    assert lines[1].count("[A]") == 3
    for ptr in pointers:
        assert heap.state_of(ptr - ALLOC_HEADER_SIZE) == State.ALLOCATED
        assert heap.read(ptr, 8) == bytes(8)


def test_mallocing_silent_writes_nothing(heap):
    out = io.StringIO()
    ptr = mallocing(heap, 24, print_status, True, out)
    assert out.getvalue() == ""
    assert heap.state_of(ptr - ALLOC_HEADER_SIZE) == State.ALLOCATED


def test_mallocing_single_header(heap):
    out = io.StringIO()
    mallocing(heap, 24, print_status, False, out)
    assert out.getvalue().splitlines()[0] == "mallocing 24 bytes"


def test_mallocing_zero_returns_none(heap):
    assert mallocing(heap, 0, print_status, True, io.StringIO()) is None


def test_freeing_single_output(heap):
    ptr = mallocing(heap, 8, print_status, True, io.StringIO())
    out = io.StringIO()
    assert freeing(heap, ptr, 8, print_status, False, out) is True
    first = out.getvalue().splitlines()[0]
    assert first.startswith("freeing 8 bytes (")
    assert first.endswith(")")
    assert heap.state_of(ptr - ALLOC_HEADER_SIZE) == State.UNALLOCATED


def test_freeing_all_restores_fresh_layout(heap):
    fresh = _tags(Heap())
    pointers = mallocing_loop(heap, 8, 3, print_status, True, io.StringIO())
    out = io.StringIO()
    assert freeing_loop(heap, pointers, 8, print_status, False, out) is True
    assert out.getvalue().splitlines()[0] == "freeing 8 bytes from 3 allocations"
    assert _tags(heap) == fresh


def test_freeing_detects_corruption(heap, capsys):
    ptr = mallocing(heap, 16, print_status, True, io.StringIO())
    heap.write(ptr, b"\x01")
    freeing(heap, ptr, 16, print_status, True, io.StringIO())
    assert "Memory Corruption Detected" in capsys.readouterr().err


def test_freeing_twice_raises(heap):
    ptr = mallocing(heap, 16, print_status, True, io.StringIO())
    freeing(heap, ptr, 16, print_status, True, io.StringIO())
    with pytest.raises(DoubleFreeError):
        freeing(heap, ptr, 16, print_status, True, io.StringIO())