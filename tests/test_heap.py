import pytest

from heapsim.heap import DoubleFreeError, Heap, State


@pytest.fixture
def heap():
    return Heap(4096, 59)


def test_initial_layout(heap):
    blocks = heap.freelist(58)
    assert len(blocks) == 1
    assert heap.size_of(blocks[0]) == 4096 - 32
    assert heap.chunks() == [heap.base]
    assert heap.relative(heap.base) == 0
    assert heap.verify()


def test_chunk_blocks_bounded_by_fenceposts(heap):
    blocks = heap.chunk_blocks(heap.chunks()[0])
    assert heap.state_of(blocks[0]) == State.FENCEPOST
    assert heap.state_of(blocks[-1]) == State.FENCEPOST
    assert heap.state_of(blocks[1]) == State.UNALLOCATED


def test_sentinels(heap):
    s = heap.sentinel(3)
    assert heap.is_sentinel(s)
    assert not heap.is_sentinel(heap.base)
    assert heap.next_of(s) == s
    with pytest.raises(IndexError):
        heap.sentinel(59)


def test_malloc_zero_returns_none(heap):
    assert heap.malloc(0) is None


def test_write_read_roundtrip(heap):
    p = heap.malloc(24)
    heap.write(p, b"abcdefgh" * 3)
    assert heap.read(p, 24) == b"abcdefgh" * 3
    assert heap.state_of(p - 16) == State.ALLOCATED
    assert heap.verify()


def test_boundary_tags_consistent(heap):
    for size in (8, 17, 100, 250):
        heap.malloc(size)
    for block in heap.chunk_blocks(heap.chunks()[0])[:-1]:
        assert heap.left_size_of(heap.right_header(block)) == heap.size_of(block)


def test_free_restores_single_block(heap):
    initial = heap.size_of(heap.freelist(58)[0])
    a = heap.malloc(40)
    b = heap.malloc(40)
    heap.free(a)
    heap.free(b)
    blocks = heap.freelist(58)
    assert len(blocks) == 1
    assert heap.size_of(blocks[0]) == initial
    assert heap.verify()


def test_double_free(heap):
    p = heap.malloc(16)
    q = heap.malloc(16)
    heap.free(p)
    with pytest.raises(DoubleFreeError):
        heap.free(p)
    heap.free(q)


def test_calloc_zeroes(heap):
    p = heap.malloc(64)
    heap.write(p, b"\xff" * 64)
    heap.free(p)
    c = heap.calloc(8, 8)
    assert heap.read(c, 64) == bytes(64)


def test_realloc_keeps_data(heap):
    p = heap.malloc(16)
    heap.write(p, b"0123456789abcdef")
    q = heap.realloc(p, 200)
    assert heap.read(q, 16) == b"0123456789abcdef"
    assert heap.verify()


def test_realloc_none_and_zero(heap):
    p = heap.realloc(None, 32)
    assert heap.state_of(p - 16) == State.ALLOCATED
    assert heap.realloc(p, 0) is None
    assert heap.state_of(p - 16) == State.UNALLOCATED


def test_large_allocation_grows_and_coalesces(heap):
    p = heap.malloc(10000)
    heap.write(p, b"x" * 10000)
    assert heap.read(p, 10000) == b"x" * 10000
    assert len(heap.chunks()) == 1
    assert heap.size_of(p - 16) >= 10016
    assert heap.verify()


def test_many_small_allocations_distinct(heap):
    ptrs = [heap.malloc(8) for _ in range(50)]
    assert len(set(ptrs)) == 50
    for p in ptrs:
        heap.free(p)
    assert heap.verify()