"""A simulated segregated free-list allocator with boundary tags."""

from __future__ import annotations

import sys
from enum import IntEnum

ALLOC_HEADER_SIZE = 16
HEADER_SIZE = 32
MIN_ALLOCATION = 8
MAX_OS_CHUNKS = 1024
DEFAULT_ARENA_SIZE = 4096
DEFAULT_N_LISTS = 59

_MASK64 = (1 << 64) - 1
_STATE_MASK = 0x3

_SIZE_STATE = 0
_LEFT_SIZE = 8
_NEXT = 16
_PREV = 24


class State(IntEnum):
    """Allocation state of a block."""

    UNALLOCATED = 0
    ALLOCATED = 1
    FENCEPOST = 2


class HeapError(Exception):
    """Raised when the heap is used incorrectly or is inconsistent."""


class DoubleFreeError(HeapError):
    """Raised when a block that is already free is freed again."""


class Heap:
    """A heap laid out in a byte array, grown one arena at a time.

    Addresses are offsets into the simulated memory. The free-list
    sentinels live at the start of memory; the heap itself follows them.
    """

    def __init__(self, arena_size=DEFAULT_ARENA_SIZE, n_lists=DEFAULT_N_LISTS):
        if arena_size < 4 * HEADER_SIZE or arena_size % 8:
            raise ValueError("arena_size must be a multiple of 8 and at least 128")
        if n_lists < 2:
            raise ValueError("n_lists must be at least 2")
        self.arena_size = arena_size
        self.n_lists = n_lists
        self._memory = bytearray(n_lists * HEADER_SIZE)
        self._chunks: list[int] = []

        block = self._allocate_chunk(arena_size)
        self._insert_os_chunk(block - ALLOC_HEADER_SIZE)
        self._last_fencepost = block + self.size_of(block)
        self.base = block - ALLOC_HEADER_SIZE

        for i in range(n_lists):
            sentinel = self.sentinel(i)
            self._set_next(sentinel, sentinel)
            self._set_prev(sentinel, sentinel)

        last = self.sentinel(n_lists - 1)
        self._set_next(last, block)
        self._set_prev(last, block)
        self._set_next(block, last)
        self._set_prev(block, last)

    # ---- raw field access -------------------------------------------------

    def _load(self, addr: int, off: int) -> int:
        pos = addr + off
        if addr < 0 or pos + 8 > len(self._memory):
            raise HeapError(f"address {addr} is outside the heap")
        return int.from_bytes(self._memory[pos:pos + 8], "little")

    def _store(self, addr: int, off: int, value: int) -> None:
        pos = addr + off
        if addr < 0 or pos + 8 > len(self._memory):
            raise HeapError(f"address {addr} is outside the heap")
        self._memory[pos:pos + 8] = (value & _MASK64).to_bytes(8, "little")

    def size_of(self, addr):
        """Size of the block at addr, metadata included."""
        return self._load(addr, _SIZE_STATE) & ~_STATE_MASK & _MASK64

    def state_of(self, addr):
        """Allocation state of the block at addr."""
        return State(self._load(addr, _SIZE_STATE) & _STATE_MASK)

    def left_size_of(self, addr):
        """Size of the block to the left of addr in memory."""
        return self._load(addr, _LEFT_SIZE)

    def next_of(self, addr):
        """Next block in the free list."""
        return self._load(addr, _NEXT)

    def prev_of(self, addr):
        """Previous block in the free list."""
        return self._load(addr, _PREV)

    def _set_size(self, addr: int, size: int) -> None:
        current = self._load(addr, _SIZE_STATE)
        self._store(addr, _SIZE_STATE, size | (current & _STATE_MASK))

    def _set_state(self, addr: int, state: State) -> None:
        current = self._load(addr, _SIZE_STATE)
        self._store(addr, _SIZE_STATE, (current & ~_STATE_MASK) | int(state))

    def _set_left_size(self, addr: int, size: int) -> None:
        self._store(addr, _LEFT_SIZE, size)

    def _set_next(self, addr: int, value: int) -> None:
        self._store(addr, _NEXT, value)

    def _set_prev(self, addr: int, value: int) -> None:
        self._store(addr, _PREV, value)

    def right_header(self, addr):
        """Header immediately to the right of addr in memory."""
        return addr + self.size_of(addr)

    def _left_header(self, addr: int) -> int:
        return addr - self.left_size_of(addr)

    # ---- free lists ------------------------------------------------------

    def sentinel(self, index):
        """Address of the sentinel of free list index."""
        if not 0 <= index < self.n_lists:
            raise IndexError(f"free list {index} does not exist")
        return index * HEADER_SIZE

    def is_sentinel(self, addr):
        """Whether addr is one of the free-list sentinels."""
        return 0 <= addr < self.n_lists * HEADER_SIZE and addr % HEADER_SIZE == 0

    def freelist(self, index):
        """Block addresses in free list index, in list order."""
        sentinel = self.sentinel(index)
        blocks = []
        cur = self.next_of(sentinel)
        while cur != sentinel:
            blocks.append(cur)
            cur = self.next_of(cur)
        return blocks

    def _unlink(self, addr: int) -> None:
        nxt, prv = self.next_of(addr), self.prev_of(addr)
        self._set_prev(nxt, prv)
        self._set_next(prv, nxt)

    def _push(self, index: int, addr: int) -> None:
        sentinel = self.sentinel(index)
        first = self.next_of(sentinel)
        self._set_prev(first, addr)
        self._set_next(addr, first)
        self._set_prev(addr, sentinel)
        self._set_next(sentinel, addr)

    def _list_index(self, block_size: int) -> int:
        index = (block_size - ALLOC_HEADER_SIZE) // 8 - 1
        if index < 0 or index > self.n_lists - 1:
            index = self.n_lists - 1
        return index

    def _merge_index(self, block_size: int) -> int:
        index = (block_size - ALLOC_HEADER_SIZE) // 8 - 1
        if index < 0 or index > self.n_lists - 2:
            index = self.n_lists - 1
        return index

    # ---- chunks ----------------------------------------------------------

    def chunks(self):
        """First fenceposts of the chunks obtained from the system."""
        return list(self._chunks)

    def chunk_blocks(self, chunk):
        """Headers of a chunk, from its first fencepost to its last."""
        blocks = [chunk]
        cur = self.right_header(chunk)
        while self.state_of(cur) != State.FENCEPOST:
            blocks.append(cur)
            cur = self.right_header(cur)
        blocks.append(cur)
        return blocks

    def relative(self, addr):
        """Offset of addr from the start of the heap."""
        return addr - self.base

    def _sbrk(self, size: int) -> int:
        start = len(self._memory)
        self._memory.extend(bytes(size))
        return start

    def _init_fencepost(self, addr: int, left_size: int) -> None:
        self._set_state(addr, State.FENCEPOST)
        self._set_size(addr, ALLOC_HEADER_SIZE)
        self._set_left_size(addr, left_size)

    def _insert_os_chunk(self, addr: int) -> None:
        if len(self._chunks) < MAX_OS_CHUNKS:
            self._chunks.append(addr)

    def _allocate_chunk(self, size: int) -> int:
        mem = self._sbrk(size)
        self._init_fencepost(mem, ALLOC_HEADER_SIZE)
        self._init_fencepost(mem + size - ALLOC_HEADER_SIZE, size - 2 * ALLOC_HEADER_SIZE)
        hdr = mem + ALLOC_HEADER_SIZE
        self._set_state(hdr, State.UNALLOCATED)
        self._set_size(hdr, size - 2 * ALLOC_HEADER_SIZE)
        self._set_left_size(hdr, ALLOC_HEADER_SIZE)
        return hdr

    def _grow(self) -> None:
        new_chunk = self._allocate_chunk(self.arena_size)
        fp_new = self._left_header(new_chunk)
        fp_old = self._left_header(fp_new)
        left = self._left_header(fp_old)

        if fp_old != self._last_fencepost:
            self._insert_os_chunk(fp_new)
            self._set_state(new_chunk, State.UNALLOCATED)
            self._push(self._list_index(self.size_of(new_chunk)), new_chunk)
            self._last_fencepost = self.right_header(new_chunk)
            self._set_left_size(self._last_fencepost, self.size_of(new_chunk))
            return

        old_size = self.size_of(left)
        state = self.state_of(left)
        if state == State.UNALLOCATED:
            self._set_size(left, old_size + 2 * ALLOC_HEADER_SIZE + self.size_of(new_chunk))
            self._last_fencepost = self.right_header(new_chunk)
            self._set_left_size(self._last_fencepost, self.size_of(left))
            if old_size - ALLOC_HEADER_SIZE < self.n_lists * 8:
                self._unlink(left)
                self._push(self._list_index(self.size_of(left)), left)
        elif state == State.ALLOCATED:
            self._set_size(
                fp_old,
                self.size_of(fp_old) + self.size_of(new_chunk) + self.size_of(fp_new),
            )
            self._set_state(fp_old, State.UNALLOCATED)
            self._last_fencepost = self.right_header(new_chunk)
            self._set_left_size(self._last_fencepost, self.size_of(fp_old))
            self._push(self._list_index(self.size_of(fp_old)), fp_old)
        else:
            raise HeapError("heap boundary tags are corrupted")

    # ---- allocation ------------------------------------------------------

    def _split(self, current: int, real_size: int) -> int:
        new_size = self.size_of(current) - real_size
        self._set_size(current, new_size)
        block = current + new_size
        self._set_state(block, State.ALLOCATED)
        self._set_left_size(block, new_size)
        self._set_size(block, real_size)
        self._set_left_size(self.right_header(block), real_size)
        return block + ALLOC_HEADER_SIZE

    def _take_whole(self, current: int) -> int:
        self._set_state(current, State.ALLOCATED)
        self._unlink(current)
        return current + ALLOC_HEADER_SIZE

    def _try_allocate(self, raw_size: int) -> int | None:
        allocable = raw_size + (-raw_size) % 8
        if allocable == 8:
            allocable = 16
        real_size = allocable + ALLOC_HEADER_SIZE
        index = min(allocable // 8 - 1, self.n_lists - 1)
        last = self.n_lists - 1

        for i in range(index, last):
            blocks = self.freelist(i)
            if not blocks:
                continue
            current = blocks[0]
            size = self.size_of(current)
            if size - real_size < HEADER_SIZE:
                return self._take_whole(current)
            self._unlink(current)
            self._push(self._list_index(size - real_size), current)
            return self._split(current, real_size)

        for current in self.freelist(last):
            size = self.size_of(current)
            if size < real_size:
                continue
            if size - real_size < HEADER_SIZE:
                return self._take_whole(current)
            if size - real_size >= self.n_lists * 8:
                return self._split(current, real_size)
            self._unlink(current)
            self._push(self._list_index(size - real_size), current)
            return self._split(current, real_size)

        self._grow()
        return None

    def malloc(self, size):
        """Allocate size bytes; return the data address, or None for 0."""
        if size < 0:
            raise ValueError("size must not be negative")
        if size == 0:
            return None
        while True:
            ptr = self._try_allocate(size)
            if ptr is not None:
                return ptr

    def calloc(self, nmemb, size):
        """Allocate nmemb * size zeroed bytes."""
        total = nmemb * size
        ptr = self.malloc(total)
        if ptr is not None:
            self.write(ptr, bytes(total))
        return ptr

    def realloc(self, ptr, size):
        """Resize the allocation at ptr to size bytes."""
        if size == 0:
            self.free(ptr)
            return None
        if ptr is None:
            return self.malloc(size)

        curr = ptr - ALLOC_HEADER_SIZE
        right = self.right_header(curr)
        if self.state_of(right) == State.UNALLOCATED:
            if self.size_of(curr) + self.size_of(right) - ALLOC_HEADER_SIZE >= size:
                self._set_state(right, State.ALLOCATED)
                self._set_size(curr, self.size_of(curr) + self.size_of(right))
                self._set_left_size(self.right_header(right), self.size_of(curr))
                self._unlink(right)
                return ptr

        if size < self.size_of(curr):
            self._set_size(curr, size + ALLOC_HEADER_SIZE)
            self._set_left_size(self.right_header(curr), self.size_of(curr))
            return ptr

        mem = self.malloc(size)
        if mem is not None:
            end = min(ptr + size, len(self._memory))
            self.write(mem, bytes(self._memory[ptr:end]))
            self.free(ptr)
        return mem

    def free(self, ptr):
        """Release the allocation at ptr, coalescing with free neighbours."""
        if ptr is None:
            return
        current = ptr - ALLOC_HEADER_SIZE
        if self.state_of(current) == State.UNALLOCATED:
            print("Double Free Detected", file=sys.stderr)
            raise DoubleFreeError(f"block at {ptr} is already free")

        left = self._left_header(current)
        right = self.right_header(current)
        left_free = self.state_of(left) == State.UNALLOCATED
        right_free = self.state_of(right) == State.UNALLOCATED
        limit = self.n_lists * 8

        if left_free and right_free:
            if self.size_of(left) - ALLOC_HEADER_SIZE < limit:
                self._unlink(left)
                self._unlink(right)
                self._set_size(left, self.size_of(left) + self.size_of(current) + self.size_of(right))
                self._set_left_size(self.right_header(left), self.size_of(left))
                index = self._merge_index(self.size_of(left))
                self._set_state(current, State.UNALLOCATED)
                self._push(index, left)
            else:
                self._set_state(current, State.UNALLOCATED)
                self._set_size(left, self.size_of(left) + self.size_of(current) + self.size_of(right))
                self._unlink(right)
                self._set_left_size(self.right_header(left), self.size_of(left))
        elif right_free:
            if self.size_of(current) - ALLOC_HEADER_SIZE < limit:
                self._unlink(right)
                self._set_size(current, self.size_of(right) + self.size_of(current))
                self._push(self._merge_index(self.size_of(current)), current)
            else:
                self._set_size(current, self.size_of(right) + self.size_of(current))
                self._unlink(right)
            self._set_left_size(self.right_header(current), self.size_of(current))
            self._set_state(current, State.UNALLOCATED)
        elif left_free:
            if self.size_of(left) - ALLOC_HEADER_SIZE < limit:
                self._unlink(left)
                self._set_size(left, self.size_of(left) + self.size_of(current))
                index = self._merge_index(self.size_of(left))
                self._set_state(current, State.UNALLOCATED)
                self._push(index, left)
            else:
                self._set_size(left, self.size_of(left) + self.size_of(current))
                self._set_state(current, State.UNALLOCATED)
            self._set_left_size(right, self.size_of(left))
        else:
            self._push(self._merge_index(self.size_of(current)), current)
            self._set_state(current, State.UNALLOCATED)

    # ---- data access -----------------------------------------------------

    def read(self, ptr, size):
        """Return size bytes starting at ptr."""
        if ptr < 0 or size < 0 or ptr + size > len(self._memory):
            raise HeapError("read outside the heap")
        return bytes(self._memory[ptr:ptr + size])

    def write(self, ptr, data):
        """Copy data into memory starting at ptr."""
        if ptr < 0 or ptr + len(data) > len(self._memory):
            raise HeapError("write outside the heap")
        self._memory[ptr:ptr + len(data)] = data

    # ---- verification ----------------------------------------------------

    def _detect_cycle(self) -> int | None:
        for i in range(self.n_lists):
            sentinel = self.sentinel(i)
            slow = self.next_of(sentinel)
            fast = self.next_of(slow)
            while fast != sentinel:
                if slow == fast:
                    return slow
                slow = self.next_of(slow)
                fast = self.next_of(self.next_of(fast))
        return None

    def _bad_pointer(self) -> int | None:
        for i in range(self.n_lists):
            sentinel = self.sentinel(i)
            cur = self.next_of(sentinel)
            while cur != sentinel:
                if self.prev_of(self.next_of(cur)) != cur or self.next_of(self.prev_of(cur)) != cur:
                    return cur
                cur = self.next_of(cur)
        return None

    def _bad_chunk(self, chunk: int) -> int | None:
        if self.state_of(chunk) != State.FENCEPOST:
            print("Invalid fencepost", file=sys.stderr)
            return chunk
        return None

    def verify(self):
        """Check the free lists and chunk fenceposts for consistency."""
        if self._detect_cycle() is not None:
            print("Cycle Detected", file=sys.stderr)
            return False
        if self._bad_pointer() is not None:
            print("Invalid pointers", file=sys.stderr)
            return False
        return all(self._bad_chunk(chunk) is None for chunk in self._chunks)