# heapsim

`heapsim` simulates a `malloc`-style memory allocator inside a Python
`bytearray`, so that its data structures can be inspected, printed and
checked.

The allocator keeps:

- a set of segregated, doubly linked free lists with sentinel nodes, one per
  size class of 8 bytes, the last list holding every larger block;
- boundary tags on every block (its own size with the allocation state in the
  low bits, and the size of its left neighbour), so that freed blocks
  coalesce with free neighbours;
- fenceposts at both ends of every chunk of `arena_size` bytes added to the
  heap, with a new chunk merged into the previous one when the two are
  adjacent.

## Using the allocator

```python
from heapsim.heap import Heap, DoubleFreeError

heap = Heap(4096, 59)          # the defaults: arena size and number of lists

p = heap.malloc(24)
heap.write(p, b"hello")
assert heap.read(p, 5) == b"hello"

q = heap.calloc(4, 8)          # 32 zeroed bytes
assert heap.read(q, 32) == bytes(32)

heap.free(q)
heap.free(p)
assert heap.verify()

try:
    heap.free(p)
except DoubleFreeError:
    print("double free caught")
```

Pointers are integer addresses into the simulated memory. The free-list
sentinels sit at the start of that memory and the heap follows them.

- `malloc(size)` rounds the request up to a multiple of 8 (at least 16) and
  returns the data address; `malloc(0)` returns `None` and a negative size
  raises `ValueError`. When no free block fits, another chunk is added and
  the search is repeated.
- `calloc(nmemb, size)` allocates `nmemb * size` bytes and zeroes them.
- `realloc(ptr, size)` frees and returns `None` when `size` is 0, acts as
  `malloc` when `ptr` is `None`, grows in place into a free right neighbour
  when it can, shrinks in place, and otherwise allocates, copies and frees.
- `free(ptr)` ignores `None`, coalesces with free neighbours, and raises
  `DoubleFreeError` (a `HeapError`) for a block that is already free, after
  writing `Double Free Detected` to standard error.
- `read(ptr, size)` and `write(ptr, data)` access the simulated memory and
  raise `HeapError` outside it.
- `verify()` returns `False` if a free list has a cycle or a broken
  `next`/`prev` link, or if a recorded chunk does not start with a
  fencepost, writing the reason to standard error.

`Heap(arena_size, n_lists)` raises `ValueError` unless `arena_size` is a
multiple of 8 and at least 128, and `n_lists` is at least 2.

Block metadata is read with `size_of`, `state_of` (a `State`:
`UNALLOCATED`, `ALLOCATED` or `FENCEPOST`), `left_size_of`, `next_of`,
`prev_of` and `right_header`. The structures are walked with
`sentinel(index)`, `is_sentinel(addr)`, `freelist(index)`, `chunks()` and
`chunk_blocks(chunk)`; `relative(addr)` gives an address as an offset from
the first fencepost of the heap.

## Printing the heap

`heapsim.printing` writes the free lists and boundary tags to a text stream
(standard output when `out` is `None`). Each formatter takes
`(heap, addr, out)`:

- `basic_print` writes `[size] -> `;
- `print_list` writes `[size]` on its own line;
- `print_object` writes every field, with `prev` and `next` for free blocks;
- `print_status` writes `[U]`, `[A]` or `[F]`.

```python
import sys
from heapsim.printing import freelist_print, tags_print, print_object, print_status

freelist_print(heap, print_object, sys.stdout)   # one "L<index>: " line per non-empty list
tags_print(heap, print_status, sys.stdout)       # every header of every chunk
```

`format_pointer` prints addresses as four-digit offsets from the start of
the heap, and sentinel nodes as `SENTINEL`. Setting the environment
variable `MALLOC_DEBUG_COLOR=1337_CoLoRs` colours each block by its state
(`use_color()` reports whether it is set).

## Scripted scenarios

`heapsim.harness` drives the allocator through allocation and free steps,
printing the heap after each one:

```python
import sys
from heapsim.harness import initialize_test, mallocing, freeing, finalize_test
from heapsim.printing import print_object

initialize_test(heap, "scenarios/simple", sys.stdout)
ptr = mallocing(heap, 8, print_object, False, sys.stdout)
freeing(heap, ptr, 8, print_object, False, sys.stdout)
ok = finalize_test(heap, sys.stdout)
```

- `initialize_test` prints `TEST:` with the last path component of the name,
  then the initial free lists and tags.
- `mallocing_loop` / `mallocing` make zeroed allocations and return the
  pointers (or the single pointer).
- `freeing_loop` / `freeing` report `Memory Corruption Detected` on standard
  error if an allocation is no longer all zeros, free it, and return the
  result of `verify()`.
- `finalize_test` prints the final state and returns the result of
  `verify()`.

Pass `silent=True` to the malloc and free helpers to skip their output.

## What it does not do

`heapsim` does not manage real process memory and cannot stand in for the
system allocator; it has no locking for use from several threads and no
command-line program. Scenarios are written as Python code using the
harness functions above.

## Running the tests

```
pip install -e ".[test]"
pytest
```