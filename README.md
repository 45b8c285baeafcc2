# guardheap

`guardheap` is a small, deterministic model of a guarded heap for use in tests.
Each block it hands out has a header guard in front and an `"END"` sentinel
behind. With these the allocator catches the following problems:

- **Leaks.** `end_test()` raises `TestFailure("This test leaks!")` if any blocks
  are still allocated.
- **Buffer overruns.** `free()` raises `TestFailure` if the sentinel or the
  header guard of the block has been overwritten. So does `realloc()`.
- **Out-of-memory paths.** `fail_after(n)` lets the next `n` allocations succeed.
  Every allocation after them returns `None`.

Addresses are plain integers. You reach the bytes of a block through `read()`
and `write()`.

## Installation

```
pip install guardheap
```

## Configuration

`guardheap.config.Config` is a frozen dataclass of platform options.

- **Pointer width.** The allocator uses `pointer_width`. It sets the block
  alignment (`malloc_alignment()` is `pointer_width // 8`) and the size of the
  header words.
- **Internal heap.** The allocator also uses `exclude_stdlib_malloc` and
  `internal_heap_size_bytes` (default 256). Together they choose a fixed
  internal heap.

The other fields hold integer widths and floating-point options. The class
checks them, but nothing else in the package reads them.

`Config.from_defines()` builds a configuration from a mapping of define names:

- **Flags.** A flag such as `UNITY_INCLUDE_64` counts as set whatever its value.
- **Valued defines.** These take Python numbers or C literals such as `"64"`,
  `"0x100"` or `"0.001f"`.
- **Other names.** Unknown names are ignored.

Widths other than 16, 32 and 64 raise `ValueError`.

```python
from guardheap.config import Config

config = Config.from_defines({"UNITY_POINTER_WIDTH": 64})
config.malloc_alignment()   # 8
config.supports_64()        # True
```

## Using the allocator

The heap has two modes.

- **Fixed heap.** Give `GuardedAllocator` a `heap_size` to use a fixed internal
  heap. You get the same heap by passing a config with `exclude_stdlib_malloc`
  set. Blocks come from the end of a single array. Space is reclaimed only when
  blocks are freed in LIFO order. A block at the top of the heap grows in place
  when it is `realloc`ed.
- **Unbounded heap.** Leave `heap_size` out (with the default config) for an
  unbounded heap.

```python
from guardheap.config import Config
from guardheap.memory import GuardedAllocator, TestFailure

heap = GuardedAllocator(Config(), heap_size=256)
heap.start_test()

addr = heap.malloc(10)
heap.write(addr, b"123456789\0")
addr = heap.realloc(addr, 15)
assert heap.read(addr, 9) == b"123456789"
heap.free(addr)

heap.end_test()            # passes: nothing outstanding
```

### Behaviour of each call

- **`malloc(0)`** returns `None`. So does an allocation that does not fit in a
  fixed heap.
- **`calloc(num, size)`** allocates `num * size` bytes, all zero.
- **`realloc(None, size)`** behaves like `malloc(size)`.
- **`realloc(addr, 0)`** frees the block and returns `None`.
- **`realloc` to a smaller or equal size** returns the same address.
- **A failed `realloc`** returns `None` and leaves the old block allocated.
- **`free(None)`** does nothing.
- **An address that is not a live block**, passed to `free` or `realloc`, raises
  `ValueError`.
- **A size that is not an integer** raises `TypeError`.

### Forcing allocation failures

```python
heap.start_test()
heap.fail_after(1)
first = heap.malloc(10)    # succeeds
second = heap.malloc(10)   # None
heap.free(first)
heap.end_test()
```

`start_test()` and `end_test()` cancel a forced failure, and so does a negative
countdown.

### Overrun detection

```python
heap.start_test()
addr = heap.malloc(10)
heap.write(addr + 10, b"\xff")      # one byte past the end
try:
    heap.free(addr)
except TestFailure as exc:
    print(exc)                      # Buffer overrun detected during free()
```

The block is released before the error is raised.

### Counting outstanding blocks

`outstanding()` returns the number of blocks allocated and not yet released.

## What this package does not do

The heap is a simulation. It does not watch real Python objects or native
memory. It is also not a test runner. Its failures are raised as `TestFailure`,
a subclass of `AssertionError`, for your own test framework to report.