"""Guarded allocator that detects leaks and buffer overruns during tests."""

from __future__ import annotations

from .config import Config

_END = b"END\0"
_HEAP_BASE = 0x1000
_SYSTEM_BASE = 0x100000


class TestFailure(AssertionError):
    """Raised when an allocation check fails the running test."""

    __test__ = False


class GuardedAllocator:
    """Simulated heap whose blocks carry a header guard and an end marker.

    Each block is laid out as a header of two pointer-sized words (the
    requested size and a guard word that must stay zero), the user data,
    and the bytes ``END\\0``. With a fixed heap, blocks come from the end of
    a single array and are only reclaimed in LIFO order.
    """

    def __init__(self, config: Config | None = None, heap_size: int | None = None):
        self.config = config if config is not None else Config()
        self._word = self.config.malloc_alignment()
        self._guard_size = 2 * self._word
        if heap_size is None and self.config.exclude_stdlib_malloc:
            heap_size = self.config.internal_heap_size_bytes
        if heap_size is not None and heap_size <= 0:
            raise ValueError("heap size must be positive")
        self.heap_size = heap_size
        self._heap = bytearray(heap_size) if heap_size is not None else None
        self._heap_index = 0
        self._blocks: dict[int, bytearray] = {}
        self._next_address = _SYSTEM_BASE
        self._live: dict[int, int] = {}
        self._count = 0
        self._countdown: int | None = None

    # -- test lifecycle -------------------------------------------------

    def start_test(self) -> None:
        """Reset the allocation count and cancel any forced failure."""
        self._count = 0
        self._countdown = None

    def end_test(self) -> None:
        """Cancel forced failures and fail if any allocation is outstanding."""
        self._countdown = None
        if self._count != 0:
            raise TestFailure("This test leaks!")

    def fail_after(self, countdown: int) -> None:
        """Let ``countdown`` more allocations succeed, then fail them all."""
        self._countdown = None if countdown < 0 else countdown

    def outstanding(self) -> int:
        """Number of allocations not yet released."""
        return self._count

    # -- allocation -----------------------------------------------------

    def malloc(self, size: int) -> int | None:
        """Allocate ``size`` bytes; return the address or None on failure."""
        size = self._check_size(size)
        total = self._guard_size + self._round_up(size + len(_END))
        if self._countdown is not None:
            if self._countdown == 0:
                return None
            self._countdown -= 1
        if size == 0:
            return None
        guard = self._reserve(total)
        if guard is None:
            return None
        self._count += 1
        mem = guard + self._guard_size
        self._live[mem] = size
        self.write(guard, size.to_bytes(self._word, "little") + bytes(self._word))
        self.write(mem + size, _END)
        return mem

    def calloc(self, num: int, size: int) -> int | None:
        """Allocate ``num * size`` zeroed bytes."""
        total = self._check_size(num) * self._check_size(size)
        mem = self.malloc(total)
        if mem is None:
            return None
        self.write(mem, bytes(total))
        return mem

    def realloc(self, address: int | None, size: int) -> int | None:
        """Resize a block, moving its contents if it has to grow elsewhere."""
        if address is None:
            return self.malloc(size)
        size = self._check_size(size)
        self._require_live(address)
        if self._is_overrun(address):
            self._release(address)
            raise TestFailure("Buffer overrun detected during realloc()")
        if size == 0:
            self._release(address)
            return None
        old_size = self._live[address]
        if old_size >= size:
            return address
        if self._heap is not None:
            old_total = self._round_up(old_size + len(_END))
            top = _HEAP_BASE + self._heap_index - old_total
            grown_end = self._heap_index - old_total + self._round_up(size + len(_END))
            if address == top and grown_end <= self.heap_size:
                self._release(address)
                return self.malloc(size)
        new = self.malloc(size)
        if new is None:
            return None
        self.write(new, self.read(address, old_size))
        self._release(address)
        return new

    def free(self, address: int | None) -> None:
        """Release a block, failing the test if its guards were overwritten."""
        if address is None:
            return
        self._require_live(address)
        overrun = self._is_overrun(address)
        self._release(address)
        if overrun:
            raise TestFailure("Buffer overrun detected during free()")

    # -- memory access --------------------------------------------------

    def read(self, address: int, length: int) -> bytes:
        """Return ``length`` bytes starting at ``address``."""
        if length < 0:
            raise ValueError("length must not be negative")
        buffer, offset = self._locate(address, length)
        return bytes(buffer[offset:offset + length])

    def write(self, address: int, data: bytes) -> None:
        """Store ``data`` starting at ``address``."""
        data = bytes(data)
        buffer, offset = self._locate(address, len(data))
        buffer[offset:offset + len(data)] = data

    # -- internals ------------------------------------------------------

    def _check_size(self, size: int) -> int:
        if isinstance(size, bool) or not isinstance(size, int):
            raise TypeError(f"size must be an integer, got {size!r}")
        if size < 0 or size >= 1 << self.config.pointer_width:
            raise ValueError(f"size {size} out of range")
        return size

    def _round_up(self, size: int) -> int:
        return -(-size // self._word) * self._word

    def _reserve(self, total: int) -> int | None:
        if self._heap is not None:
            if self._heap_index + total > self.heap_size:
                return None
            address = _HEAP_BASE + self._heap_index
            self._heap_index += total
            return address
        address = self._next_address
        self._blocks[address] = bytearray(total)
        self._next_address += total + self._word
        return address

    def _release(self, mem: int) -> None:
        size = self._live.pop(mem)
        self._count -= 1
        if self._heap is not None:
            block_size = self._round_up(size + len(_END))
            if mem == _HEAP_BASE + self._heap_index - block_size:
                self._heap_index -= self._guard_size + block_size
        else:
            del self._blocks[mem - self._guard_size]

    def _is_overrun(self, mem: int) -> bool:
        header = self.read(mem - self._guard_size, self._guard_size)
        size_field = int.from_bytes(header[: self._word], "little")
        guard_space = int.from_bytes(header[self._word:], "little")
        size = self._live[mem]
        return (
            guard_space != 0
            or size_field != size
            or self.read(mem + size, len(_END)) != _END
        )

    def _require_live(self, address: int) -> None:
        if address not in self._live:
            raise ValueError(f"address {address:#x} is not an allocated block")

    def _locate(self, address: int, length: int) -> tuple[bytearray, int]:
        if self._heap is not None:
            offset = address - _HEAP_BASE
            if offset < 0 or offset + length > len(self._heap):
                raise ValueError(f"address {address:#x} is outside the heap")
            return self._heap, offset
        for start, buffer in self._blocks.items():
            if start <= address and address + length <= start + len(buffer):
                return buffer, address - start
        raise ValueError(f"address {address:#x} is not in an allocated block")