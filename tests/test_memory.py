import pytest

from guardheap import memory
from guardheap.config import Config
from guardheap.memory import GuardedAllocator

HEAP_SIZE = 256


@pytest.fixture(params=["system", "fixed"])
def alloc(request):
    config = Config(pointer_width=64, exclude_stdlib_malloc=request.param == "fixed")
    allocator = GuardedAllocator(config, None)
    allocator.start_test()
    yield allocator
    allocator.end_test()


@pytest.fixture(params=[32, 64])
def heap(request):
    config = Config(pointer_width=request.param, exclude_stdlib_malloc=True)
    allocator = GuardedAllocator(config, None)
    allocator.start_test()
    yield allocator
    allocator.end_test()


def _assert_all_free_lifo(allocator, first):
    probe = allocator.malloc(10)
    allocator.free(probe)
    assert probe == first, "Memory was stranded, free in LIFO order"


def test_force_malloc_fail(alloc):
    alloc.fail_after(1)
    m = alloc.malloc(10)
    mfails = alloc.malloc(10)
    assert m is not None
    assert mfails is None
    alloc.free(m)
    assert alloc.outstanding() == 0


def test_countdown_spent_before_zero_size(alloc):
    alloc.fail_after(1)
    assert alloc.malloc(0) is None
    assert alloc.malloc(10) is None


def test_realloc_smaller_is_unchanged(alloc):
    m1 = alloc.malloc(10)
    m2 = alloc.realloc(m1, 5)
    assert m1 is not None
    assert m2 == m1
    alloc.free(m2)


def test_realloc_same_is_unchanged(alloc):
    m1 = alloc.malloc(10)
    m2 = alloc.realloc(m1, 10)
    assert m1 is not None
    assert m2 == m1
    alloc.free(m2)


def test_realloc_larger_needed(alloc):
    m1 = alloc.malloc(10)
    alloc.write(m1, b"123456789\0")
    m2 = alloc.realloc(m1, 15)
    assert alloc.read(m2, 10) == b"123456789\0"
    alloc.free(m2)


def test_realloc_null_pointer_is_like_malloc(alloc):
    m = alloc.realloc(None, 15)
    assert alloc.outstanding() == 1
    alloc.free(m)
    assert alloc.outstanding() == 0


def test_realloc_size_zero_frees_mem_and_returns_none(alloc):
    m1 = alloc.malloc(10)
    assert alloc.realloc(m1, 0) is None
    assert alloc.outstanding() == 0


def test_calloc_fills_with_zero(alloc):
    dirty = alloc.malloc(3)
    alloc.write(dirty, b"\x11\x22\x33")
    alloc.free(dirty)
    m = alloc.calloc(3, 1)
    assert alloc.read(m, 3) == b"\x00\x00\x00"
    alloc.free(m)


def test_free_none_is_safe(alloc):
    alloc.free(None)
    assert alloc.outstanding() == 0


def test_end_marker_follows_data(alloc):
    m = alloc.malloc(10)
    assert alloc.read(m + 10, 4) == b"END\0"
    alloc.free(m)


def test_detects_leak(alloc):
    m = alloc.malloc(10)
    with pytest.raises(memory.TestFailure, match="This test leaks!"):
        alloc.end_test()
    alloc.free(m)
    assert alloc.outstanding() == 0


def test_buffer_overrun_found_during_free(alloc):
    m = alloc.malloc(10)
    alloc.write(m + 10, b"\xff")
    with pytest.raises(memory.TestFailure, match=r"Buffer overrun detected during free\(\)"):
        alloc.free(m)
    assert alloc.outstanding() == 0


def test_buffer_overrun_found_during_realloc(alloc):
    m = alloc.malloc(10)
    alloc.write(m + 10, b"\xff")
    with pytest.raises(memory.TestFailure, match=r"Buffer overrun detected during realloc\(\)"):
        alloc.realloc(m, 100)
    assert alloc.outstanding() == 0


def test_buffer_guard_write_found_during_free(alloc):
    m = alloc.malloc(10)
    alloc.write(m - 1, b"\x00")
    alloc.write(m - 2, b"\x01")
    with pytest.raises(memory.TestFailure, match=r"Buffer overrun detected during free\(\)"):
        alloc.free(m)
    assert alloc.outstanding() == 0


def test_buffer_guard_write_found_during_realloc(alloc):
    m = alloc.malloc(10)
    alloc.write(m - 1, b"\x0a")
    with pytest.raises(memory.TestFailure, match=r"Buffer overrun detected during realloc\(\)"):
        alloc.realloc(m, 100)
    assert alloc.outstanding() == 0


def test_guard_write_of_zero_goes_unnoticed(alloc):
    m = alloc.malloc(10)
    alloc.write(m - 1, b"\x00")
    alloc.free(m)
    assert alloc.outstanding() == 0


def test_free_of_unknown_address_rejected(alloc):
    with pytest.raises(ValueError):
        alloc.free(0x42)


def test_negative_size_rejected(alloc):
    with pytest.raises(ValueError):
        alloc.malloc(-1)


def test_start_test_resets_count_and_countdown(alloc):
    alloc.fail_after(0)
    alloc.malloc(10)
    alloc.start_test()
    assert alloc.outstanding() == 0
    m = alloc.malloc(10)
    assert alloc.outstanding() == 1
    alloc.free(m)


def test_malloc_past_buffer_fails(heap):
    m = heap.malloc(HEAP_SIZE // 2 + 1)
    n = heap.malloc(HEAP_SIZE // 2)
    heap.free(m)
    assert m is not None
    assert n is None
    _assert_all_free_lifo(heap, m)


def test_calloc_past_buffer_fails(heap):
    m = heap.calloc(1, HEAP_SIZE // 2 + 1)
    n = heap.calloc(1, HEAP_SIZE // 2)
    heap.free(m)
    assert m is not None
    assert n is None
    _assert_all_free_lifo(heap, m)


def test_malloc_then_realloc_grows_memory_in_place(heap):
    m = heap.malloc(HEAP_SIZE // 2 + 1)
    n = heap.realloc(m, HEAP_SIZE // 2 + 9)
    heap.free(n)
    assert m is not None
    assert n == m
    _assert_all_free_lifo(heap, m)


def test_realloc_fail_does_not_free_mem(heap):
    m = heap.malloc(HEAP_SIZE // 2)
    n1 = heap.malloc(10)
    out_of_mem = heap.realloc(n1, HEAP_SIZE // 2 + 1)
    n2 = heap.malloc(10)

    heap.free(n2)
    if out_of_mem is None:
        heap.free(n1)
    heap.free(m)

    assert m is not None
    assert out_of_mem is None
    assert n2 != n1
    _assert_all_free_lifo(heap, m)


def test_explicit_heap_size_limits_allocation():
    allocator = GuardedAllocator(Config(), 64)
    allocator.start_test()
    assert allocator.malloc(100) is None
    allocator.end_test()
    assert allocator.outstanding() == 0


def test_read_outside_fixed_heap_rejected(heap):
    with pytest.raises(ValueError):
        heap.read(0, 4)


def test_read_of_freed_system_block_rejected():
    allocator = GuardedAllocator(Config(), None)
    m = allocator.malloc(8)
    allocator.free(m)
    with pytest.raises(ValueError):
        allocator.read(m, 1)


def test_zero_heap_size_rejected():
    with pytest.raises(ValueError):
        GuardedAllocator(Config(), 0)