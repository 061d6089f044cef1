"""
Tests for the compile-time register allocator.
"""

import pytest
from compiler.registers import RegisterAllocator, MAX_REGISTERS
from compiler.errors import RegisterExhaustedError


class TestRegisterAllocator:

    def test_monotonic_when_nothing_released(self):
        regs = RegisterAllocator()
        assert [regs.acquire() for _ in range(4)] == [0, 1, 2, 3]

    def test_released_ids_are_reused_smallest_first(self):
        regs = RegisterAllocator()
        for _ in range(4):
            regs.acquire()
        regs.release(2)
        regs.release(0)
        assert regs.free == [0, 2]
        assert regs.acquire() == 0
        assert regs.acquire() == 2
        assert regs.acquire() == 4

    def test_high_water(self):
        regs = RegisterAllocator()
        a = regs.acquire()
        b = regs.acquire()
        regs.release(a)
        regs.release(b)
        regs.acquire()
        assert regs.high_water == 2
        assert regs.live == {0}

    def test_exhaustion(self):
        regs = RegisterAllocator()
        for _ in range(MAX_REGISTERS):
            regs.acquire()
        with pytest.raises(RegisterExhaustedError, match="register file exhausted"):
            regs.acquire()

    def test_release_after_exhaustion_recovers(self):
        regs = RegisterAllocator(limit=2)
        regs.acquire()
        regs.acquire()
        regs.release(1)
        assert regs.acquire() == 1

    @pytest.mark.parametrize("reg", [0, 5])
    def test_release_non_live(self, reg):
        regs = RegisterAllocator()
        with pytest.raises(ValueError):
            regs.release(reg)

    def test_double_release(self):
        regs = RegisterAllocator()
        reg = regs.acquire()
        regs.release(reg)
        with pytest.raises(ValueError):
            regs.release(reg)
