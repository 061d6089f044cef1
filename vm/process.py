"""
procvm Process

One invocation of a compiled procedure: a byte cursor, a fixed register
file, local slots, the caller's arguments and a call-argument stack.
"""

import logging
import struct
from typing import List, Optional, Sequence

import numpy as np

from compiler.bytecode import (
    OpCode, ValueTag, ARITHMETIC_OPS, COMPARISON_OPS, decode_opcode,
)
from .errors import InvalidOpcodeError, TruncatedBytecodeError, RegisterIndexError
from .value import Register, REGISTER_DTYPE

logger = logging.getLogger(__name__)

# Register file and local slot sizes
NUM_REGISTERS = 16
NUM_LOCALS = 16

_UFUNCS = {
    OpCode.ADD: np.add,
    OpCode.SUB: np.subtract,
    OpCode.MUL: np.multiply,
    OpCode.DIV: np.divide,
    OpCode.LESS_THAN: np.less,
    OpCode.LESS_OR_EQUAL: np.less_equal,
    OpCode.EQUAL: np.equal,
    OpCode.GREATER_OR_EQUAL: np.greater_equal,
    OpCode.GREATER_THAN: np.greater,
}

_ONE_BITS = int(np.float32(1.0).view(np.uint32))
_ZERO_BITS = 0


class Process:
    """
    Executes a single bytecode buffer.

    Registers and locals start out null. Arguments are read-only. The
    result is null unless a RETURN has designated a register.
    """

    def __init__(self, pid: int, bytecode: bytes, args: Sequence[Register] = ()):
        self.pid = pid
        self.bytecode = bytecode
        self.args = tuple(args)
        self.pc = 0
        self.registers = np.zeros(NUM_REGISTERS, dtype=REGISTER_DTYPE)
        self.locals = np.zeros(NUM_LOCALS, dtype=REGISTER_DTYPE)
        self.stack: List[Register] = []
        self.return_register: Optional[int] = None
        self.halted = False

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(self, vm) -> None:
        """Run until HALT."""
        while self.execute_one(vm):
            pass

    def execute_one(self, vm) -> bool:
        """
        Execute one instruction.

        Returns:
            False once HALT has executed, True otherwise

        Raises:
            VMFault: on malformed bytecode
        """
        start = self.pc
        opcode = decode_opcode(self._read('<B', 1))

        if vm.trace:
            logger.debug("pid %d %04x: %s", self.pid, start, opcode.name)

        if opcode == OpCode.HALT:
            self.halted = True
            return False

        elif opcode == OpCode.LOAD_IMMEDIATE:
            dest = self._read_register()
            tag = self._read('<B', 1)
            value = self._read('<I', 4)
            self._store(dest, tag, value)

        elif opcode == OpCode.LOAD_ARGUMENT:
            index = self._read('<B', 1)
            dest = self._read_register()
            if index < len(self.args):
                arg = self.args[index]
            else:
                arg = Register.null()
            self._store(dest, arg.tag, arg.value)

        elif opcode in ARITHMETIC_OPS:
            left = self._float(self._read_register())
            right = self._float(self._read_register())
            dest = self._read_register()
            with np.errstate(all='ignore'):
                result = np.float32(_UFUNCS[opcode](left, right))
            self._store(dest, ValueTag.NUMBER, int(result.view(np.uint32)))

        elif opcode in COMPARISON_OPS:
            left = self._float(self._read_register())
            right = self._float(self._read_register())
            dest = self._read_register()
            with np.errstate(all='ignore'):
                truth = bool(_UFUNCS[opcode](left, right))
            self._store(dest, ValueTag.NUMBER, _ONE_BITS if truth else _ZERO_BITS)

        elif opcode == OpCode.PUSH:
            self.stack.append(self.get_register(self._read_register()))

        elif opcode == OpCode.CALL:
            proc_id = self._read('<I', 4)
            dest = self._read_register()
            args = list(self.stack)
            self.stack.clear()
            result = vm.run_program(proc_id, args)
            self._store(dest, result.tag, result.value)

        elif opcode == OpCode.RETURN:
            self.return_register = self._read_register()

        elif opcode == OpCode.LOAD_LOCAL:
            index = self._read_local()
            dest = self._read_register()
            self.registers[dest] = self.locals[index]

        elif opcode == OpCode.STORE_LOCAL:
            src = self._read_register()
            index = self._read_local()
            self.locals[index] = self.registers[src]

        elif opcode == OpCode.GET_FIELD:
            src = self._read_register()
            field_id = self._read('<H', 2)
            dest = self._read_register()
            result = vm.host.get_field(self.get_register(src), field_id)
            self._store(dest, result.tag, result.value)

        elif opcode == OpCode.JUMP:
            self.pc = self._read('<I', 4)

        elif opcode == OpCode.JUMP_TRUE:
            cond = self._read_register()
            target = self._read('<I', 4)
            if self.registers[cond]['value'] != 0:
                self.pc = target

        elif opcode == OpCode.JUMP_FALSE:
            cond = self._read_register()
            target = self._read('<I', 4)
            if self.registers[cond]['value'] == 0:
                self.pc = target

        else:
            # Unknown bytes and the reserved SET_FIELD
            raise InvalidOpcodeError(
                f"Invalid opcode 0x{self.bytecode[start]:02x}", pc=start
            )

        return True

    # =========================================================================
    # State access
    # =========================================================================

    def get_register(self, reg: int) -> Register:
        return Register.from_row(self.registers[reg])

    def get_local(self, index: int) -> Register:
        return Register.from_row(self.locals[index])

    def get_return_value(self) -> Register:
        """Contents of the designated return register, or null without a RETURN."""
        if self.return_register is None:
            return Register.null()
        return self.get_register(self.return_register)

    # =========================================================================
    # Decoding helpers
    # =========================================================================

    def _read(self, fmt: str, size: int) -> int:
        if self.pc + size > len(self.bytecode):
            raise TruncatedBytecodeError("Unexpected end of bytecode", pc=self.pc)
        value = struct.unpack_from(fmt, self.bytecode, self.pc)[0]
        self.pc += size
        return value

    def _read_register(self) -> int:
        reg = self._read('<B', 1)
        if reg >= NUM_REGISTERS:
            raise RegisterIndexError(f"Register index out of range: r{reg}", pc=self.pc - 1)
        return reg

    def _read_local(self) -> int:
        index = self._read('<B', 1)
        if index >= NUM_LOCALS:
            raise RegisterIndexError(f"Local index out of range: {index}", pc=self.pc - 1)
        return index

    def _float(self, reg: int) -> np.float32:
        """Reinterpret a register payload as float32, whatever its tag."""
        return np.uint32(self.registers[reg]['value']).view(np.float32)

    def _store(self, dest: int, tag: int, value: int) -> None:
        self.registers[dest] = (int(tag), int(value))

    def __repr__(self) -> str:
        return f"Process(pid={self.pid}, pc=0x{self.pc:04x}, halted={self.halted})"
