"""
procvm Bytecode Format

Defines opcodes, their operand layout, the buffer builder used by the code
generator, and a disassembler.

Layout: the opcode byte is followed by its operands in table order. Registers
and small indices are 1 byte; field name ids are 2 bytes; immediates,
procedure ids and jump targets are 4 bytes. Multi-byte operands are
little-endian. Jump targets are absolute byte offsets into the same buffer.
"""

from enum import IntEnum
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple
import math
import struct

import numpy as np


class ValueTag(IntEnum):
    """Runtime kind tags carried by registers (the LOAD_IMMEDIATE type byte)."""

    NULL = 0x00
    STRING = 0x06
    LIST = 0x0F
    DATUM = 0x21
    NUMBER = 0x2A


class OpCode(IntEnum):
    """procvm opcodes."""

    HALT = 0x00
    LOAD_IMMEDIATE = 0x01    # dest, type (u8), value (u32)
    LOAD_ARGUMENT = 0x02     # arg index (u8), dest
    ADD = 0x03               # left, right, dest
    SUB = 0x04
    MUL = 0x05
    DIV = 0x06
    PUSH = 0x07              # src
    CALL = 0x08              # proc id (u32), dest
    RETURN = 0x09            # src
    LOAD_LOCAL = 0x0A        # local index (u8), dest
    STORE_LOCAL = 0x0B       # src, local index (u8)
    GET_FIELD = 0x0C         # src, field name id (u16), dest
    SET_FIELD = 0x0D         # reserved: never emitted, never executed
    LESS_THAN = 0x0E         # left, right, dest
    LESS_OR_EQUAL = 0x0F
    EQUAL = 0x10
    GREATER_OR_EQUAL = 0x11
    GREATER_THAN = 0x12
    JUMP = 0x13              # target (u32)
    JUMP_TRUE = 0x14         # cond, target (u32)
    JUMP_FALSE = 0x15        # cond, target (u32)

    # Not an encodable instruction: result of decoding an unknown byte
    INVALID = 0xFF


# Operand kinds
REG = 'reg'
U8 = 'u8'
U16 = 'u16'
U32 = 'u32'
ADDR = 'addr'

OPERAND_FORMATS = {
    REG: '<B',
    U8: '<B',
    U16: '<H',
    U32: '<I',
    ADDR: '<I',
}

OPERAND_SIZES = {kind: struct.calcsize(fmt) for kind, fmt in OPERAND_FORMATS.items()}

_BINARY = (REG, REG, REG)

OPERANDS: Dict[OpCode, Tuple[str, ...]] = {
    OpCode.HALT: (),
    OpCode.LOAD_IMMEDIATE: (REG, U8, U32),
    OpCode.LOAD_ARGUMENT: (U8, REG),
    OpCode.ADD: _BINARY,
    OpCode.SUB: _BINARY,
    OpCode.MUL: _BINARY,
    OpCode.DIV: _BINARY,
    OpCode.PUSH: (REG,),
    OpCode.CALL: (U32, REG),
    OpCode.RETURN: (REG,),
    OpCode.LOAD_LOCAL: (U8, REG),
    OpCode.STORE_LOCAL: (REG, U8),
    OpCode.GET_FIELD: (REG, U16, REG),
    OpCode.SET_FIELD: (REG, U16, REG),
    OpCode.LESS_THAN: _BINARY,
    OpCode.LESS_OR_EQUAL: _BINARY,
    OpCode.EQUAL: _BINARY,
    OpCode.GREATER_OR_EQUAL: _BINARY,
    OpCode.GREATER_THAN: _BINARY,
    OpCode.JUMP: (ADDR,),
    OpCode.JUMP_TRUE: (REG, ADDR),
    OpCode.JUMP_FALSE: (REG, ADDR),
}

_DECODE_TABLE: Dict[int, OpCode] = {
    int(op): op for op in OpCode if op is not OpCode.INVALID
}

ARITHMETIC_OPS = (OpCode.ADD, OpCode.SUB, OpCode.MUL, OpCode.DIV)
COMPARISON_OPS = (
    OpCode.LESS_THAN, OpCode.LESS_OR_EQUAL, OpCode.EQUAL,
    OpCode.GREATER_OR_EQUAL, OpCode.GREATER_THAN,
)
JUMP_OPS = (OpCode.JUMP, OpCode.JUMP_TRUE, OpCode.JUMP_FALSE)


def decode_opcode(byte: int) -> OpCode:
    """Map a raw byte to its opcode; unknown bytes map to OpCode.INVALID."""
    return _DECODE_TABLE.get(byte, OpCode.INVALID)


def instruction_size(opcode: OpCode) -> int:
    """Total encoded size of an instruction, opcode byte included."""
    return 1 + sum(OPERAND_SIZES[kind] for kind in OPERANDS[opcode])


def float32_bits(value: float) -> int:
    """Bit pattern of value rounded to an IEEE-754 float32; out of range saturates to inf."""
    try:
        value = float(value)
    except OverflowError:
        value = math.inf if value > 0 else -math.inf
    with np.errstate(over='ignore'):
        return int(np.float32(value).view(np.uint32))


def bits_float32(bits: int) -> float:
    """Float value of a float32 bit pattern."""
    return float(np.uint32(bits).view(np.float32))


class BytecodeBuilder:
    """Append-only buffer that encodes instructions and patches jumps."""

    def __init__(self):
        self.code = bytearray()

    def emit(self, opcode: OpCode, *operands: int) -> int:
        """
        Emit one instruction.

        Returns:
            Offset of the instruction's opcode byte
        """
        kinds = OPERANDS[opcode]
        if len(operands) != len(kinds):
            raise ValueError(
                f"{opcode.name} takes {len(kinds)} operand(s), got {len(operands)}"
            )

        offset = len(self.code)
        self.code.append(opcode)
        for kind, operand in zip(kinds, operands):
            try:
                self.code.extend(struct.pack(OPERAND_FORMATS[kind], operand))
            except struct.error:
                raise ValueError(
                    f"operand {operand!r} out of range for {kind} in {opcode.name}"
                ) from None
        return offset

    def emit_jump(self, opcode: OpCode, *operands: int) -> int:
        """Emit a jump with a placeholder target, returning its offset."""
        return self.emit(opcode, *operands, 0)

    def patch_jump(self, offset: int, target: Optional[int] = None) -> None:
        """Point the jump emitted at offset to target (default: current end)."""
        opcode = decode_opcode(self.code[offset])
        if opcode not in JUMP_OPS:
            raise ValueError(f"no jump at offset {offset}")

        if target is None:
            target = len(self.code)
        address = offset + instruction_size(opcode) - OPERAND_SIZES[ADDR]
        struct.pack_into('<I', self.code, address, target)

    def current_offset(self) -> int:
        """Get the current code offset."""
        return len(self.code)

    def to_bytes(self) -> bytes:
        """Finished, immutable buffer."""
        return bytes(self.code)


@dataclass
class Instruction:
    """One decoded instruction."""

    offset: int
    opcode: OpCode
    operands: Tuple[int, ...]

    @property
    def size(self) -> int:
        if self.opcode is OpCode.INVALID:
            return 1
        return instruction_size(self.opcode)


def iter_instructions(code: bytes) -> Iterator[Instruction]:
    """
    Decode a buffer linearly from offset 0.

    Unknown bytes yield a one-byte INVALID instruction. Decoding stops with a
    ValueError when an instruction's operands run past the end of the buffer.
    """
    offset = 0
    while offset < len(code):
        opcode = decode_opcode(code[offset])
        if opcode is OpCode.INVALID:
            yield Instruction(offset, opcode, (code[offset],))
            offset += 1
            continue

        if offset + instruction_size(opcode) > len(code):
            raise ValueError(f"truncated {opcode.name} at offset {offset:04x}")

        operands = []
        pos = offset + 1
        for kind in OPERANDS[opcode]:
            operands.append(struct.unpack_from(OPERAND_FORMATS[kind], code, pos)[0])
            pos += OPERAND_SIZES[kind]

        yield Instruction(offset, opcode, tuple(operands))
        offset = pos


def disassemble(code: bytes, name: Optional[str] = None) -> str:
    """Disassemble a buffer to human-readable text."""
    lines: List[str] = []
    if name is not None:
        lines.append(f"=== {name} ({len(code)} bytes) ===")

    try:
        for instr in iter_instructions(code):
            lines.append(_format_instruction(instr))
    except ValueError as e:
        lines.append(f"  <{e}>")

    return "\n".join(lines)


def _format_instruction(instr: Instruction) -> str:
    """Render a single instruction."""
    opcode = instr.opcode
    prefix = f"  {instr.offset:04x}: "

    if opcode is OpCode.INVALID:
        return f"{prefix}{'INVALID':16s} 0x{instr.operands[0]:02x}"

    parts = []
    for kind, value in zip(OPERANDS[opcode], instr.operands):
        if kind == REG:
            parts.append(f"r{value}")
        elif kind == ADDR:
            parts.append(f"-> {value:04x}")
        else:
            parts.append(str(value))
    text = f"{prefix}{opcode.name:16s} {', '.join(parts)}".rstrip()

    if opcode is OpCode.LOAD_IMMEDIATE and instr.operands[1] == ValueTag.NUMBER:
        text += f" ; {bits_float32(instr.operands[2])!r}"
    return text
