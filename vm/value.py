"""
procvm Values

Tagged (tag, value) registers, the shape shared by the VM and the host.
"""

from dataclasses import dataclass

import numpy as np

from compiler.bytecode import ValueTag, float32_bits, bits_float32


# numpy layout of a register file row
REGISTER_DTYPE = np.dtype([
    ('tag', np.uint32),
    ('value', np.uint32),
])


@dataclass(frozen=True)
class Register:
    """
    A tagged value.

    For numbers, value holds the IEEE-754 float32 bit pattern. For strings
    and objects it holds an opaque host-assigned id.
    """

    tag: int = ValueTag.NULL
    value: int = 0

    @classmethod
    def null(cls) -> 'Register':
        return cls(ValueTag.NULL, 0)

    @classmethod
    def number(cls, value: float) -> 'Register':
        """Create a number register (value rounded to float32)."""
        return cls(ValueTag.NUMBER, float32_bits(value))

    @classmethod
    def from_row(cls, row) -> 'Register':
        """Copy a row out of a REGISTER_DTYPE array."""
        return cls(int(row['tag']), int(row['value']))

    def is_null(self) -> bool:
        return self.tag == ValueTag.NULL

    def is_number(self) -> bool:
        return self.tag == ValueTag.NUMBER

    def as_float(self) -> float:
        """Reinterpret the payload as float32, whatever the tag."""
        return bits_float32(self.value)

    def __repr__(self) -> str:
        try:
            tag_name = ValueTag(self.tag).name.lower()
        except ValueError:
            tag_name = f"tag0x{self.tag:02x}"

        if self.tag == ValueTag.NUMBER:
            return f"Register(number, {self.as_float()!r})"
        if self.tag == ValueTag.NULL and self.value == 0:
            return "Register(null)"
        return f"Register({tag_name}, {self.value})"
