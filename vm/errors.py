"""
procvm Runtime Errors

Defines exception classes raised while executing bytecode.
"""

from typing import Optional

from compiler.errors import ProcVMError


class VMError(ProcVMError):
    """Base exception for errors raised by the VM or the host model."""

    def __init__(self, message: str, pc: Optional[int] = None):
        self.pc = pc
        super().__init__(message)

    def _format_message(self) -> str:
        if self.pc is not None:
            return f"{self.message} (at pc 0x{self.pc:04x})"
        return self.message


class VMFault(VMError):
    """Malformed bytecode. Fatal for the invocation that hit it."""
    pass


class InvalidOpcodeError(VMFault):
    """An opcode byte that is unknown or reserved."""
    pass


class TruncatedBytecodeError(VMFault):
    """The cursor ran past the end of the buffer."""
    pass


class RegisterIndexError(VMFault):
    """A register or local index outside the fixed register file."""
    pass


class CallDepthError(VMFault):
    """Nested CALLs went deeper than the VM allows."""
    pass


class UnknownProcedureError(VMError):
    """A procedure id that is neither compiled nor known to the host."""

    def __init__(self, proc_id: int):
        self.proc_id = proc_id
        super().__init__(f"Unknown procedure id: {proc_id}")


class HostError(VMError):
    """The host object model rejected a request."""
    pass
