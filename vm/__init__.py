"""
procvm Virtual Machine Package

Executes register bytecode produced by the compiler package.
"""

from .value import Register, REGISTER_DTYPE
from .host import HostModel, ObjectModel, NativeProc
from .process import Process, NUM_REGISTERS, NUM_LOCALS
from .machine import VM, DEFAULT_MAX_CALL_DEPTH
from .errors import (
    VMError, VMFault, InvalidOpcodeError, TruncatedBytecodeError,
    RegisterIndexError, CallDepthError, UnknownProcedureError, HostError,
)
from compiler.bytecode import ValueTag

__all__ = [
    "Register",
    "REGISTER_DTYPE",
    "ValueTag",
    "HostModel",
    "ObjectModel",
    "NativeProc",
    "Process",
    "NUM_REGISTERS",
    "NUM_LOCALS",
    "VM",
    "DEFAULT_MAX_CALL_DEPTH",
    "VMError",
    "VMFault",
    "InvalidOpcodeError",
    "TruncatedBytecodeError",
    "RegisterIndexError",
    "CallDepthError",
    "UnknownProcedureError",
    "HostError",
]
