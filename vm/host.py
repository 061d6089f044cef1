"""
procvm Host Object Model

The boundary between the VM and the process that embeds it: string
interning, field lookup on live objects, and native procedure calls.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from compiler.bytecode import ValueTag
from .errors import HostError, UnknownProcedureError
from .value import Register

logger = logging.getLogger(__name__)

# Tags whose payload is an object id understood by get_field
OBJECT_TAGS = (ValueTag.DATUM, ValueTag.LIST)


class HostModel(ABC):
    """Capabilities the VM needs from its host."""

    @abstractmethod
    def intern_string(self, s: str) -> int:
        """Return the id of s, adding it to the string table if needed."""
        pass

    @abstractmethod
    def get_field(self, handle: Register, field_id: int) -> Register:
        """Read the field named by an interned string id off an object."""
        pass

    @abstractmethod
    def call_proc(self, proc_id: int, args: Sequence[Register]) -> Register:
        """
        Run a native procedure.

        Raises:
            UnknownProcedureError: if the host has no procedure with this id
        """
        pass


@dataclass
class NativeProc:
    """A host procedure callable from bytecode."""

    proc_id: int
    name: str
    func: Callable[..., Any]


class ObjectModel(HostModel):
    """
    In-process host: a string table, objects with named fields, and native
    procedures implemented as Python callables.

    Native procedures receive Python values (see to_python) and may return
    anything from_python accepts.

    Example:
        host = ObjectModel()
        mob = host.new_object(health=30)
        host.register_proc(7, lambda x: x * 2, name="double")
    """

    def __init__(self):
        self._strings: List[str] = []
        self._string_ids: Dict[str, int] = {}
        self._objects: Dict[int, Dict[int, Register]] = {}
        self._procs: Dict[int, NativeProc] = {}

    # =========================================================================
    # Strings
    # =========================================================================

    def intern_string(self, s: str) -> int:
        """Intern a string, returning its id."""
        if s in self._string_ids:
            return self._string_ids[s]

        string_id = len(self._strings)
        self._strings.append(s)
        self._string_ids[s] = string_id
        return string_id

    def get_string(self, string_id: int) -> str:
        """Look up an interned string by id."""
        if 0 <= string_id < len(self._strings):
            return self._strings[string_id]
        raise HostError(f"Unknown string id: {string_id}")

    # =========================================================================
    # Objects
    # =========================================================================

    def new_object(self, tag: int = ValueTag.DATUM, **fields: Any) -> Register:
        """Create an object and return its handle."""
        if tag not in OBJECT_TAGS:
            raise HostError(f"Tag 0x{tag:02x} is not an object tag")

        object_id = len(self._objects) + 1
        self._objects[object_id] = {}
        handle = Register(tag, object_id)
        for name, value in fields.items():
            self.set_field(handle, name, value)
        return handle

    def set_field(self, handle: Register, name: str, value: Any) -> None:
        """Write a field on an object."""
        fields = self._fields_of(handle)
        fields[self.intern_string(name)] = self.from_python(value)

    def get_field(self, handle: Register, field_id: int) -> Register:
        """Read a field; fields that were never set read as null."""
        fields = self._fields_of(handle)
        return fields.get(field_id, Register.null())

    def _fields_of(self, handle: Register) -> Dict[int, Register]:
        if handle.tag not in OBJECT_TAGS:
            raise HostError(f"Cannot access fields of {handle!r}")
        fields = self._objects.get(handle.value)
        if fields is None:
            raise HostError(f"Unknown object id: {handle.value}")
        return fields

    # =========================================================================
    # Native procedures
    # =========================================================================

    def register_proc(self, proc_id: int, func: Callable[..., Any],
                      name: Optional[str] = None) -> NativeProc:
        """Register a Python callable as native procedure proc_id."""
        proc = NativeProc(proc_id, name or getattr(func, '__name__', f"proc{proc_id}"), func)
        self._procs[proc_id] = proc
        return proc

    def get_proc(self, proc_id: int) -> Optional[NativeProc]:
        return self._procs.get(proc_id)

    def call_proc(self, proc_id: int, args: Sequence[Register]) -> Register:
        """Convert arguments, run the native procedure, convert the result."""
        proc = self._procs.get(proc_id)
        if proc is None:
            raise UnknownProcedureError(proc_id)

        logger.debug("native call %s(%s)", proc.name, ", ".join(repr(a) for a in args))
        result = proc.func(*[self.to_python(arg) for arg in args])
        return self.from_python(result)

    # =========================================================================
    # Conversion
    # =========================================================================

    def to_python(self, value: Register) -> Any:
        """
        Convert a register to a Python value.

        Numbers become float, strings become str, null becomes None. Object
        handles and unknown kinds are passed through as Registers.
        """
        if value.tag == ValueTag.NULL:
            return None
        if value.tag == ValueTag.NUMBER:
            return value.as_float()
        if value.tag == ValueTag.STRING:
            return self.get_string(value.value)
        return value

    def from_python(self, value: Any) -> Register:
        """Convert a Python value to a register."""
        if value is None:
            return Register.null()
        if isinstance(value, Register):
            return value
        if isinstance(value, (bool, int, float)):
            return Register.number(float(value))
        if isinstance(value, str):
            return Register(ValueTag.STRING, self.intern_string(value))
        raise TypeError(f"Cannot convert {type(value).__name__} to Register")
