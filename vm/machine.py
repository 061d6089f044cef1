"""
procvm Virtual Machine

The program registry: procedure id -> bytecode, with native fallback to the
host for ids that have no compiled buffer.
"""

import logging
from typing import Dict, Optional, Sequence

from .errors import CallDepthError, HostError
from .host import HostModel, ObjectModel
from .process import Process
from .value import Register

logger = logging.getLogger(__name__)

DEFAULT_MAX_CALL_DEPTH = 128


class VM:
    """
    Runs compiled procedures.

    Args:
        host: object model used for field access and native procedures.
            Defaults to a fresh ObjectModel.
        max_call_depth: maximum number of nested processes
        trace: log every executed instruction at DEBUG level
    """

    def __init__(self, host: Optional[HostModel] = None,
                 max_call_depth: int = DEFAULT_MAX_CALL_DEPTH, trace: bool = False):
        self.host = host if host is not None else ObjectModel()
        self.max_call_depth = max_call_depth
        self.trace = trace
        self.programs: Dict[int, bytes] = {}
        self.depth = 0
        self.current_pid: Optional[int] = None
        self._next_pid = 0

    def add_program(self, proc_id: int, bytecode: bytes) -> None:
        """Register a buffer under proc_id, replacing any previous one."""
        if proc_id in self.programs:
            logger.debug("replacing program %d", proc_id)
        else:
            logger.debug("adding program %d (%d bytes)", proc_id, len(bytecode))
        self.programs[proc_id] = bytes(bytecode)

    def has_program(self, proc_id: int) -> bool:
        return proc_id in self.programs

    def run_program(self, proc_id: int, args: Sequence[Register] = ()) -> Register:
        """
        Run a procedure to completion and return its result.

        Ids without a compiled buffer are forwarded to host.call_proc.

        Raises:
            VMFault: malformed bytecode or call depth exceeded
            UnknownProcedureError: neither compiled nor native
        """
        code = self.programs.get(proc_id)
        if code is None:
            logger.debug("program %d not compiled, calling host", proc_id)
            result = self.host.call_proc(proc_id, list(args))
            if not isinstance(result, Register):
                raise HostError(
                    f"native procedure {proc_id} returned {type(result).__name__}, "
                    f"expected Register"
                )
            return result

        if self.depth >= self.max_call_depth:
            raise CallDepthError(f"Call depth limit of {self.max_call_depth} exceeded "
                                 f"calling program {proc_id}")

        process = Process(self._allocate_pid(), code, args)
        parent = self.current_pid
        self.current_pid = process.pid
        self.depth += 1
        try:
            process.execute(self)
        finally:
            self.depth -= 1
            self.current_pid = parent

        return process.get_return_value()

    def _allocate_pid(self) -> int:
        pid = self._next_pid
        self._next_pid += 1
        return pid

    def __repr__(self) -> str:
        return f"VM(programs={sorted(self.programs)}, depth={self.depth})"
