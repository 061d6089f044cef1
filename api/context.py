"""
procvm Context

The main interface for compiling procedures and calling them from Python.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from compiler import CodeGenerator, parse_source, disassemble
from vm import VM, ObjectModel, Register, DEFAULT_MAX_CALL_DEPTH

logger = logging.getLogger(__name__)


@dataclass
class CompiledProc:
    """
    A compiled procedure.

    Contains bytecode and metadata ready for execution.
    """

    name: str
    proc_id: int
    params: List[str]
    code: bytes = field(repr=False)
    register_count: int = 0
    local_count: int = 0
    filename: Optional[str] = None

    def disassemble(self) -> str:
        """Get disassembly of the bytecode."""
        return disassemble(self.code, name=f"{self.name} #{self.proc_id}")

    def save(self, path: str) -> None:
        """Save the raw bytecode to a file."""
        with open(path, 'wb') as f:
            f.write(self.code)


class Context:
    """
    procvm execution context.

    Owns a VM and its host object model, assigns procedure ids, and keeps the
    name -> id table shared by compiled and native procedures.

    Example:
        ctx = Context()

        @ctx.register("clamp")
        def clamp(x, hi):
            return min(x, hi)

        ctx.compile('proc f(a) { return clamp(a * 2, 10); }')
        ctx.call("f", 7)   # 10.0
    """

    def __init__(self, host: Optional[ObjectModel] = None,
                 max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
                 debug: bool = False):
        """
        Create a new context.

        Args:
            host: object model for field access and native procedures
            max_call_depth: maximum number of nested compiled calls
            debug: log every executed instruction
        """
        self.host = host if host is not None else ObjectModel()
        self.debug = debug
        self.vm = VM(self.host, max_call_depth=max_call_depth, trace=debug)

        self._proc_ids: Dict[str, int] = {}
        self._procs: Dict[str, CompiledProc] = {}
        self._next_id = 0

    # =========================================================================
    # Procedure ids
    # =========================================================================

    def proc_id(self, name: str) -> int:
        """Id of a compiled or native procedure."""
        if name not in self._proc_ids:
            raise NameError(f"Procedure '{name}' not defined")
        return self._proc_ids[name]

    def _assign_id(self, name: str) -> int:
        if name not in self._proc_ids:
            self._proc_ids[name] = self._next_id
            self._next_id += 1
        return self._proc_ids[name]

    # =========================================================================
    # Native procedures
    # =========================================================================

    def register(self, name: str) -> Callable:
        """
        Decorator to register a Python function as a native procedure.

        Example:
            @ctx.register("my_func")
            def my_func(a, b):
                return a + b
        """
        def decorator(func: Callable) -> Callable:
            self.register_native(name, func)
            return func
        return decorator

    def register_native(self, name: str, func: Callable) -> int:
        """
        Register a Python function as a native procedure.

        Sources compiled afterwards may call it by name.

        Returns:
            The procedure id
        """
        proc_id = self._assign_id(name)
        if name in self._procs:
            logger.debug("native %s shadowed by compiled procedure #%d", name, proc_id)
        self.host.register_proc(proc_id, func, name=name)
        return proc_id

    # =========================================================================
    # Compilation
    # =========================================================================

    def compile(self, source: str, filename: Optional[str] = None) -> Dict[str, CompiledProc]:
        """
        Compile every procedure in a source string and register it.

        Procedures in the same source may call each other regardless of
        declaration order. Nothing is registered if any procedure fails to
        compile.

        Returns:
            Procedure name -> CompiledProc, in declaration order

        Raises:
            ParseError, CompileError
        """
        program = parse_source(source, filename)

        ids = dict(self._proc_ids)
        next_id = self._next_id
        for proc in program.procs:
            if proc.name.lexeme not in ids:
                ids[proc.name.lexeme] = next_id
                next_id += 1

        codegen = CodeGenerator(self.host, ids, filename)
        compiled: Dict[str, CompiledProc] = {}
        for proc in program.procs:
            name = proc.name.lexeme
            code = codegen.generate(proc)
            compiled[name] = CompiledProc(
                name=name,
                proc_id=ids[name],
                params=proc.param_names,
                code=code,
                register_count=codegen.registers.high_water,
                local_count=codegen.next_local,
                filename=filename,
            )

        self._proc_ids = ids
        self._next_id = next_id
        for name, proc in compiled.items():
            self.vm.add_program(proc.proc_id, proc.code)
            self._procs[name] = proc
        return compiled

    def compile_file(self, path: str) -> Dict[str, CompiledProc]:
        """Compile a source file."""
        with open(path, 'r', encoding='utf-8') as f:
            source = f.read()
        return self.compile(source, filename=path)

    def get_proc(self, name: str) -> Optional[CompiledProc]:
        return self._procs.get(name)

    @property
    def procs(self) -> Dict[str, CompiledProc]:
        return dict(self._procs)

    def disassemble(self) -> str:
        """Disassembly of every compiled procedure."""
        return "\n\n".join(proc.disassemble() for proc in self._procs.values())

    # =========================================================================
    # Execution
    # =========================================================================

    def call(self, name: str, *args: Any) -> Any:
        """
        Call a procedure by name with Python arguments.

        Returns:
            The result converted to a Python value
        """
        result = self.invoke(name, [self.host.from_python(arg) for arg in args])
        return self.host.to_python(result)

    def invoke(self, name: str, args: Sequence[Register] = ()) -> Register:
        """Call a procedure by name with register arguments."""
        return self.vm.run_program(self.proc_id(name), args)
