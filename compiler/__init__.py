"""
procvm Compiler Package

Compiles procedure source to register bytecode for the procvm VM.
"""

from typing import Dict, Mapping, Optional

from .tokens import Token, TokenType
from .lexer import Lexer
from .ast import Program, ProcDecl
from .parser import Parser
from .bytecode import (
    BytecodeBuilder, OpCode, ValueTag, decode_opcode, disassemble,
    iter_instructions,
)
from .registers import RegisterAllocator
from .codegen import CodeGenerator, compile_proc
from .errors import ProcVMError, ParseError, CompileError

__version__ = "0.1.0"
__all__ = [
    "Token",
    "TokenType",
    "Lexer",
    "Parser",
    "Program",
    "ProcDecl",
    "BytecodeBuilder",
    "OpCode",
    "ValueTag",
    "decode_opcode",
    "disassemble",
    "iter_instructions",
    "RegisterAllocator",
    "CodeGenerator",
    "compile_proc",
    "parse_source",
    "compile_source",
    "ProcVMError",
    "ParseError",
    "CompileError",
]


def parse_source(source: str, filename: Optional[str] = None) -> Program:
    """
    Parse procedure source into an AST.

    Raises:
        ParseError: on lexical or syntax errors
    """
    try:
        tokens = Lexer(source).tokenize()
        return Parser(tokens).parse()
    except ParseError as e:
        if filename and e.filename is None:
            raise ParseError(e.message, e.line, e.column, filename) from None
        raise


def compile_source(source: str, strings=None,
                   procedures: Optional[Mapping[str, int]] = None,
                   filename: Optional[str] = None) -> Dict[str, bytes]:
    """
    Compile every procedure declared in a source string.

    Args:
        source: procedure source code
        strings: host string table used for field names
        procedures: name -> id of every callable procedure. Defaults to the
            declared procedures numbered in declaration order.
        filename: used in error messages

    Returns:
        Procedure name -> bytecode, in declaration order

    Raises:
        ParseError, CompileError
    """
    program = parse_source(source, filename)
    if procedures is None:
        procedures = {proc.name.lexeme: i for i, proc in enumerate(program.procs)}

    codegen = CodeGenerator(strings, procedures, filename)
    return {proc.name.lexeme: codegen.generate(proc) for proc in program.procs}
