"""
procvm Compiler Errors

Defines exception classes for parse and compile errors.
"""

from typing import Optional


class ProcVMError(Exception):
    """Base exception for all procvm errors."""

    def __init__(self, message: str, line: Optional[int] = None,
                 column: Optional[int] = None, filename: Optional[str] = None):
        self.message = message
        self.line = line
        self.column = column
        self.filename = filename
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with location information."""
        parts = []

        if self.filename:
            parts.append(self.filename)

        if self.line is not None:
            if parts:
                parts.append(f":{self.line}")
            else:
                parts.append(f"line {self.line}")

            if self.column is not None:
                parts.append(f":{self.column}")

        if parts:
            return f"{''.join(parts)}: {self.message}"
        return self.message


class ParseError(ProcVMError):
    """Raised for syntax errors during lexing or parsing."""
    pass


class CompileError(ProcVMError):
    """Raised when a procedure cannot be lowered to bytecode."""
    pass


class UnsupportedStatementError(CompileError):
    """Raised for statement kinds the code generator does not lower."""
    pass


class UnsupportedExpressionError(CompileError):
    """Raised for expression or term kinds the code generator does not lower."""
    pass


class UnsupportedOperatorError(CompileError):
    """Raised for binary or unary operators without an opcode."""
    pass


class UnsupportedFollowError(CompileError):
    """Raised for field chains, indexing and method calls."""
    pass


class UnknownIdentifierError(CompileError):
    """Raised for names that are neither arguments, locals nor procedures."""
    pass


class RegisterExhaustedError(CompileError):
    """Raised when a procedure needs more registers or locals than exist."""
    pass
