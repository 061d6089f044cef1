"""
procvm Code Generator

Lowers one procedure's AST into register bytecode.
"""

import logging
from typing import Dict, Mapping, Optional, Tuple

from .ast import (
    ASTVisitor, LiteralExpr, IdentifierExpr, UnaryExpr, BinaryExpr,
    GroupExpr, CallExpr, IndexExpr, DotExpr, AssignExpr, ExpressionStmt,
    VarDeclStmt, BlockStmt, IfStmt, WhileStmt, ReturnStmt, ProcDecl,
)
from .bytecode import BytecodeBuilder, OpCode, ValueTag, float32_bits
from .errors import (
    CompileError, UnsupportedStatementError, UnsupportedExpressionError,
    UnsupportedOperatorError, UnsupportedFollowError, UnknownIdentifierError,
    RegisterExhaustedError,
)
from .registers import RegisterAllocator, MAX_REGISTERS
from .tokens import Token, TokenType

logger = logging.getLogger(__name__)

# Size of the local slot array in a VM process
MAX_LOCALS = 16

MAX_FIELD_ID = 0xFFFF
MAX_PROC_ID = 0xFFFFFFFF

BINARY_OPS: Dict[TokenType, OpCode] = {
    TokenType.PLUS: OpCode.ADD,
    TokenType.MINUS: OpCode.SUB,
    TokenType.STAR: OpCode.MUL,
    TokenType.SLASH: OpCode.DIV,
    TokenType.LT: OpCode.LESS_THAN,
    TokenType.LE: OpCode.LESS_OR_EQUAL,
    TokenType.EQ: OpCode.EQUAL,
    TokenType.GE: OpCode.GREATER_OR_EQUAL,
    TokenType.GT: OpCode.GREATER_THAN,
}


class CodeGenerator(ASTVisitor):
    """
    Generates bytecode for a single procedure.

    Expression visitors return the id of a register that holds the result.
    The caller owns that register and must release it once the value has
    been consumed. Statement visitors return None.

    Args:
        strings: host string table; anything with intern_string(str) -> int.
            Only needed when the procedure uses field access.
        procedures: name -> procedure id for every callable procedure,
            compiled or native.
        filename: used in error messages
    """

    def __init__(self, strings=None, procedures: Optional[Mapping[str, int]] = None,
                 filename: Optional[str] = None):
        self.strings = strings
        self.procedures: Mapping[str, int] = procedures or {}
        self.filename = filename
        self._reset()

    def _reset(self) -> None:
        self.builder = BytecodeBuilder()
        self.registers = RegisterAllocator(MAX_REGISTERS)
        self.args: Dict[str, int] = {}
        self.locals: Dict[str, int] = {}
        self.next_local = 0

    def generate(self, proc: ProcDecl) -> bytes:
        """
        Compile a procedure body.

        Returns:
            The finished buffer, terminated by HALT

        Raises:
            CompileError: on any construct outside the supported set
        """
        self._reset()
        self.args = {name: i for i, name in enumerate(proc.param_names)}
        if len(self.args) > 0x100:
            raise self._error(CompileError, f"too many parameters in '{proc.name.lexeme}'",
                              proc.name)

        for stmt in proc.body.statements:
            stmt.accept(self)

        self.builder.emit(OpCode.HALT)
        code = self.builder.to_bytes()

        logger.debug("compiled proc %s: %d bytes, %d registers, %d locals",
                     proc.name.lexeme, len(code), self.registers.high_water,
                     self.next_local)
        return code

    # =========================================================================
    # Expression Visitors
    # =========================================================================

    def visit_literal(self, node: LiteralExpr) -> int:
        """Load a numeric literal as a float32 immediate."""
        value = node.value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            kind = 'null' if value is None else type(value).__name__
            raise self._error(UnsupportedExpressionError,
                              f"Unimplemented term: {kind} literal", node.token)
        return self._load_number(value)

    def visit_identifier(self, node: IdentifierExpr) -> int:
        """Load an argument or local into a fresh temporary."""
        name = node.name

        # Arguments shadow locals of the same name
        if name in self.args:
            target = self.registers.acquire()
            self.builder.emit(OpCode.LOAD_ARGUMENT, self.args[name], target)
            return target

        if name in self.locals:
            target = self.registers.acquire()
            self.builder.emit(OpCode.LOAD_LOCAL, self.locals[name], target)
            return target

        raise self._error(UnknownIdentifierError, f"Unknown identifier: {name}", node.token)

    def visit_unary(self, node: UnaryExpr) -> int:
        """Fold `-<number>` into a negative literal; nothing else is supported."""
        operand = node.operand
        if node.operator.type == TokenType.MINUS and isinstance(operand, LiteralExpr):
            value = operand.value
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return self._load_number(-value)

        raise self._error(UnsupportedOperatorError,
                          f"Unary operator not implemented: '{node.operator.lexeme}'",
                          node.operator)

    def visit_binary(self, node: BinaryExpr) -> int:
        """Lower left, then right, then the operator into a fresh register."""
        opcode = BINARY_OPS.get(node.operator.type)
        if opcode is None:
            raise self._error(UnsupportedOperatorError,
                              f"Binary operator not implemented: '{node.operator.lexeme}'",
                              node.operator)

        left = node.left.accept(self)
        right = node.right.accept(self)
        result = self.registers.acquire()
        self.builder.emit(opcode, left, right, result)
        self.registers.release(left)
        self.registers.release(right)
        return result

    def visit_group(self, node: GroupExpr) -> int:
        return node.expression.accept(self)

    def visit_call(self, node: CallExpr) -> int:
        """
        Lower a call to a compiled or native procedure.

        All arguments are evaluated before the first PUSH so that calls
        nested inside arguments never interleave with this call's pushes.
        """
        callee = node.callee
        if isinstance(callee, DotExpr):
            raise self._error(UnsupportedFollowError,
                              f"Unimplemented follow: method call '{callee.name.lexeme}()'",
                              callee.name)
        if not isinstance(callee, IdentifierExpr):
            raise self._error(UnsupportedExpressionError,
                              "Unimplemented expression: call of a computed value",
                              node.paren)

        proc_id = self.procedures.get(callee.name)
        if proc_id is None:
            raise self._error(UnknownIdentifierError,
                              f"Unknown procedure: {callee.name}", callee.token)
        if not 0 <= proc_id <= MAX_PROC_ID:
            raise self._error(CompileError,
                              f"procedure id {proc_id} for '{callee.name}' does not fit 32 bits",
                              callee.token)

        arg_regs = [arg.accept(self) for arg in node.arguments]
        for reg in arg_regs:
            self.builder.emit(OpCode.PUSH, reg)
            self.registers.release(reg)

        result = self.registers.acquire()
        self.builder.emit(OpCode.CALL, proc_id, result)
        return result

    def visit_index(self, node: IndexExpr) -> int:
        raise self._error(UnsupportedFollowError, "Unimplemented follow: index", node.bracket)

    def visit_dot(self, node: DotExpr) -> int:
        """Single-level field access on an argument or local."""
        if isinstance(node.object, DotExpr):
            raise self._error(UnsupportedFollowError,
                              f"Unimplemented follow: chained field access '.{node.name.lexeme}'",
                              node.name)
        if not isinstance(node.object, IdentifierExpr):
            raise self._error(UnsupportedFollowError,
                              f"Unimplemented follow: field '.{node.name.lexeme}' "
                              f"on a non-identifier",
                              node.name)
        if self.strings is None:
            raise self._error(CompileError,
                              "field access needs a host string table", node.name)

        field_id = self.strings.intern_string(node.name.lexeme)
        if not 0 <= field_id <= MAX_FIELD_ID:
            raise self._error(CompileError,
                              f"field name id {field_id} does not fit 16 bits", node.name)

        base = node.object.accept(self)
        self.builder.emit(OpCode.GET_FIELD, base, field_id, base)
        return base

    def visit_assign(self, node: AssignExpr) -> int:
        raise self._error(UnsupportedExpressionError,
                          "Unimplemented expression: assignment", node.operator)

    # =========================================================================
    # Statement Visitors
    # =========================================================================

    def visit_expression_stmt(self, node: ExpressionStmt) -> None:
        """Evaluate for side effects and drop the result."""
        reg = node.expression.accept(self)
        self.registers.release(reg)

    def visit_var_decl(self, node: VarDeclStmt) -> None:
        """Declare a local; the name is visible to its own initializer."""
        if self.next_local >= MAX_LOCALS:
            raise self._error(RegisterExhaustedError,
                              f"too many locals: at most {MAX_LOCALS} per procedure",
                              node.name)

        local_id = self.next_local
        self.next_local += 1
        self.locals[node.name.lexeme] = local_id

        if node.initializer is not None:
            src = node.initializer.accept(self)
            self.builder.emit(OpCode.STORE_LOCAL, src, local_id)
            self.registers.release(src)

    def visit_block(self, node: BlockStmt) -> None:
        for stmt in node.statements:
            stmt.accept(self)

    def visit_if(self, node: IfStmt) -> None:
        """
        Lower an if / else if / else chain with forward jumps only.

        Each arm's JUMP_FALSE lands on the next arm's condition (or the else
        block, or the end). End-of-chain jumps are only emitted when an else
        block exists.
        """
        end_jumps = []
        for arm in node.arms:
            cond = arm.condition.accept(self)
            skip_arm = self.builder.emit_jump(OpCode.JUMP_FALSE, cond)
            self.registers.release(cond)

            arm.body.accept(self)

            if node.else_body is not None:
                end_jumps.append(self.builder.emit_jump(OpCode.JUMP))
            self.builder.patch_jump(skip_arm)

        if node.else_body is not None:
            node.else_body.accept(self)
            end = self.builder.current_offset()
            for jump in end_jumps:
                self.builder.patch_jump(jump, end)

    def visit_while(self, node: WhileStmt) -> None:
        raise self._error(UnsupportedStatementError, "Unsupported statement: while loop",
                          node.keyword)

    def visit_return(self, node: ReturnStmt) -> None:
        """Designate the return register; the value register is then free again."""
        if node.value is None:
            raise self._error(UnsupportedStatementError,
                              "Unsupported statement: return without a value", node.keyword)

        reg = node.value.accept(self)
        self.builder.emit(OpCode.RETURN, reg)
        self.registers.release(reg)

    def visit_proc_decl(self, node: ProcDecl) -> None:
        raise self._error(UnsupportedStatementError,
                          f"Unsupported statement: nested proc '{node.name.lexeme}'",
                          node.name)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_number(self, value) -> int:
        reg = self.registers.acquire()
        self.builder.emit(OpCode.LOAD_IMMEDIATE, reg, ValueTag.NUMBER, float32_bits(value))
        return reg

    def _error(self, cls, message: str, token: Optional[Token] = None) -> CompileError:
        line, column = _location(token)
        return cls(message, line, column, self.filename)


def _location(token: Optional[Token]) -> Tuple[Optional[int], Optional[int]]:
    if token is None:
        return None, None
    return token.line, token.column


def compile_proc(proc: ProcDecl, strings=None,
                 procedures: Optional[Mapping[str, int]] = None,
                 filename: Optional[str] = None) -> bytes:
    """Compile one procedure declaration to bytecode."""
    return CodeGenerator(strings, procedures, filename).generate(proc)
