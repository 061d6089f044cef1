"""
procvm Abstract Syntax Tree

Defines AST node classes for procedure source.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Any
from .tokens import Token


# =============================================================================
# Base Classes
# =============================================================================

class ASTNode(ABC):
    """Base class for all AST nodes."""

    @abstractmethod
    def accept(self, visitor: 'ASTVisitor') -> Any:
        """Accept a visitor for traversal."""
        pass


class Expression(ASTNode):
    """Base class for expression nodes."""
    pass


class Statement(ASTNode):
    """Base class for statement nodes."""
    pass


# =============================================================================
# Expressions
# =============================================================================

@dataclass
class LiteralExpr(Expression):
    """Literal value expression (int, float, string, null)."""
    value: Any
    token: Token

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_literal(self)


@dataclass
class IdentifierExpr(Expression):
    """Argument, local or procedure name reference."""
    name: str
    token: Token

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_identifier(self)


@dataclass
class UnaryExpr(Expression):
    """Unary operator expression (-, !)."""
    operator: Token
    operand: Expression

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_unary(self)


@dataclass
class BinaryExpr(Expression):
    """Binary operator expression."""
    left: Expression
    operator: Token
    right: Expression

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_binary(self)


@dataclass
class GroupExpr(Expression):
    """Parenthesized expression."""
    expression: Expression

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_group(self)


@dataclass
class CallExpr(Expression):
    """Procedure or method call expression."""
    callee: Expression
    arguments: List[Expression]
    paren: Token  # For error reporting

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_call(self)


@dataclass
class IndexExpr(Expression):
    """Index/subscript expression (a[b])."""
    object: Expression
    index: Expression
    bracket: Token

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_index(self)


@dataclass
class DotExpr(Expression):
    """Field access expression (a.b)."""
    object: Expression
    name: Token

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_dot(self)


@dataclass
class AssignExpr(Expression):
    """Assignment expression."""
    target: Expression
    operator: Token
    value: Expression

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_assign(self)


# =============================================================================
# Statements
# =============================================================================

@dataclass
class ExpressionStmt(Statement):
    """Expression as a statement."""
    expression: Expression

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_expression_stmt(self)


@dataclass
class VarDeclStmt(Statement):
    """Variable declaration statement."""
    name: Token
    initializer: Optional[Expression]

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_var_decl(self)


@dataclass
class BlockStmt(Statement):
    """Block of statements."""
    statements: List[Statement]

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_block(self)


@dataclass
class IfArm:
    """One `if (...) {...}` or `else if (...) {...}` arm of an if chain."""
    condition: Expression
    body: BlockStmt


@dataclass
class IfStmt(Statement):
    """If / else if / else chain."""
    keyword: Token
    arms: List[IfArm]
    else_body: Optional[BlockStmt] = None

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_if(self)


@dataclass
class WhileStmt(Statement):
    """While loop statement."""
    keyword: Token
    condition: Expression
    body: BlockStmt

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_while(self)


@dataclass
class ReturnStmt(Statement):
    """Return statement; value is None for a bare `return;`."""
    keyword: Token
    value: Optional[Expression]

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_return(self)


@dataclass
class ProcDecl(Statement):
    """Procedure declaration: name, parameter names and body."""
    name: Token
    params: List[Token]
    body: BlockStmt

    @property
    def param_names(self) -> List[str]:
        return [param.lexeme for param in self.params]

    def accept(self, visitor: 'ASTVisitor') -> Any:
        return visitor.visit_proc_decl(self)


@dataclass
class Program:
    """Root of a parsed source: every procedure it declares, in order."""
    procs: List[ProcDecl] = field(default_factory=list)

    def find(self, name: str) -> Optional[ProcDecl]:
        for proc in self.procs:
            if proc.name.lexeme == name:
                return proc
        return None


# =============================================================================
# Visitor Interface
# =============================================================================

class ASTVisitor(ABC):
    """Visitor interface for AST traversal."""

    # Expressions
    @abstractmethod
    def visit_literal(self, node: LiteralExpr) -> Any:
        pass

    @abstractmethod
    def visit_identifier(self, node: IdentifierExpr) -> Any:
        pass

    @abstractmethod
    def visit_unary(self, node: UnaryExpr) -> Any:
        pass

    @abstractmethod
    def visit_binary(self, node: BinaryExpr) -> Any:
        pass

    @abstractmethod
    def visit_group(self, node: GroupExpr) -> Any:
        pass

    @abstractmethod
    def visit_call(self, node: CallExpr) -> Any:
        pass

    @abstractmethod
    def visit_index(self, node: IndexExpr) -> Any:
        pass

    @abstractmethod
    def visit_dot(self, node: DotExpr) -> Any:
        pass

    @abstractmethod
    def visit_assign(self, node: AssignExpr) -> Any:
        pass

    # Statements
    @abstractmethod
    def visit_expression_stmt(self, node: ExpressionStmt) -> Any:
        pass

    @abstractmethod
    def visit_var_decl(self, node: VarDeclStmt) -> Any:
        pass

    @abstractmethod
    def visit_block(self, node: BlockStmt) -> Any:
        pass

    @abstractmethod
    def visit_if(self, node: IfStmt) -> Any:
        pass

    @abstractmethod
    def visit_while(self, node: WhileStmt) -> Any:
        pass

    @abstractmethod
    def visit_return(self, node: ReturnStmt) -> Any:
        pass

    @abstractmethod
    def visit_proc_decl(self, node: ProcDecl) -> Any:
        pass
