"""
procvm Parser

Recursive descent parser that produces an AST from tokens.
"""

from typing import List
from .tokens import Token, TokenType
from .ast import (
    Expression, Statement, LiteralExpr, IdentifierExpr, UnaryExpr, BinaryExpr,
    GroupExpr, CallExpr, IndexExpr, DotExpr, AssignExpr, ExpressionStmt,
    VarDeclStmt, BlockStmt, IfArm, IfStmt, WhileStmt, ReturnStmt, ProcDecl,
    Program,
)
from .errors import ParseError


class Parser:
    """Recursive descent parser for procedure source."""

    def __init__(self, tokens: List[Token]):
        """
        Initialize the parser.

        Args:
            tokens: List of tokens from the lexer
        """
        self.tokens = tokens
        self.current = 0

    def parse(self) -> Program:
        """
        Parse the token stream into an AST.

        Only procedure declarations are allowed at the top level.

        Returns:
            Program AST node
        """
        procs = []

        while not self.is_at_end():
            self.consume(TokenType.PROC, "Expected 'proc' declaration")
            procs.append(self.proc_declaration())

        return Program(procs)

    # =========================================================================
    # Declarations
    # =========================================================================

    def declaration(self) -> Statement:
        """Parse a declaration or statement."""
        if self.match(TokenType.VAR):
            return self.var_declaration()
        if self.match(TokenType.PROC):
            return self.proc_declaration()
        return self.statement()

    def var_declaration(self) -> VarDeclStmt:
        """Parse a variable declaration."""
        name = self.consume(TokenType.IDENTIFIER, "Expected variable name")

        initializer = None
        if self.match(TokenType.ASSIGN):
            initializer = self.expression()

        self.consume(TokenType.SEMICOLON, "Expected ';' after variable declaration")
        return VarDeclStmt(name, initializer)

    def proc_declaration(self) -> ProcDecl:
        """Parse a procedure declaration (the 'proc' keyword is consumed)."""
        name = self.consume(TokenType.IDENTIFIER, "Expected procedure name")

        self.consume(TokenType.LPAREN, "Expected '(' after procedure name")
        params = self.parameters()
        self.consume(TokenType.RPAREN, "Expected ')' after parameters")

        self.consume(TokenType.LBRACE, "Expected '{' before procedure body")
        body = self.block()

        return ProcDecl(name, params, body)

    def parameters(self) -> List[Token]:
        """Parse procedure parameters."""
        params = []

        if not self.check(TokenType.RPAREN):
            params.append(self.consume(TokenType.IDENTIFIER, "Expected parameter name"))

            while self.match(TokenType.COMMA):
                params.append(self.consume(TokenType.IDENTIFIER, "Expected parameter name"))

        seen = set()
        for param in params:
            if param.lexeme in seen:
                raise ParseError(f"Duplicate parameter '{param.lexeme}'",
                                 param.line, param.column)
            seen.add(param.lexeme)

        return params

    # =========================================================================
    # Statements
    # =========================================================================

    def statement(self) -> Statement:
        """Parse a statement."""
        if self.match(TokenType.IF):
            return self.if_statement()
        if self.match(TokenType.WHILE):
            return self.while_statement()
        if self.match(TokenType.RETURN):
            return self.return_statement()
        if self.match(TokenType.LBRACE):
            return self.block()

        return self.expression_statement()

    def if_statement(self) -> IfStmt:
        """Parse an if / else if / else chain into a single node."""
        keyword = self.previous()
        arms = [self.if_arm()]
        else_body = None

        while self.match(TokenType.ELSE):
            if self.match(TokenType.IF):
                arms.append(self.if_arm())
            else:
                else_body = self.branch_body()
                break

        return IfStmt(keyword, arms, else_body)

    def if_arm(self) -> IfArm:
        """Parse `(condition) body` after an 'if'."""
        self.consume(TokenType.LPAREN, "Expected '(' after 'if'")
        condition = self.expression()
        self.consume(TokenType.RPAREN, "Expected ')' after if condition")
        return IfArm(condition, self.branch_body())

    def branch_body(self) -> BlockStmt:
        """Parse a branch body; a lone statement is wrapped in a block."""
        if self.match(TokenType.LBRACE):
            return self.block()
        return BlockStmt([self.declaration()])

    def while_statement(self) -> WhileStmt:
        """Parse a while statement."""
        keyword = self.previous()
        self.consume(TokenType.LPAREN, "Expected '(' after 'while'")
        condition = self.expression()
        self.consume(TokenType.RPAREN, "Expected ')' after while condition")

        return WhileStmt(keyword, condition, self.branch_body())

    def return_statement(self) -> ReturnStmt:
        """Parse a return statement."""
        keyword = self.previous()

        value = None
        if not self.check(TokenType.SEMICOLON):
            value = self.expression()

        self.consume(TokenType.SEMICOLON, "Expected ';' after return value")
        return ReturnStmt(keyword, value)

    def block(self) -> BlockStmt:
        """Parse a block of statements (the '{' is consumed)."""
        statements = []

        while not self.check(TokenType.RBRACE) and not self.is_at_end():
            statements.append(self.declaration())

        self.consume(TokenType.RBRACE, "Expected '}' after block")
        return BlockStmt(statements)

    def expression_statement(self) -> ExpressionStmt:
        """Parse an expression statement."""
        expr = self.expression()
        self.consume(TokenType.SEMICOLON, "Expected ';' after expression")
        return ExpressionStmt(expr)

    # =========================================================================
    # Expressions
    # =========================================================================

    def expression(self) -> Expression:
        """Parse an expression."""
        return self.assignment()

    def assignment(self) -> Expression:
        """Parse an assignment expression."""
        expr = self.equality()

        if self.match(TokenType.ASSIGN):
            operator = self.previous()
            value = self.assignment()

            if isinstance(expr, (IdentifierExpr, IndexExpr, DotExpr)):
                return AssignExpr(expr, operator, value)

            raise ParseError("Invalid assignment target", operator.line, operator.column)

        return expr

    def equality(self) -> Expression:
        """Parse an equality expression."""
        expr = self.comparison()

        while self.match(TokenType.EQ, TokenType.NE):
            operator = self.previous()
            right = self.comparison()
            expr = BinaryExpr(expr, operator, right)

        return expr

    def comparison(self) -> Expression:
        """Parse a comparison expression."""
        expr = self.term()

        while self.match(TokenType.LT, TokenType.LE, TokenType.GT, TokenType.GE):
            operator = self.previous()
            right = self.term()
            expr = BinaryExpr(expr, operator, right)

        return expr

    def term(self) -> Expression:
        """Parse addition/subtraction."""
        expr = self.factor()

        while self.match(TokenType.PLUS, TokenType.MINUS):
            operator = self.previous()
            right = self.factor()
            expr = BinaryExpr(expr, operator, right)

        return expr

    def factor(self) -> Expression:
        """Parse multiplication/division/modulo."""
        expr = self.unary()

        while self.match(TokenType.STAR, TokenType.SLASH, TokenType.PERCENT):
            operator = self.previous()
            right = self.unary()
            expr = BinaryExpr(expr, operator, right)

        return expr

    def unary(self) -> Expression:
        """Parse unary expressions."""
        if self.match(TokenType.MINUS, TokenType.NOT):
            operator = self.previous()
            operand = self.unary()
            return UnaryExpr(operator, operand)

        return self.call()

    def call(self) -> Expression:
        """Parse calls, field access and indexing."""
        expr = self.primary()

        while True:
            if self.match(TokenType.LPAREN):
                expr = self.finish_call(expr)
            elif self.match(TokenType.DOT):
                name = self.consume(TokenType.IDENTIFIER, "Expected field name after '.'")
                expr = DotExpr(expr, name)
            elif self.match(TokenType.LBRACKET):
                bracket = self.previous()
                index = self.expression()
                self.consume(TokenType.RBRACKET, "Expected ']' after index")
                expr = IndexExpr(expr, index, bracket)
            else:
                break

        return expr

    def finish_call(self, callee: Expression) -> CallExpr:
        """Parse call arguments."""
        paren = self.previous()
        arguments = []

        if not self.check(TokenType.RPAREN):
            arguments.append(self.expression())
            while self.match(TokenType.COMMA):
                arguments.append(self.expression())

        self.consume(TokenType.RPAREN, "Expected ')' after arguments")
        return CallExpr(callee, arguments, paren)

    def primary(self) -> Expression:
        """Parse primary expressions."""
        if self.match(TokenType.NULL):
            return LiteralExpr(None, self.previous())
        if self.match(TokenType.NUMBER, TokenType.STRING):
            return LiteralExpr(self.previous().value, self.previous())

        if self.match(TokenType.IDENTIFIER):
            return IdentifierExpr(self.previous().lexeme, self.previous())

        if self.match(TokenType.LPAREN):
            expr = self.expression()
            self.consume(TokenType.RPAREN, "Expected ')' after expression")
            return GroupExpr(expr)

        raise ParseError(
            f"Expected expression, got {self.peek().type.name}",
            self.peek().line,
            self.peek().column
        )

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def match(self, *types: TokenType) -> bool:
        """Check if current token matches any of the given types and advance."""
        for type in types:
            if self.check(type):
                self.advance()
                return True
        return False

    def check(self, type: TokenType) -> bool:
        """Check if current token is of given type."""
        if self.is_at_end():
            return False
        return self.peek().type == type

    def advance(self) -> Token:
        """Consume and return the current token."""
        if not self.is_at_end():
            self.current += 1
        return self.previous()

    def is_at_end(self) -> bool:
        """Check if we've reached the end of tokens."""
        return self.peek().type == TokenType.EOF

    def peek(self) -> Token:
        """Return the current token."""
        return self.tokens[self.current]

    def previous(self) -> Token:
        """Return the previous token."""
        return self.tokens[self.current - 1]

    def consume(self, type: TokenType, message: str) -> Token:
        """Consume a token of the expected type or raise an error."""
        if self.check(type):
            return self.advance()

        token = self.peek()
        raise ParseError(message, token.line, token.column)
