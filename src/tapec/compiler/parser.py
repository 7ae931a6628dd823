"""
Tape Recursive Descent Parser
=============================

This module implements a recursive descent parser for the Tape language.
It takes a stream of tokens from the lexer and builds an Abstract Syntax
Tree (AST).

Grammar (Simplified EBNF)
-------------------------
program         ::= statement*
statement       ::= let_stmt | assign_stmt | read_stmt | write_stmt
                  | print_stmt | while_stmt | if_stmt | block | ';'
let_stmt        ::= 'let' 'mut'? IDENTIFIER '=' initializer ';'
initializer     ::= '&' 'mut'? IDENTIFIER | expr
assign_stmt     ::= IDENTIFIER ('=' | '+=' | '-=') expr ';'
read_stmt       ::= 'read' '(' IDENTIFIER ')' ';'
write_stmt      ::= 'write' '(' expr ')' ';'
print_stmt      ::= 'print' '(' STRING ')' ';'
while_stmt      ::= 'while' '(' expr ')' block
if_stmt         ::= 'if' '(' expr ')' block ('else' (block | if_stmt))?
block           ::= '{' statement* '}'

Expression Precedence (lowest to highest)
-----------------------------------------
1. logical_or     ||
2. logical_and    &&
3. equality       == !=
4. relational     < > <= >=
5. additive       + -
6. multiplicative * / %
7. unary          - !
8. primary        NUMBER, CHAR, IDENTIFIER, '(' expr ')'

Example Usage
-------------
>>> from tapec.compiler.parser import parse_source
>>> program = parse_source('let mut x = 1; x += 2;', "test.tape")
>>> len(program.statements)
2
"""

from typing import Callable, Optional

from tapec.errors import SourceLocation
from tapec.compiler.lexer import TapeLexer, Token, TokenType
from tapec.compiler.ast import (
    Program,
    Statement,
    Expression,
    Block,
    LetStatement,
    AssignStatement,
    CompoundAssignStatement,
    ReadStatement,
    WriteStatement,
    PrintStatement,
    WhileStatement,
    IfStatement,
    NumberLiteral,
    Identifier,
    BinaryExpression,
    UnaryExpression,
    BorrowExpression,
    BinaryOperator,
    UnaryOperator,
)
from tapec.compiler.errors import (
    ErrorCollector,
    TapeSyntaxError,
    UnexpectedTokenError,
    MissingTokenError,
)


class TapeParser:
    """
    Recursive descent parser for Tape.

    The parser recovers at statement boundaries after a syntax error so
    that one run reports every error it can find.

    Attributes:
        tokens: List of tokens to parse
        filename: Source filename for error reporting
    """

    STATEMENT_STARTS = (
        TokenType.LET,
        TokenType.IF,
        TokenType.WHILE,
        TokenType.READ,
        TokenType.WRITE,
        TokenType.PRINT,
        TokenType.RBRACE,
    )

    def __init__(
        self,
        tokens: list[Token],
        filename: str = "<input>",
        source_lines: Optional[list[str]] = None,
    ):
        """
        Initialize the parser.

        Args:
            tokens: List of tokens from the lexer (ending in EOF)
            filename: Source filename for error messages
            source_lines: Original source lines for error context
        """
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines or []

        self._pos = 0
        self._errors = ErrorCollector()

    def parse(self) -> Program:
        """
        Parse the token stream into an AST.

        Returns:
            Program containing all top-level statements

        Raises:
            TapeSyntaxError: If exactly one syntax error was found
            TapeCompilationError: If several syntax errors were found
        """
        statements = []

        while not self._at_end():
            try:
                stmt = self._parse_statement()
                if stmt is not None:
                    statements.append(stmt)
            except TapeSyntaxError as e:
                self._errors.add(e)
                if self._errors.should_stop():
                    break
                self._synchronize()

        self._errors.raise_if_errors()

        return Program(
            location=SourceLocation(self.filename, 1, 1),
            statements=statements,
        )

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _peek(self, offset: int = 0) -> Token:
        """Look at token at current position + offset."""
        pos = self._pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def _advance(self) -> Token:
        """Consume and return the current token."""
        if not self._at_end():
            token = self.tokens[self._pos]
            self._pos += 1
            return token
        return self.tokens[-1]

    def _check(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _match(self, *types: TokenType) -> Optional[Token]:
        """Consume the current token if it matches, returning it (or None)."""
        if self._check(*types):
            return self._advance()
        return None

    def _expect(self, token_type: TokenType, message: str = None) -> Token:
        """
        Expect and consume a specific token type.

        Raises:
            MissingTokenError: If the expected token is not found
        """
        if self._check(token_type):
            return self._advance()

        current = self._peek()
        if message is None:
            message = token_type.name.lower()

        raise MissingTokenError(
            message,
            current.location,
            self._get_source_line(current.line),
        )

    def _get_source_line(self, line: int) -> Optional[str]:
        if 0 < line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None

    def _unexpected(self, token: Token, expected: str) -> UnexpectedTokenError:
        found = token.value if token.value is not None else token.type.name.lower()
        return UnexpectedTokenError(
            str(found),
            expected=expected,
            location=token.location,
            source_line=self._get_source_line(token.line),
        )

    def _synchronize(self) -> None:
        """
        Skip tokens after an error until a likely statement boundary.

        A semicolon is consumed; a keyword or closing brace is left for
        the next statement to parse.
        """
        self._advance()

        while not self._at_end():
            if self._check(TokenType.SEMICOLON):
                self._advance()
                return
            if self._check(*self.STATEMENT_STARTS):
                return
            self._advance()

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_statement(self) -> Optional[Statement]:
        """Parse any statement. Returns None for an empty statement."""
        token = self._peek()

        if token.type == TokenType.LET:
            return self._parse_let_statement()
        if token.type == TokenType.IF:
            return self._parse_if_statement()
        if token.type == TokenType.WHILE:
            return self._parse_while_statement()
        if token.type == TokenType.READ:
            return self._parse_read_statement()
        if token.type == TokenType.WRITE:
            return self._parse_write_statement()
        if token.type == TokenType.PRINT:
            return self._parse_print_statement()
        if token.type == TokenType.LBRACE:
            return self._parse_block()
        if token.type == TokenType.SEMICOLON:
            self._advance()
            return None
        if token.type == TokenType.IDENTIFIER:
            return self._parse_assignment()

        raise self._unexpected(token, "statement")

    def _parse_block(self) -> Block:
        """Parse a block statement { ... }."""
        location = self._peek().location
        self._expect(TokenType.LBRACE, "'{'")

        statements = []
        while not self._check(TokenType.RBRACE) and not self._at_end():
            stmt = self._parse_statement()
            if stmt is not None:
                statements.append(stmt)

        self._expect(TokenType.RBRACE, "'}'")
        return Block(location=location, statements=statements)

    def _parse_let_statement(self) -> LetStatement:
        location = self._advance().location
        mutable = self._match(TokenType.MUT) is not None
        name_token = self._expect(TokenType.IDENTIFIER, "variable name")
        self._expect(TokenType.ASSIGN, "'='")

        if self._check(TokenType.AMPERSAND):
            initializer = self._parse_borrow()
        else:
            initializer = self._parse_expression()

        self._expect(TokenType.SEMICOLON, "';'")
        return LetStatement(
            location=location,
            name=name_token.value,
            mutable=mutable,
            initializer=initializer,
        )

    def _parse_borrow(self) -> BorrowExpression:
        """Parse '&name' or '&mut name'."""
        location = self._advance().location
        mutable = self._match(TokenType.MUT) is not None
        name_token = self._expect(TokenType.IDENTIFIER, "variable name after '&'")
        return BorrowExpression(location=location, name=name_token.value, mutable=mutable)

    def _parse_assignment(self) -> Statement:
        """Parse 'name = expr;', 'name += expr;' or 'name -= expr;'."""
        name_token = self._advance()
        op_token = self._peek()

        if op_token.type == TokenType.ASSIGN:
            self._advance()
            value = self._parse_expression()
            self._expect(TokenType.SEMICOLON, "';'")
            return AssignStatement(location=name_token.location, name=name_token.value, value=value)

        if op_token.type in (TokenType.PLUS_ASSIGN, TokenType.MINUS_ASSIGN):
            self._advance()
            operator = BinaryOperator.ADD if op_token.type == TokenType.PLUS_ASSIGN else BinaryOperator.SUBTRACT
            value = self._parse_expression()
            self._expect(TokenType.SEMICOLON, "';'")
            return CompoundAssignStatement(
                location=name_token.location,
                name=name_token.value,
                operator=operator,
                value=value,
            )

        raise self._unexpected(op_token, "'=', '+=' or '-='")

    def _parse_read_statement(self) -> ReadStatement:
        location = self._advance().location
        self._expect(TokenType.LPAREN, "'('")
        name_token = self._expect(TokenType.IDENTIFIER, "variable name")
        self._expect(TokenType.RPAREN, "')'")
        self._expect(TokenType.SEMICOLON, "';'")
        return ReadStatement(location=location, name=name_token.value)

    def _parse_write_statement(self) -> WriteStatement:
        location = self._advance().location
        self._expect(TokenType.LPAREN, "'('")
        value = self._parse_expression()
        self._expect(TokenType.RPAREN, "')'")
        self._expect(TokenType.SEMICOLON, "';'")
        return WriteStatement(location=location, value=value)

    def _parse_print_statement(self) -> PrintStatement:
        location = self._advance().location
        self._expect(TokenType.LPAREN, "'('")
        text_token = self._expect(TokenType.STRING, "string literal")
        self._expect(TokenType.RPAREN, "')'")
        self._expect(TokenType.SEMICOLON, "';'")
        return PrintStatement(location=location, text=text_token.value)

    def _parse_while_statement(self) -> WhileStatement:
        location = self._advance().location
        self._expect(TokenType.LPAREN, "'('")
        condition = self._parse_expression()
        self._expect(TokenType.RPAREN, "')'")
        body = self._parse_block()
        return WhileStatement(location=location, condition=condition, body=body)

    def _parse_if_statement(self) -> IfStatement:
        location = self._advance().location
        self._expect(TokenType.LPAREN, "'('")
        condition = self._parse_expression()
        self._expect(TokenType.RPAREN, "')'")
        then_branch = self._parse_block()

        else_branch = None
        if self._match(TokenType.ELSE):
            if self._check(TokenType.IF):
                else_branch = self._parse_if_statement()
            else:
                else_branch = self._parse_block()

        return IfStatement(
            location=location,
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
        )

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        return self._parse_logical_or()

    def _parse_logical_or(self) -> Expression:
        """Parse logical OR expression (||)."""
        return self._parse_binary(
            self._parse_logical_and,
            {TokenType.OR: BinaryOperator.LOGICAL_OR},
        )

    def _parse_logical_and(self) -> Expression:
        """Parse logical AND expression (&&)."""
        return self._parse_binary(
            self._parse_equality,
            {TokenType.AND: BinaryOperator.LOGICAL_AND},
        )

    def _parse_equality(self) -> Expression:
        """Parse equality expression (== !=)."""
        return self._parse_binary(
            self._parse_relational,
            {
                TokenType.EQ: BinaryOperator.EQUAL,
                TokenType.NE: BinaryOperator.NOT_EQUAL,
            },
        )

    def _parse_relational(self) -> Expression:
        """Parse relational expression (< > <= >=)."""
        return self._parse_binary(
            self._parse_additive,
            {
                TokenType.LT: BinaryOperator.LESS,
                TokenType.GT: BinaryOperator.GREATER,
                TokenType.LE: BinaryOperator.LESS_EQ,
                TokenType.GE: BinaryOperator.GREATER_EQ,
            },
        )

    def _parse_additive(self) -> Expression:
        """Parse additive expression (+ -)."""
        return self._parse_binary(
            self._parse_multiplicative,
            {
                TokenType.PLUS: BinaryOperator.ADD,
                TokenType.MINUS: BinaryOperator.SUBTRACT,
            },
        )

    def _parse_multiplicative(self) -> Expression:
        """Parse multiplicative expression (* / %)."""
        return self._parse_binary(
            self._parse_unary,
            {
                TokenType.STAR: BinaryOperator.MULTIPLY,
                TokenType.SLASH: BinaryOperator.DIVIDE,
                TokenType.PERCENT: BinaryOperator.MODULO,
            },
        )

    def _parse_binary(
        self,
        operand_parser: Callable[[], Expression],
        operators: dict[TokenType, BinaryOperator],
    ) -> Expression:
        """
        Generic left-associative binary expression parser.

        Args:
            operand_parser: Function to parse operands
            operators: Map of token types to binary operators
        """
        expr = operand_parser()

        while self._peek().type in operators:
            op_token = self._advance()
            right = operand_parser()
            expr = BinaryExpression(
                location=expr.location,
                operator=operators[op_token.type],
                left=expr,
                right=right,
            )

        return expr

    def _parse_unary(self) -> Expression:
        """Parse unary expression (- !)."""
        token = self._peek()

        unary_ops = {
            TokenType.MINUS: UnaryOperator.NEGATE,
            TokenType.NOT: UnaryOperator.LOGICAL_NOT,
        }

        if token.type in unary_ops:
            self._advance()
            operand = self._parse_unary()
            return UnaryExpression(
                location=token.location,
                operator=unary_ops[token.type],
                operand=operand,
            )

        return self._parse_primary()

    def _parse_primary(self) -> Expression:
        """Parse primary expression (literals, identifiers, parenthesized)."""
        token = self._peek()

        if token.type in (TokenType.NUMBER, TokenType.CHAR_LITERAL):
            self._advance()
            return NumberLiteral(location=token.location, value=token.value)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return Identifier(location=token.location, name=token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._expect(TokenType.RPAREN, "')'")
            return expr

        if token.type == TokenType.AMPERSAND:
            raise TapeSyntaxError(
                "borrow is only allowed as a let initializer",
                token.location,
                hint="write 'let name = &other;'",
                source_line=self._get_source_line(token.line),
            )

        raise self._unexpected(token, "expression")


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_source(source: str, filename: str = "<input>") -> Program:
    """
    Parse Tape source code into an AST.

    This is a convenience function that combines lexing and parsing.

    Args:
        source: The Tape source code
        filename: Source filename for error messages

    Returns:
        The root Program node of the AST

    Raises:
        TapeSyntaxError: If parsing fails
    """
    lexer = TapeLexer(source, filename)
    tokens = list(lexer.tokenize())
    source_lines = source.splitlines()
    parser = TapeParser(tokens, filename, source_lines)
    return parser.parse()
