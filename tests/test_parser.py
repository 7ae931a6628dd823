# =============================================================================
# test_parser.py - Tape Parser Unit Tests
# =============================================================================
# Tests for the recursive descent parser: statement forms, operator
# precedence and associativity, borrow initializers, error recovery and
# the AST printer.
# =============================================================================

import pytest
from tapec.compiler.parser import parse_source
from tapec.compiler.ast import (
    ASTPrinter,
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
    expression_to_string,
)
from tapec.compiler.errors import (
    TapeSyntaxError,
    TapeCompilationError,
    MissingTokenError,
    UnexpectedTokenError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def parse_one(source: str):
    """Parse source that holds exactly one statement and return it."""
    program = parse_source(source, "<test>")
    assert len(program.statements) == 1
    return program.statements[0]


def parse_expr(text: str):
    """Parse an expression through a write statement."""
    return parse_one(f"write({text});").value


# =============================================================================
# Statement Tests
# =============================================================================

class TestStatements:
    """Test each statement form."""

    def test_let(self):
        stmt = parse_one("let x = 5;")
        assert isinstance(stmt, LetStatement)
        assert stmt.name == "x"
        assert stmt.mutable is False
        assert isinstance(stmt.initializer, NumberLiteral)
        assert stmt.initializer.value == 5

    def test_let_mut(self):
        stmt = parse_one("let mut total = 0;")
        assert stmt.mutable is True
        assert stmt.name == "total"

    def test_shared_borrow(self):
        stmt = parse_one("let r = &x;")
        assert isinstance(stmt.initializer, BorrowExpression)
        assert stmt.initializer.name == "x"
        assert stmt.initializer.mutable is False

    def test_mutable_borrow(self):
        stmt = parse_one("let r = &mut x;")
        assert isinstance(stmt.initializer, BorrowExpression)
        assert stmt.initializer.mutable is True

    def test_assignment(self):
        stmt = parse_one("x = y + 1;")
        assert isinstance(stmt, AssignStatement)
        assert stmt.name == "x"
        assert isinstance(stmt.value, BinaryExpression)

    @pytest.mark.parametrize("source,operator", [
        ("x += 2;", BinaryOperator.ADD),
        ("x -= 2;", BinaryOperator.SUBTRACT),
    ])
    def test_compound_assignment(self, source, operator):
        stmt = parse_one(source)
        assert isinstance(stmt, CompoundAssignStatement)
        assert stmt.operator == operator

    def test_read_write_print(self):
        program = parse_source('read(c); write(c); print("hi\\n");')
        read, write, show = program.statements
        assert isinstance(read, ReadStatement) and read.name == "c"
        assert isinstance(write, WriteStatement)
        assert isinstance(show, PrintStatement) and show.text == "hi\n"

    def test_while(self):
        stmt = parse_one("while (n) { n -= 1; }")
        assert isinstance(stmt, WhileStatement)
        assert isinstance(stmt.condition, Identifier)
        assert isinstance(stmt.body, Block)
        assert len(stmt.body.statements) == 1

    def test_if_without_else(self):
        stmt = parse_one("if (a) { write(a); }")
        assert isinstance(stmt, IfStatement)
        assert stmt.else_branch is None

    def test_if_else_chain(self):
        """'else if' nests an IfStatement in the else branch."""
        stmt = parse_one("if (a) { } else if (b) { } else { write(b); }")
        assert isinstance(stmt.else_branch, IfStatement)
        assert isinstance(stmt.else_branch.else_branch, Block)

    def test_nested_blocks(self):
        stmt = parse_one("{ let a = 1; { let b = 2; } }")
        assert isinstance(stmt, Block)
        assert isinstance(stmt.statements[1], Block)

    def test_empty_statements_are_dropped(self):
        program = parse_source(";; let x = 1; ;")
        assert len(program.statements) == 1

    def test_statement_locations(self):
        program = parse_source("let x = 1;\n  write(x);", "prog.tape")
        location = program.statements[1].location
        assert str(location) == "prog.tape:2:3"


# =============================================================================
# Expression Tests
# =============================================================================

class TestExpressions:
    """Test precedence, associativity and primary expressions."""

    def test_multiplication_binds_tighter(self):
        expr = parse_expr("1 + 2 * 3")
        assert expr.operator == BinaryOperator.ADD
        assert expr.right.operator == BinaryOperator.MULTIPLY

    def test_left_associative(self):
        expr = parse_expr("a - b - c")
        assert expr.operator == BinaryOperator.SUBTRACT
        assert isinstance(expr.left, BinaryExpression)
        assert isinstance(expr.right, Identifier)

    def test_parentheses(self):
        expr = parse_expr("(1 + 2) * 3")
        assert expr.operator == BinaryOperator.MULTIPLY
        assert expr.left.operator == BinaryOperator.ADD

    def test_precedence_ladder(self):
        """|| < && < equality < relational < additive < multiplicative."""
        expr = parse_expr("a || b && c == d < e + f * g")
        assert expression_to_string(expr) == "(a || (b && (c == (d < (e + (f * g))))))"

    def test_unary_operators(self):
        expr = parse_expr("-!x")
        assert isinstance(expr, UnaryExpression)
        assert expr.operator == UnaryOperator.NEGATE
        assert expr.operand.operator == UnaryOperator.LOGICAL_NOT

    def test_char_literal_is_number(self):
        expr = parse_expr("'a'")
        assert isinstance(expr, NumberLiteral)
        assert expr.value == 97

    def test_borrow_in_expression_is_error(self):
        with pytest.raises(TapeSyntaxError, match="borrow is only allowed"):
            parse_source("write(&x);")


# =============================================================================
# Error Tests
# =============================================================================

class TestErrors:
    """Test syntax errors and recovery."""

    def test_missing_semicolon(self):
        with pytest.raises(MissingTokenError) as exc_info:
            parse_source("let x = 1", "<test>")
        assert "';'" in str(exc_info.value)

    def test_while_body_must_be_block(self):
        with pytest.raises(MissingTokenError):
            parse_source("while (x) write(x);")

    def test_unexpected_token(self):
        with pytest.raises(UnexpectedTokenError):
            parse_source("x * 2;")

    def test_missing_expression(self):
        with pytest.raises(UnexpectedTokenError, match="expected expression"):
            parse_source("let y = ;")

    def test_multiple_errors_are_collected(self):
        """The parser recovers and reports every error at once."""
        with pytest.raises(TapeCompilationError) as exc_info:
            parse_source("let = 1;\nlet y = ;\nwrite(1);")
        report = str(exc_info.value)
        assert "2 errors" in report

    def test_error_shows_source_and_caret(self):
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_source("let y = ;", "prog.tape")
        lines = str(exc_info.value).splitlines()
        assert lines[0] == "prog.tape:1:9: error: unexpected ';', expected expression"
        assert lines[1] == "    let y = ;"
        assert lines[2] == " " * 12 + "^"


# =============================================================================
# AST Printer Tests
# =============================================================================

class TestASTPrinter:
    """Test the AST dump used by 'tapecc --ast'."""

    def test_print_program(self):
        program = parse_source("let mut x = 1 + 2;\nwhile (x) { x -= 1; }")
        text = ASTPrinter().print(program)
        lines = text.splitlines()
        assert lines[0] == "Program"
        assert lines[1] == "  let mut x = (1 + 2)"
        assert lines[2] == "  While (x)"
        assert lines[3] == "    Block"
        assert lines[4] == "      x -= 1"

    def test_print_borrow(self):
        program = parse_source("let r = &mut x;")
        assert "let r = &mut x" in ASTPrinter().print(program)
