# =============================================================================
# test_semantic.py - Semantic Checker Tests
# =============================================================================
# Tests for name resolution, mutability and borrow rules, literal ranges
# and constant division by zero.
# =============================================================================

import pytest
from tapec.compiler.parser import parse_source
from tapec.compiler.semantic import SemanticChecker
from tapec.compiler.errors import (
    TapeSemanticError,
    TapeCompilationError,
    UndeclaredIdentifierError,
    DuplicateDeclarationError,
    ImmutableAssignmentError,
    BorrowError,
    LiteralRangeError,
    DivisionByZeroError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def check(source: str) -> list:
    """Parse and check source, returning the warnings."""
    program = parse_source(source, "<test>")
    return SemanticChecker(source.splitlines()).check(program)


# =============================================================================
# Valid Programs
# =============================================================================

class TestValidPrograms:
    """Programs that must pass checking."""

    @pytest.mark.parametrize("source", [
        "let x = 1; write(x);",
        "let mut x = 1; x = x + 1; x += 2; x -= 1; read(x);",
        "let a = 1; { let a = 2; write(a); } write(a);",
        "let mut x = 1; { let r = &mut x; r += 1; read(r); }",
        "let x = 1; { let r = &x; write(r); }",
        "let mut x = 1; { let r = &x; { let s = &r; write(s); } }",
        "let x = 255; write(x / 3 % 2);",
        "print(\"\\xff\");",
    ])
    def test_accepted(self, source):
        assert check(source) == []


# =============================================================================
# Name Resolution
# =============================================================================

class TestNames:
    """Test undeclared and duplicate names."""

    def test_undeclared(self):
        with pytest.raises(UndeclaredIdentifierError) as exc_info:
            check("write(y);")
        assert exc_info.value.identifier == "y"

    def test_suggestion_for_typo(self):
        with pytest.raises(UndeclaredIdentifierError) as exc_info:
            check("let count = 1; write(cuont);")
        assert exc_info.value.hint == "did you mean 'count'?"

    def test_use_before_declaration(self):
        with pytest.raises(UndeclaredIdentifierError):
            check("write(x); let x = 1;")

    def test_name_out_of_scope_after_block(self):
        with pytest.raises(UndeclaredIdentifierError):
            check("{ let inner = 1; } write(inner);")

    def test_initializer_cannot_see_own_name(self):
        with pytest.raises(UndeclaredIdentifierError):
            check("let x = x + 1;")

    def test_duplicate_in_same_block(self):
        with pytest.raises(DuplicateDeclarationError) as exc_info:
            check("let a = 1;\nlet a = 2;")
        assert exc_info.value.original_location.line == 1

    def test_duplicate_in_nested_block(self):
        with pytest.raises(DuplicateDeclarationError):
            check("{ let a = 1; let a = 2; }")


# =============================================================================
# Mutability
# =============================================================================

class TestMutability:
    """Test writes to immutable bindings."""

    @pytest.mark.parametrize("statement", [
        "a = 2;",
        "a += 2;",
        "a -= 2;",
        "read(a);",
    ])
    def test_write_to_immutable(self, statement):
        with pytest.raises(ImmutableAssignmentError):
            check(f"let a = 1; {statement}")

    def test_write_through_shared_borrow(self):
        with pytest.raises(ImmutableAssignmentError):
            check("let mut x = 1; { let r = &x; r = 2; }")

    def test_hint_suggests_mut(self):
        with pytest.raises(ImmutableAssignmentError) as exc_info:
            check("let a = 1; a = 2;")
        assert exc_info.value.hint == "declare it with 'let mut a'"


# =============================================================================
# Borrows
# =============================================================================

class TestBorrows:
    """Test borrow initializer rules."""

    def test_mut_binding_of_shared_borrow(self):
        with pytest.raises(BorrowError) as exc_info:
            check("let mut x = 1; { let mut r = &x; }")
        assert exc_info.value.hint == "use 'let r = &mut x;'"

    def test_mutable_borrow_of_immutable(self):
        with pytest.raises(BorrowError, match="cannot borrow immutable variable 'x' as mutable"):
            check("let x = 1; { let r = &mut x; }")

    def test_borrow_in_same_block(self):
        with pytest.raises(BorrowError) as exc_info:
            check("let mut x = 1; let r = &x;")
        assert exc_info.value.hint == "borrow from an enclosing block"

    def test_borrow_of_borrow_in_same_block(self):
        assert check("let mut x = 1; { let b = &mut x; let c = &mut b; c += 4; }") == []

    def test_shared_borrow_of_borrow_in_same_block(self):
        assert check("let x = 1; { let b = &x; let c = &b; write(c); }") == []

    def test_borrow_of_borrow_keeps_mutability_rules(self):
        with pytest.raises(BorrowError):
            check("let mut x = 1; { let b = &x; let c = &mut b; }")

    def test_borrow_of_undeclared(self):
        with pytest.raises(UndeclaredIdentifierError):
            check("{ let r = &ghost; }")

    def test_borrow_errors_are_semantic(self):
        assert issubclass(BorrowError, TapeSemanticError)


# =============================================================================
# Literals and Division
# =============================================================================

class TestLiterals:
    """Test range checks and constant division by zero."""

    def test_literal_too_large(self):
        with pytest.raises(LiteralRangeError) as exc_info:
            check("write(256);")
        assert exc_info.value.value == 256

    def test_print_character_too_large(self):
        with pytest.raises(LiteralRangeError):
            check('print("\u0100");')

    def test_division_by_literal_zero(self):
        with pytest.raises(DivisionByZeroError):
            check("let x = 4; write(x / 0);")

    def test_modulo_by_folded_zero(self):
        with pytest.raises(DivisionByZeroError):
            check("let x = 4; write(x % (3 - 3));")


# =============================================================================
# Error Collection
# =============================================================================

class TestErrorCollection:
    """Several errors are reported together."""

    def test_multiple_errors(self):
        with pytest.raises(TapeCompilationError) as exc_info:
            check("write(a);\nwrite(b);\nlet c = 1; c = 2;")
        report = str(exc_info.value)
        assert "undeclared identifier 'a'" in report
        assert "undeclared identifier 'b'" in report
        assert "cannot assign to immutable variable 'c'" in report
        assert "3 errors" in report
