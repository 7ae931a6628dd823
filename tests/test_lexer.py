# =============================================================================
# test_lexer.py - Tape Lexer Unit Tests
# =============================================================================
# Tests for the Tape source tokenizer.
#
# Test coverage includes:
#   - Keywords and identifiers
#   - Number formats: decimal, hexadecimal (0x), binary (0b), characters
#   - String literals with escape sequences
#   - Operators and delimiters, including two-character forms
#   - Comments and position tracking
#   - Error conditions
# =============================================================================

import pytest
from tapec.compiler.lexer import TapeLexer, TokenType
from tapec.compiler.errors import (
    TapeSyntaxError,
    UnterminatedStringError,
    InvalidCharacterError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def tokenize(source: str) -> list:
    """Tokenize source and drop the trailing EOF token."""
    tokens = list(TapeLexer(source, "<test>").tokenize())
    assert tokens[-1].type == TokenType.EOF
    return tokens[:-1]


def types(source: str) -> list:
    return [t.type for t in tokenize(source)]


# =============================================================================
# Basic Token Recognition Tests
# =============================================================================

class TestBasicTokens:
    """Test keywords, identifiers and empty input."""

    def test_empty_source(self):
        """Empty input yields only EOF."""
        assert tokenize("") == []

    def test_whitespace_only(self):
        """Whitespace produces no tokens."""
        assert tokenize("  \t\n\r\n ") == []

    def test_keywords(self):
        """Every keyword has its own token type."""
        assert types("let mut if else while read write print") == [
            TokenType.LET,
            TokenType.MUT,
            TokenType.IF,
            TokenType.ELSE,
            TokenType.WHILE,
            TokenType.READ,
            TokenType.WRITE,
            TokenType.PRINT,
        ]

    def test_identifier(self):
        """Identifiers keep their spelling."""
        tokens = tokenize("counter_2 _tmp")
        assert [t.type for t in tokens] == [TokenType.IDENTIFIER, TokenType.IDENTIFIER]
        assert tokens[0].value == "counter_2"
        assert tokens[1].value == "_tmp"

    def test_keyword_prefix_is_identifier(self):
        """A keyword followed by more letters is an identifier."""
        tokens = tokenize("letter whilex")
        assert [t.value for t in tokens] == ["letter", "whilex"]
        assert all(t.type == TokenType.IDENTIFIER for t in tokens)


# =============================================================================
# Number Tests
# =============================================================================

class TestNumbers:
    """Test numeric and character literals."""

    def test_decimal(self):
        tokens = tokenize("42")
        assert tokens[0].type == TokenType.NUMBER
        assert tokens[0].value == 42

    def test_hex_and_binary(self):
        """0x and 0b prefixes select the base."""
        assert [t.value for t in tokenize("0x2A 0X2a 0b101010")] == [42, 42, 42]

    def test_large_number_is_not_rejected_by_lexer(self):
        """Range checking is the semantic checker's job."""
        assert tokenize("1000")[0].value == 1000

    def test_letter_after_digits_is_error(self):
        with pytest.raises(TapeSyntaxError, match="invalid character 'a'"):
            tokenize("12abc")

    def test_empty_hex_is_error(self):
        with pytest.raises(TapeSyntaxError, match="expected hexadecimal digits"):
            tokenize("0x;")

    def test_char_literal_value_is_code(self):
        tokens = tokenize("'A'")
        assert tokens[0].type == TokenType.CHAR_LITERAL
        assert tokens[0].value == 65

    @pytest.mark.parametrize("source,expected", [
        (r"'\n'", 10),
        (r"'\t'", 9),
        (r"'\0'", 0),
        (r"'\\'", 92),
        (r"'\''", 39),
        (r"'\x41'", 65),
    ])
    def test_char_escapes(self, source, expected):
        assert tokenize(source)[0].value == expected

    def test_char_literal_too_long(self):
        with pytest.raises(TapeSyntaxError, match="character literal"):
            tokenize("'ab'")


# =============================================================================
# String Tests
# =============================================================================

class TestStrings:
    """Test string literals."""

    def test_simple_string(self):
        tokens = tokenize('"Hello"')
        assert tokens[0].type == TokenType.STRING
        assert tokens[0].value == "Hello"

    def test_escapes_in_string(self):
        assert tokenize(r'"a\tb\n\"q\""')[0].value == 'a\tb\n"q"'

    def test_empty_string(self):
        assert tokenize('""')[0].value == ""

    def test_unterminated_string(self):
        with pytest.raises(UnterminatedStringError):
            tokenize('"never closed')

    def test_newline_ends_string(self):
        with pytest.raises(UnterminatedStringError):
            tokenize('"line one\nline two"')

    def test_unknown_escape(self):
        with pytest.raises(TapeSyntaxError, match="unknown escape"):
            tokenize(r'"\q"')


# =============================================================================
# Operator Tests
# =============================================================================

class TestOperators:
    """Test operator and delimiter recognition."""

    def test_arithmetic(self):
        assert types("+ - * / %") == [
            TokenType.PLUS,
            TokenType.MINUS,
            TokenType.STAR,
            TokenType.SLASH,
            TokenType.PERCENT,
        ]

    def test_assignment_forms(self):
        assert types("= += -=") == [
            TokenType.ASSIGN,
            TokenType.PLUS_ASSIGN,
            TokenType.MINUS_ASSIGN,
        ]

    def test_comparisons(self):
        assert types("== != < <= > >=") == [
            TokenType.EQ,
            TokenType.NE,
            TokenType.LT,
            TokenType.LE,
            TokenType.GT,
            TokenType.GE,
        ]

    def test_logical_and_borrow(self):
        """A single '&' is a borrow, '&&' is logical and."""
        assert types("&& || ! &") == [
            TokenType.AND,
            TokenType.OR,
            TokenType.NOT,
            TokenType.AMPERSAND,
        ]

    def test_delimiters(self):
        assert types("( ) { } ;") == [
            TokenType.LPAREN,
            TokenType.RPAREN,
            TokenType.LBRACE,
            TokenType.RBRACE,
            TokenType.SEMICOLON,
        ]

    def test_no_spaces_needed(self):
        assert types("x+=1;") == [
            TokenType.IDENTIFIER,
            TokenType.PLUS_ASSIGN,
            TokenType.NUMBER,
            TokenType.SEMICOLON,
        ]

    def test_single_pipe_is_error(self):
        with pytest.raises(TapeSyntaxError) as exc_info:
            tokenize("a | b")
        assert exc_info.value.hint == "use '||' for logical or"

    def test_invalid_character(self):
        with pytest.raises(InvalidCharacterError):
            tokenize("let x = 1 @ 2;")


# =============================================================================
# Comment and Position Tests
# =============================================================================

class TestCommentsAndPositions:
    """Test comment skipping and line/column tracking."""

    def test_line_comment(self):
        assert types("let // rest of line\nmut") == [TokenType.LET, TokenType.MUT]

    def test_block_comment(self):
        assert types("let /* one\ntwo */ mut") == [TokenType.LET, TokenType.MUT]

    def test_unterminated_block_comment(self):
        with pytest.raises(TapeSyntaxError, match="unterminated multi-line comment"):
            tokenize("let /* no end")

    def test_line_and_column(self):
        tokens = tokenize("let\n  x = 1;")
        assert (tokens[0].line, tokens[0].column) == (1, 1)
        assert (tokens[1].line, tokens[1].column) == (2, 3)
        assert str(tokens[1].location) == "<test>:2:3"

    def test_error_location(self):
        with pytest.raises(InvalidCharacterError) as exc_info:
            tokenize("let x = 1;\nwrite($);")
        location = exc_info.value.location
        assert (location.line, location.column) == (2, 7)
