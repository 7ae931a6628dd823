"""
Tape Lexer (Tokenizer)
======================

This module converts Tape source text into a stream of tokens for the
parser.

Token Categories
----------------
- Keywords: let, mut, if, else, while, read, write, print
- Identifiers: variable names
- Numbers: decimal, hexadecimal (0x), binary (0b)
- Characters: 'single quoted' (value is the character code)
- Strings: "double quoted" (print only)
- Operators: + - * / % = += -= == != < <= > >= && || ! &
- Delimiters: ( ) { } ;

Comments
--------
- Single-line: // comment
- Multi-line: /* comment */

Escape Sequences
----------------
\\n (newline), \\r (return), \\t (tab), \\\\ (backslash),
\\' (quote), \\" (double quote), \\0 (null), \\xNN (hex)

Example Usage
-------------
>>> from tapec.compiler.lexer import TapeLexer
>>> for token in TapeLexer('let x = 5;').tokenize():
...     print(token)
Token(LET, 'let', 1:1)
Token(IDENTIFIER, 'x', 1:5)
Token(ASSIGN, '=', 1:7)
Token(NUMBER, 5, 1:9)
Token(SEMICOLON, ';', 1:10)
Token(EOF, 1:11)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import string

from tapec.errors import SourceLocation
from tapec.compiler.errors import (
    TapeSyntaxError,
    UnterminatedStringError,
    InvalidCharacterError,
)


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """Token types for the Tape language."""
    # Literals
    NUMBER = auto()
    CHAR_LITERAL = auto()
    STRING = auto()
    IDENTIFIER = auto()

    # Keywords
    LET = auto()
    MUT = auto()
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    READ = auto()
    WRITE = auto()
    PRINT = auto()

    # Arithmetic operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()

    # Assignment operators
    ASSIGN = auto()
    PLUS_ASSIGN = auto()
    MINUS_ASSIGN = auto()

    # Comparison operators
    EQ = auto()
    NE = auto()
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()

    # Logical operators
    AND = auto()
    OR = auto()
    NOT = auto()

    # Borrow
    AMPERSAND = auto()

    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    SEMICOLON = auto()

    EOF = auto()


KEYWORDS = {
    "let": TokenType.LET,
    "mut": TokenType.MUT,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "read": TokenType.READ,
    "write": TokenType.WRITE,
    "print": TokenType.PRINT,
}


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token from Tape source code.

    Attributes:
        type: The TokenType classification
        value: Token value (str for names and operators, int for numbers)
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source file
    """
    type: TokenType
    value: str | int | None
    line: int
    column: int
    filename: str

    def __repr__(self) -> str:
        if self.value is not None:
            if isinstance(self.value, int):
                return f"Token({self.type.name}, {self.value}, {self.line}:{self.column})"
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)


# =============================================================================
# Lexer Implementation
# =============================================================================

class TapeLexer:
    """
    Tokenizes Tape source code.

    Usage:
        lexer = TapeLexer(source_text, filename)
        tokens = list(lexer.tokenize())

    Attributes:
        source: The source code being tokenized
        filename: Name of the source file (for error reporting)
    """

    IDENT_START = string.ascii_letters + "_"
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    ESCAPE_SEQUENCES = {
        "n": "\n",
        "r": "\r",
        "t": "\t",
        "\\": "\\",
        "'": "'",
        '"': '"',
        "0": "\0",
    }

    SINGLE_TOKENS = {
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
        "{": TokenType.LBRACE,
        "}": TokenType.RBRACE,
        ";": TokenType.SEMICOLON,
        "*": TokenType.STAR,
        "/": TokenType.SLASH,
        "%": TokenType.PERCENT,
    }

    def __init__(self, source: str, filename: str = "<input>"):
        self.source = source
        self.filename = filename

        self._pos = 0
        self._line = 1
        self._column = 1
        self._line_start_pos = 0

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source code.

        Yields:
            Token objects, always ending with an EOF token

        Raises:
            TapeSyntaxError: If invalid syntax is encountered
        """
        while not self._at_end():
            self._skip_whitespace_and_comments()
            if self._at_end():
                break
            yield self._scan_token()

        yield self._make_token(TokenType.EOF, None)

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """Look at a character without consuming it ('' past the end)."""
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume and return the current character, tracking line/column."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
            self._line_start_pos = self._pos
        else:
            self._column += 1

        return char

    def _match(self, expected: str) -> bool:
        """Consume the next character if it matches expected."""
        if self._peek() == expected:
            self._advance()
            return True
        return False

    # =========================================================================
    # Token Creation
    # =========================================================================

    def _make_token(
        self,
        token_type: TokenType,
        value: str | int | None,
        start_line: Optional[int] = None,
        start_column: Optional[int] = None,
    ) -> Token:
        return Token(
            type=token_type,
            value=value,
            line=start_line or self._line,
            column=start_column or self._column,
            filename=self.filename,
        )

    def _error(
        self,
        message: str,
        hint: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> TapeSyntaxError:
        """Create a syntax error at the current (or given) position."""
        location = SourceLocation(self.filename, line or self._line, column or self._column)
        return TapeSyntaxError(message, location, hint=hint, source_line=self._get_current_line())

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace_and_comments(self) -> None:
        while not self._at_end():
            char = self._peek()

            if char in " \t\n\r":
                self._advance()
                continue

            if char == "/" and self._peek(1) == "/":
                while not self._at_end() and self._peek() != "\n":
                    self._advance()
                continue

            if char == "/" and self._peek(1) == "*":
                self._skip_multi_line_comment()
                continue

            break

    def _skip_multi_line_comment(self) -> None:
        """
        Skip a /* ... */ comment.

        Raises:
            TapeSyntaxError: If the comment is not terminated
        """
        start_line = self._line
        start_col = self._column

        self._advance()
        self._advance()

        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()

        raise TapeSyntaxError(
            "unterminated multi-line comment",
            SourceLocation(self.filename, start_line, start_col),
            hint="add closing */ to terminate the comment",
        )

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> Token:
        start_line = self._line
        start_column = self._column
        char = self._peek()

        if char in self.IDENT_START:
            return self._scan_identifier(start_line, start_column)

        if char in string.digits:
            return self._scan_number(start_line, start_column)

        if char == '"':
            return self._scan_string(start_line, start_column)

        if char == "'":
            return self._scan_char(start_line, start_column)

        return self._scan_operator(start_line, start_column)

    def _scan_identifier(self, start_line: int, start_column: int) -> Token:
        chars = []
        while self._peek() and self._peek() in self.IDENT_CHARS:
            chars.append(self._advance())

        word = "".join(chars)
        token_type = KEYWORDS.get(word, TokenType.IDENTIFIER)
        return self._make_token(token_type, word, start_line, start_column)

    def _scan_number(self, start_line: int, start_column: int) -> Token:
        """
        Scan a decimal, hexadecimal (0x) or binary (0b) integer.

        Range checking is left to the semantic checker so that the error
        can point at the literal in context.
        """
        if self._peek() == "0" and self._peek(1) in ("x", "X"):
            self._advance()
            self._advance()
            return self._scan_digits(string.hexdigits, 16, "hexadecimal", start_line, start_column)

        if self._peek() == "0" and self._peek(1) in ("b", "B"):
            self._advance()
            self._advance()
            return self._scan_digits("01", 2, "binary", start_line, start_column)

        return self._scan_digits(string.digits, 10, "decimal", start_line, start_column)

    def _scan_digits(
        self,
        alphabet: str,
        base: int,
        description: str,
        start_line: int,
        start_column: int,
    ) -> Token:
        digits = []
        while self._peek() and self._peek() in alphabet:
            digits.append(self._advance())

        if not digits:
            raise self._error(f"expected {description} digits", line=start_line, column=start_column)

        if self._peek() and self._peek() in self.IDENT_CHARS:
            raise self._error(
                f"invalid character '{self._peek()}' in {description} number",
                line=start_line,
                column=start_column,
            )

        return self._make_token(TokenType.NUMBER, int("".join(digits), base), start_line, start_column)

    def _scan_string(self, start_line: int, start_column: int) -> Token:
        """Scan a double-quoted string literal."""
        self._advance()

        chars = []
        while not self._at_end():
            char = self._peek()

            if char == '"':
                self._advance()
                return self._make_token(TokenType.STRING, "".join(chars), start_line, start_column)

            if char == "\n":
                break

            if char == "\\":
                self._advance()
                chars.append(self._scan_escape_sequence())
            else:
                chars.append(self._advance())

        raise UnterminatedStringError(
            SourceLocation(self.filename, start_line, start_column),
            self._get_current_line(),
        )

    def _scan_char(self, start_line: int, start_column: int) -> Token:
        """Scan a character literal; its value is the character code."""
        self._advance()

        if self._at_end() or self._peek() == "\n":
            raise TapeSyntaxError(
                "unterminated character literal",
                SourceLocation(self.filename, start_line, start_column),
                hint="add closing ' to complete the character literal",
            )

        if self._peek() == "\\":
            self._advance()
            char = self._scan_escape_sequence()
        else:
            char = self._advance()

        if self._peek() != "'":
            raise TapeSyntaxError(
                "character literal too long or missing closing quote",
                SourceLocation(self.filename, self._line, self._column),
                hint="character literals can only contain a single character",
            )
        self._advance()

        return self._make_token(TokenType.CHAR_LITERAL, ord(char), start_line, start_column)

    def _scan_escape_sequence(self) -> str:
        """Scan an escape sequence after a backslash."""
        if self._at_end():
            raise self._error("unexpected end of input in escape sequence")

        char = self._advance()

        if char in self.ESCAPE_SEQUENCES:
            return self.ESCAPE_SEQUENCES[char]

        if char == "x":
            hex_chars = []
            for _ in range(2):
                if self._peek() and self._peek() in string.hexdigits:
                    hex_chars.append(self._advance())
                else:
                    break

            if not hex_chars:
                raise self._error("expected hexadecimal digits after '\\x'")

            return chr(int("".join(hex_chars), 16))

        raise self._error(
            f"unknown escape sequence '\\{char}'",
            hint="supported escapes are \\n \\r \\t \\\\ \\' \\\" \\0 \\xNN",
        )

    def _scan_operator(self, start_line: int, start_column: int) -> Token:
        """Scan an operator or delimiter."""
        char = self._advance()

        if char == "+":
            if self._match("="):
                return self._make_token(TokenType.PLUS_ASSIGN, "+=", start_line, start_column)
            return self._make_token(TokenType.PLUS, "+", start_line, start_column)

        if char == "-":
            if self._match("="):
                return self._make_token(TokenType.MINUS_ASSIGN, "-=", start_line, start_column)
            return self._make_token(TokenType.MINUS, "-", start_line, start_column)

        if char == "=":
            if self._match("="):
                return self._make_token(TokenType.EQ, "==", start_line, start_column)
            return self._make_token(TokenType.ASSIGN, "=", start_line, start_column)

        if char == "!":
            if self._match("="):
                return self._make_token(TokenType.NE, "!=", start_line, start_column)
            return self._make_token(TokenType.NOT, "!", start_line, start_column)

        if char == "<":
            if self._match("="):
                return self._make_token(TokenType.LE, "<=", start_line, start_column)
            return self._make_token(TokenType.LT, "<", start_line, start_column)

        if char == ">":
            if self._match("="):
                return self._make_token(TokenType.GE, ">=", start_line, start_column)
            return self._make_token(TokenType.GT, ">", start_line, start_column)

        if char == "&":
            if self._match("&"):
                return self._make_token(TokenType.AND, "&&", start_line, start_column)
            return self._make_token(TokenType.AMPERSAND, "&", start_line, start_column)

        if char == "|":
            if self._match("|"):
                return self._make_token(TokenType.OR, "||", start_line, start_column)
            raise TapeSyntaxError(
                "unexpected '|'",
                SourceLocation(self.filename, start_line, start_column),
                hint="use '||' for logical or",
                source_line=self._get_current_line(),
            )

        if char in self.SINGLE_TOKENS:
            return self._make_token(self.SINGLE_TOKENS[char], char, start_line, start_column)

        raise InvalidCharacterError(
            char,
            SourceLocation(self.filename, start_line, start_column),
            self._get_current_line(),
        )

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def _get_current_line(self) -> str:
        """Get the current line of source text for error reporting."""
        line_end = self.source.find("\n", self._line_start_pos)
        if line_end == -1:
            line_end = len(self.source)
        return self.source[self._line_start_pos:line_end]
