"""
Tape Abstract Syntax Tree (AST) Definitions
===========================================

This module defines the AST node types produced by the Tape parser and
consumed by the semantic checker and IR lowering.

Node Hierarchy
--------------
ASTNode (base)
├── Program - root node containing top-level statements
├── Statements
│   ├── Block - braced statement list { ... }
│   ├── LetStatement - let [mut] name = initializer;
│   ├── AssignStatement - name = expr;
│   ├── CompoundAssignStatement - name += expr; / name -= expr;
│   ├── ReadStatement - read(name);
│   ├── WriteStatement - write(expr);
│   ├── PrintStatement - print("text");
│   ├── WhileStatement - while (expr) { ... }
│   └── IfStatement - if (expr) { ... } else { ... }
└── Expressions
    ├── NumberLiteral - decimal, hex, binary or character constant
    ├── Identifier - variable reference
    ├── BinaryExpression - binary operators
    ├── UnaryExpression - '-' and '!'
    └── BorrowExpression - '&name' / '&mut name' (initializers only)

Design Notes
------------
- All nodes are dataclasses carrying their source location
- The tree is never modified after parsing; later stages only read it
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from tapec.errors import SourceLocation


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        location: Source location where this node appears
    """
    location: SourceLocation

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}@{self.location.line}:{self.location.column}"


@dataclass
class Expression(ASTNode):
    """Base class for all expression nodes."""
    pass


@dataclass
class Statement(ASTNode):
    """Base class for all statement nodes."""
    pass


# =============================================================================
# Program Root Node
# =============================================================================

@dataclass
class Program(ASTNode):
    """
    Root node of the AST.

    Attributes:
        statements: Top-level statements in source order
    """
    statements: list[Statement] = field(default_factory=list)


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Block(Statement):
    """
    Braced statement list. Opens a new variable scope.

    Attributes:
        statements: Statements inside the braces
    """
    statements: list[Statement] = field(default_factory=list)


@dataclass
class LetStatement(Statement):
    """
    Variable declaration.

    Attributes:
        name: Declared variable name
        mutable: True for 'let mut'
        initializer: Initial value expression, or a BorrowExpression
    """
    name: str = ""
    mutable: bool = False
    initializer: Expression = None


@dataclass
class AssignStatement(Statement):
    """Plain assignment (name = value)."""
    name: str = ""
    value: Expression = None


@dataclass
class CompoundAssignStatement(Statement):
    """
    In-place update (name += value, name -= value).

    Attributes:
        operator: BinaryOperator.ADD or BinaryOperator.SUBTRACT
    """
    name: str = ""
    operator: "BinaryOperator" = None
    value: Expression = None


@dataclass
class ReadStatement(Statement):
    """Read one input byte into a variable."""
    name: str = ""


@dataclass
class WriteStatement(Statement):
    """Write the value of an expression as one output byte."""
    value: Expression = None


@dataclass
class PrintStatement(Statement):
    """Write every character of a string literal."""
    text: str = ""


@dataclass
class WhileStatement(Statement):
    """Loop while the condition is non-zero."""
    condition: Expression = None
    body: Block = None


@dataclass
class IfStatement(Statement):
    """
    Conditional statement.

    Attributes:
        condition: Tested for non-zero
        then_branch: Block run when the condition holds
        else_branch: Block or nested IfStatement, or None
    """
    condition: Expression = None
    then_branch: Block = None
    else_branch: Optional[Statement] = None


# =============================================================================
# Expression Nodes
# =============================================================================

class BinaryOperator(Enum):
    """Binary operator types."""
    # Arithmetic
    ADD = auto()        # +
    SUBTRACT = auto()   # -
    MULTIPLY = auto()   # *
    DIVIDE = auto()     # /
    MODULO = auto()     # %

    # Comparison
    EQUAL = auto()      # ==
    NOT_EQUAL = auto()  # !=
    LESS = auto()       # <
    GREATER = auto()    # >
    LESS_EQ = auto()    # <=
    GREATER_EQ = auto() # >=

    # Logical
    LOGICAL_AND = auto()  # &&
    LOGICAL_OR = auto()   # ||


class UnaryOperator(Enum):
    """Unary operator types."""
    NEGATE = auto()      # -x
    LOGICAL_NOT = auto() # !x


BINARY_SYMBOLS = {
    BinaryOperator.ADD: "+",
    BinaryOperator.SUBTRACT: "-",
    BinaryOperator.MULTIPLY: "*",
    BinaryOperator.DIVIDE: "/",
    BinaryOperator.MODULO: "%",
    BinaryOperator.EQUAL: "==",
    BinaryOperator.NOT_EQUAL: "!=",
    BinaryOperator.LESS: "<",
    BinaryOperator.GREATER: ">",
    BinaryOperator.LESS_EQ: "<=",
    BinaryOperator.GREATER_EQ: ">=",
    BinaryOperator.LOGICAL_AND: "&&",
    BinaryOperator.LOGICAL_OR: "||",
}

UNARY_SYMBOLS = {
    UnaryOperator.NEGATE: "-",
    UnaryOperator.LOGICAL_NOT: "!",
}


@dataclass
class NumberLiteral(Expression):
    """Integer constant (character literals are stored as their code)."""
    value: int = 0


@dataclass
class Identifier(Expression):
    """Variable reference."""
    name: str = ""


@dataclass
class BinaryExpression(Expression):
    """Binary operation expression (left op right)."""
    operator: BinaryOperator = None
    left: Expression = None
    right: Expression = None


@dataclass
class UnaryExpression(Expression):
    """Unary operation expression (op operand)."""
    operator: UnaryOperator = None
    operand: Expression = None


@dataclass
class BorrowExpression(Expression):
    """
    Borrow of another variable's storage.

    Only valid as the initializer of a let statement.

    Attributes:
        name: Borrowed variable
        mutable: True for '&mut name'
    """
    name: str = ""
    mutable: bool = False


# =============================================================================
# AST Visitor Pattern
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses override visit_* methods for the node types they care
    about; everything else falls through to generic_visit, which visits
    child nodes.

    Usage:
        class NameCollector(ASTVisitor):
            def visit_Identifier(self, node):
                names.add(node.name)

        NameCollector().visit(program)
    """

    def visit(self, node: ASTNode):
        """Visit a node by dispatching to visit_<ClassName>."""
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> None:
        """Visit all child nodes of a node."""
        for field_value in node.__dict__.values():
            if isinstance(field_value, ASTNode):
                self.visit(field_value)
            elif isinstance(field_value, list):
                for item in field_value:
                    if isinstance(item, ASTNode):
                        self.visit(item)


# =============================================================================
# AST Pretty Printer
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Pretty printer for AST debugging.

    Usage:
        printer = ASTPrinter()
        print(printer.print(program))
    """

    def __init__(self):
        self.output: list[str] = []
        self.indent_level = 0

    def print(self, node: ASTNode) -> str:
        """Print the AST and return as string."""
        self.output = []
        self.indent_level = 0
        self.visit(node)
        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        self.output.append(f"{'  ' * self.indent_level}{text}")

    def _visit_indented(self, node: ASTNode) -> None:
        self.indent_level += 1
        self.visit(node)
        self.indent_level -= 1

    def visit_Program(self, node: Program):
        self._emit("Program")
        for stmt in node.statements:
            self._visit_indented(stmt)

    def visit_Block(self, node: Block):
        self._emit("Block")
        for stmt in node.statements:
            self._visit_indented(stmt)

    def visit_LetStatement(self, node: LetStatement):
        keyword = "let mut" if node.mutable else "let"
        self._emit(f"{keyword} {node.name} = {expression_to_string(node.initializer)}")

    def visit_AssignStatement(self, node: AssignStatement):
        self._emit(f"{node.name} = {expression_to_string(node.value)}")

    def visit_CompoundAssignStatement(self, node: CompoundAssignStatement):
        symbol = BINARY_SYMBOLS[node.operator]
        self._emit(f"{node.name} {symbol}= {expression_to_string(node.value)}")

    def visit_ReadStatement(self, node: ReadStatement):
        self._emit(f"read({node.name})")

    def visit_WriteStatement(self, node: WriteStatement):
        self._emit(f"write({expression_to_string(node.value)})")

    def visit_PrintStatement(self, node: PrintStatement):
        self._emit(f"print({node.text!r})")

    def visit_WhileStatement(self, node: WhileStatement):
        self._emit(f"While ({expression_to_string(node.condition)})")
        self._visit_indented(node.body)

    def visit_IfStatement(self, node: IfStatement):
        self._emit(f"If ({expression_to_string(node.condition)})")
        self.indent_level += 1
        self._emit("Then:")
        self._visit_indented(node.then_branch)
        if node.else_branch is not None:
            self._emit("Else:")
            self._visit_indented(node.else_branch)
        self.indent_level -= 1


def expression_to_string(expr: Optional[Expression]) -> str:
    """Render an expression fully parenthesized, for dumps and annotations."""
    if expr is None:
        return ""
    if isinstance(expr, NumberLiteral):
        return str(expr.value)
    if isinstance(expr, Identifier):
        return expr.name
    if isinstance(expr, BorrowExpression):
        return f"&mut {expr.name}" if expr.mutable else f"&{expr.name}"
    if isinstance(expr, BinaryExpression):
        symbol = BINARY_SYMBOLS.get(expr.operator, "?")
        return f"({expression_to_string(expr.left)} {symbol} {expression_to_string(expr.right)})"
    if isinstance(expr, UnaryExpression):
        symbol = UNARY_SYMBOLS.get(expr.operator, "?")
        return f"({symbol}{expression_to_string(expr.operand)})"
    return f"<{type(expr).__name__}>"
