"""
Tape Compiler
=============

This package compiles Tape, a small imperative language, into programs
for a single-tape, single-cursor machine whose only commands are
> < + - . , [ ]

Pipeline
--------
    Tape Source → Lexer → Parser → AST → Semantic Checker
                → Lowering (allocator + bindings) → IR → Optimizer → Emitter

Usage
-----
>>> from tapec.compiler import compile_tape
>>> code = compile_tape('''
... let mut n = 3;
... while (n) {
...     print("*");
...     n -= 1;
... }
... ''')

Language Summary
----------------
- Variables: let x = 1; let mut y = 2; let r = &y; let w = &mut y;
- Statements: assignment, += and -=, read(x), write(expr),
  print("text"), if/else, while, blocks
- Operators: + - * / % == != < <= > >= && || ! and unary -
- Values are 8-bit cells; arithmetic wraps modulo 256 and comparisons
  are unsigned

Memory Model
------------
- Every variable and temporary is a fixed tape cell chosen by the
  allocator when the program is compiled
- Constants never use a cell; borrows share the borrowed variable's cell
- Cells are reused as soon as their scope ends

Author: Hugo José Pinto & Contributors
"""

# =============================================================================
# Public API Imports
# =============================================================================

from tapec.compiler.compiler import (
    TapeCompiler,
    CompilerOptions,
    CompilerResult,
    compile_tape,
    compile_file,
)
from tapec.compiler.errors import (
    CompilerError,
    TapeCompilationError,
    TapeSyntaxError,
    TapeSemanticError,
    UndeclaredIdentifierError,
    DuplicateDeclarationError,
    ImmutableAssignmentError,
    BorrowError,
    LiteralRangeError,
    DivisionByZeroError,
    TapeSizeError,
    InternalCompilerError,
    IRInvariantError,
)
from tapec.compiler.lexer import TapeLexer, TokenType, Token
from tapec.compiler.parser import TapeParser, parse_source
from tapec.compiler.semantic import SemanticChecker
from tapec.compiler.allocator import AddressAllocator, AllocatorFacts, ScopeHandle
from tapec.compiler.bindings import (
    ConstantBinding,
    OwnedBinding,
    BorrowedBinding,
    Environment,
)
from tapec.compiler.lowering import IRLowering
from tapec.compiler.optimizer import IROptimizer, OptimizationStats, optimize_ir
from tapec.compiler.emitter import Emitter, emit_code
from tapec.compiler.simulator import IRSimulator, SimulationResult
from tapec.compiler.ir import (
    IRInstruction,
    AddConstant,
    SetZero,
    LoopWhileNonZero,
    Input,
    Output,
    Annotation,
    format_ir,
    count_instructions,
    normalize_delta,
)
from tapec.compiler.ast import ASTPrinter, Program

__all__ = [
    # Main API
    "TapeCompiler",
    "CompilerOptions",
    "CompilerResult",
    "compile_tape",
    "compile_file",
    # Errors
    "CompilerError",
    "TapeCompilationError",
    "TapeSyntaxError",
    "TapeSemanticError",
    "UndeclaredIdentifierError",
    "DuplicateDeclarationError",
    "ImmutableAssignmentError",
    "BorrowError",
    "LiteralRangeError",
    "DivisionByZeroError",
    "TapeSizeError",
    "InternalCompilerError",
    "IRInvariantError",
    # Front end
    "TapeLexer",
    "TokenType",
    "Token",
    "TapeParser",
    "parse_source",
    "SemanticChecker",
    "ASTPrinter",
    "Program",
    # Middle end
    "AddressAllocator",
    "AllocatorFacts",
    "ScopeHandle",
    "ConstantBinding",
    "OwnedBinding",
    "BorrowedBinding",
    "Environment",
    "IRLowering",
    "IROptimizer",
    "OptimizationStats",
    "optimize_ir",
    "Emitter",
    "emit_code",
    "IRSimulator",
    "SimulationResult",
    # IR
    "IRInstruction",
    "AddConstant",
    "SetZero",
    "LoopWhileNonZero",
    "Input",
    "Output",
    "Annotation",
    "format_ir",
    "count_instructions",
    "normalize_delta",
]
