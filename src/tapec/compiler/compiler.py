"""
Tape Compiler Main Module
=========================

This module provides the main compiler interface for Tape.
It orchestrates the complete compilation process:

    Source → Lex → Parse → Check → Lower → Optimize → Emit

Usage
-----
Command line:
    $ tapecc hello.tape -o hello.bf

Programmatic:
    >>> from tapec.compiler import compile_tape
    >>> compile_tape('let mut x = 5; write(x);')
    '+++++.'

Compilation Pipeline
--------------------
1. **Lexical Analysis**: Convert source to tokens
2. **Parsing**: Build the Abstract Syntax Tree (AST)
3. **Semantic Checking**: Names, mutability, borrows, literal ranges
4. **Lowering**: Place variables on the tape and produce IR
5. **Optimization**: Fixpoint IR passes (skipped with optimize=False,
   apart from address verification)
6. **Emission**: Linearize IR into the eight-command text

Error Handling
--------------
The parser and the semantic checker collect every error they find and
report them together. Lowering and later stages only raise internal
errors, which indicate a compiler defect.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from tapec.compiler.lexer import TapeLexer, Token
from tapec.compiler.parser import TapeParser
from tapec.compiler.semantic import SemanticChecker
from tapec.compiler.lowering import IRLowering
from tapec.compiler.optimizer import IROptimizer, OptimizationStats
from tapec.compiler.emitter import Emitter
from tapec.compiler.allocator import AllocatorFacts
from tapec.compiler.ast import Program
from tapec.compiler.ir import IRInstruction
from tapec.compiler.errors import (
    CompilerError,
    ErrorCollector,
    InternalCompilerError,
    TapeCompilationError,
)

logger = logging.getLogger(__name__)


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        debug: Embed source annotations as comment lines in the output
        optimize: Run the IR optimizer (False emits lowering output as-is)
        max_optimizer_passes: Upper bound on optimizer fixpoint iterations
        address_limit: Tape size the program must fit in, or None
    """
    debug: bool = False
    optimize: bool = True
    max_optimizer_passes: int = 20
    address_limit: Optional[int] = None


@dataclass
class CompilerResult:
    """
    Result of a compilation.

    Attributes:
        filename: Source filename
        success: True if compilation succeeded
        code: Generated target code
        ir: IR that was emitted (optimized unless optimize=False)
        unoptimized_ir: IR as produced by lowering
        ast: Abstract syntax tree (if parsing succeeded)
        token_count: Number of tokens lexed
        address_count: Number of tape cells the program uses
        live_addresses: Cells still owned when the program ends
        stats: Optimizer statistics
        errors: List of errors
        warnings: List of warning messages
    """
    filename: str = ""
    success: bool = False
    code: str = ""
    ir: list[IRInstruction] = field(default_factory=list)
    unoptimized_ir: list[IRInstruction] = field(default_factory=list)
    ast: Optional[Program] = None
    token_count: int = 0
    address_count: int = 0
    live_addresses: frozenset[int] = frozenset()
    stats: OptimizationStats = field(default_factory=OptimizationStats)
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


class TapeCompiler:
    """
    Tape compiler.

    Every call to compile_source() builds a fresh lowering, allocator and
    optimizer, so one compiler instance can be reused.

    Example:
        compiler = TapeCompiler(CompilerOptions(debug=True))
        result = compiler.compile_file("hello.tape")
        print(result.code)

    Attributes:
        options: Compiler configuration options
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()
        self._errors = ErrorCollector()

    def compile_source(self, source: str, filename: str = "<input>") -> CompilerResult:
        """
        Compile Tape source code.

        Args:
            source: Tape source code string
            filename: Source filename for error messages

        Returns:
            CompilerResult containing the code and diagnostics

        Raises:
            CompilerError: If compilation fails
        """
        self._errors.clear()
        result = CompilerResult(filename=filename)
        source_lines = source.splitlines()

        try:
            tokens = self._lex(source, filename)
            result.token_count = len(tokens)

            ast = self._parse(tokens, filename, source_lines)
            result.ast = ast

            self._errors.warnings.extend(self._check(ast, source_lines))

            ir, facts, lowering_warnings = self._lower(ast, source_lines)
            self._errors.warnings.extend(lowering_warnings)
            result.unoptimized_ir = ir
            result.address_count = facts.address_count
            result.live_addresses = facts.live_at_exit

            optimized, stats = self._optimize(ir, facts)
            result.ir = optimized
            result.stats = stats

            result.code = self._emit(optimized)
            result.success = True

        except (TapeCompilationError, InternalCompilerError):
            raise
        except CompilerError as e:
            self._errors.add(e)
            result.success = False

        result.errors = list(self._errors.errors)
        result.warnings = list(self._errors.warnings)
        self._errors.raise_if_errors()

        return result

    def compile_file(self, filepath: str | Path) -> CompilerResult:
        """
        Compile a Tape source file.

        Raises:
            CompilerError: If compilation fails
            FileNotFoundError: If source file not found
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Source file not found: {filepath}")

        source = path.read_text(encoding="utf-8")
        return self.compile_source(source, str(filepath))

    def _lex(self, source: str, filename: str) -> list[Token]:
        """Tokenize source."""
        tokens = list(TapeLexer(source, filename).tokenize())
        logger.debug(f"Lexed {len(tokens)} tokens from {filename}")
        return tokens

    def _parse(self, tokens: list[Token], filename: str, source_lines: list[str]) -> Program:
        """Parse tokens into AST."""
        program = TapeParser(tokens, filename, source_lines).parse()
        logger.debug(f"Parsed {len(program.statements)} top-level statements")
        return program

    def _check(self, ast: Program, source_lines: list[str]) -> list[str]:
        """Run semantic checks; returns warnings."""
        return SemanticChecker(source_lines).check(ast)

    def _lower(
        self, ast: Program, source_lines: list[str]
    ) -> tuple[list[IRInstruction], AllocatorFacts, list[str]]:
        """Lower the AST to IR."""
        lowering = IRLowering(debug=self.options.debug, source_lines=source_lines)
        ir = lowering.lower(ast)
        return ir, lowering.facts(), lowering.warnings

    def _optimize(
        self, ir: list[IRInstruction], facts: AllocatorFacts
    ) -> tuple[list[IRInstruction], OptimizationStats]:
        """Optimize IR (verification always runs)."""
        optimizer = IROptimizer(
            enabled=self.options.optimize,
            max_passes=self.options.max_optimizer_passes,
        )
        optimized = optimizer.optimize(ir, facts)
        return optimized, optimizer.stats

    def _emit(self, ir: list[IRInstruction]) -> str:
        """Emit target code from IR."""
        emitter = Emitter(debug=self.options.debug, address_limit=self.options.address_limit)
        return emitter.emit(ir)


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_tape(
    source: str,
    filename: str = "<input>",
    debug: bool = False,
    optimize: bool = True,
) -> str:
    """
    Compile Tape source code to target code.

    This is the primary high-level interface for compiling Tape.

    Raises:
        CompilerError: If compilation fails

    Example:
        >>> compile_tape("let mut x = 2; x += 1; write(x);")
        '+++.'
    """
    options = CompilerOptions(debug=debug, optimize=optimize)
    result = TapeCompiler(options).compile_source(source, filename)
    return result.code


def compile_file(
    filepath: str | Path,
    output_path: Optional[str | Path] = None,
    debug: bool = False,
    optimize: bool = True,
) -> str:
    """
    Compile a Tape source file to target code.

    Args:
        filepath: Path to the .tape source file
        output_path: Optional path to write the output to

    Returns:
        Generated target code

    Raises:
        CompilerError: If compilation fails
        FileNotFoundError: If source file not found
    """
    options = CompilerOptions(debug=debug, optimize=optimize)
    result = TapeCompiler(options).compile_file(filepath)

    if output_path:
        Path(output_path).write_text(result.code, encoding="utf-8")

    return result.code
