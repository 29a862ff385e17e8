"""
µC Compiler Main Module
=======================

This module provides the main compiler interface for µC. It runs the
front-end phases in order:

    Source → Lex → Parse → Check → Lower → Verify → IR

Usage
-----
Command line:
    $ ucc fac.uc -o fac.ir

Programmatic:
    >>> from microc.frontend import compile_uc
    >>> ir = compile_uc('int main(void) { return 42; }')

Error Handling
--------------
Each phase collects its diagnostics into one DiagnosticCollector and
keeps going, so a single run reports as many problems as possible. The
driver advances to the next phase only when the current one reported no
errors; otherwise it raises UCCompilationError carrying the full report
and the name of the phase that failed.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from microc.frontend.ast import ProgramNode
from microc.frontend.checker import TypeChecker
from microc.frontend.errors import DiagnosticCollector, UCError
from microc.frontend.ir import IRProgram, format_program
from microc.frontend.lexer import Lexer, Token
from microc.frontend.lowering import Lowerer
from microc.frontend.parser import DEFAULT_MAX_NESTING_DEPTH, Parser
from microc.frontend.source import SourceBuffer
from microc.frontend.symbols import SymbolTable
from microc.frontend.verifier import verify_program

logger = logging.getLogger(__name__)

PHASES = ("lex", "parse", "check")


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        strict_returns: A non-void function (other than main) that can
                        fall off its end is an error; when False it is a
                        warning and the function returns 0
        require_main: Report a program without 'int main(void)'
        inject_runtime: Predeclare putint, putstring and getstring
        warn_array_bounds: Warn about constant subscripts outside a
                           sized array
        max_errors: Diagnostics kept per compilation
        max_nesting_depth: Deepest statement/expression nesting the
                           parser accepts
        verify_ir: Run the IR verifier after lowering
    """
    strict_returns: bool = True
    require_main: bool = True
    inject_runtime: bool = True
    warn_array_bounds: bool = True
    max_errors: int = 100
    max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH
    verify_ir: bool = True


@dataclass
class CompilerResult:
    """
    Result of a compilation.

    Attributes:
        filename: Source filename
        success: True if compilation succeeded
        ir: Lowered program (if successful)
        ir_text: Textual form of the IR
        ast: Checked abstract syntax tree
        symbols: Symbol table built by the checker
        tokens: Tokens lexed, EOF included
        errors: Collected errors
        warnings: Collected warning messages
    """
    filename: str = ""
    success: bool = False
    ir: Optional[IRProgram] = None
    ir_text: str = ""
    ast: Optional[ProgramNode] = None
    symbols: Optional[SymbolTable] = None
    tokens: list[Token] = field(default_factory=list)
    errors: list[UCError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def token_count(self) -> int:
        return len(self.tokens)


class MicroCCompiler:
    """
    µC front-end driver.

    Example:
        compiler = MicroCCompiler()
        result = compiler.compile_file("fac.uc")
        print(result.ir_text)

    Attributes:
        options: Compiler configuration options
        diagnostics: Collector shared by all phases, cleared per call
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()
        self.diagnostics = DiagnosticCollector(self.options.max_errors)

    def compile_source(
        self,
        source: str | bytes | SourceBuffer,
        filename: str = "<input>",
        stop_after: Optional[str] = None,
    ) -> CompilerResult:
        """
        Compile µC source to IR.

        Args:
            source: Source text, raw bytes or a SourceBuffer
            filename: Name used in diagnostics (ignored for a SourceBuffer)
            stop_after: "lex", "parse" or "check" to end successfully after
                        that phase, leaving the later result fields empty

        Returns:
            CompilerResult holding the IR and any warnings

        Raises:
            UCCompilationError: If any phase reported errors
            InternalCompilerError: If lowering or verification found a defect
        """
        if stop_after not in (None, *PHASES):
            raise ValueError(f"unknown phase '{stop_after}', expected one of {PHASES}")
        self.diagnostics.clear()
        buffer = source if isinstance(source, SourceBuffer) else SourceBuffer(source, filename)
        filename = buffer.filename
        result = CompilerResult(filename=filename)

        # Phase 1: lexical analysis
        lexer = Lexer(buffer, filename, self.diagnostics)
        result.tokens = list(lexer.tokenize())
        logger.debug(f"{filename}: {len(result.tokens)} tokens")
        if self._finish_phase("lex", result, stop_after):
            return result

        # Phase 2: parsing
        parser = Parser(
            result.tokens,
            filename,
            buffer.lines,
            self.diagnostics,
            max_nesting_depth=self.options.max_nesting_depth,
        )
        result.ast = parser.parse()
        logger.debug(f"{filename}: {len(result.ast.declarations)} top-level declarations")
        if self._finish_phase("parse", result, stop_after):
            return result

        # Phase 3: symbol resolution and type checking
        checker = TypeChecker(
            self.diagnostics,
            filename,
            buffer.lines,
            inject_runtime=self.options.inject_runtime,
            require_main=self.options.require_main,
            strict_returns=self.options.strict_returns,
            warn_array_bounds=self.options.warn_array_bounds,
        )
        result.symbols = checker.check(result.ast)
        if self._finish_phase("check", result, stop_after):
            return result

        # Phase 4: lowering
        result.ir = Lowerer(result.symbols).lower(result.ast)
        if self.options.verify_ir:
            verify_program(result.ir)
        result.ir_text = format_program(result.ir)

        result.success = True
        result.warnings = list(self.diagnostics.warnings)
        return result

    def compile_file(self, filepath: str | Path, stop_after: Optional[str] = None) -> CompilerResult:
        """
        Compile a µC source file to IR.

        Raises:
            UCCompilationError: If compilation fails
            FileNotFoundError: If source file not found
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Source file not found: {filepath}")
        return self.compile_source(SourceBuffer.from_file(path), stop_after=stop_after)

    def _finish_phase(self, phase: str, result: CompilerResult, stop_after: Optional[str]) -> bool:
        """Raise if `phase` reported errors; return True if compilation ends here."""
        result.errors = list(self.diagnostics.errors)
        result.warnings = list(self.diagnostics.warnings)
        if self.diagnostics.has_errors():
            logger.debug(f"{result.filename}: {phase} failed with {self.diagnostics.error_count()} errors")
        self.diagnostics.raise_if_errors(phase)
        if phase == stop_after:
            logger.debug(f"{result.filename}: stopping after {phase}")
            result.success = True
            return True
        return False


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_uc(
    source: str | bytes,
    filename: str = "<input>",
    options: Optional[CompilerOptions] = None,
) -> IRProgram:
    """
    Compile µC source code to IR.

    This is the primary high-level interface for the front-end.

    Raises:
        UCCompilationError: If compilation fails

    Example:
        >>> ir = compile_uc('int main(void) { putint(42); return 0; }')
        >>> print(ir)
    """
    return MicroCCompiler(options).compile_source(source, filename).ir


def compile_file(
    filepath: str | Path,
    output_path: Optional[str | Path] = None,
    options: Optional[CompilerOptions] = None,
) -> str:
    """
    Compile a µC source file and return the IR text.

    Raises:
        UCCompilationError: If compilation fails
        FileNotFoundError: If source file not found

    Example:
        >>> text = compile_file("fac.uc", "fac.ir")
    """
    result = MicroCCompiler(options).compile_file(filepath)
    if output_path:
        Path(output_path).write_text(result.ir_text, encoding="utf-8")
    return result.ir_text
