"""
microc - A µC Compiler Front-End
================================

This package compiles µC, a reduced C-like teaching language, into a
typed three-address intermediate representation.

Main Components
---------------
- **frontend**: Lexer, parser, type checker, lowering and IR verifier
- **runtime**: Reference interpreter for the IR
- **cli**: The ucc command-line driver

Quick Start
-----------
Compile a program:
    >>> from microc import compile_uc
    >>> ir = compile_uc('int main(void) { putint(6 * 7); return 0; }')
    >>> print(ir)

Run it:
    >>> from microc import run_program
    >>> run_program(ir).stdout
    '42'

Or use the command-line tool:
    $ ucc fac.uc -o fac.ir
    $ ucc --run fac.uc
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from microc.errors import MicroCError, SourceLocation, InternalCompilerError
from microc.frontend import (
    CompilerOptions,
    CompilerResult,
    MicroCCompiler,
    compile_file,
    compile_uc,
    DiagnosticCollector,
    DiagnosticKind,
    UCError,
    UCCompilationError,
    IRProgram,
    format_program,
)
from microc.runtime import ExecutionError, ExecutionResult, IRMachine, run_program

__all__ = [
    "__version__",
    # Exception hierarchy
    "MicroCError",
    "SourceLocation",
    "InternalCompilerError",
    "UCError",
    "UCCompilationError",
    "ExecutionError",
    # Compiler
    "CompilerOptions",
    "CompilerResult",
    "MicroCCompiler",
    "compile_file",
    "compile_uc",
    "DiagnosticCollector",
    "DiagnosticKind",
    "IRProgram",
    "format_program",
    # Runtime
    "ExecutionResult",
    "IRMachine",
    "run_program",
]
