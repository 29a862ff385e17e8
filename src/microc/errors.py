"""
microc Error Hierarchy
======================

This module defines the root of the exception hierarchy for the µC
toolchain. All exceptions inherit from MicroCError, allowing callers to
catch all toolchain errors with a single except clause if desired.

Exception Hierarchy
-------------------
MicroCError (base)
├── UCError (front-end diagnostics, see microc.frontend.errors)
│   └── UCCompilationError - aggregate report for a failed phase
├── InternalCompilerError - broken invariant inside the compiler
└── ExecutionError - fault raised by the reference IR machine

Error messages follow this format:
    filename:line:column: error: description
        source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass, field


# =============================================================================
# Base Exception Class
# =============================================================================

class MicroCError(Exception):
    """
    Base exception for all microc errors.

        try:
            compile_uc(source)
        except MicroCError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in source code for error reporting.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        offset: Byte offset from the start of the buffer (0-indexed)
    """
    filename: str
    line: int
    column: int
    offset: int = field(default=0, compare=False)

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Internal Errors
# =============================================================================

class InternalCompilerError(MicroCError):
    """
    A compiler invariant was violated.

    These are programmer errors, never user diagnostics: they are not
    collected and always abort compilation. The message names the
    offending node or instruction.
    """

    def __init__(self, message: str, node: object = None):
        self.node = node
        if node is not None:
            describe = getattr(node, "describe", None)
            message = f"{message} ({describe() if describe else node})"
        super().__init__(f"internal compiler error: {message}")
