"""
µC Front-End Diagnostics
========================

Every problem the front-end can report about a µC program is one of
the diagnostic classes below. Each class carries a DiagnosticKind so
that tools and tests can group diagnostics without string matching.

Exception Hierarchy
-------------------
UCError (base for all front-end diagnostics)
├── LexicalError - malformed token
├── UCSyntaxError - token sequence does not match the grammar
├── RedeclarationError - name declared twice in one scope
├── UndeclaredIdentifierError - use of an unknown name
├── UCTypeError - type mismatch
├── ArityMismatchError - wrong number of call arguments
├── InvalidLValueError - assignment to something that is not storable
├── MissingReturnError - non-void function can fall off its end
├── ConstantRangeError - constant outside its permitted range
└── UCCompilationError - aggregate report for a failed phase

Phases never raise these. They add them to a DiagnosticCollector and
keep going; the driver raises UCCompilationError once a phase is done
and reported at least one error.

Error Message Format
--------------------
    sieve.uc:5:12: error: undeclared identifier 'mx'
        while (i < mx) {
                   ^
    hint: did you mean 'max'?
"""

from enum import Enum
from typing import Optional, List

from microc.errors import MicroCError, SourceLocation


class DiagnosticKind(Enum):
    """Diagnostic categories reported by the front-end."""
    LEXICAL = "lexical"
    SYNTAX = "syntax"
    REDECLARATION = "redeclaration"
    UNDECLARED_IDENTIFIER = "undeclared identifier"
    TYPE_MISMATCH = "type mismatch"
    ARITY_MISMATCH = "arity mismatch"
    NON_LVALUE_ASSIGNMENT = "non-lvalue assignment"
    MISSING_RETURN = "missing return"
    CONSTANT_OUT_OF_RANGE = "constant out of range"


# =============================================================================
# Base Diagnostic
# =============================================================================

class UCError(MicroCError):
    """
    Base class for all µC front-end diagnostics.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
        kind: The DiagnosticKind of this diagnostic
    """

    kind: DiagnosticKind = DiagnosticKind.SYNTAX

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

            fac.uc:3:10: error: expected ';'
                return 1
                        ^
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class UCCompilationError(UCError):
    """
    Aggregate error for a phase that reported errors.

    The message is the collector's pre-formatted report and is passed
    through unchanged.

    Attributes:
        phase: Name of the phase that failed ("lex", "parse", "check")
        errors: The individual diagnostics of that phase and earlier ones
        warnings: Warning lines collected so far
    """

    def __init__(
        self,
        report: str,
        phase: str = "",
        errors: Optional[List[UCError]] = None,
        warnings: Optional[List[str]] = None,
    ):
        self.phase = phase
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])
        super().__init__(report)

    def _format_message(self) -> str:
        return self.message

    @property
    def kinds(self) -> list[DiagnosticKind]:
        """Kinds of the collected errors, in report order."""
        return [error.kind for error in self.errors]


# =============================================================================
# Lexical and Syntax Diagnostics
# =============================================================================

class LexicalError(UCError):
    """Malformed token: stray byte, bad literal, unterminated comment."""
    kind = DiagnosticKind.LEXICAL


class UCSyntaxError(UCError):
    """
    The token sequence does not match the µC grammar.

    Also raised for nesting deeper than the configured limit.
    """
    kind = DiagnosticKind.SYNTAX


class UnexpectedTokenError(UCSyntaxError):
    """Parser found a token that no grammar rule accepts here."""

    def __init__(
        self,
        found: str,
        expected: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.found = found
        self.expected = expected
        if expected:
            message = f"expected {expected} before '{found}'"
        else:
            message = f"unexpected token '{found}'"
        super().__init__(message, location=location, source_line=source_line)


class ConstantRangeError(UCError):
    """
    A constant lies outside its permitted range.

    Examples:
        int a[0];     // array sizes must be positive
        int b[-3];
    """
    kind = DiagnosticKind.CONSTANT_OUT_OF_RANGE


# =============================================================================
# Semantic Diagnostics
# =============================================================================

class RedeclarationError(UCError):
    """
    Identifier declared incompatibly or twice in the same scope.

    Attributes:
        identifier: The offending name
        original_location: Where the name was first declared
    """
    kind = DiagnosticKind.REDECLARATION

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.identifier = identifier
        self.original_location = original_location

        hint = None
        if original_location:
            hint = f"'{identifier}' was first declared at {original_location}"

        super().__init__(
            message or f"redeclaration of '{identifier}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UndeclaredIdentifierError(UCError):
    """
    Reference to an identifier with no visible declaration.

    Similar names in scope are offered as a hint to catch typos.
    """
    kind = DiagnosticKind.UNDECLARED_IDENTIFIER

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        similar_identifiers: Optional[List[str]] = None,
        message: Optional[str] = None,
    ):
        self.identifier = identifier
        self.similar_identifiers = similar_identifiers or []

        hint = None
        if self.similar_identifiers:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_identifiers[:3])
            hint = f"did you mean {suggestions}?"

        super().__init__(
            message or f"undeclared identifier '{identifier}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UCTypeError(UCError):
    """
    Type mismatch.

    Raised when an operand, argument, condition, or returned value does
    not have a type the construct accepts.
    """
    kind = DiagnosticKind.TYPE_MISMATCH

    def __init__(
        self,
        message: str,
        expected_type: Optional[str] = None,
        actual_type: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.expected_type = expected_type
        self.actual_type = actual_type

        hint = None
        if expected_type and actual_type:
            hint = f"expected '{expected_type}', got '{actual_type}'"

        super().__init__(message, location=location, hint=hint, source_line=source_line)


class ArityMismatchError(UCError):
    """A function was called with the wrong number of arguments."""
    kind = DiagnosticKind.ARITY_MISMATCH

    def __init__(
        self,
        function_name: str,
        expected: int,
        actual: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.function_name = function_name
        self.expected = expected
        self.actual = actual

        word = "argument" if expected == 1 else "arguments"
        super().__init__(
            f"'{function_name}' expects {expected} {word}, got {actual}",
            location=location,
            source_line=source_line,
        )


class InvalidLValueError(UCError):
    """
    Left side of an assignment is not storable.

    Examples:
        42 = x;
        a = x;        // where 'a' is an array
        f() = x;
    """
    kind = DiagnosticKind.NON_LVALUE_ASSIGNMENT

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        what: str = "expression",
    ):
        super().__init__(
            f"{what} is not assignable",
            location=location,
            hint="left side of assignment must be a scalar variable or an array element",
            source_line=source_line,
        )


class MissingReturnError(UCError):
    """A non-void function has a path that does not end in 'return'."""
    kind = DiagnosticKind.MISSING_RETURN

    def __init__(
        self,
        function_name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.function_name = function_name
        super().__init__(
            f"control reaches end of non-void function '{function_name}'",
            location=location,
            hint="end every path with 'return <expression>;'",
            source_line=source_line,
        )


# =============================================================================
# Diagnostic Collection
# =============================================================================

class DiagnosticCollector:
    """
    Collects diagnostics for batch reporting.

    Every phase shares one collector per compilation. Errors beyond
    max_errors are counted but not stored.

    Example:
        diagnostics = DiagnosticCollector(max_errors=100)
        tokens = list(Lexer(source, "a.uc", diagnostics).tokenize())
        if diagnostics.has_errors():
            print(diagnostics.report())
    """

    def __init__(self, max_errors: int = 100):
        self.errors: List[UCError] = []
        self.warnings: List[str] = []
        self.max_errors = max_errors
        self.dropped = 0

    def add(self, error: UCError) -> None:
        """Add an error to the collection."""
        if self.should_stop():
            self.dropped += 1
            return
        self.errors.append(error)

    def add_warning(self, message: str, location: Optional[SourceLocation] = None) -> None:
        """Add a warning message."""
        if location:
            self.warnings.append(f"{location}: warning: {message}")
        else:
            self.warnings.append(f"warning: {message}")

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def should_stop(self) -> bool:
        """Return True if max_errors has been reached."""
        return len(self.errors) >= self.max_errors

    def error_count(self) -> int:
        return len(self.errors) + self.dropped

    def warning_count(self) -> int:
        return len(self.warnings)

    def kinds(self) -> list[DiagnosticKind]:
        return [error.kind for error in self.errors]

    def report(self) -> str:
        """Format all errors and warnings for display."""
        lines = []

        for error in self.errors:
            lines.append(str(error))
            lines.append("")

        if self.dropped:
            lines.append(f"too many errors, {self.dropped} more not shown")

        for warning in self.warnings:
            lines.append(warning)

        errors = self.error_count()
        error_word = "error" if errors == 1 else "errors"
        warning_word = "warning" if len(self.warnings) == 1 else "warnings"
        lines.append(f"\n{errors} {error_word}, {len(self.warnings)} {warning_word}")

        return "\n".join(lines)

    def clear(self) -> None:
        self.errors.clear()
        self.warnings.clear()
        self.dropped = 0

    def raise_if_errors(self, phase: str = "") -> None:
        """Raise a UCCompilationError if any errors were collected."""
        if self.has_errors():
            raise UCCompilationError(
                self.report(),
                phase=phase,
                errors=self.errors,
                warnings=self.warnings,
            )
