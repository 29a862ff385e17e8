"""
µC Compiler Front-End
=====================

This package implements the front-end of a compiler for µC, a small
C-like teaching language with int and char scalars, one-dimensional
arrays, functions, if/else, while and return.

- A lexer producing positioned tokens
- A recursive descent parser producing an AST
- A symbol table and type checker with return-path analysis
- Lowering to a typed three-address IR, plus an IR verifier

Pipeline
--------
    µC Source → Lexer → Parser → AST → Checker → Lowering → IR

Usage
-----
>>> from microc.frontend import compile_uc
>>> ir = compile_uc('int main(void) { return 42; }')
>>> print(ir)

Language Subset
---------------
Supported features:
- Data types: int (32-bit), char (8-bit unsigned), void results
- One-dimensional arrays of int or char; array parameters decay
- Operators: + - * / comparisons && || ! unary - and assignment
- Control flow: if/else, while, return
- Runtime functions: putint, putstring, getstring

Not supported:
- Pointers, structs, for/do/switch, string literals
- Preprocessor directives
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Imports
# =============================================================================

from microc.frontend.compiler import (
    CompilerOptions,
    CompilerResult,
    MicroCCompiler,
    compile_file,
    compile_uc,
)
from microc.frontend.errors import (
    DiagnosticCollector,
    DiagnosticKind,
    UCError,
    UCCompilationError,
    LexicalError,
    UCSyntaxError,
    UnexpectedTokenError,
    ConstantRangeError,
    RedeclarationError,
    UndeclaredIdentifierError,
    UCTypeError,
    ArityMismatchError,
    InvalidLValueError,
    MissingReturnError,
)
from microc.frontend.lexer import Lexer, Token, TokenKind, TokenType, tokenize
from microc.frontend.parser import Parser, parse_source
from microc.frontend.checker import TypeChecker, check_program
from microc.frontend.symbols import Scope, StorageClass, Symbol, SymbolTable
from microc.frontend.types import CType, FunctionType, TYPE_CHAR, TYPE_INT, TYPE_VOID
from microc.frontend.lowering import Lowerer, lower_program
from microc.frontend.verifier import IRVerifier, verify_program
from microc.frontend.ir import IRProgram, IRFunction, format_program
from microc.frontend.ast import (
    ASTNode,
    ASTPrinter,
    ProgramNode,
    FunctionNode,
    VariableDeclaration,
    ParameterNode,
    BlockStatement,
    IfStatement,
    WhileStatement,
    ReturnStatement,
    ExpressionStatement,
    BinaryExpression,
    UnaryExpression,
    CallExpression,
    IdentifierExpression,
    NumberLiteral,
    CharLiteral,
    ArraySubscript,
    AssignmentExpression,
)

__all__ = [
    # Driver
    "CompilerOptions",
    "CompilerResult",
    "MicroCCompiler",
    "compile_file",
    "compile_uc",
    # Diagnostics
    "DiagnosticCollector",
    "DiagnosticKind",
    "UCError",
    "UCCompilationError",
    "LexicalError",
    "UCSyntaxError",
    "UnexpectedTokenError",
    "ConstantRangeError",
    "RedeclarationError",
    "UndeclaredIdentifierError",
    "UCTypeError",
    "ArityMismatchError",
    "InvalidLValueError",
    "MissingReturnError",
    # Phases
    "Lexer",
    "Token",
    "TokenKind",
    "TokenType",
    "tokenize",
    "Parser",
    "parse_source",
    "TypeChecker",
    "check_program",
    "Lowerer",
    "lower_program",
    "IRVerifier",
    "verify_program",
    # Symbols and types
    "Scope",
    "StorageClass",
    "Symbol",
    "SymbolTable",
    "CType",
    "FunctionType",
    "TYPE_CHAR",
    "TYPE_INT",
    "TYPE_VOID",
    # IR
    "IRProgram",
    "IRFunction",
    "format_program",
    # AST
    "ASTNode",
    "ASTPrinter",
    "ProgramNode",
    "FunctionNode",
    "VariableDeclaration",
    "ParameterNode",
    "BlockStatement",
    "IfStatement",
    "WhileStatement",
    "ReturnStatement",
    "ExpressionStatement",
    "BinaryExpression",
    "UnaryExpression",
    "CallExpression",
    "IdentifierExpression",
    "NumberLiteral",
    "CharLiteral",
    "ArraySubscript",
    "AssignmentExpression",
]
