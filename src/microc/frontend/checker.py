"""
µC Semantic Analysis
====================

Resolves every identifier to its declaration, checks types, and
verifies that non-void functions return on every path. The checker
decorates the AST in place: each Expression gets resolved_type, and
identifiers and calls get their Symbol.

Passes
------
1. Declarations: runtime prototypes are injected, then top-level
   declarations enter the global scope in file order. A prototype may
   be repeated if it is compatible; conflicting prototypes and second
   definitions are redeclarations.
2. Bodies: each definition opens a function scope holding its
   parameters and locals, then its statements are checked.

Type Rules
----------
| Construct           | Operands                          | Result |
|---------------------|-----------------------------------|--------|
| literal             |                                   | int / char |
| a[e]                | a is an array of T, e scalar      | T      |
| f(args)             | arity matches, args passable      | result of f |
| -e, !e              | e scalar                          | int    |
| + - * / comparisons | both scalar                       | int    |
| && ||               | both scalar                       | int    |
| lhs = rhs           | lhs scalar lvalue, rhs scalar     | type of lhs |

Return Paths
------------
A statement "returns" if it is a return, an if/else whose arms both
return, or a block whose last statement returns. A while loop never
counts. main is exempt: falling off its end returns 0.

Every expression gets a type even after an error (int is used for
recovery), so one mistake does not cascade into many diagnostics.
"""

import difflib
import logging
from typing import Optional

from microc.errors import SourceLocation
from microc.frontend.errors import (
    ArityMismatchError,
    DiagnosticCollector,
    InvalidLValueError,
    MissingReturnError,
    RedeclarationError,
    UCTypeError,
    UndeclaredIdentifierError,
)
from microc.frontend.symbols import GLOBAL_SCOPE, StorageClass, Symbol, SymbolTable
from microc.frontend.types import (
    TYPE_CHAR,
    TYPE_INT,
    TYPE_VOID,
    BaseType,
    CType,
    FunctionType,
    array_of,
    is_assignable,
    is_passable,
)
from microc.frontend.ast import (
    ArraySubscript,
    AssignmentExpression,
    ASTNode,
    ASTVisitor,
    BinaryExpression,
    BlockStatement,
    CallExpression,
    CharLiteral,
    EmptyStatement,
    Expression,
    ExpressionStatement,
    FunctionNode,
    IdentifierExpression,
    IfStatement,
    NumberLiteral,
    ProgramNode,
    ReturnStatement,
    Statement,
    UnaryExpression,
    UnaryOperator,
    VariableDeclaration,
    WhileStatement,
)

logger = logging.getLogger(__name__)

# Prototypes every µC program may call without declaring them
RUNTIME_PROTOTYPES: dict[str, FunctionType] = {
    "putint": FunctionType(TYPE_VOID, (TYPE_INT,)),
    "putstring": FunctionType(TYPE_VOID, (array_of(BaseType.CHAR),)),
    "getstring": FunctionType(TYPE_VOID, (array_of(BaseType.CHAR),)),
}

MAIN_TYPE = FunctionType(TYPE_INT, ())


def always_returns(statement: Optional[Statement]) -> bool:
    """
    Return True if every path through `statement` ends in a return.

    Trailing empty statements in a block are ignored. Else branches and
    last statements are followed in a loop.
    """
    while True:
        if isinstance(statement, ReturnStatement):
            return True
        if isinstance(statement, IfStatement):
            if statement.else_branch is None or not always_returns(statement.then_branch):
                return False
            statement = statement.else_branch
        elif isinstance(statement, BlockStatement):
            statement = next(
                (s for s in reversed(statement.statements) if not isinstance(s, EmptyStatement)),
                None,
            )
        else:
            return False


class TypeChecker(ASTVisitor):
    """
    Two-pass symbol resolution and type checking.

    Usage:
        checker = TypeChecker(diagnostics, "prog.uc", source_lines)
        symbols = checker.check(program)
        if diagnostics.has_errors():
            ...

    Attributes:
        diagnostics: Collector for errors and warnings
        symbols: The SymbolTable built by check()
    """

    def __init__(
        self,
        diagnostics: Optional[DiagnosticCollector] = None,
        filename: str = "<input>",
        source_lines: Optional[list[str]] = None,
        inject_runtime: bool = True,
        require_main: bool = True,
        strict_returns: bool = True,
        warn_array_bounds: bool = True,
    ):
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.filename = filename
        self.source_lines = source_lines or []
        self.inject_runtime = inject_runtime
        self.require_main = require_main
        self.strict_returns = strict_returns
        self.warn_array_bounds = warn_array_bounds

        self.symbols = SymbolTable()
        self._function: Optional[FunctionNode] = None

    def check(self, program: ProgramNode) -> SymbolTable:
        """Run both passes over `program` and return the symbol table."""
        if self.inject_runtime:
            for name, ftype in RUNTIME_PROTOTYPES.items():
                self.symbols.declare(
                    name, ftype, StorageClass.GLOBAL, None, is_builtin=True
                )

        for decl in program.declarations:
            if isinstance(decl, FunctionNode):
                self._declare_function(decl)
            else:
                self._declare_global(decl)

        if self.require_main:
            self._check_main(program)

        for decl in program.functions:
            if decl.is_definition:
                self._check_function(decl)

        logger.debug(
            f"{self.filename}: checked {len(program.functions)} functions, "
            f"{self.diagnostics.error_count()} errors"
        )
        return self.symbols

    # =========================================================================
    # Diagnostics Helpers
    # =========================================================================

    def _source_line(self, location: Optional[SourceLocation]) -> Optional[str]:
        if location is not None and 0 < location.line <= len(self.source_lines):
            return self.source_lines[location.line - 1]
        return None

    def _type_error(
        self,
        message: str,
        node: ASTNode,
        expected: Optional[object] = None,
        actual: Optional[object] = None,
    ) -> None:
        self.diagnostics.add(
            UCTypeError(
                message,
                expected_type=str(expected) if expected is not None else None,
                actual_type=str(actual) if actual is not None else None,
                location=node.location,
                source_line=self._source_line(node.location),
            )
        )

    def _redeclared(self, name: str, node: ASTNode, original: Symbol, message: Optional[str] = None) -> None:
        self.diagnostics.add(
            RedeclarationError(
                name,
                location=node.location,
                original_location=original.location,
                source_line=self._source_line(node.location),
                message=message,
            )
        )

    def _undeclared(self, name: str, node: ASTNode, functions_only: bool = False) -> None:
        candidates = []
        for candidate in self.symbols.visible_names():
            symbol = self.symbols.lookup(candidate)
            if functions_only == symbol.is_function:
                candidates.append(candidate)
        similar = difflib.get_close_matches(name, candidates, n=3)
        self.diagnostics.add(
            UndeclaredIdentifierError(
                name,
                location=node.location,
                source_line=self._source_line(node.location),
                similar_identifiers=similar,
                message=f"call to undeclared function '{name}'" if functions_only else None,
            )
        )

    # =========================================================================
    # Pass 1: Global Declarations
    # =========================================================================

    def _declare_global(self, decl: VariableDeclaration) -> None:
        if decl.var_type.base_type == BaseType.VOID:
            self._type_error(f"variable '{decl.name}' declared void", decl)
            decl.var_type = CType(BaseType.INT, decl.var_type.is_array, decl.var_type.array_size)

        existing = self.symbols.lookup_local(decl.name)
        if existing is not None:
            self._redeclared(decl.name, decl, existing)
            return

        self.symbols.declare(decl.name, decl.var_type, StorageClass.GLOBAL, decl.location, decl)

    def _declare_function(self, decl: FunctionNode) -> None:
        for param in decl.parameters:
            if param.param_type.base_type == BaseType.VOID:
                name = f"'{param.name}' " if param.name else ""
                self._type_error(f"parameter {name}of '{decl.name}' declared void", param)
                param.param_type = CType(BaseType.INT, param.param_type.is_array)

        ftype = FunctionType(decl.return_type, tuple(p.param_type for p in decl.parameters))
        existing = self.symbols.lookup_local(decl.name)

        if existing is None:
            self.symbols.declare(
                decl.name,
                ftype,
                StorageClass.GLOBAL,
                decl.location,
                decl,
                is_defined=decl.is_definition,
            )
            return

        if not existing.is_function:
            self._redeclared(
                decl.name, decl, existing,
                f"'{decl.name}' redeclared as a function",
            )
            return

        if not existing.type.is_compatible_with(ftype):
            self._redeclared(
                decl.name, decl, existing,
                f"conflicting types for '{decl.name}': '{ftype}' versus '{existing.type}'",
            )
            return

        if decl.is_definition:
            if existing.is_defined:
                self._redeclared(decl.name, decl, existing, f"redefinition of '{decl.name}'")
                return
            existing.is_defined = True
            existing.node = decl

    def _check_main(self, program: ProgramNode) -> None:
        main = self.symbols.lookup("main", GLOBAL_SCOPE)
        if main is None or not main.is_function or not main.is_defined:
            self.diagnostics.add(
                UndeclaredIdentifierError(
                    "main",
                    location=SourceLocation(self.filename, 1, 1),
                    message="program does not define 'main'",
                )
            )
            return
        if main.type != MAIN_TYPE:
            self.diagnostics.add(
                UCTypeError(
                    "'main' must be declared as 'int main(void)'",
                    expected_type=str(MAIN_TYPE),
                    actual_type=str(main.type),
                    location=main.node.location if main.node else main.location,
                    source_line=self._source_line(main.location),
                )
            )

    # =========================================================================
    # Pass 2: Function Bodies
    # =========================================================================

    def _check_function(self, function: FunctionNode) -> None:
        self._function = function
        self.symbols.push_scope(function.name)

        for param in function.parameters:
            if param.name is None:
                continue
            existing = self.symbols.lookup_local(param.name)
            if existing is not None:
                self._redeclared(param.name, param, existing)
                continue
            self.symbols.declare(
                param.name, param.param_type, StorageClass.PARAMETER, param.location, param
            )

        self.visit(function.body)

        if not function.return_type.is_void and not always_returns(function.body):
            self._report_missing_return(function)

        self.symbols.pop_scope()
        self._function = None

    def _report_missing_return(self, function: FunctionNode) -> None:
        if function.name == "main":
            logger.debug(f"{self.filename}: 'main' falls off its end, returns 0")
            return
        if self.strict_returns:
            self.diagnostics.add(
                MissingReturnError(
                    function.name,
                    location=function.location,
                    source_line=self._source_line(function.location),
                )
            )
        else:
            self.diagnostics.add_warning(
                f"control reaches end of non-void function '{function.name}'",
                function.location,
            )

    def visit_BlockStatement(self, node: BlockStatement):
        for decl in node.declarations:
            self._declare_local(decl)
        for stmt in node.statements:
            self.visit(stmt)

    def _declare_local(self, decl: VariableDeclaration) -> None:
        if decl.var_type.base_type == BaseType.VOID:
            self._type_error(f"variable '{decl.name}' declared void", decl)
            decl.var_type = CType(BaseType.INT, decl.var_type.is_array, decl.var_type.array_size)

        existing = self.symbols.lookup_local(decl.name)
        if existing is not None:
            self._redeclared(decl.name, decl, existing)
            return
        self.symbols.declare(decl.name, decl.var_type, StorageClass.LOCAL, decl.location, decl)

    def visit_EmptyStatement(self, node: EmptyStatement):
        pass

    def visit_ExpressionStatement(self, node: ExpressionStatement):
        self._check_expression(node.expression)

    def _check_condition(self, condition: Expression, construct: str) -> None:
        ctype = self._check_expression(condition)
        if not ctype.is_scalar:
            self._type_error(
                f"{construct} condition must be 'int' or 'char'",
                condition,
                expected=TYPE_INT,
                actual=ctype,
            )

    def visit_IfStatement(self, node: IfStatement):
        # else-if chains are walked in a loop
        while True:
            self._check_condition(node.condition, "if")
            self.visit(node.then_branch)
            if not isinstance(node.else_branch, IfStatement):
                break
            node = node.else_branch
        if node.else_branch is not None:
            self.visit(node.else_branch)

    def visit_WhileStatement(self, node: WhileStatement):
        self._check_condition(node.condition, "while")
        self.visit(node.body)

    def visit_ReturnStatement(self, node: ReturnStatement):
        expected = self._function.return_type
        name = self._function.name

        if node.value is None:
            if not expected.is_void:
                self._type_error(
                    f"'return' with no value in function '{name}' returning '{expected}'",
                    node,
                )
            return

        actual = self._check_expression(node.value)
        if expected.is_void:
            self._type_error(f"'return' with a value in void function '{name}'", node.value)
        elif not is_assignable(actual, expected):
            self._type_error(
                f"cannot return '{actual}' from function '{name}'",
                node.value,
                expected=expected,
                actual=actual,
            )

    # =========================================================================
    # Expressions
    # =========================================================================

    def _check_expression(self, expr: Expression) -> CType:
        """Type an expression, record the type on the node and return it."""
        ctype = self.visit(expr)
        expr.resolved_type = ctype
        return ctype

    def _require_scalar(self, expr: Expression, context: str) -> None:
        ctype = expr.resolved_type
        if not ctype.is_scalar:
            self._type_error(
                f"{context} requires 'int' or 'char', got '{ctype}'",
                expr,
                expected=TYPE_INT,
                actual=ctype,
            )

    def visit_NumberLiteral(self, node: NumberLiteral) -> CType:
        return TYPE_INT

    def visit_CharLiteral(self, node: CharLiteral) -> CType:
        return TYPE_CHAR

    def visit_IdentifierExpression(self, node: IdentifierExpression) -> CType:
        symbol = self.symbols.lookup(node.name)
        if symbol is None:
            self._undeclared(node.name, node)
            return TYPE_INT

        node.symbol = symbol
        if symbol.is_function:
            self._type_error(f"function '{node.name}' used as a value", node)
            return TYPE_INT
        return symbol.type

    def visit_ArraySubscript(self, node: ArraySubscript) -> CType:
        array_type = self._check_expression(node.array)
        index_type = self._check_expression(node.index)

        if not index_type.is_scalar:
            self._type_error(
                "array index must be 'int' or 'char'",
                node.index,
                expected=TYPE_INT,
                actual=index_type,
            )

        if not array_type.is_array:
            self._type_error(f"subscripted value of type '{array_type}' is not an array", node.array)
            return TYPE_INT

        if self.warn_array_bounds:
            self._check_constant_index(node, array_type)
        return array_type.element_type

    def _check_constant_index(self, node: ArraySubscript, array_type: CType) -> None:
        """Warn about a constant index outside a sized array; never an error."""
        if array_type.array_size is None:
            return
        index = _constant_value(node.index)
        if index is None:
            return
        if not 0 <= index < array_type.array_size:
            name = node.array.name if isinstance(node.array, IdentifierExpression) else "array"
            self.diagnostics.add_warning(
                f"index {index} is outside the bounds of '{name}' ({array_type})",
                node.index.location,
            )

    def visit_CallExpression(self, node: CallExpression) -> CType:
        for arg in node.arguments:
            self._check_expression(arg)

        symbol = self.symbols.lookup(node.function_name)
        if symbol is None:
            self._undeclared(node.function_name, node, functions_only=True)
            return TYPE_INT
        if not symbol.is_function:
            self._type_error(f"called object '{node.function_name}' is not a function", node)
            return TYPE_INT

        node.symbol = symbol
        ftype: FunctionType = symbol.type

        if len(node.arguments) != ftype.arity:
            self.diagnostics.add(
                ArityMismatchError(
                    node.function_name,
                    ftype.arity,
                    len(node.arguments),
                    location=node.location,
                    source_line=self._source_line(node.location),
                )
            )
            return ftype.return_type

        for position, (arg, param_type) in enumerate(zip(node.arguments, ftype.param_types), start=1):
            if not is_passable(arg.resolved_type, param_type):
                self._type_error(
                    f"argument {position} of '{node.function_name}' has type "
                    f"'{arg.resolved_type}', expected '{param_type}'",
                    arg,
                    expected=param_type,
                    actual=arg.resolved_type,
                )

        return ftype.return_type

    def visit_UnaryExpression(self, node: UnaryExpression) -> CType:
        self._check_expression(node.operand)
        self._require_scalar(node.operand, f"unary '{node.operator.symbol}'")
        return TYPE_INT

    def visit_BinaryExpression(self, node: BinaryExpression) -> CType:
        """
        Type a binary expression and the operator chain down its left side.

        The left spine of a long chain like a + b + ... + z is collected
        first and then typed innermost first, in the same order a
        recursive walk would use.
        """
        spine = []
        expr: Expression = node
        while isinstance(expr, BinaryExpression):
            spine.append(expr)
            expr = expr.left
        self._check_expression(expr)

        for binary in reversed(spine):
            self._check_expression(binary.right)
            context = f"operator '{binary.operator.symbol}'"
            self._require_scalar(binary.left, context)
            self._require_scalar(binary.right, context)
            binary.resolved_type = TYPE_INT
        return TYPE_INT

    def visit_AssignmentExpression(self, node: AssignmentExpression) -> CType:
        target = node.target
        if not isinstance(target, (IdentifierExpression, ArraySubscript)):
            self._check_expression(target)
            self._check_expression(node.value)
            self._not_lvalue(target, "expression")
            return TYPE_INT

        if isinstance(target, IdentifierExpression):
            symbol = self.symbols.lookup(target.name)
            if symbol is not None and symbol.is_function:
                target.symbol = symbol
                target.resolved_type = TYPE_INT
                self._check_expression(node.value)
                self._not_lvalue(target, f"function '{target.name}'")
                return TYPE_INT

        target_type = self._check_expression(target)
        value_type = self._check_expression(node.value)

        if isinstance(target, IdentifierExpression) and target_type.is_array:
            self._not_lvalue(target, f"array '{target.name}'")
            return TYPE_INT

        if not target_type.is_scalar:
            return TYPE_INT

        if not is_assignable(value_type, target_type):
            self._type_error(
                f"cannot assign '{value_type}' to '{target_type}'",
                node.value,
                expected=target_type,
                actual=value_type,
            )
        return target_type

    def _not_lvalue(self, node: Expression, what: str) -> None:
        self.diagnostics.add(
            InvalidLValueError(
                location=node.location,
                source_line=self._source_line(node.location),
                what=what,
            )
        )


def _constant_value(expr: Expression) -> Optional[int]:
    """Value of a literal or negated literal, else None."""
    if isinstance(expr, (NumberLiteral, CharLiteral)):
        return expr.value
    if (
        isinstance(expr, UnaryExpression)
        and expr.operator == UnaryOperator.NEGATE
        and isinstance(expr.operand, (NumberLiteral, CharLiteral))
    ):
        return -expr.operand.value
    return None


def check_program(
    program: ProgramNode,
    diagnostics: Optional[DiagnosticCollector] = None,
    **options,
) -> SymbolTable:
    """
    Check `program` and return its symbol table.

    Raises:
        UCCompilationError: If errors were found and no collector was given
    """
    owns_collector = diagnostics is None
    if owns_collector:
        diagnostics = DiagnosticCollector()
    symbols = TypeChecker(diagnostics, program.location.filename, **options).check(program)
    if owns_collector:
        diagnostics.raise_if_errors("check")
    return symbols
