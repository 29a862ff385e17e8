"""
µC Abstract Syntax Tree (AST) Definitions
=========================================

Node Hierarchy
--------------
ASTNode (base)
├── ProgramNode - root node containing all top-level declarations
├── Declarations
│   ├── FunctionNode - prototype or definition
│   ├── VariableDeclaration - global or local scalar/array
│   └── ParameterNode - function parameter
├── Statements
│   ├── BlockStatement - { declarations statements }
│   ├── EmptyStatement - ;
│   ├── ExpressionStatement - expression ;
│   ├── IfStatement - if/else
│   ├── WhileStatement - while loop
│   └── ReturnStatement - return with optional value
└── Expressions
    ├── NumberLiteral - integer constant
    ├── CharLiteral - character constant
    ├── IdentifierExpression - variable reference
    ├── ArraySubscript - a[i]
    ├── CallExpression - f(args)
    ├── UnaryExpression - -x, !x
    ├── BinaryExpression - arithmetic, comparison and logical operators
    └── AssignmentExpression - lhs = rhs

Design Notes
------------
- Every node is a dataclass carrying its SourceLocation
- The type checker fills in Expression.resolved_type, and the symbol
  of identifiers and calls; lowering relies on both
- Visitors dispatch on the node's class name (ASTVisitor)
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional

from microc.errors import SourceLocation
from microc.frontend.types import CType


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

    def describe(self) -> str:
        """Short "ClassName at file:line:column" form for defect messages."""
        return f"{self.__class__.__name__} at {self.location}"


@dataclass
class Expression(ASTNode):
    """
    Base class for all expression nodes.

    Attributes:
        resolved_type: The type of this expression (set during type checking)
    """
    resolved_type: Optional[CType] = field(default=None, compare=False)


@dataclass
class Statement(ASTNode):
    pass


@dataclass
class Declaration(ASTNode):
    pass


@dataclass
class ProgramNode(ASTNode):
    """
    Root node: the top-level declarations in file order.
    """
    declarations: list[Declaration] = field(default_factory=list)

    @property
    def functions(self) -> list["FunctionNode"]:
        return [d for d in self.declarations if isinstance(d, FunctionNode)]

    @property
    def globals(self) -> list["VariableDeclaration"]:
        return [d for d in self.declarations if isinstance(d, VariableDeclaration)]


# =============================================================================
# Declaration Nodes
# =============================================================================

@dataclass
class ParameterNode(Declaration):
    """
    Function parameter.

    Attributes:
        name: Parameter name (None for unnamed prototype parameters)
        param_type: Scalar type or decayed array type
    """
    name: Optional[str] = None
    param_type: CType = None


@dataclass
class VariableDeclaration(Declaration):
    """
    Variable declaration (global or local).

        int n;
        char s[27];

    Attributes:
        name: Variable name
        var_type: Scalar or sized array type
        is_global: True for globals
    """
    name: str = ""
    var_type: CType = None
    is_global: bool = False


@dataclass
class FunctionNode(Declaration):
    """
    Function prototype (body is None) or definition.

    Attributes:
        name: Function name
        return_type: Result type
        parameters: Parameters in order; empty for (void) and ()
        body: Function body, None for a prototype
    """
    name: str = ""
    return_type: CType = None
    parameters: list[ParameterNode] = field(default_factory=list)
    body: Optional["BlockStatement"] = None

    @property
    def is_definition(self) -> bool:
        return self.body is not None


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class BlockStatement(Statement):
    """
    Compound statement: local declarations first, then statements.
    """
    declarations: list[VariableDeclaration] = field(default_factory=list)
    statements: list[Statement] = field(default_factory=list)


@dataclass
class EmptyStatement(Statement):
    pass


@dataclass
class ExpressionStatement(Statement):
    expression: Expression = None


@dataclass
class IfStatement(Statement):
    """
    If statement with optional else clause.

    Attributes:
        condition: The condition expression
        then_branch: Statement executed if condition is non-zero
        else_branch: Optional statement executed otherwise
    """
    condition: Expression = None
    then_branch: Statement = None
    else_branch: Optional[Statement] = None


@dataclass
class WhileStatement(Statement):
    condition: Expression = None
    body: Statement = None


@dataclass
class ReturnStatement(Statement):
    value: Optional[Expression] = None


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

    @property
    def symbol(self) -> str:
        return BINARY_SYMBOLS[self]

    @property
    def is_comparison(self) -> bool:
        return self in COMPARISON_OPERATORS

    @property
    def is_logical(self) -> bool:
        return self in (BinaryOperator.LOGICAL_AND, BinaryOperator.LOGICAL_OR)


BINARY_SYMBOLS = {
    BinaryOperator.ADD: "+",
    BinaryOperator.SUBTRACT: "-",
    BinaryOperator.MULTIPLY: "*",
    BinaryOperator.DIVIDE: "/",
    BinaryOperator.EQUAL: "==",
    BinaryOperator.NOT_EQUAL: "!=",
    BinaryOperator.LESS: "<",
    BinaryOperator.GREATER: ">",
    BinaryOperator.LESS_EQ: "<=",
    BinaryOperator.GREATER_EQ: ">=",
    BinaryOperator.LOGICAL_AND: "&&",
    BinaryOperator.LOGICAL_OR: "||",
}

COMPARISON_OPERATORS = frozenset({
    BinaryOperator.EQUAL,
    BinaryOperator.NOT_EQUAL,
    BinaryOperator.LESS,
    BinaryOperator.GREATER,
    BinaryOperator.LESS_EQ,
    BinaryOperator.GREATER_EQ,
})


class UnaryOperator(Enum):
    """Unary operator types."""
    NEGATE = auto()       # -x
    LOGICAL_NOT = auto()  # !x

    @property
    def symbol(self) -> str:
        return "-" if self == UnaryOperator.NEGATE else "!"


@dataclass
class NumberLiteral(Expression):
    value: int = 0


@dataclass
class CharLiteral(Expression):
    """Character constant; value is the byte (0 to 255)."""
    value: int = 0


@dataclass
class IdentifierExpression(Expression):
    """
    Variable reference.

    Attributes:
        name: The identifier
        symbol: Resolved declaration (set during type checking)
    """
    name: str = ""
    symbol: Any = field(default=None, compare=False, repr=False)


@dataclass
class ArraySubscript(Expression):
    array: Expression = None
    index: Expression = None


@dataclass
class CallExpression(Expression):
    """
    Function call. The callee is always a plain identifier.

    Attributes:
        function_name: Name of the called function
        arguments: Argument expressions in order
        symbol: Resolved function symbol (set during type checking)
    """
    function_name: str = ""
    arguments: list[Expression] = field(default_factory=list)
    symbol: Any = field(default=None, compare=False, repr=False)


@dataclass
class UnaryExpression(Expression):
    operator: UnaryOperator = None
    operand: Expression = None


@dataclass
class BinaryExpression(Expression):
    operator: BinaryOperator = None
    left: Expression = None
    right: Expression = None


@dataclass
class AssignmentExpression(Expression):
    """
    Assignment expression (target = value).

    Right-associative: x = y = 6 is x = (y = 6). The value of the
    expression is the value stored into target.
    """
    target: Expression = None
    value: Expression = None


# =============================================================================
# AST Visitor Pattern
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses override visit_<ClassName> methods for the node types
    they care about; everything else falls through to generic_visit,
    which visits child nodes.

        class CallCounter(ASTVisitor):
            def __init__(self):
                self.calls = 0

            def visit_CallExpression(self, node):
                self.calls += 1
                self.generic_visit(node)
    """

    def visit(self, node: ASTNode) -> Any:
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> None:
        for field_value in node.__dict__.values():
            if isinstance(field_value, ASTNode):
                self.visit(field_value)
            elif isinstance(field_value, list):
                for item in field_value:
                    if isinstance(item, ASTNode):
                        self.visit(item)


def iter_nodes(node: ASTNode):
    """
    Yield `node` and all of its descendants in pre-order.

    Uses an explicit stack, so arbitrarily deep trees are safe.
    """
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        children = []
        for field_value in current.__dict__.values():
            if isinstance(field_value, ASTNode):
                children.append(field_value)
            elif isinstance(field_value, list):
                children.extend(item for item in field_value if isinstance(item, ASTNode))
        stack.extend(reversed(children))


# =============================================================================
# AST Pretty Printer
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Pretty printer for AST debugging.

        printer = ASTPrinter()
        print(printer.print(program))
    """

    def __init__(self):
        self.output: list[str] = []
        self.indent_level = 0

    def print(self, node: ASTNode) -> str:
        self.output = []
        self.indent_level = 0
        self.visit(node)
        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        indent = "  " * self.indent_level
        self.output.append(f"{indent}{text}")

    def _nested(self, node: ASTNode) -> None:
        self.indent_level += 1
        self.visit(node)
        self.indent_level -= 1

    def visit_ProgramNode(self, node: ProgramNode):
        self._emit("Program")
        for decl in node.declarations:
            self._nested(decl)

    def visit_FunctionNode(self, node: FunctionNode):
        params = ", ".join(
            f"{p.param_type} {p.name}" if p.name else str(p.param_type)
            for p in node.parameters
        ) or "void"
        kind = "Function" if node.is_definition else "Prototype"
        self._emit(f"{kind}: {node.return_type} {node.name}({params})")
        if node.body:
            self._nested(node.body)

    def visit_VariableDeclaration(self, node: VariableDeclaration):
        scope = "global" if node.is_global else "local"
        self._emit(f"Variable ({scope}): {node.var_type} {node.name}")

    def visit_BlockStatement(self, node: BlockStatement):
        self._emit("Block")
        for decl in node.declarations:
            self._nested(decl)
        for stmt in node.statements:
            self._nested(stmt)

    def visit_EmptyStatement(self, node: EmptyStatement):
        self._emit("Empty")

    def visit_IfStatement(self, node: IfStatement):
        saved_indent = self.indent_level
        while True:
            self._emit(f"If {self._expr_str(node.condition)}")
            self.indent_level += 1
            self._emit("Then:")
            self._nested(node.then_branch)
            if node.else_branch is None:
                break
            self._emit("Else:")
            if not isinstance(node.else_branch, IfStatement):
                self._nested(node.else_branch)
                break
            # else-if: print the next arm one level deeper without recursing
            self.indent_level += 1
            node = node.else_branch
        self.indent_level = saved_indent

    def visit_WhileStatement(self, node: WhileStatement):
        self._emit(f"While {self._expr_str(node.condition)}")
        self._nested(node.body)

    def visit_ReturnStatement(self, node: ReturnStatement):
        if node.value:
            self._emit(f"Return {self._expr_str(node.value)}")
        else:
            self._emit("Return")

    def visit_ExpressionStatement(self, node: ExpressionStatement):
        self._emit(f"Expr: {self._expr_str(node.expression)}")

    def _expr_str(self, expr: Expression) -> str:
        """Fully parenthesised rendering of an expression."""
        if isinstance(expr, NumberLiteral):
            return str(expr.value)
        if isinstance(expr, CharLiteral):
            if 32 <= expr.value < 127:
                return repr(chr(expr.value))
            return f"'\\x{expr.value:02x}'"
        if isinstance(expr, IdentifierExpression):
            return expr.name
        if isinstance(expr, ArraySubscript):
            return f"{self._expr_str(expr.array)}[{self._expr_str(expr.index)}]"
        if isinstance(expr, CallExpression):
            args = ", ".join(self._expr_str(a) for a in expr.arguments)
            return f"{expr.function_name}({args})"
        if isinstance(expr, UnaryExpression):
            return f"({expr.operator.symbol}{self._expr_str(expr.operand)})"
        if isinstance(expr, BinaryExpression):
            spine = []
            while isinstance(expr, BinaryExpression):
                spine.append(expr)
                expr = expr.left
            text = self._expr_str(expr)
            for binary in reversed(spine):
                text = f"({text} {binary.operator.symbol} {self._expr_str(binary.right)})"
            return text
        if isinstance(expr, AssignmentExpression):
            return f"({self._expr_str(expr.target)} = {self._expr_str(expr.value)})"
        return "?"
