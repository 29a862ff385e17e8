"""
µC Parser Test Suite
====================

Tests for declarations, statements, expression precedence, the AST
printer, and syntax error recovery.
"""

import pytest

from microc.frontend.ast import (
    ArraySubscript,
    AssignmentExpression,
    ASTPrinter,
    BinaryExpression,
    BinaryOperator,
    BlockStatement,
    CallExpression,
    CharLiteral,
    EmptyStatement,
    ExpressionStatement,
    FunctionNode,
    IdentifierExpression,
    IfStatement,
    NumberLiteral,
    ReturnStatement,
    UnaryExpression,
    UnaryOperator,
    VariableDeclaration,
    WhileStatement,
    iter_nodes,
)
from microc.frontend.errors import DiagnosticCollector, DiagnosticKind, UCCompilationError
from microc.frontend.parser import parse_source
from microc.frontend.types import TYPE_CHAR, TYPE_INT, TYPE_VOID, array_of, BaseType


def parse(source: str, **kwargs):
    """Parse with a fresh collector; returns (program, diagnostics)."""
    diagnostics = DiagnosticCollector()
    program = parse_source(source, "test.uc", diagnostics, **kwargs)
    return program, diagnostics


def parse_expr(text: str):
    """Parse `text` as the expression of a statement inside main."""
    program, diagnostics = parse(f"int main(void) {{ {text}; }}")
    assert not diagnostics.has_errors(), diagnostics.report()
    return program.functions[0].body.statements[0].expression


def render(text: str) -> str:
    return ASTPrinter()._expr_str(parse_expr(text))


class TestDeclarations:
    """Global variables, prototypes and function definitions."""

    def test_global_variables(self):
        """Scalar and array globals, several per declaration."""
        program, diagnostics = parse("int n, board[8]; char s[27];")
        assert not diagnostics.has_errors()
        decls = program.globals
        assert [(d.name, d.var_type) for d in decls] == [
            ("n", TYPE_INT),
            ("board", array_of(BaseType.INT, 8)),
            ("s", array_of(BaseType.CHAR, 27)),
        ]
        assert all(d.is_global for d in decls)

    def test_prototype(self):
        """A prototype has no body; parameter names are optional."""
        program, _ = parse("void putstring(char []);")
        function = program.functions[0]
        assert not function.is_definition
        assert function.return_type == TYPE_VOID
        assert function.parameters[0].name is None
        assert function.parameters[0].param_type == array_of(BaseType.CHAR)

    def test_void_and_empty_parameter_lists(self):
        """(void) and () both declare no parameters."""
        program, _ = parse("int f(void); int g();")
        assert program.functions[0].parameters == []
        assert program.functions[1].parameters == []

    def test_sized_array_parameter_decays(self):
        """'char s[10]' as a parameter is a decayed char array."""
        program, diagnostics = parse("void f(char s[10]) { }")
        assert not diagnostics.has_errors()
        assert program.functions[0].parameters[0].param_type == array_of(BaseType.CHAR)

    def test_definition(self):
        """A definition has parameters, local declarations and statements."""
        program, _ = parse("int add(int a, int b) { int c; c = a + b; return c; }")
        function = program.functions[0]
        assert function.is_definition
        assert [p.name for p in function.parameters] == ["a", "b"]
        assert [d.name for d in function.body.declarations] == ["c"]
        assert len(function.body.statements) == 2
        assert not function.body.declarations[0].is_global

    def test_declarations_in_file_order(self):
        """Top-level declarations keep their source order."""
        program, _ = parse("int a; void f(void); int b; int main(void) { return 0; }")
        kinds = [type(d).__name__ for d in program.declarations]
        assert kinds == ["VariableDeclaration", "FunctionNode", "VariableDeclaration", "FunctionNode"]

    def test_locations(self):
        """Declarations are located at their name."""
        program, _ = parse("int x;\nint main(void) { return 0; }")
        assert program.globals[0].location.line == 1
        assert program.globals[0].location.column == 5
        assert program.functions[0].location.line == 2


class TestStatements:
    """Statement forms."""

    def body(self, text: str) -> BlockStatement:
        program, diagnostics = parse(f"int main(void) {{ {text} }}")
        assert not diagnostics.has_errors(), diagnostics.report()
        return program.functions[0].body

    def test_empty_statement(self):
        """A lone ';' is an empty statement."""
        assert isinstance(self.body(";").statements[0], EmptyStatement)

    def test_nested_block(self):
        """Blocks nest and may declare their own locals."""
        stmt = self.body("{ int i; i = 1; }").statements[0]
        assert isinstance(stmt, BlockStatement)
        assert stmt.declarations[0].name == "i"

    def test_if_else(self):
        """if with else."""
        stmt = self.body("if (x) y = 1; else y = 2;").statements[0]
        assert isinstance(stmt, IfStatement)
        assert isinstance(stmt.then_branch, ExpressionStatement)
        assert isinstance(stmt.else_branch, ExpressionStatement)

    def test_dangling_else(self):
        """else binds to the nearest if."""
        stmt = self.body("if (a) if (b) x = 1; else x = 2;").statements[0]
        assert stmt.else_branch is None
        assert stmt.then_branch.else_branch is not None

    def test_while(self):
        """while with a block body."""
        stmt = self.body("while (i < 10) { i = i + 1; }").statements[0]
        assert isinstance(stmt, WhileStatement)
        assert isinstance(stmt.condition, BinaryExpression)
        assert isinstance(stmt.body, BlockStatement)

    def test_return_forms(self):
        """return with and without a value."""
        statements = self.body("return; return 1;").statements
        assert isinstance(statements[0], ReturnStatement)
        assert statements[0].value is None
        assert isinstance(statements[1].value, NumberLiteral)


class TestExpressions:
    """Precedence, associativity and expression forms."""

    @pytest.mark.parametrize("text, expected", [
        ("1 + 2 * 3", "(1 + (2 * 3))"),
        ("1 * 2 + 3", "((1 * 2) + 3)"),
        ("a - b - c", "((a - b) - c)"),
        ("a / b * c", "((a / b) * c)"),
        ("a < b == c > d", "((a < b) == (c > d))"),
        ("a || b && c", "(a || (b && c))"),
        ("a && b || c && d", "((a && b) || (c && d))"),
        ("x = y = 6", "(x = (y = 6))"),
        ("-a * b", "((-a) * b)"),
        ("!a == b", "((!a) == b)"),
        ("--a", "(-(-a))"),
        ("(1 + 2) * 3", "((1 + 2) * 3)"),
        ("a[i + 1] = f(x, y[2])", "(a[(i + 1)] = f(x, y[2]))"),
        ("i + 10 < max", "((i + 10) < max)"),
    ])
    def test_precedence(self, text, expected):
        """Expressions group by precedence and associativity."""
        assert render(text) == expected

    def test_literals(self):
        """Number and character literals."""
        expr = parse_expr("c = 'a'")
        assert isinstance(expr, AssignmentExpression)
        assert isinstance(expr.value, CharLiteral)
        assert expr.value.value == 97

    def test_call(self):
        """Calls record the function name and arguments."""
        expr = parse_expr("putint(fac(n - 1))")
        assert isinstance(expr, CallExpression)
        assert expr.function_name == "putint"
        assert isinstance(expr.arguments[0], CallExpression)

    def test_call_without_arguments(self):
        """f() has an empty argument list."""
        expr = parse_expr("nl()")
        assert expr.arguments == []

    def test_subscript(self):
        """Subscripts wrap the array expression."""
        expr = parse_expr("board[col]")
        assert isinstance(expr, ArraySubscript)
        assert isinstance(expr.array, IdentifierExpression)
        assert expr.array.name == "board"

    def test_unary(self):
        """Prefix operators."""
        expr = parse_expr("!notprime[i]")
        assert isinstance(expr, UnaryExpression)
        assert expr.operator == UnaryOperator.LOGICAL_NOT

    def test_binary_operator_kinds(self):
        """Operator enums report their category."""
        assert BinaryOperator.LESS.is_comparison
        assert BinaryOperator.LOGICAL_AND.is_logical
        assert not BinaryOperator.ADD.is_comparison


class TestPrinter:
    """ASTPrinter output."""

    def test_print_program(self):
        """The printer renders one line per node."""
        program, _ = parse(
            "int n;\n"
            "int main(void) {\n"
            "  int i;\n"
            "  if (n) return 1; else ;\n"
            "  while (i < n) i = i + 1;\n"
            "  return 0;\n"
            "}\n"
        )
        text = ASTPrinter().print(program)
        assert text.splitlines() == [
            "Program",
            "  Variable (global): int n",
            "  Function: int main(void)",
            "    Block",
            "      Variable (local): int i",
            "      If n",
            "        Then:",
            "          Return 1",
            "        Else:",
            "          Empty",
            "      While (i < n)",
            "        Expr: (i = (i + 1))",
            "      Return 0",
        ]

    def test_print_prototype(self):
        """Prototypes are labelled as such."""
        program, _ = parse("void putstring(char s[]);")
        assert ASTPrinter().print(program).splitlines()[1] == "  Prototype: void putstring(char[] s)"


class TestSyntaxErrors:
    """Error reporting and recovery."""

    def test_missing_semicolon(self):
        """A missing ';' is reported with the token found."""
        _, diagnostics = parse("int main(void) { return 1 }")
        assert diagnostics.kinds() == [DiagnosticKind.SYNTAX]
        assert diagnostics.errors[0].message == "expected ';' before '}'"

    def test_recovery_reports_several_errors(self):
        """Recovery resumes at the next statement."""
        _, diagnostics = parse(
            "int main(void) {\n"
            "  x = ;\n"
            "  y = 1 +;\n"
            "  return 0;\n"
            "}\n"
        )
        assert diagnostics.error_count() == 2
        assert [e.location.line for e in diagnostics.errors] == [2, 3]

    def test_recovery_at_top_level(self):
        """A broken declaration does not hide later functions."""
        program, diagnostics = parse("int 5; int main(void) { return 0; }")
        assert diagnostics.has_errors()
        assert [f.name for f in program.functions] == ["main"]

    def test_partial_ast_returned(self):
        """The parser always returns a program."""
        program, diagnostics = parse("int f(void) { return 1; } int g(")
        assert diagnostics.has_errors()
        assert program.functions[0].name == "f"

    def test_end_of_input(self):
        """Premature end of input names 'end of input'."""
        _, diagnostics = parse("int main(void) {")
        assert "end of input" in diagnostics.errors[0].message

    def test_string_literal_rejected(self):
        """String literals are not part of µC."""
        _, diagnostics = parse('int main(void) { putstring("hi"); return 0; }')
        assert "string literals are not supported" in diagnostics.errors[0].message

    def test_declaration_after_statement(self):
        """Locals must precede statements in a block."""
        program, diagnostics = parse("int main(void) { x = 1; int y; return 0; }")
        assert "declaration after statement" in diagnostics.errors[0].message
        assert [d.name for d in program.functions[0].body.declarations] == ["y"]

    def test_unnamed_parameter_in_definition(self):
        """Definitions need named parameters."""
        _, diagnostics = parse("int f(int) { return 0; }")
        assert "has no name" in diagnostics.errors[0].message

    def test_callee_must_be_identifier(self):
        """Only a function name can be called."""
        _, diagnostics = parse("int main(void) { a[0](1); return 0; }")
        assert "not a function name" in diagnostics.errors[0].message

    def test_missing_type(self):
        """A declaration must start with a type."""
        _, diagnostics = parse("x;")
        assert "expected a type" in diagnostics.errors[0].message

    @pytest.mark.parametrize("source, size", [
        ("int a[0];", 0),
        ("char b[-3];", -3),
    ])
    def test_non_positive_array_size(self, source, size):
        """Array sizes must be positive; the size is replaced by 1."""
        program, diagnostics = parse(source)
        assert diagnostics.kinds() == [DiagnosticKind.CONSTANT_OUT_OF_RANGE]
        assert f"got {size}" in diagnostics.errors[0].message
        assert program.globals[0].var_type.array_size == 1

    def test_parse_source_raises_without_collector(self):
        """Without a collector, parse_source raises a compilation error."""
        with pytest.raises(UCCompilationError) as excinfo:
            parse_source("int main(void) { return }")
        assert excinfo.value.phase == "parse"
        assert excinfo.value.kinds == [DiagnosticKind.SYNTAX]
        assert "1 error, 0 warnings" in str(excinfo.value)


class TestNesting:
    """The nesting limit keeps deep input from exhausting the stack."""

    def test_deep_parentheses_rejected(self):
        """Nesting past the limit is a syntax error, not a crash."""
        text = "(" * 500 + "1" + ")" * 500
        _, diagnostics = parse(f"int main(void) {{ return {text}; }}")
        assert diagnostics.kinds()[0] == DiagnosticKind.SYNTAX
        assert "nesting deeper than 100" in diagnostics.errors[0].message

    def test_deep_blocks_rejected(self):
        """Deeply nested statements hit the same limit."""
        body = "{" * 300 + "}" * 300
        _, diagnostics = parse(f"int main(void) {body}")
        assert "nesting deeper" in diagnostics.errors[0].message

    def test_long_unary_chain_rejected(self):
        """A long prefix-operator chain counts each operator."""
        _, diagnostics = parse(f"int main(void) {{ return {'-' * 1000}1; }}")
        assert diagnostics.has_errors()

    def test_moderate_nesting_accepted(self):
        """Nesting within the limit parses normally."""
        text = "(" * 40 + "1" + ")" * 40
        program, diagnostics = parse(f"int main(void) {{ return {text}; }}")
        assert not diagnostics.has_errors()

    def test_custom_limit(self):
        """The limit is configurable."""
        _, diagnostics = parse("int main(void) { return ((((1)))); }", max_nesting_depth=3)
        assert diagnostics.has_errors()

    def test_long_operator_chain_accepted(self):
        """A flat left-associative chain is not nesting, however long."""
        text = "+".join(["1"] * 1500)
        program, diagnostics = parse(f"int main(void) {{ return {text}; }}")
        assert not diagnostics.has_errors()
        value = program.functions[0].body.statements[0].value
        assert value.operator == BinaryOperator.ADD
        assert isinstance(value.left, BinaryExpression)
        assert isinstance(value.right, NumberLiteral)

    def test_long_else_if_chain_accepted(self):
        """Each else-if arm is a sibling of the last, not a deeper level."""
        arms = " else ".join(f"if (x == {i}) putint({i});" for i in range(1500))
        program, diagnostics = parse(f"int main(void) {{ int x; {arms} else x = 0; return 0; }}")
        assert not diagnostics.has_errors()
        statement = program.functions[0].body.statements[0]
        count = 0
        while isinstance(statement, IfStatement):
            count += 1
            statement = statement.else_branch
        assert count == 1500
        assert isinstance(statement, ExpressionStatement)

    def test_nesting_inside_else_if_arm_still_counted(self):
        """Only the chain itself is flat; blocks inside an arm still nest."""
        body = "{" * 200 + "}" * 200
        _, diagnostics = parse(f"int main(void) {{ if (1) ; else if (2) {body} return 0; }}")
        assert "nesting deeper" in diagnostics.errors[0].message

    def test_printer_handles_long_chains(self):
        """The AST printer walks long chains without recursing on them."""
        arms = " else ".join(f"if (x == {i}) ;" for i in range(1200))
        total = "+".join(["1"] * 1200)
        program, diagnostics = parse(f"int main(void) {{ int x; {arms} return {total}; }}")
        assert not diagnostics.has_errors()
        lines = ASTPrinter().print(program).splitlines()
        ifs = [line for line in lines if line.lstrip().startswith("If ")]
        assert len(ifs) == 1200
        assert ifs[0].strip() == "If (x == 0)"
        assert ifs[-1].startswith("  " * (3 + 2 * 1199) + "If ")
        assert lines[-1].strip() == "Return " + "(" * 1199 + "1" + " + 1)" * 1199

    def test_iter_nodes_is_iterative(self):
        """iter_nodes visits every node of a tree."""
        program, _ = parse("int main(void) { if (a) { b = c + 1; } return 0; }")
        names = [type(n).__name__ for n in iter_nodes(program)]
        assert names[:3] == ["ProgramNode", "FunctionNode", "BlockStatement"]
        assert "AssignmentExpression" in names
        assert names.count("IdentifierExpression") == 3
