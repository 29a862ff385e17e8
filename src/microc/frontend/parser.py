"""
µC Recursive Descent Parser
===========================

This module turns the token stream from the lexer into a ProgramNode.

Grammar (EBNF)
--------------
program       ::= top_decl*
top_decl      ::= type declarator (',' declarator)* ';'
                | type IDENTIFIER '(' params ')' (';' | block)
declarator    ::= IDENTIFIER ('[' size ']')?
size          ::= '-'? NUMBER
params        ::= 'void' | <empty> | param (',' param)*
param         ::= type IDENTIFIER? ('[' size? ']')?
block         ::= '{' local_decl* statement* '}'
local_decl    ::= type declarator (',' declarator)* ';'
statement     ::= ';' | block | expr ';'
                | 'if' '(' expr ')' statement ('else' statement)?
                | 'while' '(' expr ')' statement
                | 'return' expr? ';'

Expression Precedence (lowest to highest)
-----------------------------------------
1. assignment      =  (right-associative)
2. logical_or      ||
3. logical_and     &&
4. equality        == !=
5. relational      < <= > >=
6. additive        + -
7. multiplicative  * /
8. unary           - !
9. postfix         [] ()
10. primary        NUMBER, CHAR_LITERAL, IDENTIFIER, '(' expr ')'

Binary operators are parsed by precedence climbing over the table
BINARY_OPERATORS. Nesting (statements, parentheses, prefix operators
and assignment chains) is counted, and going past
max_nesting_depth is a syntax error, so deep input cannot exhaust the
Python stack here or in the later tree walks.

Error Recovery
--------------
Syntax errors are recorded and the parser skips to the next ';', '}'
or keyword, then resumes at statement level (inside a block) or at top
level. Non-positive array sizes are reported as constant-out-of-range
and parsed as size 1.

Example Usage
-------------
>>> from microc.frontend.parser import parse_source
>>> program = parse_source("int main(void) { return 42; }", "t.uc")
>>> program.declarations[0].name
'main'
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from microc.errors import SourceLocation
from microc.frontend.lexer import Lexer, Token, TokenType
from microc.frontend.errors import (
    ConstantRangeError,
    DiagnosticCollector,
    UCSyntaxError,
    UnexpectedTokenError,
)
from microc.frontend.types import BaseType, CType, array_of
from microc.frontend.ast import (
    ArraySubscript,
    AssignmentExpression,
    BinaryExpression,
    BinaryOperator,
    BlockStatement,
    CallExpression,
    CharLiteral,
    Declaration,
    EmptyStatement,
    Expression,
    ExpressionStatement,
    FunctionNode,
    IdentifierExpression,
    IfStatement,
    NumberLiteral,
    ParameterNode,
    ProgramNode,
    ReturnStatement,
    Statement,
    UnaryExpression,
    UnaryOperator,
    VariableDeclaration,
    WhileStatement,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_NESTING_DEPTH = 100

# token type -> (precedence, operator); higher binds tighter
BINARY_OPERATORS: dict[TokenType, tuple[int, BinaryOperator]] = {
    TokenType.OR: (1, BinaryOperator.LOGICAL_OR),
    TokenType.AND: (2, BinaryOperator.LOGICAL_AND),
    TokenType.EQ: (3, BinaryOperator.EQUAL),
    TokenType.NE: (3, BinaryOperator.NOT_EQUAL),
    TokenType.LT: (4, BinaryOperator.LESS),
    TokenType.LE: (4, BinaryOperator.LESS_EQ),
    TokenType.GT: (4, BinaryOperator.GREATER),
    TokenType.GE: (4, BinaryOperator.GREATER_EQ),
    TokenType.PLUS: (5, BinaryOperator.ADD),
    TokenType.MINUS: (5, BinaryOperator.SUBTRACT),
    TokenType.STAR: (6, BinaryOperator.MULTIPLY),
    TokenType.SLASH: (6, BinaryOperator.DIVIDE),
}

UNARY_OPERATORS: dict[TokenType, UnaryOperator] = {
    TokenType.MINUS: UnaryOperator.NEGATE,
    TokenType.NOT: UnaryOperator.LOGICAL_NOT,
}

TYPE_KEYWORDS: dict[TokenType, BaseType] = {
    TokenType.INT: BaseType.INT,
    TokenType.CHAR: BaseType.CHAR,
    TokenType.VOID: BaseType.VOID,
}

# Tokens where error recovery may resume
SYNC_TOKENS = frozenset({
    TokenType.INT,
    TokenType.CHAR,
    TokenType.VOID,
    TokenType.IF,
    TokenType.WHILE,
    TokenType.RETURN,
    TokenType.LBRACE,
})


class Parser:
    """
    Recursive descent parser for µC.

    Usage:
        tokens = Lexer(source, "prog.uc").tokenize()
        parser = Parser(tokens, "prog.uc", source.splitlines())
        program = parser.parse()
        if parser.diagnostics.has_errors():
            ...

    Attributes:
        tokens: Materialised token list ending in EOF
        filename: Source filename for error messages
        source_lines: Original source lines for error context
        diagnostics: Collector receiving syntax errors
        max_nesting_depth: Deepest nesting accepted
    """

    def __init__(
        self,
        tokens: Iterable[Token],
        filename: str = "<input>",
        source_lines: Optional[list[str]] = None,
        diagnostics: Optional[DiagnosticCollector] = None,
        max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH,
    ):
        self.tokens = list(tokens)
        if not self.tokens or self.tokens[-1].type != TokenType.EOF:
            last = self.tokens[-1] if self.tokens else None
            line = last.line if last else 1
            self.tokens.append(Token(TokenType.EOF, "", None, line, 1, 0, filename))
        self.filename = filename
        self.source_lines = source_lines or []
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.max_nesting_depth = max_nesting_depth

        self._pos = 0
        self._depth = 0

    def parse(self) -> ProgramNode:
        """
        Parse the whole token stream.

        Always returns a ProgramNode; syntax errors are left in
        self.diagnostics.
        """
        declarations: list[Declaration] = []

        while not self._at_end():
            start = self._pos
            try:
                declarations.extend(self._parse_top_level_declaration())
            except UCSyntaxError as e:
                self.diagnostics.add(e)
                self._synchronize(start, top_level=True)

        logger.debug(f"{self.filename}: parsed {len(declarations)} top-level declarations")

        return ProgramNode(
            location=SourceLocation(self.filename, 1, 1),
            declarations=declarations,
        )

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _peek(self, offset: int = 0) -> Token:
        pos = self._pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def _advance(self) -> Token:
        token = self._peek()
        if not self._at_end():
            self._pos += 1
        return token

    def _check(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _match(self, *types: TokenType) -> Optional[Token]:
        if self._check(*types):
            return self._advance()
        return None

    def _expect(self, token_type: TokenType, expected: str) -> Token:
        """
        Consume a token of the given type.

        Raises:
            UnexpectedTokenError: If the current token is of another type
        """
        if self._check(token_type):
            return self._advance()
        raise self._unexpected(expected)

    def _unexpected(self, expected: Optional[str] = None) -> UnexpectedTokenError:
        token = self._peek()
        found = "end of input" if token.type == TokenType.EOF else token.lexeme
        return UnexpectedTokenError(
            found,
            expected=expected,
            location=token.location,
            source_line=self._get_source_line(token.line),
        )

    def _error(self, message: str, token: Token, hint: Optional[str] = None) -> UCSyntaxError:
        return UCSyntaxError(
            message,
            token.location,
            hint=hint,
            source_line=self._get_source_line(token.line),
        )

    def _get_source_line(self, line: int) -> Optional[str]:
        if 0 < line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None

    @contextmanager
    def _nesting(self) -> Iterator[None]:
        """Count one level of nesting for the duration of the block."""
        self._enter_level()
        try:
            yield
        finally:
            self._depth -= 1

    def _enter_level(self) -> None:
        self._depth += 1
        if self._depth > self.max_nesting_depth:
            raise self._error(
                f"nesting deeper than {self.max_nesting_depth} levels",
                self._peek(),
                hint="split the expression or statement into smaller pieces",
            )

    def _synchronize(self, start: int, top_level: bool = False) -> None:
        """
        Skip tokens after a syntax error.

        Stops after the next ';', at the next '}' (consumed at top level)
        or before a keyword that can begin a declaration or statement.
        At least one token is always consumed.
        """
        if self._pos == start:
            self._advance()

        while not self._at_end():
            token_type = self._peek().type
            if token_type == TokenType.SEMICOLON:
                self._advance()
                return
            if token_type == TokenType.RBRACE:
                if top_level:
                    self._advance()
                return
            if token_type in SYNC_TOKENS:
                return
            self._advance()

    # =========================================================================
    # Declarations
    # =========================================================================

    def _parse_type(self) -> tuple[BaseType, Token]:
        token = self._peek()
        if token.type not in TYPE_KEYWORDS:
            raise self._unexpected("a type ('int', 'char' or 'void')")
        self._advance()
        return TYPE_KEYWORDS[token.type], token

    def _parse_top_level_declaration(self) -> list[Declaration]:
        """
        Parse a global variable declaration, prototype, or definition.

        Returns:
            One FunctionNode, or the VariableDeclarations of one line
        """
        base_type, _ = self._parse_type()
        name_token = self._expect(TokenType.IDENTIFIER, "identifier")

        if self._check(TokenType.LPAREN):
            return [self._parse_function(CType(base_type), name_token)]

        declarations = [self._finish_declarator(base_type, name_token, is_global=True)]
        while self._match(TokenType.COMMA):
            name_token = self._expect(TokenType.IDENTIFIER, "identifier")
            declarations.append(self._finish_declarator(base_type, name_token, is_global=True))
        self._expect(TokenType.SEMICOLON, "';'")
        return declarations

    def _finish_declarator(
        self,
        base_type: BaseType,
        name_token: Token,
        is_global: bool,
    ) -> VariableDeclaration:
        var_type = CType(base_type)
        if self._match(TokenType.LBRACKET):
            size = self._parse_array_size()
            self._expect(TokenType.RBRACKET, "']'")
            var_type = array_of(base_type, size)

        return VariableDeclaration(
            location=name_token.location,
            name=name_token.value,
            var_type=var_type,
            is_global=is_global,
        )

    def _parse_array_size(self) -> int:
        """
        Parse a constant array size.

        A leading '-' is accepted only so that negative sizes get a
        precise diagnostic. Non-positive sizes are replaced by 1.
        """
        minus = self._match(TokenType.MINUS)
        token = self._peek()
        if token.type != TokenType.NUMBER:
            raise self._unexpected("array size")
        self._advance()

        value = -token.value if minus else token.value
        if value <= 0:
            where = minus or token
            self.diagnostics.add(
                ConstantRangeError(
                    f"array size must be a positive constant, got {value}",
                    where.location,
                    source_line=self._get_source_line(where.line),
                )
            )
            return 1
        return value

    def _parse_function(self, return_type: CType, name_token: Token) -> FunctionNode:
        self._expect(TokenType.LPAREN, "'('")
        parameters = self._parse_parameter_list()
        self._expect(TokenType.RPAREN, "')'")

        function = FunctionNode(
            location=name_token.location,
            name=name_token.value,
            return_type=return_type,
            parameters=parameters,
        )

        if self._match(TokenType.SEMICOLON):
            return function

        if not self._check(TokenType.LBRACE):
            raise self._unexpected("';' or '{'")

        for index, param in enumerate(parameters, start=1):
            if param.name is None:
                self.diagnostics.add(
                    UCSyntaxError(
                        f"parameter {index} of '{function.name}' has no name",
                        param.location,
                        hint="parameters may be unnamed only in prototypes",
                        source_line=self._get_source_line(param.location.line),
                    )
                )

        function.body = self._parse_block()
        return function

    def _parse_parameter_list(self) -> list[ParameterNode]:
        """Parse parameters; both (void) and () mean no parameters."""
        if self._check(TokenType.RPAREN):
            return []
        if self._check(TokenType.VOID) and self._peek(1).type == TokenType.RPAREN:
            self._advance()
            return []

        parameters = [self._parse_parameter()]
        while self._match(TokenType.COMMA):
            parameters.append(self._parse_parameter())
        return parameters

    def _parse_parameter(self) -> ParameterNode:
        """
        Parse one parameter.

        'char s[]' and 'char s[10]' both declare a decayed char array;
        the size, when present, is checked and then ignored.
        """
        base_type, type_token = self._parse_type()
        name_token = self._match(TokenType.IDENTIFIER)

        param_type = CType(base_type)
        if self._match(TokenType.LBRACKET):
            if not self._check(TokenType.RBRACKET):
                self._parse_array_size()
            self._expect(TokenType.RBRACKET, "']'")
            param_type = array_of(base_type)

        return ParameterNode(
            location=(name_token or type_token).location,
            name=name_token.value if name_token else None,
            param_type=param_type,
        )

    def _parse_local_declaration(self, declarations: list[VariableDeclaration]) -> None:
        """Parse 'type declarator, declarator ;' into `declarations`."""
        base_type, _ = self._parse_type()
        while True:
            name_token = self._expect(TokenType.IDENTIFIER, "identifier")
            declarations.append(self._finish_declarator(base_type, name_token, is_global=False))
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.SEMICOLON, "';'")

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_block(self) -> BlockStatement:
        """
        Parse '{ local_decl* statement* }'.

        Syntax errors inside the block are recovered here, one statement
        at a time.
        """
        open_brace = self._expect(TokenType.LBRACE, "'{'")
        block = BlockStatement(location=open_brace.location)

        while not self._check(TokenType.RBRACE) and not self._at_end():
            start = self._pos
            try:
                if self._peek().is_type_keyword():
                    if block.statements:
                        self.diagnostics.add(
                            self._error(
                                "declaration after statement",
                                self._peek(),
                                hint="declare local variables at the start of the block",
                            )
                        )
                    self._parse_local_declaration(block.declarations)
                else:
                    block.statements.append(self._parse_statement())
            except UCSyntaxError as e:
                self.diagnostics.add(e)
                self._synchronize(start)

        self._expect(TokenType.RBRACE, "'}'")
        return block

    def _parse_statement(self) -> Statement:
        with self._nesting():
            token = self._peek()

            if token.type == TokenType.SEMICOLON:
                self._advance()
                return EmptyStatement(location=token.location)
            if token.type == TokenType.LBRACE:
                return self._parse_block()
            if token.type == TokenType.IF:
                return self._parse_if_statement()
            if token.type == TokenType.WHILE:
                return self._parse_while_statement()
            if token.type == TokenType.RETURN:
                return self._parse_return_statement()

            expression = self._parse_expression()
            self._expect(TokenType.SEMICOLON, "';'")
            return ExpressionStatement(location=token.location, expression=expression)

    def _parse_condition(self) -> Expression:
        self._expect(TokenType.LPAREN, "'('")
        condition = self._parse_expression()
        self._expect(TokenType.RPAREN, "')'")
        return condition

    def _parse_if_statement(self) -> IfStatement:
        """
        The else binds to the nearest if.

        An 'else if' chain is read in a loop and the arms are linked up
        afterwards, so a long chain does not count as nesting.
        """
        arms: list[tuple[SourceLocation, Expression, Statement]] = []
        else_branch = None
        while True:
            location = self._advance().location
            condition = self._parse_condition()
            arms.append((location, condition, self._parse_statement()))
            if not self._match(TokenType.ELSE):
                break
            if not self._check(TokenType.IF):
                else_branch = self._parse_statement()
                break

        for location, condition, then_branch in reversed(arms):
            else_branch = IfStatement(
                location=location,
                condition=condition,
                then_branch=then_branch,
                else_branch=else_branch,
            )
        return else_branch

    def _parse_while_statement(self) -> WhileStatement:
        location = self._advance().location
        condition = self._parse_condition()
        body = self._parse_statement()
        return WhileStatement(location=location, condition=condition, body=body)

    def _parse_return_statement(self) -> ReturnStatement:
        location = self._advance().location
        value = None
        if not self._check(TokenType.SEMICOLON):
            value = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "';'")
        return ReturnStatement(location=location, value=value)

    # =========================================================================
    # Expressions
    # =========================================================================

    def _parse_expression(self) -> Expression:
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        """Assignment is right-associative: a = b = c is a = (b = c)."""
        target = self._parse_binary(1)

        if self._check(TokenType.ASSIGN):
            self._advance()
            with self._nesting():
                value = self._parse_assignment()
            return AssignmentExpression(location=target.location, target=target, value=value)

        return target

    def _parse_binary(self, min_precedence: int) -> Expression:
        """
        Precedence climbing over BINARY_OPERATORS.

        Operators of equal precedence associate to the left and are folded
        in a loop, so a long flat chain such as 1+1+...+1 is not nesting.
        Recursion only reaches the next precedence level.
        """
        left = self._parse_unary()
        while True:
            entry = BINARY_OPERATORS.get(self._peek().type)
            if entry is None or entry[0] < min_precedence:
                return left
            precedence, operator = entry
            self._advance()
            right = self._parse_binary(precedence + 1)
            left = BinaryExpression(
                location=left.location,
                operator=operator,
                left=left,
                right=right,
            )

    def _parse_unary(self) -> Expression:
        token = self._peek()
        operator = UNARY_OPERATORS.get(token.type)
        if operator is None:
            return self._parse_postfix()

        self._advance()
        with self._nesting():
            operand = self._parse_unary()
        return UnaryExpression(location=token.location, operator=operator, operand=operand)

    def _parse_postfix(self) -> Expression:
        expr = self._parse_primary()

        while True:
            if self._match(TokenType.LBRACKET):
                with self._nesting():
                    index = self._parse_expression()
                self._expect(TokenType.RBRACKET, "']'")
                expr = ArraySubscript(location=expr.location, array=expr, index=index)
            elif self._check(TokenType.LPAREN):
                expr = self._parse_call(expr)
            else:
                return expr

    def _parse_call(self, callee: Expression) -> CallExpression:
        """Parse call arguments. The callee must be a function name."""
        if not isinstance(callee, IdentifierExpression):
            raise self._error("called object is not a function name", self._peek())
        self._advance()  # (

        arguments = []
        with self._nesting():
            if not self._check(TokenType.RPAREN):
                while True:
                    arguments.append(self._parse_assignment())
                    if not self._match(TokenType.COMMA):
                        break
        self._expect(TokenType.RPAREN, "')'")

        return CallExpression(
            location=callee.location,
            function_name=callee.name,
            arguments=arguments,
        )

    def _parse_primary(self) -> Expression:
        token = self._peek()

        if token.type == TokenType.NUMBER:
            self._advance()
            return NumberLiteral(location=token.location, value=token.value)

        if token.type == TokenType.CHAR_LITERAL:
            self._advance()
            return CharLiteral(location=token.location, value=token.value)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return IdentifierExpression(location=token.location, name=token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            with self._nesting():
                expr = self._parse_expression()
            self._expect(TokenType.RPAREN, "')'")
            return expr

        if token.type == TokenType.STRING:
            raise self._error(
                "string literals are not supported",
                token,
                hint="store the characters into a char array one element at a time",
            )

        raise self._unexpected("expression")


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_source(
    source: str | bytes,
    filename: str = "<input>",
    diagnostics: Optional[DiagnosticCollector] = None,
    max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH,
) -> ProgramNode:
    """
    Lex and parse µC source into an AST.

    With no collector supplied, lexical or syntax errors raise
    UCCompilationError. With a collector, errors are left in it and the
    (partial) AST is returned.

    Raises:
        UCCompilationError: If errors were found and no collector was given
    """
    owns_collector = diagnostics is None
    if owns_collector:
        diagnostics = DiagnosticCollector()

    lexer = Lexer(source, filename, diagnostics)
    parser = Parser(
        lexer.tokenize(),
        filename,
        lexer.buffer.lines,
        diagnostics,
        max_nesting_depth=max_nesting_depth,
    )
    program = parser.parse()

    if owns_collector:
        diagnostics.raise_if_errors("parse")
    return program
