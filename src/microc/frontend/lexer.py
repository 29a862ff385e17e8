"""
µC Lexer (Tokenizer)
====================

This module converts a source buffer into a lazy stream of tokens for
the parser. The stream always ends with a single EOF token.

Token Categories
----------------
- Keywords: int, char, void, if, else, while, return
- Identifiers: [A-Za-z_][A-Za-z0-9_]*
- Integer literals: [0-9]+ (at most 2^31 - 1)
- Character literals: 'a', '\\n'
- String literals: "..." (lexed only so the parser can reject them)
- Punctuators: + - * / = == != < <= > >= && || ! ; , ( ) [ ] { }

Comments
--------
- Single-line: // comment
- Multi-line: /* comment */ (not nested)

Escape Sequences
----------------
\\n (newline), \\t (tab), \\\\ (backslash), \\' (quote),
\\" (double quote), \\0 (null)

Error Recovery
--------------
Lexical errors are recorded in the DiagnosticCollector and scanning
continues. Stray bytes are skipped. A malformed literal still produces
a token (with a best-effort value) so the parser does not report a
second error for the same mistake.

Example Usage
-------------
>>> from microc.frontend.lexer import Lexer
>>> for token in Lexer("int main(void) { return 42; }", "t.uc").tokenize():
...     print(token)
Token(INT, 'int', 1:1)
Token(IDENTIFIER, 'main', 1:5)
...
Token(EOF, 1:30)
"""

import logging
import string
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable, Iterator, Optional

from microc.errors import SourceLocation
from microc.frontend.errors import DiagnosticCollector, LexicalError
from microc.frontend.source import SourceBuffer

logger = logging.getLogger(__name__)

INT_MAX = 2**31 - 1


# =============================================================================
# Token Types
# =============================================================================

class TokenKind(Enum):
    """Coarse token categories."""
    IDENTIFIER = "identifier"
    INTEGER = "integer literal"
    CHARACTER = "character literal"
    STRING = "string literal"
    KEYWORD = "keyword"
    PUNCTUATOR = "punctuator"
    EOF = "end of input"


class TokenType(Enum):
    """
    Fine-grained token types.

    Every keyword and punctuator has its own type so the parser can
    match on a single value.
    """

    EOF = auto()

    # === Identifiers and Literals ===
    IDENTIFIER = auto()
    NUMBER = auto()
    CHAR_LITERAL = auto()
    STRING = auto()

    # === Keywords ===
    INT = auto()            # int
    CHAR = auto()           # char
    VOID = auto()           # void
    IF = auto()             # if
    ELSE = auto()           # else
    WHILE = auto()          # while
    RETURN = auto()         # return

    # === Operators ===
    PLUS = auto()           # +
    MINUS = auto()          # -
    STAR = auto()           # *
    SLASH = auto()          # /
    ASSIGN = auto()         # =
    EQ = auto()             # ==
    NE = auto()             # !=
    LT = auto()             # <
    LE = auto()             # <=
    GT = auto()             # >
    GE = auto()             # >=
    AND = auto()            # &&
    OR = auto()             # ||
    NOT = auto()            # !

    # === Delimiters ===
    SEMICOLON = auto()      # ;
    COMMA = auto()          # ,
    LPAREN = auto()         # (
    RPAREN = auto()         # )
    LBRACKET = auto()       # [
    RBRACKET = auto()       # ]
    LBRACE = auto()         # {
    RBRACE = auto()         # }


KEYWORDS: dict[str, TokenType] = {
    "int": TokenType.INT,
    "char": TokenType.CHAR,
    "void": TokenType.VOID,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "while": TokenType.WHILE,
    "return": TokenType.RETURN,
}

# Two-character punctuators are tried before single characters
PUNCTUATORS_2: dict[str, TokenType] = {
    "==": TokenType.EQ,
    "!=": TokenType.NE,
    "<=": TokenType.LE,
    ">=": TokenType.GE,
    "&&": TokenType.AND,
    "||": TokenType.OR,
}

PUNCTUATORS_1: dict[str, TokenType] = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "=": TokenType.ASSIGN,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "!": TokenType.NOT,
    ";": TokenType.SEMICOLON,
    ",": TokenType.COMMA,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
}

_KIND_BY_TYPE: dict[TokenType, TokenKind] = {
    TokenType.EOF: TokenKind.EOF,
    TokenType.IDENTIFIER: TokenKind.IDENTIFIER,
    TokenType.NUMBER: TokenKind.INTEGER,
    TokenType.CHAR_LITERAL: TokenKind.CHARACTER,
    TokenType.STRING: TokenKind.STRING,
    **{t: TokenKind.KEYWORD for t in KEYWORDS.values()},
    **{t: TokenKind.PUNCTUATOR for t in PUNCTUATORS_1.values()},
    **{t: TokenKind.PUNCTUATOR for t in PUNCTUATORS_2.values()},
}


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token from µC source.

    Attributes:
        type: The TokenType classification
        lexeme: The exact source text of the token
        value: Decoded value (int for number and character literals,
               str for string literals, the lexeme otherwise)
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        offset: Byte offset of the first character (0-indexed)
        filename: Name of the source file
    """
    type: TokenType
    lexeme: str
    value: str | int | None
    line: int
    column: int
    offset: int = 0
    filename: str = "<input>"

    def __repr__(self) -> str:
        if self.type == TokenType.EOF:
            return f"Token(EOF, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.lexeme!r}, {self.line}:{self.column})"

    @property
    def kind(self) -> TokenKind:
        return _KIND_BY_TYPE[self.type]

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column, self.offset)

    def is_type_keyword(self) -> bool:
        return self.type in (TokenType.INT, TokenType.CHAR, TokenType.VOID)


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes µC source code.

    Usage:
        lexer = Lexer(source_text, "prog.uc")
        tokens = list(lexer.tokenize())
        if lexer.diagnostics.has_errors():
            ...

    Attributes:
        buffer: The SourceBuffer being tokenized
        diagnostics: Collector receiving lexical errors
    """

    IDENT_START = string.ascii_letters + "_"
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    ESCAPE_SEQUENCES = {
        "n": 10,
        "t": 9,
        "\\": 92,
        "'": 39,
        '"': 34,
        "0": 0,
    }

    def __init__(
        self,
        source: SourceBuffer | str | bytes,
        filename: str = "<input>",
        diagnostics: Optional[DiagnosticCollector] = None,
    ):
        if not isinstance(source, SourceBuffer):
            source = SourceBuffer(source, filename)
        self.buffer = source
        self.source = source.text
        self.filename = source.filename
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()

        self._pos = 0
        self._line = 1
        self._column = 1

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source.

        Yields:
            Token objects, ending with exactly one EOF token
        """
        count = 0
        while True:
            self._skip_whitespace_and_comments()
            if self._at_end():
                break
            token = self._scan_token()
            if token is not None:
                count += 1
                yield token

        logger.debug(f"{self.filename}: {count} tokens")
        yield Token(TokenType.EOF, "", None, self._line, self._column, self._pos, self.filename)

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """Look ahead without advancing. Returns "" past the end."""
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume one character, keeping line and column current."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1

        return char

    # =========================================================================
    # Token Creation and Errors
    # =========================================================================

    def _make_token(
        self,
        token_type: TokenType,
        value: str | int | None,
        start: tuple[int, int, int],
    ) -> Token:
        line, column, offset = start
        return Token(
            type=token_type,
            lexeme=self.source[offset:self._pos],
            value=value,
            line=line,
            column=column,
            offset=offset,
            filename=self.filename,
        )

    def _start(self) -> tuple[int, int, int]:
        return (self._line, self._column, self._pos)

    def _error(
        self,
        message: str,
        start: Optional[tuple[int, int, int]] = None,
        hint: Optional[str] = None,
    ) -> None:
        """Record a lexical error at `start` (default: current position)."""
        line, column, offset = start or self._start()
        location = SourceLocation(self.filename, line, column, offset)
        self.diagnostics.add(
            LexicalError(
                message,
                location,
                hint=hint,
                source_line=self.buffer.line_text(line),
            )
        )

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace_and_comments(self) -> None:
        while not self._at_end():
            char = self._peek()

            if char in " \t\n\r":
                self._advance()
                continue

            if char == "/" and self._peek(1) == "/":
                while not self._at_end() and self._peek() != "\n":
                    self._advance()
                continue

            if char == "/" and self._peek(1) == "*":
                self._skip_block_comment()
                continue

            break

    def _skip_block_comment(self) -> None:
        start = self._start()
        self._advance()
        self._advance()

        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()

        self._error(
            "unterminated block comment",
            start,
            hint="add '*/' to terminate the comment",
        )

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> Optional[Token]:
        start = self._start()
        char = self._peek()

        if char in self.IDENT_START:
            return self._scan_identifier(start)

        if char in string.digits:
            return self._scan_number(start)

        if char == "'":
            return self._scan_char(start)

        if char == '"':
            return self._scan_string(start)

        return self._scan_punctuator(start)

    def _scan_identifier(self, start: tuple[int, int, int]) -> Token:
        while self._peek() and self._peek() in self.IDENT_CHARS:
            self._advance()

        name = self.source[start[2]:self._pos]
        token_type = KEYWORDS.get(name, TokenType.IDENTIFIER)
        return self._make_token(token_type, name, start)

    def _scan_number(self, start: tuple[int, int, int]) -> Token:
        while self._peek() and self._peek() in string.digits:
            self._advance()

        value = int(self.source[start[2]:self._pos])
        if value > INT_MAX:
            self._error(
                f"integer literal {value} is too large for 'int'",
                start,
                hint=f"the largest 'int' literal is {INT_MAX}",
            )
            value = 0
        return self._make_token(TokenType.NUMBER, value, start)

    def _scan_escape(self) -> int:
        """Decode the escape after a backslash (already consumed)."""
        escape_start = (self._line, self._column - 1, self._pos - 1)
        char = self._peek()
        if char in ("", "\n"):
            return 0
        self._advance()
        if char in self.ESCAPE_SEQUENCES:
            return self.ESCAPE_SEQUENCES[char]
        self._error(
            f"unknown escape sequence '\\{char}'",
            escape_start,
            hint="valid escapes are \\n \\t \\\\ \\' \\\" \\0",
        )
        return ord(char) & 0xFF

    def _scan_char(self, start: tuple[int, int, int]) -> Token:
        """Scan a character literal: exactly one byte or escape in quotes."""
        self._advance()  # opening '

        char = self._peek()
        if char == "'":
            self._advance()
            self._error("empty character literal", start)
            return self._make_token(TokenType.CHAR_LITERAL, 0, start)

        if char in ("", "\n"):
            self._error("unterminated character literal", start, hint="add closing \"'\"")
            return self._make_token(TokenType.CHAR_LITERAL, 0, start)

        self._advance()
        value = self._scan_escape() if char == "\\" else ord(char) & 0xFF

        if self._peek() == "'":
            self._advance()
            return self._make_token(TokenType.CHAR_LITERAL, value, start)

        # Too many characters: look for the closing quote on this line
        scan = self._pos
        while scan < len(self.source) and self.source[scan] not in "'\n":
            scan += 1
        if scan < len(self.source) and self.source[scan] == "'":
            while self._pos <= scan:
                self._advance()
            self._error(
                "multi-character character literal",
                start,
                hint="a character literal holds exactly one character",
            )
        else:
            self._error("unterminated character literal", start, hint="add closing \"'\"")
        return self._make_token(TokenType.CHAR_LITERAL, value, start)

    def _scan_string(self, start: tuple[int, int, int]) -> Token:
        self._advance()  # opening "

        chars = []
        while not self._at_end():
            char = self._peek()
            if char == '"':
                self._advance()
                return self._make_token(TokenType.STRING, "".join(chars), start)
            if char == "\n":
                break
            self._advance()
            if char == "\\":
                chars.append(chr(self._scan_escape()))
            else:
                chars.append(char)

        self._error("unterminated string literal", start, hint="add closing '\"'")
        return self._make_token(TokenType.STRING, "".join(chars), start)

    def _scan_punctuator(self, start: tuple[int, int, int]) -> Optional[Token]:
        pair = self._peek() + self._peek(1)
        if pair in PUNCTUATORS_2:
            self._advance()
            self._advance()
            return self._make_token(PUNCTUATORS_2[pair], pair, start)

        char = self._peek()
        if char in PUNCTUATORS_1:
            self._advance()
            return self._make_token(PUNCTUATORS_1[char], char, start)

        self._advance()
        hint = None
        if char in "&|":
            hint = f"did you mean '{char}{char}'?"
        if char.isprintable() and ord(char) < 0x80:
            self._error(f"stray '{char}' in program", start, hint=hint)
        else:
            self._error(f"stray byte 0x{ord(char):02X} in program", start)
        return None


# =============================================================================
# Token Utilities
# =============================================================================

_FUSING_PAIRS = {"==", "!=", "<=", ">=", "&&", "||", "//", "/*"}


def join_lexemes(tokens: Iterable[Token]) -> str:
    """
    Concatenate token lexemes with minimal separating whitespace.

    A single space is inserted only where two neighbouring lexemes would
    otherwise lex differently (identifier/number runs, two-character
    operators, comment openers). Lexing the result yields the same
    token types and values.
    """
    parts: list[str] = []
    previous = ""
    for token in tokens:
        if token.type == TokenType.EOF:
            break
        text = token.lexeme
        if previous and text:
            left, right = previous[-1], text[0]
            if (left in Lexer.IDENT_CHARS and right in Lexer.IDENT_CHARS) or (
                left + right in _FUSING_PAIRS
            ):
                parts.append(" ")
        parts.append(text)
        previous = text
    return "".join(parts)


def tokenize(source: str | bytes, filename: str = "<input>") -> list[Token]:
    """Tokenize a source string into a list ending in EOF."""
    return list(Lexer(source, filename).tokenize())
