"""
µC Symbol Table
===============

Scopes live in one list owned by the SymbolTable and are addressed by
index. A Symbol records the index of its declaring scope rather than
holding a reference to it, so symbols, scopes and AST nodes never form
reference cycles.

Scope Layout
------------
- Scope 0 is the global scope: runtime prototypes, global variables
  and functions
- Each function definition opens one function scope (parent 0) holding
  its parameters and every local of its body; nested blocks do not open
  scopes of their own
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Iterator, Optional

from microc.errors import SourceLocation
from microc.frontend.types import CType, FunctionType

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = 0


class StorageClass(Enum):
    """Where a declared name lives."""
    GLOBAL = auto()     # global variables and all functions
    PARAMETER = auto()
    LOCAL = auto()


@dataclass(eq=False)
class Symbol:
    """
    One declared name.

    Attributes:
        name: The identifier
        type: CType for variables, FunctionType for functions
        storage: Storage class
        location: Where the name was first declared
        scope_index: Index of the declaring scope in the SymbolTable
        node: The declaring AST node (None for runtime prototypes)
        is_defined: For functions, True once a body has been seen
        is_builtin: True for the injected runtime prototypes
    """
    name: str
    type: CType | FunctionType
    storage: StorageClass
    location: Optional[SourceLocation]
    scope_index: int
    node: Any = field(default=None, repr=False)
    is_defined: bool = False
    is_builtin: bool = False

    @property
    def is_function(self) -> bool:
        return isinstance(self.type, FunctionType)

    def __repr__(self) -> str:
        return f"Symbol({self.name!r}, {self.type}, {self.storage.name.lower()})"


@dataclass
class Scope:
    """
    A mapping from name to Symbol, unique per name.

    Attributes:
        index: Position of this scope in the table
        parent: Index of the enclosing scope (None for the global scope)
        name: Label for debugging ("<global>" or the function name)
        symbols: Declared names in insertion order
    """
    index: int
    parent: Optional[int]
    name: str
    symbols: dict[str, Symbol] = field(default_factory=dict)

    def lookup_local(self, name: str) -> Optional[Symbol]:
        return self.symbols.get(name)


class SymbolTable:
    """
    Arena of scopes plus a cursor on the current one.

        table = SymbolTable()
        table.declare("n", TYPE_INT, StorageClass.GLOBAL, loc)
        table.push_scope("main")
        table.declare("i", TYPE_INT, StorageClass.LOCAL, loc)
        table.lookup("n")      # found through the parent chain
        table.pop_scope()
    """

    def __init__(self):
        self.scopes: list[Scope] = [Scope(GLOBAL_SCOPE, None, "<global>")]
        self.current = GLOBAL_SCOPE

    @property
    def global_scope(self) -> Scope:
        return self.scopes[GLOBAL_SCOPE]

    @property
    def current_scope(self) -> Scope:
        return self.scopes[self.current]

    def scope(self, index: int) -> Scope:
        return self.scopes[index]

    def push_scope(self, name: str) -> int:
        """Open a new scope nested in the current one and enter it."""
        index = len(self.scopes)
        self.scopes.append(Scope(index, self.current, name))
        self.current = index
        return index

    def pop_scope(self) -> None:
        parent = self.current_scope.parent
        if parent is None:
            raise ValueError("cannot pop the global scope")
        self.current = parent

    def declare(
        self,
        name: str,
        symbol_type: CType | FunctionType,
        storage: StorageClass,
        location: Optional[SourceLocation],
        node: Any = None,
        **flags: bool,
    ) -> Symbol:
        """
        Add a name to the current scope.

        Raises:
            ValueError: If the name already exists in the current scope;
                callers check with lookup_local first
        """
        scope = self.current_scope
        if name in scope.symbols:
            raise ValueError(f"'{name}' already declared in scope {scope.name}")
        symbol = Symbol(name, symbol_type, storage, location, scope.index, node, **flags)
        scope.symbols[name] = symbol
        return symbol

    def lookup_local(self, name: str) -> Optional[Symbol]:
        return self.current_scope.lookup_local(name)

    def lookup(self, name: str, scope_index: Optional[int] = None) -> Optional[Symbol]:
        """Find `name` starting at `scope_index` (default: current) and walking outward."""
        index = self.current if scope_index is None else scope_index
        while index is not None:
            scope = self.scopes[index]
            symbol = scope.symbols.get(name)
            if symbol is not None:
                return symbol
            index = scope.parent
        return None

    def visible_names(self, scope_index: Optional[int] = None) -> list[str]:
        """All names visible from a scope, innermost first."""
        names = []
        index = self.current if scope_index is None else scope_index
        while index is not None:
            scope = self.scopes[index]
            names.extend(n for n in scope.symbols if n not in names)
            index = scope.parent
        return names

    def function_scope(self, function_name: str) -> Optional[Scope]:
        for scope in self.scopes[1:]:
            if scope.name == function_name:
                return scope
        return None

    def __iter__(self) -> Iterator[Symbol]:
        for scope in self.scopes:
            yield from scope.symbols.values()
