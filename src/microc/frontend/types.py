"""
µC Type System
==============

Supported Types
---------------
- int: 32-bit signed two's complement
- char: 8-bit unsigned (0 to 255), zero-extended when widened to int
- void: no value (function results, or a parameter list's sole element)
- arrays of int or char with a positive constant length, e.g. char[27]
- decayed arrays, e.g. char[] (array parameters: length unknown)
- functions: result type plus parameter types

Size Information
----------------
| Type          | Size (bytes) |
|---------------|--------------|
| char          | 1            |
| int           | 4            |
| T[N]          | N * sizeof(T) |
| T[] (decayed) | 4 (the base address) |
| void          | 0            |

An array and a decayed array are different types. A sized array
argument may be passed to a decayed parameter of the same element
type; nothing else converts to or from an array.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

WORD_SIZE = 4


class BaseType(Enum):
    """Fundamental µC data types."""
    VOID = auto()
    CHAR = auto()
    INT = auto()

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class CType:
    """
    A µC value type.

    Attributes:
        base_type: The scalar type, or the element type for arrays
        is_array: True for arrays (sized or decayed)
        array_size: Element count, or None for a decayed array

    Examples:
        - int        : CType(INT)
        - char[27]   : CType(CHAR, True, 27)
        - char[]     : CType(CHAR, True, None)
    """
    base_type: BaseType
    is_array: bool = False
    array_size: Optional[int] = None

    @property
    def size(self) -> int:
        """Storage size in bytes."""
        if self.is_array:
            if self.array_size is None:
                return WORD_SIZE
            return self.array_size * self.element_size
        return _SCALAR_SIZES[self.base_type]

    @property
    def element_size(self) -> int:
        return _SCALAR_SIZES[self.base_type]

    @property
    def alignment(self) -> int:
        if self.is_decayed:
            return WORD_SIZE
        return max(1, self.element_size)

    @property
    def is_void(self) -> bool:
        return self.base_type == BaseType.VOID and not self.is_array

    @property
    def is_scalar(self) -> bool:
        """True for int and char values (the only storable scalars)."""
        return not self.is_array and self.base_type != BaseType.VOID

    @property
    def is_decayed(self) -> bool:
        return self.is_array and self.array_size is None

    @property
    def element_type(self) -> "CType":
        return CType(self.base_type)

    def decay(self) -> "CType":
        """Return the decayed form of an array type."""
        return CType(self.base_type, True, None)

    def __str__(self) -> str:
        if self.is_array:
            size = "" if self.array_size is None else str(self.array_size)
            return f"{self.base_type}[{size}]"
        return str(self.base_type)


_SCALAR_SIZES = {
    BaseType.VOID: 0,
    BaseType.CHAR: 1,
    BaseType.INT: 4,
}

TYPE_VOID = CType(BaseType.VOID)
TYPE_CHAR = CType(BaseType.CHAR)
TYPE_INT = CType(BaseType.INT)


def array_of(base_type: BaseType, size: Optional[int] = None) -> CType:
    return CType(base_type, True, size)


@dataclass(frozen=True)
class FunctionType:
    """
    Function signature.

    Attributes:
        return_type: Result type (may be void)
        param_types: Parameter types; array parameters are always decayed
    """
    return_type: CType
    param_types: tuple[CType, ...] = ()

    @property
    def arity(self) -> int:
        return len(self.param_types)

    def is_compatible_with(self, other: "FunctionType") -> bool:
        """Prototypes are compatible when result and parameters agree."""
        return (
            self.return_type == other.return_type
            and len(self.param_types) == len(other.param_types)
            and all(
                _param_form(a) == _param_form(b)
                for a, b in zip(self.param_types, other.param_types)
            )
        )

    def __str__(self) -> str:
        params = ", ".join(str(p) for p in self.param_types) or "void"
        return f"{self.return_type}({params})"


def _param_form(ctype: CType) -> CType:
    return ctype.decay() if ctype.is_array else ctype


# =============================================================================
# Conversion Rules
# =============================================================================

def is_assignable(source: CType, target: CType) -> bool:
    """
    Return True if a value of `source` type may be stored into `target`.

    char widens to int (zero-extension) and int narrows to char (low 8
    bits). Arrays and void are never assignable.
    """
    return source.is_scalar and target.is_scalar


def is_passable(argument: CType, parameter: CType) -> bool:
    """
    Return True if `argument` may be passed for `parameter`.

    Array parameters take an array of the same element type (sized or
    already decayed). Scalar parameters follow assignment rules.
    """
    if parameter.is_array:
        return argument.is_array and argument.base_type == parameter.base_type
    return is_assignable(argument, parameter)


def wrap_int(value: int) -> int:
    """Reduce a Python int to the signed 32-bit range."""
    return ((value + 2**31) % 2**32) - 2**31


def convert_constant(value: int, target: CType) -> int:
    """Convert a constant to `target` the way the running program would."""
    if target.base_type == BaseType.CHAR:
        return value & 0xFF
    return wrap_int(value)
