"""
µC Intermediate Representation
==============================

A linear, typed three-address code. Each function is a flat list of
instructions; control flow uses labels and branches.

Operands
--------
| Operand   | Text     | Meaning                                      |
|-----------|----------|----------------------------------------------|
| Constant  | 42       | integer constant of a given type             |
| Temp      | %t3      | compiler temporary                           |
| LocalRef  | $i       | parameter or local, addressed by frame offset |
| GlobalRef | @board   | global variable                              |

Array-typed LocalRef/GlobalRef operands stand for an array base. For a
decayed array (a parameter declared T[]) the frame slot holds the base
address, one 4-byte word; for a sized array the storage itself is in
the frame or in global memory.

Instructions
------------
    %t0 <- move $i
    %t2 <- add %t0, %t1          (add sub mul div)
    %t3 <- neg %t2               (neg not zext trunc)
    %t4 <- cmp lt %t0, 10        (lt le gt ge eq ne, result 0 or 1)
    cbr %t4, while_body1, while_end2
    br while_cond0
    while_end2:
    %t5 <- load @board[%t0]
    store $s[%t0] <- %t5
    %t6 <- call fac(%t5)
    call putint(%t6)
    ret %t6
    ret

The text produced by format_program() is deterministic: the same
source always yields byte-identical output.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from microc.frontend.types import CType, FunctionType, TYPE_INT


# =============================================================================
# Operands
# =============================================================================

@dataclass(frozen=True)
class Constant:
    value: int
    type: CType = TYPE_INT

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Temp:
    index: int
    type: CType

    def __str__(self) -> str:
        return f"%t{self.index}"


@dataclass(frozen=True)
class LocalRef:
    """Parameter or local variable at a frame offset."""
    name: str
    type: CType
    offset: int

    def __str__(self) -> str:
        return f"${self.name}"


@dataclass(frozen=True)
class GlobalRef:
    name: str
    type: CType

    def __str__(self) -> str:
        return f"@{self.name}"


Operand = Union[Constant, Temp, LocalRef, GlobalRef]
Variable = Union[LocalRef, GlobalRef]


# =============================================================================
# Opcodes
# =============================================================================

class BinaryOp(str, Enum):
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"


class UnaryOp(str, Enum):
    NEG = "neg"
    NOT = "not"
    ZEXT = "zext"     # char -> int, zero-extending
    TRUNC = "trunc"   # int -> char, low 8 bits


class Comparison(str, Enum):
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    EQ = "eq"
    NE = "ne"


# =============================================================================
# Instructions
# =============================================================================

class Instruction:
    """Base class; subclasses report the operands they read and write."""

    def uses(self) -> tuple[Operand, ...]:
        return ()

    def defines(self) -> Optional[Operand]:
        return None

    def targets(self) -> tuple[str, ...]:
        """Labels this instruction may jump to."""
        return ()

    @property
    def is_terminator(self) -> bool:
        return False


@dataclass
class Move(Instruction):
    dst: Union[Temp, LocalRef, GlobalRef]
    src: Operand

    def uses(self):
        return (self.src,)

    def defines(self):
        return self.dst

    def __str__(self) -> str:
        return f"{self.dst} <- move {self.src}"


@dataclass
class BinOp(Instruction):
    op: BinaryOp
    dst: Temp
    left: Operand
    right: Operand

    def uses(self):
        return (self.left, self.right)

    def defines(self):
        return self.dst

    def __str__(self) -> str:
        return f"{self.dst} <- {self.op.value} {self.left}, {self.right}"


@dataclass
class UnOp(Instruction):
    op: UnaryOp
    dst: Temp
    src: Operand

    def uses(self):
        return (self.src,)

    def defines(self):
        return self.dst

    def __str__(self) -> str:
        return f"{self.dst} <- {self.op.value} {self.src}"


@dataclass
class Cmp(Instruction):
    op: Comparison
    dst: Temp
    left: Operand
    right: Operand

    def uses(self):
        return (self.left, self.right)

    def defines(self):
        return self.dst

    def __str__(self) -> str:
        return f"{self.dst} <- cmp {self.op.value} {self.left}, {self.right}"


@dataclass
class CondBranch(Instruction):
    """Jump to true_label if cond is non-zero, else to false_label."""
    cond: Operand
    true_label: str
    false_label: str

    def uses(self):
        return (self.cond,)

    def targets(self):
        return (self.true_label, self.false_label)

    @property
    def is_terminator(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"cbr {self.cond}, {self.true_label}, {self.false_label}"


@dataclass
class Branch(Instruction):
    label: str

    def targets(self):
        return (self.label,)

    @property
    def is_terminator(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"br {self.label}"


@dataclass
class Label(Instruction):
    name: str

    def __str__(self) -> str:
        return f"{self.name}:"


@dataclass
class Load(Instruction):
    """dst <- base[index]; base is an array-typed variable."""
    dst: Temp
    base: Variable
    index: Operand

    def uses(self):
        return (self.index,)

    def defines(self):
        return self.dst

    def __str__(self) -> str:
        return f"{self.dst} <- load {self.base}[{self.index}]"


@dataclass
class Store(Instruction):
    """base[index] <- src; base is an array-typed variable."""
    base: Variable
    index: Operand
    src: Operand

    def uses(self):
        return (self.index, self.src)

    def __str__(self) -> str:
        return f"store {self.base}[{self.index}] <- {self.src}"


@dataclass
class Call(Instruction):
    """
    Call a function. Array arguments are array-typed variables (the
    callee receives their base address); scalars are converted to the
    parameter type before the call.
    """
    function: str
    args: list[Operand] = field(default_factory=list)
    dst: Optional[Temp] = None

    def uses(self):
        return tuple(self.args)

    def defines(self):
        return self.dst

    def __str__(self) -> str:
        args = ", ".join(str(a) for a in self.args)
        if self.dst is not None:
            return f"{self.dst} <- call {self.function}({args})"
        return f"call {self.function}({args})"


@dataclass
class Return(Instruction):
    value: Optional[Operand] = None

    def uses(self):
        return (self.value,) if self.value is not None else ()

    @property
    def is_terminator(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"ret {self.value}" if self.value is not None else "ret"


# =============================================================================
# Program Records
# =============================================================================

@dataclass
class IRSlot:
    """A parameter or local with its frame offset."""
    name: str
    type: CType
    offset: int

    def ref(self) -> LocalRef:
        return LocalRef(self.name, self.type, self.offset)

    def __str__(self) -> str:
        return f"${self.name}: {self.type} @{self.offset}"


@dataclass
class IRFunction:
    """
    One lowered function.

    Attributes:
        name: Function name
        return_type: Result type
        params: Parameter slots in order (4 bytes each)
        locals: Local slots in declaration order
        frame_size: Bytes of frame storage, a multiple of 4
        instructions: Linear instruction list, ending in a Return
        temp_count: Number of temporaries used
    """
    name: str
    return_type: CType
    params: list[IRSlot] = field(default_factory=list)
    locals: list[IRSlot] = field(default_factory=list)
    frame_size: int = 0
    instructions: list[Instruction] = field(default_factory=list)
    temp_count: int = 0

    @property
    def signature(self) -> FunctionType:
        return FunctionType(self.return_type, tuple(p.type for p in self.params))

    def labels(self) -> dict[str, int]:
        """Map label name to instruction index."""
        return {
            instr.name: index
            for index, instr in enumerate(self.instructions)
            if isinstance(instr, Label)
        }


@dataclass
class IRGlobal:
    """Zero-initialised global storage."""
    name: str
    type: CType
    size: int

    def __str__(self) -> str:
        return f"global @{self.name}: {self.type} ({self.size} bytes)"


@dataclass
class IRExternal:
    """A function declared but not defined in this translation unit."""
    name: str
    type: FunctionType

    def __str__(self) -> str:
        params = ", ".join(str(p) for p in self.type.param_types) or "void"
        return f"declare {self.type.return_type} {self.name}({params})"


@dataclass
class IRProgram:
    globals: list[IRGlobal] = field(default_factory=list)
    functions: list[IRFunction] = field(default_factory=list)
    externals: list[IRExternal] = field(default_factory=list)

    def function(self, name: str) -> Optional[IRFunction]:
        for function in self.functions:
            if function.name == name:
                return function
        return None

    def external(self, name: str) -> Optional[IRExternal]:
        for external in self.externals:
            if external.name == name:
                return external
        return None

    def __str__(self) -> str:
        return format_program(self)


# =============================================================================
# Text Format
# =============================================================================

def format_function(function: IRFunction) -> str:
    params = ", ".join(f"{p.type} ${p.name}" for p in function.params) or "void"
    lines = [f"function {function.return_type} {function.name}({params}) frame {function.frame_size}"]
    for slot in function.params:
        lines.append(f"  ; param {slot}")
    for slot in function.locals:
        lines.append(f"  ; local {slot}")
    for instr in function.instructions:
        if isinstance(instr, Label):
            lines.append(str(instr))
        else:
            lines.append(f"  {instr}")
    lines.append("end")
    return "\n".join(lines)


def format_program(program: IRProgram) -> str:
    """Render a program as text; the output ends with a newline."""
    sections = []
    if program.externals:
        sections.append("\n".join(str(e) for e in program.externals))
    if program.globals:
        sections.append("\n".join(str(g) for g in program.globals))
    sections.extend(format_function(f) for f in program.functions)
    return "\n\n".join(sections) + "\n"
