"""
µC Reference Runtime
====================

An interpreter for lowered IR, used to run µC programs end to end
without a code generator.

Memory Map
----------
    0x0000-0x00FF  Unused (address 0 is never a valid base)
    0x0100-...     Globals, each aligned to 4 bytes, zero-initialised
    ...-end        Stack: one frame per active call, growing upward

All memory is one little-endian bytearray. Array bases are addresses,
so a store past the end of an array overwrites whatever follows it, as
it would on a real target; only accesses outside the memory fault.

Values
------
int values are signed 32-bit and wrap on overflow; char values are
0..255. Division truncates toward zero. Division by zero, running out
of stack and exceeding the step budget raise ExecutionError.

Calls push a Frame on an explicit stack, so deep µC recursion never
touches the Python recursion limit.

Runtime Functions
-----------------
| Function  | Behaviour                                            |
|-----------|------------------------------------------------------|
| putint    | Write the decimal value of its argument               |
| putstring | Write the bytes of its argument up to the first 0     |
| getstring | Read one input line into its argument, 0-terminated   |
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from microc.errors import MicroCError
from microc.frontend.types import WORD_SIZE, BaseType, CType, wrap_int
from microc.frontend.ir import (
    BinaryOp,
    BinOp,
    Branch,
    Call,
    Cmp,
    Comparison,
    CondBranch,
    Constant,
    GlobalRef,
    IRFunction,
    IRProgram,
    Label,
    Load,
    LocalRef,
    Move,
    Operand,
    Return,
    Store,
    Temp,
    UnaryOp,
    UnOp,
)

logger = logging.getLogger(__name__)

GLOBAL_BASE = 0x100
DEFAULT_MAX_STEPS = 10_000_000
DEFAULT_STACK_SIZE = 1024 * 1024


class ExecutionError(MicroCError):
    """A fault while running IR (bad address, division by zero, ...)."""

    def __init__(self, message: str, function: Optional[str] = None, pc: Optional[int] = None):
        self.function = function
        self.pc = pc
        if function is not None:
            message = f"{message} (in {function} at {pc})"
        super().__init__(message)


@dataclass
class Frame:
    """
    One active call.

    Attributes:
        function: The function being executed
        base: Address of the frame's slot storage
        temps: Temporary values, indexed by Temp.index
        pc: Index of the next instruction
        result: Caller temporary receiving this call's return value
    """
    function: IRFunction
    base: int
    temps: list[int]
    pc: int = 0
    result: Optional[Temp] = None


@dataclass
class ExecutionResult:
    """
    Outcome of running a program.

    Attributes:
        stdout: Everything written by putint and putstring
        exit_code: The value returned by main
        steps: Instructions executed
    """
    stdout: str = ""
    exit_code: int = 0
    steps: int = 0


@dataclass
class _Input:
    text: str
    position: int = 0

    def readline(self) -> str:
        end = self.text.find("\n", self.position)
        if end < 0:
            line = self.text[self.position:]
            self.position = len(self.text)
        else:
            line = self.text[self.position:end]
            self.position = end + 1
        return line.rstrip("\r")


class IRMachine:
    """
    Executes an IRProgram.

    Example:
        machine = IRMachine(ir, stdin="hello\\n")
        result = machine.run()
        print(result.stdout, result.exit_code)

    Attributes:
        program: The program being run
        memory: Flat byte memory (globals then stack)
        global_addresses: Base address of each global
    """

    def __init__(
        self,
        program: IRProgram,
        stdin: str = "",
        max_steps: int = DEFAULT_MAX_STEPS,
        stack_size: int = DEFAULT_STACK_SIZE,
    ):
        self.program = program
        self.max_steps = max_steps
        self._input = _Input(stdin)
        self._output: list[str] = []

        self.global_addresses: dict[str, int] = {}
        address = GLOBAL_BASE
        for var in program.globals:
            self.global_addresses[var.name] = address
            address = _align(address + var.size, WORD_SIZE)

        self.stack_base = address
        self.memory = bytearray(self.stack_base + stack_size)
        self._sp = self.stack_base

        self._functions = {f.name: f for f in program.functions}
        self._labels = {f.name: f.labels() for f in program.functions}
        self._builtins: dict[str, Callable[[list[int]], None]] = {
            "putint": self._putint,
            "putstring": self._putstring,
            "getstring": self._getstring,
        }

        self._frames: list[Frame] = []
        self._exit_code = 0

    # =========================================================================
    # Memory Access
    # =========================================================================

    def _check_address(self, address: int, size: int) -> None:
        if address < GLOBAL_BASE or address + size > len(self.memory):
            raise ExecutionError(f"memory access out of range at 0x{address:X}")

    def read(self, address: int, ctype: CType) -> int:
        """Read a scalar of `ctype` (or an address, for a decayed array)."""
        if ctype.base_type == BaseType.CHAR and not ctype.is_array:
            self._check_address(address, 1)
            return self.memory[address]
        self._check_address(address, WORD_SIZE)
        return int.from_bytes(self.memory[address:address + WORD_SIZE], "little", signed=True)

    def write(self, address: int, ctype: CType, value: int) -> None:
        if ctype.base_type == BaseType.CHAR and not ctype.is_array:
            self._check_address(address, 1)
            self.memory[address] = value & 0xFF
            return
        self._check_address(address, WORD_SIZE)
        self.memory[address:address + WORD_SIZE] = wrap_int(value).to_bytes(
            WORD_SIZE, "little", signed=True
        )

    def read_string(self, address: int) -> bytes:
        """Bytes from `address` up to (not including) the first 0."""
        self._check_address(address, 1)
        end = self.memory.find(0, address)
        if end < 0:
            raise ExecutionError(f"unterminated string at 0x{address:X}")
        return bytes(self.memory[address:end])

    # =========================================================================
    # Operands
    # =========================================================================

    def _slot_address(self, frame: Frame, ref: LocalRef | GlobalRef) -> int:
        if isinstance(ref, GlobalRef):
            return self.global_addresses[ref.name]
        return frame.base + ref.offset

    def _array_address(self, frame: Frame, ref: LocalRef | GlobalRef) -> int:
        """Base address of an array variable."""
        address = self._slot_address(frame, ref)
        if ref.type.is_decayed:
            return self.read(address, ref.type)
        return address

    def _value(self, frame: Frame, operand: Operand) -> int:
        if isinstance(operand, Constant):
            return operand.value
        if isinstance(operand, Temp):
            return frame.temps[operand.index]
        if operand.type.is_array:
            return self._array_address(frame, operand)
        return self.read(self._slot_address(frame, operand), operand.type)

    def _assign(self, frame: Frame, dst: Temp | LocalRef | GlobalRef, value: int) -> None:
        if isinstance(dst, Temp):
            frame.temps[dst.index] = value
        else:
            self.write(self._slot_address(frame, dst), dst.type, value)

    # =========================================================================
    # Calls
    # =========================================================================

    def _push_frame(self, function: IRFunction, args: list[int], result: Optional[Temp]) -> None:
        base = self._sp
        top = base + function.frame_size
        if top > len(self.memory):
            raise ExecutionError(f"stack overflow calling '{function.name}'")
        self.memory[base:top] = bytes(function.frame_size)
        self._sp = top

        frame = Frame(function, base, [0] * function.temp_count, result=result)
        for slot, value in zip(function.params, args):
            self.write(base + slot.offset, slot.type, value)
        self._frames.append(frame)

    def _call(self, frame: Frame, instr: Call) -> None:
        args = [self._value(frame, arg) for arg in instr.args]

        builtin = self._builtins.get(instr.function)
        function = self._functions.get(instr.function)
        if function is None:
            if builtin is None:
                raise ExecutionError(f"call to undefined function '{instr.function}'")
            builtin(args)
            return
        self._push_frame(function, args, instr.dst)

    def _return(self, frame: Frame, value: Optional[int]) -> None:
        self._frames.pop()
        self._sp = frame.base
        if not self._frames:
            self._exit_code = value if value is not None else 0
            return
        if frame.result is not None:
            self._frames[-1].temps[frame.result.index] = value

    def _putint(self, args: list[int]) -> None:
        self._output.append(str(args[0]))

    def _putstring(self, args: list[int]) -> None:
        self._output.append(self.read_string(args[0]).decode("latin-1"))

    def _getstring(self, args: list[int]) -> None:
        data = self._input.readline().encode("latin-1", errors="replace") + b"\0"
        address = args[0]
        self._check_address(address, len(data))
        self.memory[address:address + len(data)] = data

    # =========================================================================
    # Execution
    # =========================================================================

    def run(self, entry: str = "main") -> ExecutionResult:
        """
        Run the program from `entry` until it returns.

        Raises:
            ExecutionError: On a runtime fault or when max_steps is exceeded
        """
        function = self._functions.get(entry)
        if function is None:
            raise ExecutionError(f"program has no function '{entry}'")
        self._push_frame(function, [], None)

        steps = 0
        while self._frames:
            frame = self._frames[-1]
            instructions = frame.function.instructions
            if frame.pc >= len(instructions):
                raise ExecutionError("fell off the end of the function", frame.function.name, frame.pc)
            steps += 1
            if steps > self.max_steps:
                raise ExecutionError(
                    f"step limit of {self.max_steps} exceeded", frame.function.name, frame.pc
                )
            instr = instructions[frame.pc]
            frame.pc += 1
            try:
                self._step(frame, instr)
            except ExecutionError as e:
                if e.function is None:
                    raise ExecutionError(str(e), frame.function.name, frame.pc - 1) from e
                raise

        logger.debug(f"executed {steps} steps, exit code {self._exit_code}")
        return ExecutionResult("".join(self._output), self._exit_code, steps)

    def _step(self, frame: Frame, instr) -> None:
        if isinstance(instr, Move):
            self._assign(frame, instr.dst, self._value(frame, instr.src))
        elif isinstance(instr, BinOp):
            left = self._value(frame, instr.left)
            right = self._value(frame, instr.right)
            frame.temps[instr.dst.index] = _binary(instr.op, left, right)
        elif isinstance(instr, UnOp):
            frame.temps[instr.dst.index] = _unary(instr.op, self._value(frame, instr.src))
        elif isinstance(instr, Cmp):
            left = self._value(frame, instr.left)
            right = self._value(frame, instr.right)
            frame.temps[instr.dst.index] = int(_COMPARISONS[instr.op](left, right))
        elif isinstance(instr, CondBranch):
            label = instr.true_label if self._value(frame, instr.cond) else instr.false_label
            frame.pc = self._labels[frame.function.name][label]
        elif isinstance(instr, Branch):
            frame.pc = self._labels[frame.function.name][instr.label]
        elif isinstance(instr, Label):
            pass
        elif isinstance(instr, Load):
            element = instr.dst.type
            address = self._array_address(frame, instr.base)
            address += self._value(frame, instr.index) * element.size
            frame.temps[instr.dst.index] = self.read(address, element)
        elif isinstance(instr, Store):
            element = instr.base.type.element_type
            address = self._array_address(frame, instr.base)
            address += self._value(frame, instr.index) * element.size
            self.write(address, element, self._value(frame, instr.src))
        elif isinstance(instr, Call):
            self._call(frame, instr)
        elif isinstance(instr, Return):
            value = self._value(frame, instr.value) if instr.value is not None else None
            self._return(frame, value)
        else:
            raise ExecutionError(f"unknown instruction {instr!r}")


_COMPARISONS = {
    Comparison.LT: lambda a, b: a < b,
    Comparison.LE: lambda a, b: a <= b,
    Comparison.GT: lambda a, b: a > b,
    Comparison.GE: lambda a, b: a >= b,
    Comparison.EQ: lambda a, b: a == b,
    Comparison.NE: lambda a, b: a != b,
}


def _align(offset: int, alignment: int) -> int:
    return (offset + alignment - 1) // alignment * alignment


def _divide(left: int, right: int) -> int:
    if right == 0:
        raise ExecutionError("division by zero")
    quotient = abs(left) // abs(right)
    return -quotient if (left < 0) != (right < 0) else quotient


def _binary(op: BinaryOp, left: int, right: int) -> int:
    if op == BinaryOp.ADD:
        return wrap_int(left + right)
    if op == BinaryOp.SUB:
        return wrap_int(left - right)
    if op == BinaryOp.MUL:
        return wrap_int(left * right)
    if op == BinaryOp.DIV:
        return wrap_int(_divide(left, right))
    raise ExecutionError(f"unknown binary operator {op}")


def _unary(op: UnaryOp, value: int) -> int:
    if op == UnaryOp.NEG:
        return wrap_int(-value)
    if op == UnaryOp.NOT:
        return int(value == 0)
    if op == UnaryOp.ZEXT:
        return value & 0xFF
    if op == UnaryOp.TRUNC:
        return value & 0xFF
    raise ExecutionError(f"unknown unary operator {op}")


def run_program(
    program: IRProgram,
    stdin: str = "",
    max_steps: int = DEFAULT_MAX_STEPS,
    stack_size: int = DEFAULT_STACK_SIZE,
) -> ExecutionResult:
    """Run `program` from main and collect its output."""
    return IRMachine(program, stdin, max_steps, stack_size).run()
