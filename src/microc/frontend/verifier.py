"""
µC IR Verifier
==============

Structural checks over lowered IR. A failure here is a compiler defect,
never a user error, so every problem raises InternalCompilerError at
once instead of being collected.

Checks
------
- Labels are unique within a function; every branch target exists
- Every temporary is defined before it is used, in instruction order
  (temporaries of the short-circuit operators are defined on both arms,
  so the linear order is sufficient)
- Temporary indices are below the function's temp_count
- Calls name a defined or external function with the right argument
  count; array parameters receive array-typed variables
- Load and store bases are array-typed variables
- ret carries a value exactly when the function is non-void
- The last instruction is a ret
- Frame slots fit inside frame_size
"""

import logging

from microc.errors import InternalCompilerError
from microc.frontend.types import FunctionType
from microc.frontend.ir import (
    Call,
    Constant,
    GlobalRef,
    IRFunction,
    IRProgram,
    Label,
    Load,
    LocalRef,
    Return,
    Store,
    Temp,
)

logger = logging.getLogger(__name__)


class IRVerifier:
    """
    Checks an IRProgram for structural consistency.

    Usage:
        IRVerifier(program).verify()   # raises InternalCompilerError
    """

    def __init__(self, program: IRProgram):
        self.program = program
        self._signatures: dict[str, FunctionType] = {}
        self._globals = {g.name: g.type for g in program.globals}

    def verify(self) -> None:
        for external in self.program.externals:
            self._signatures[external.name] = external.type
        for function in self.program.functions:
            if function.name in self._signatures:
                raise InternalCompilerError(f"function '{function.name}' defined twice")
            self._signatures[function.name] = function.signature

        for function in self.program.functions:
            self._verify_function(function)

        logger.debug(f"verified {len(self.program.functions)} functions")

    def _fail(self, function: IRFunction, index: int, message: str) -> None:
        instr = function.instructions[index] if index < len(function.instructions) else None
        where = f"{function.name}[{index}]"
        if instr is not None:
            where += f" '{instr}'"
        raise InternalCompilerError(f"invalid IR in {where}: {message}")

    def _verify_function(self, function: IRFunction) -> None:
        instructions = function.instructions
        if not instructions or not isinstance(instructions[-1], Return):
            raise InternalCompilerError(f"function '{function.name}' does not end with ret")

        for slot in function.params + function.locals:
            if slot.offset < 0 or slot.offset + slot.type.size > function.frame_size:
                raise InternalCompilerError(
                    f"slot ${slot.name} of '{function.name}' lies outside its frame"
                )

        labels = set()
        for index, instr in enumerate(instructions):
            if isinstance(instr, Label):
                if instr.name in labels:
                    self._fail(function, index, f"duplicate label '{instr.name}'")
                labels.add(instr.name)

        slots = {slot.name: slot for slot in function.params + function.locals}
        defined: set[int] = set()

        for index, instr in enumerate(instructions):
            for target in instr.targets():
                if target not in labels:
                    self._fail(function, index, f"branch to unknown label '{target}'")

            for operand in instr.uses():
                self._check_operand(function, index, operand, slots)
                if isinstance(operand, Temp) and operand.index not in defined:
                    self._fail(function, index, f"{operand} used before definition")

            if isinstance(instr, (Load, Store)):
                self._check_operand(function, index, instr.base, slots)
                if not instr.base.type.is_array:
                    self._fail(function, index, f"{instr.base} is not an array")
            elif isinstance(instr, Call):
                self._check_call(function, index, instr, slots)
            elif isinstance(instr, Return):
                self._check_return(function, index, instr)

            result = instr.defines()
            if result is not None:
                self._check_operand(function, index, result, slots)
                if isinstance(result, Temp):
                    defined.add(result.index)
                elif isinstance(result, Constant):
                    self._fail(function, index, "cannot assign to a constant")

    def _check_operand(self, function: IRFunction, index: int, operand, slots) -> None:
        if isinstance(operand, Temp):
            if not 0 <= operand.index < function.temp_count:
                self._fail(function, index, f"{operand} is out of range")
        elif isinstance(operand, LocalRef):
            slot = slots.get(operand.name)
            if slot is None or slot.offset != operand.offset:
                self._fail(function, index, f"{operand} is not a slot of this frame")
        elif isinstance(operand, GlobalRef):
            if operand.name not in self._globals:
                self._fail(function, index, f"{operand} is not a global")
        elif not isinstance(operand, Constant):
            self._fail(function, index, f"unknown operand {operand!r}")

    def _check_call(self, function: IRFunction, index: int, instr: Call, slots) -> None:
        signature = self._signatures.get(instr.function)
        if signature is None:
            self._fail(function, index, f"call to unknown function '{instr.function}'")
        if len(instr.args) != signature.arity:
            self._fail(
                function, index,
                f"'{instr.function}' takes {signature.arity} arguments, got {len(instr.args)}",
            )
        for arg, param_type in zip(instr.args, signature.param_types):
            if param_type.is_array != arg.type.is_array:
                self._fail(function, index, f"argument {arg} does not match '{param_type}'")
            if param_type.is_array and not isinstance(arg, (LocalRef, GlobalRef)):
                self._fail(function, index, f"array argument {arg} is not a variable")
        if (instr.dst is None) != signature.return_type.is_void:
            self._fail(function, index, "call result does not match return type")

    def _check_return(self, function: IRFunction, index: int, instr: Return) -> None:
        if function.return_type.is_void and instr.value is not None:
            self._fail(function, index, "void function returns a value")
        if not function.return_type.is_void and instr.value is None:
            self._fail(function, index, "non-void function returns no value")


def verify_program(program: IRProgram) -> None:
    """Raise InternalCompilerError if `program` is structurally invalid."""
    IRVerifier(program).verify()
