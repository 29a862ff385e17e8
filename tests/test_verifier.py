"""
µC IR Verifier Test Suite
=========================

The verifier accepts everything the lowerer produces and rejects
hand-built IR that breaks a structural rule.
"""

import pytest

from microc.errors import InternalCompilerError
from microc.frontend import CompilerOptions, compile_uc
from microc.frontend.ir import (
    Branch,
    Call,
    CondBranch,
    Constant,
    GlobalRef,
    IRExternal,
    IRFunction,
    IRGlobal,
    IRProgram,
    IRSlot,
    Label,
    Load,
    LocalRef,
    Move,
    Return,
    Store,
    Temp,
)
from microc.frontend.types import (
    TYPE_CHAR,
    TYPE_INT,
    TYPE_VOID,
    BaseType,
    FunctionType,
    array_of,
)
from microc.frontend.verifier import IRVerifier, verify_program

PUTINT = IRExternal("putint", FunctionType(TYPE_VOID, (TYPE_INT,)))
PUTSTRING = IRExternal("putstring", FunctionType(TYPE_VOID, (array_of(BaseType.CHAR),)))
STRING = array_of(BaseType.CHAR, 4)


def t(index: int, ctype=TYPE_INT) -> Temp:
    return Temp(index, ctype)


def program_with(*instructions, return_type=TYPE_INT, temp_count=4, locals_=(), frame_size=0):
    """One-function program named main with the given body."""
    function = IRFunction(
        "main",
        return_type,
        locals=list(locals_),
        frame_size=frame_size,
        instructions=list(instructions),
        temp_count=temp_count,
    )
    return IRProgram(
        globals=[IRGlobal("g", TYPE_INT, 4), IRGlobal("s", STRING, 4)],
        functions=[function],
        externals=[PUTINT, PUTSTRING],
    )


def rejects(program: IRProgram, message: str) -> None:
    with pytest.raises(InternalCompilerError, match=message):
        verify_program(program)


class TestAccepted:
    """Valid IR passes."""

    def test_hand_built_program(self):
        """A small well-formed program verifies."""
        program = program_with(
            Move(t(0), Constant(1)),
            CondBranch(t(0), "yes", "done"),
            Label("yes"),
            Call("putint", [t(0)]),
            Store(GlobalRef("s", STRING), Constant(0), Constant(65, TYPE_CHAR)),
            Call("putstring", [GlobalRef("s", STRING)]),
            Branch("done"),
            Label("done"),
            Return(Constant(0)),
        )
        IRVerifier(program).verify()

    def test_corpus_verifies(self, programs_dir):
        """Every sample program lowers to verifiable IR."""
        options = CompilerOptions(strict_returns=False, verify_ir=False)
        for path in sorted(programs_dir.glob("*.uc")):
            verify_program(compile_uc(path.read_bytes(), path.name, options))

    def test_short_circuit_temps(self):
        """A result defined on both arms of && is accepted."""
        program = compile_uc(
            "int main(void) { int a; int b; return a && b || !a; }",
            options=CompilerOptions(verify_ir=False),
        )
        verify_program(program)


class TestRejected:
    """Each structural rule has a failing example."""

    def test_missing_final_return(self):
        """Functions must end with ret."""
        rejects(program_with(Move(t(0), Constant(1))), "does not end with ret")

    def test_empty_function(self):
        """An empty body has no final ret."""
        rejects(program_with(), "does not end with ret")

    def test_duplicate_label(self):
        """Labels are unique per function."""
        rejects(
            program_with(Label("a"), Label("a"), Return(Constant(0))),
            "duplicate label 'a'",
        )

    def test_unknown_branch_target(self):
        """Branches must target an existing label."""
        rejects(program_with(Branch("nowhere"), Return(Constant(0))), "unknown label 'nowhere'")

    def test_temp_used_before_definition(self):
        """A temporary must be written before it is read."""
        rejects(program_with(Return(t(0))), "%t0 used before definition")

    def test_temp_out_of_range(self):
        """Temporary indices stay below temp_count."""
        rejects(
            program_with(Move(t(5), Constant(1)), Return(Constant(0)), temp_count=2),
            "%t5 is out of range",
        )

    def test_unknown_local(self):
        """Local references must name a slot of the frame."""
        rejects(
            program_with(Move(LocalRef("x", TYPE_INT, 0), Constant(1)), Return(Constant(0))),
            r"\$x is not a slot",
        )

    def test_local_with_wrong_offset(self):
        """A local reference must carry the slot's offset."""
        slot = IRSlot("x", TYPE_INT, 0)
        rejects(
            program_with(
                Move(LocalRef("x", TYPE_INT, 4), Constant(1)),
                Return(Constant(0)),
                locals_=[slot],
                frame_size=8,
            ),
            r"\$x is not a slot",
        )

    def test_unknown_global(self):
        """Global references must name a global."""
        rejects(
            program_with(Move(GlobalRef("nope", TYPE_INT), Constant(1)), Return(Constant(0))),
            "@nope is not a global",
        )

    def test_load_from_scalar(self):
        """Load bases must be arrays."""
        rejects(
            program_with(Load(t(0), GlobalRef("g", TYPE_INT), Constant(0)), Return(Constant(0))),
            "@g is not an array",
        )

    def test_call_unknown_function(self):
        """Calls need a known signature."""
        rejects(program_with(Call("mystery", []), Return(Constant(0))), "unknown function 'mystery'")

    def test_call_arity(self):
        """Calls pass exactly the declared number of arguments."""
        rejects(
            program_with(Call("putint", [Constant(1), Constant(2)]), Return(Constant(0))),
            "takes 1 arguments, got 2",
        )

    def test_scalar_for_array_parameter(self):
        """Array parameters take array operands."""
        rejects(
            program_with(Call("putstring", [Constant(5)]), Return(Constant(0))),
            "does not match",
        )

    def test_array_argument_not_a_variable(self):
        """An array argument must be a variable."""
        decayed = array_of(BaseType.CHAR)
        rejects(
            program_with(
                Move(t(0, decayed), GlobalRef("s", STRING)),
                Call("putstring", [t(0, decayed)]),
                Return(Constant(0)),
            ),
            "is not a variable",
        )

    def test_void_call_with_result(self):
        """A void call cannot define a temporary."""
        rejects(
            program_with(Call("putint", [Constant(1)], t(0)), Return(Constant(0))),
            "call result does not match",
        )

    def test_void_function_returning_value(self):
        """ret in a void function carries no value."""
        rejects(program_with(Return(Constant(1)), return_type=TYPE_VOID), "returns a value")

    def test_int_function_without_value(self):
        """ret in a non-void function carries a value."""
        rejects(program_with(Return()), "returns no value")

    def test_slot_outside_frame(self):
        """Slots must fit in frame_size."""
        rejects(
            program_with(
                Return(Constant(0)),
                locals_=[IRSlot("big", STRING, 4)],
                frame_size=4,
            ),
            "outside its frame",
        )

    def test_function_defined_twice(self):
        """Function names are unique across a program."""
        program = program_with(Return(Constant(0)))
        program.functions.append(program.functions[0])
        rejects(program, "defined twice")

    def test_message_prefix(self):
        """Verifier failures read as internal compiler errors."""
        with pytest.raises(InternalCompilerError) as excinfo:
            verify_program(program_with())
        assert str(excinfo.value).startswith("internal compiler error: ")
