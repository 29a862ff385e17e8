"""
microc Reference Runtime
========================

Runs lowered IR so µC programs can be executed without a back-end.

>>> from microc.frontend import compile_uc
>>> from microc.runtime import run_program
>>> run_program(compile_uc('int main(void) { putint(42); return 0; }')).stdout
'42'
"""

from microc.runtime.machine import (
    ExecutionError,
    ExecutionResult,
    Frame,
    IRMachine,
    run_program,
)

__all__ = [
    "ExecutionError",
    "ExecutionResult",
    "Frame",
    "IRMachine",
    "run_program",
]
