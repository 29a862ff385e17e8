"""
microc Test Configuration
=========================

Shared fixtures and helpers for the front-end and runtime tests.

- programs_dir: directory of sample µC programs (tests/programs)
- compile_and_run: compile source text and run it on the reference runtime
- diagnostics_for: compile source text and return the collected errors
"""

from pathlib import Path

import pytest

from microc.frontend import CompilerOptions, MicroCCompiler, UCCompilationError
from microc.runtime import run_program


PROGRAMS_DIR = Path(__file__).parent / "programs"


@pytest.fixture(scope="session")
def programs_dir() -> Path:
    """Fixture: directory holding the sample .uc programs."""
    return PROGRAMS_DIR


@pytest.fixture
def compile_and_run():
    """
    Fixture: compile µC source and execute it.

    Returns a function (source, stdin="", **options) -> ExecutionResult.
    """
    def _run(source: str, stdin: str = "", **options):
        result = MicroCCompiler(CompilerOptions(**options)).compile_source(source, "test.uc")
        return run_program(result.ir, stdin=stdin)
    return _run


@pytest.fixture
def diagnostics_for():
    """
    Fixture: compile µC source that is expected to fail.

    Returns a function (source, **options) -> UCCompilationError.
    """
    def _diagnose(source: str, **options) -> UCCompilationError:
        with pytest.raises(UCCompilationError) as excinfo:
            MicroCCompiler(CompilerOptions(**options)).compile_source(source, "test.uc")
        return excinfo.value
    return _diagnose
